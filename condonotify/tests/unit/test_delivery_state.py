from __future__ import annotations

from condonotify.domain.state import DeliveryState, fold_status, is_regression, labels_guarded_against


def test_fold_status_handles_case_whitespace_and_unknown_labels() -> None:
    assert fold_status(" Delivered ") is DeliveryState.DELIVERED
    assert fold_status("VISUALIZADO") is DeliveryState.READ
    assert fold_status("played") is DeliveryState.READ
    assert fold_status("server") is DeliveryState.SENT
    assert fold_status("something-else") is None
    assert fold_status(None) is None


def test_regression_rules() -> None:
    assert is_regression(DeliveryState.READ, DeliveryState.DELIVERED)
    assert is_regression(DeliveryState.DELIVERED, DeliveryState.SENT)
    assert not is_regression(DeliveryState.SENT, DeliveryState.READ)
    # Any non-terminal state may move sideways into failed; failed never moves.
    assert not is_regression(DeliveryState.DELIVERED, DeliveryState.FAILED)
    assert is_regression(DeliveryState.FAILED, DeliveryState.READ)
    assert not is_regression(DeliveryState.FAILED, DeliveryState.FAILED)


def test_guarded_labels_cover_terminal_and_regressing_states() -> None:
    guarded = labels_guarded_against(DeliveryState.DELIVERED)
    assert {"failed", "erro", "read", "lido", "played"} <= guarded
    assert not guarded & {"sent", "enviado", "queued", "delivered", "entregue"}

    assert labels_guarded_against(DeliveryState.READ) == labels_guarded_against(DeliveryState.FAILED)
    assert "read" not in labels_guarded_against(DeliveryState.READ)
    assert {"sent", "read", "failed"} <= labels_guarded_against(None)
