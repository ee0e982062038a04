from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from condonotify.domain.state import DeliverySnapshot, DeliveryState
from condonotify.services.delivery.normalizer import canonical_state, detect_anomalies, normalize


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_read_timestamp_promotes_sent_and_backfills_delivery() -> None:
    result = normalize(DeliverySnapshot(raw_status="sent", delivered_at=None, read_at=T0))
    assert result.canonical is DeliveryState.READ
    assert result.corrections == {"raw_status": "read", "delivered_at": T0}


def test_read_timestamp_keeps_existing_delivery_timestamp() -> None:
    delivered = T0 - timedelta(minutes=3)
    result = normalize(DeliverySnapshot(raw_status="delivered", delivered_at=delivered, read_at=T0))
    assert result.canonical is DeliveryState.READ
    assert result.corrections == {"raw_status": "read"}


def test_delivery_timestamp_promotes_sent() -> None:
    result = normalize(DeliverySnapshot(raw_status="sent", delivered_at=T0, read_at=None))
    assert result.canonical is DeliveryState.DELIVERED
    assert result.corrections == {"raw_status": "delivered"}


def test_null_status_with_delivery_timestamp_is_promoted() -> None:
    result = normalize(DeliverySnapshot(raw_status=None, delivered_at=T0, read_at=None))
    assert result.canonical is DeliveryState.DELIVERED
    assert result.corrections == {"raw_status": "delivered"}


def test_consistent_records_need_no_update() -> None:
    read = normalize(DeliverySnapshot(raw_status="read", delivered_at=T0, read_at=T0))
    delivered = normalize(DeliverySnapshot(raw_status="delivered", delivered_at=T0, read_at=None))
    sent = normalize(DeliverySnapshot(raw_status="sent", delivered_at=None, read_at=None))
    assert not read.needs_update and read.canonical is DeliveryState.READ
    assert not delivered.needs_update and delivered.canonical is DeliveryState.DELIVERED
    assert not sent.needs_update and sent.canonical is DeliveryState.SENT


def test_read_status_with_only_delivery_timestamp_is_not_regressed() -> None:
    # A read label never moves back to delivered.
    result = normalize(DeliverySnapshot(raw_status="read", delivered_at=T0, read_at=None))
    assert result.canonical is DeliveryState.READ
    assert result.corrections == {}


@pytest.mark.parametrize("raw_status", ["failed", "erro", "FALHA"])
def test_failed_records_are_terminal(raw_status: str) -> None:
    result = normalize(DeliverySnapshot(raw_status=raw_status, delivered_at=T0, read_at=T0))
    assert result.canonical is DeliveryState.FAILED
    assert result.corrections == {}


def test_failed_without_timestamps_stays_failed() -> None:
    assert canonical_state(DeliverySnapshot(raw_status="failed", delivered_at=None, read_at=None)) is DeliveryState.FAILED


def test_unknown_or_missing_status_defaults_to_sent() -> None:
    assert canonical_state(DeliverySnapshot(raw_status=None, delivered_at=None, read_at=None)) is DeliveryState.SENT
    assert canonical_state(DeliverySnapshot(raw_status="mystery", delivered_at=None, read_at=None)) is DeliveryState.SENT


def test_provider_aliases_fold_to_canonical_state() -> None:
    assert canonical_state(DeliverySnapshot(raw_status="pendente", delivered_at=None, read_at=None)) is DeliveryState.QUEUED
    assert canonical_state(DeliverySnapshot(raw_status="entregue", delivered_at=None, read_at=None)) is DeliveryState.DELIVERED


def test_alias_label_with_read_timestamp_is_rewritten_to_canonical_label() -> None:
    result = normalize(DeliverySnapshot(raw_status="lido", delivered_at=T0, read_at=T0))
    assert result.canonical is DeliveryState.READ
    assert result.corrections == {"raw_status": "read"}


def test_normalize_is_idempotent_after_applying_corrections() -> None:
    snapshot = DeliverySnapshot(raw_status="sent", delivered_at=None, read_at=T0)
    first = normalize(snapshot)
    corrected = DeliverySnapshot(
        raw_status=first.corrections.get("raw_status", snapshot.raw_status),
        delivered_at=first.corrections.get("delivered_at", snapshot.delivered_at),
        read_at=snapshot.read_at,
    )
    second = normalize(corrected)
    assert second.canonical is first.canonical
    assert second.corrections == {}


def test_read_before_delivery_is_flagged_but_not_corrected() -> None:
    snapshot = DeliverySnapshot(raw_status="read", delivered_at=T0, read_at=T0 - timedelta(minutes=1))
    assert normalize(snapshot).corrections == {}
    assert detect_anomalies(snapshot) == ["read_at_before_delivered_at"]


def test_anomaly_check_tolerates_naive_and_aware_timestamps() -> None:
    snapshot = DeliverySnapshot(
        raw_status="read",
        delivered_at=T0.replace(tzinfo=None),
        read_at=T0 - timedelta(minutes=1),
    )
    assert detect_anomalies(snapshot) == ["read_at_before_delivered_at"]


def test_anomaly_check_converts_offset_timestamps_to_utc() -> None:
    # 09:30 at UTC-3 is 12:30 UTC, after a naive 12:00 UTC delivery.
    sao_paulo = timezone(timedelta(hours=-3))
    snapshot = DeliverySnapshot(
        raw_status="read",
        delivered_at=T0.replace(tzinfo=None),
        read_at=datetime(2026, 3, 1, 9, 30, tzinfo=sao_paulo),
    )
    assert detect_anomalies(snapshot) == []

    early = DeliverySnapshot(
        raw_status="read",
        delivered_at=datetime(2026, 3, 1, 11, 30, tzinfo=sao_paulo),
        read_at=T0.replace(tzinfo=None),
    )
    assert detect_anomalies(early) == ["read_at_before_delivered_at"]


def test_timestamps_on_failed_record_are_flagged() -> None:
    snapshot = DeliverySnapshot(raw_status="failed", delivered_at=T0, read_at=None)
    assert detect_anomalies(snapshot) == ["timestamps_on_failed_record"]
    assert detect_anomalies(DeliverySnapshot(raw_status="sent", delivered_at=T0, read_at=T0)) == []
