"""Derive the canonical delivery state of a record from its raw evidence.

Timestamps are set exactly once and never retracted, while ``raw_status`` can
be overwritten by a late, lower-fidelity webhook event. Timestamp presence is
therefore treated as ground truth and the status label is reconciled to match
it, never the reverse.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from condonotify.domain.state import DeliverySnapshot, DeliveryState, fold_status


@dataclass(frozen=True)
class NormalizationResult:
    canonical: DeliveryState
    # Column -> value pairs needed to make the record self-consistent; empty when it already is.
    corrections: dict[str, Any] = field(default_factory=dict)

    @property
    def needs_update(self) -> bool:
        return bool(self.corrections)


def normalize(snapshot: DeliverySnapshot) -> NormalizationResult:
    """Return the canonical state and the minimal field corrections for ``snapshot``.

    Rules are evaluated top to bottom and the first match wins:

    0. A ``failed`` record is terminal and is never rewritten.
    1. ``read_at`` set but status is not ``read``: promote to ``read`` and
       backfill ``delivered_at`` from ``read_at`` when it is missing.
    2. ``delivered_at`` set but status is neither ``delivered`` nor ``read``:
       promote to ``delivered``.
    3. Otherwise the folded raw status stands (``sent`` when absent or unknown).
    """
    raw_status = snapshot.raw_status
    folded = fold_status(raw_status)

    if folded is DeliveryState.FAILED:
        return NormalizationResult(canonical=DeliveryState.FAILED)

    if snapshot.read_at is not None and raw_status != DeliveryState.READ.value:
        corrections: dict[str, Any] = {"raw_status": DeliveryState.READ.value}
        if snapshot.delivered_at is None:
            corrections["delivered_at"] = snapshot.read_at
        return NormalizationResult(canonical=DeliveryState.READ, corrections=corrections)

    if snapshot.delivered_at is not None and raw_status not in (
        DeliveryState.DELIVERED.value,
        DeliveryState.READ.value,
    ):
        return NormalizationResult(
            canonical=DeliveryState.DELIVERED,
            corrections={"raw_status": DeliveryState.DELIVERED.value},
        )

    return NormalizationResult(canonical=folded or DeliveryState.SENT)


def canonical_state(snapshot: DeliverySnapshot) -> DeliveryState:
    return normalize(snapshot).canonical


def _as_naive_utc(value: datetime) -> datetime:
    # Stored naive values are UTC; aware values are converted before dropping tzinfo.
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _later(left: datetime, right: datetime) -> bool:
    if (left.tzinfo is None) != (right.tzinfo is None):
        return _as_naive_utc(left) > _as_naive_utc(right)
    return left > right


def detect_anomalies(snapshot: DeliverySnapshot) -> list[str]:
    # Report inconsistencies that must be investigated rather than silently fixed.
    anomalies: list[str] = []
    if (
        snapshot.read_at is not None
        and snapshot.delivered_at is not None
        and _later(snapshot.delivered_at, snapshot.read_at)
    ):
        anomalies.append("read_at_before_delivered_at")
    if fold_status(snapshot.raw_status) is DeliveryState.FAILED and (
        snapshot.delivered_at is not None or snapshot.read_at is not None
    ):
        anomalies.append("timestamps_on_failed_record")
    return anomalies
