from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, TypedDict


class DeliveryState(str, Enum):
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


# Forward-only progression; FAILED sits outside the ladder as a terminal state.
STATE_RANK: dict[DeliveryState, int] = {
    DeliveryState.QUEUED: 0,
    DeliveryState.SENT: 1,
    DeliveryState.DELIVERED: 2,
    DeliveryState.READ: 3,
}

TERMINAL_STATES = frozenset({DeliveryState.FAILED})

# Provider vocabulary (English and Portuguese) folded onto canonical names.
_STATUS_ALIASES: dict[str, DeliveryState] = {
    "sent": DeliveryState.SENT,
    "enviado": DeliveryState.SENT,
    "server": DeliveryState.SENT,
    "delivered": DeliveryState.DELIVERED,
    "entregue": DeliveryState.DELIVERED,
    "received": DeliveryState.DELIVERED,
    "recebido": DeliveryState.DELIVERED,
    "read": DeliveryState.READ,
    "lido": DeliveryState.READ,
    "viewed": DeliveryState.READ,
    "visualizado": DeliveryState.READ,
    "played": DeliveryState.READ,
    "failed": DeliveryState.FAILED,
    "erro": DeliveryState.FAILED,
    "error": DeliveryState.FAILED,
    "falha": DeliveryState.FAILED,
    "pending": DeliveryState.QUEUED,
    "pendente": DeliveryState.QUEUED,
    "queued": DeliveryState.QUEUED,
}


def fold_status(raw_status: str | None) -> DeliveryState | None:
    # Map a provider label onto the closed state set; unknown labels return None.
    if raw_status is None:
        return None
    return _STATUS_ALIASES.get(raw_status.strip().lower())


def is_regression(current: DeliveryState, proposed: DeliveryState) -> bool:
    # Terminal states never move, and ranked states only move forward.
    if current in TERMINAL_STATES:
        return proposed != current
    if proposed in TERMINAL_STATES:
        return False
    return STATE_RANK[proposed] < STATE_RANK[current]


def labels_guarded_against(proposed: DeliveryState | None) -> frozenset[str]:
    # Stored labels an incoming label must leave in place; unknown incoming labels never replace a known one.
    return frozenset(
        alias
        for alias, state in _STATUS_ALIASES.items()
        if proposed is None or state in TERMINAL_STATES or is_regression(state, proposed)
    )


@dataclass(frozen=True)
class DeliverySnapshot:
    # The subset of a delivery record the normalizer reads.
    raw_status: str | None
    delivered_at: datetime | None
    read_at: datetime | None


class StatusTransition(TypedDict):
    record_id: str
    previous_status: Optional[str]
    new_status: str


def snapshot_from_row(row: Any) -> DeliverySnapshot:
    return DeliverySnapshot(
        raw_status=row.raw_status,
        delivered_at=row.delivered_at,
        read_at=row.read_at,
    )
