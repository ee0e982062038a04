from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from condonotify.core.errors import WebhookPayloadError
from condonotify.domain.state import DeliveryState, fold_status
from condonotify.persistence.repos.deliveries import apply_provider_status
from condonotify.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

# WPPConnect acknowledgement codes; 4 is "played" for voice notes.
_WPPCONNECT_ACKS: dict[int, DeliveryState] = {
    -1: DeliveryState.FAILED,
    0: DeliveryState.QUEUED,
    1: DeliveryState.SENT,
    2: DeliveryState.DELIVERED,
    3: DeliveryState.READ,
    4: DeliveryState.READ,
}


@dataclass(frozen=True)
class ProviderStatusEvent:
    provider_format: str
    provider_message_id: str | None
    raw_status: str


@dataclass(frozen=True)
class IngestOutcome:
    provider_message_id: str | None
    raw_status: str
    updated: int
    skipped: bool = False


def normalize_status_label(status: str) -> str:
    # Known vocabulary folds to the canonical label; unknown labels are kept lowercased.
    folded = fold_status(status)
    if folded is not None:
        return folded.value
    return status.strip().lower()


def normalize_wppconnect_ack(ack: Any) -> str:
    try:
        state = _WPPCONNECT_ACKS.get(int(ack))
    except (TypeError, ValueError):
        state = None
    return state.value if state is not None else "unknown"


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_provider_event(payload: Mapping[str, Any]) -> ProviderStatusEvent:
    """Recognise the provider dialect of a webhook body.

    Z-PRO sends ``messageId``/``status``, Z-API ``id``/``status``, Evolution
    ``key.id``/``update`` and WPPConnect a bare numeric ``ack`` without a
    message id.
    """
    if not isinstance(payload, Mapping):
        raise WebhookPayloadError("webhook payload must be a JSON object")

    status = _text(payload.get("status"))
    message_id = _text(payload.get("messageId"))
    if message_id and status:
        return ProviderStatusEvent("zpro", message_id, normalize_status_label(status))

    message_id = _text(payload.get("id"))
    if message_id and status:
        return ProviderStatusEvent("zapi", message_id, normalize_status_label(status))

    key = payload.get("key")
    update = _text(payload.get("update"))
    if isinstance(key, Mapping) and _text(key.get("id")) and update:
        return ProviderStatusEvent("evolution", _text(key.get("id")), normalize_status_label(update))

    if payload.get("ack") is not None:
        return ProviderStatusEvent("wppconnect", None, normalize_wppconnect_ack(payload.get("ack")))

    raise WebhookPayloadError("unrecognised webhook payload format")


async def ingest_provider_event(
    session: AsyncSession,
    event: ProviderStatusEvent,
    *,
    received_at: datetime | None = None,
) -> IngestOutcome:
    # Events without a provider message id cannot be matched to a record and are acknowledged as no-ops.
    if event.provider_message_id is None:
        increment_counter("delivery_webhook_skipped_total")
        logger.info("delivery_webhook_skipped format=%s status=%s", event.provider_format, event.raw_status)
        return IngestOutcome(provider_message_id=None, raw_status=event.raw_status, updated=0, skipped=True)

    now = received_at or datetime.now(timezone.utc)
    delivered_at: datetime | None = None
    read_at: datetime | None = None
    if event.raw_status == DeliveryState.DELIVERED.value:
        delivered_at = now
    elif event.raw_status == DeliveryState.READ.value:
        # A read receipt implies delivery.
        delivered_at = now
        read_at = now

    updated = await apply_provider_status(
        session,
        provider_message_id=event.provider_message_id,
        raw_status=event.raw_status,
        delivered_at=delivered_at,
        read_at=read_at,
    )
    await session.commit()
    increment_counter("delivery_webhook_events_total")
    if updated == 0:
        logger.info(
            "delivery_webhook_unmatched provider_message_id=%s status=%s",
            event.provider_message_id,
            event.raw_status,
        )
    else:
        logger.info(
            "delivery_webhook_applied format=%s provider_message_id=%s status=%s",
            event.provider_format,
            event.provider_message_id,
            event.raw_status,
        )
    return IngestOutcome(provider_message_id=event.provider_message_id, raw_status=event.raw_status, updated=updated)
