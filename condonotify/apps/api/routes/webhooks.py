from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from condonotify.apps.api.deps import get_db
from condonotify.services.delivery.webhook import ingest_provider_event, parse_provider_event


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/whatsapp")
async def whatsapp_status_webhook(
    payload: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    # Providers expect a bare JSON acknowledgement, so this route stays outside /v1.
    event = parse_provider_event(payload)
    outcome = await ingest_provider_event(db, event)
    if outcome.skipped:
        return {"success": True, "message": "No message ID to process"}
    return {
        "success": True,
        "message": "Status updated",
        "messageId": outcome.provider_message_id,
        "status": outcome.raw_status,
        "updated": outcome.updated,
    }
