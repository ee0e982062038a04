from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from condonotify.apps.api.deps import get_db, get_tenant_id
from condonotify.apps.api.openapi import DEFAULT_ERROR_RESPONSES, STORE_UNAVAILABLE_RESPONSE
from condonotify.apps.api.response import SuccessEnvelope, get_request_id, success_response
from condonotify.domain.models import DeliveryRecord
from condonotify.domain.state import snapshot_from_row
from condonotify.persistence.repos import audit as audit_repo
from condonotify.persistence.repos import deliveries as deliveries_repo
from condonotify.services.delivery.normalizer import canonical_state, detect_anomalies
from condonotify.services.delivery.sweep import run_reconciliation_sweep


router = APIRouter(prefix="/deliveries", tags=["deliveries"], responses=DEFAULT_ERROR_RESPONSES)


class ReconcileRequest(BaseModel):
    batch_limit: int | None = Field(default=None, ge=1, le=1000)
    # Operators may force a pass while the provider probe reports an outage.
    ignore_provider_health: bool = False


class StatusUpdateResponse(BaseModel):
    record_id: str
    previous_status: str | None
    new_status: str


class SweepReportResponse(BaseModel):
    status: str
    success: bool
    checked: int
    corrected: int
    synced: int
    updates: list[StatusUpdateResponse]
    errors: list[str]
    warnings: list[str]
    conflicts: int
    started_at: str | None
    finished_at: str | None


class DeliveryRecordResponse(BaseModel):
    id: str
    tenant_id: str
    resident_id: str | None
    occurrence_id: str | None
    sent_via: str
    provider_message_id: str | None
    raw_status: str | None
    canonical_status: str
    anomalies: list[str]
    sent_at: str | None
    delivered_at: str | None
    read_at: str | None


class DeliveryRecordsPage(BaseModel):
    items: list[DeliveryRecordResponse]
    next_offset: int | None


class DeliveryHistoryEntry(BaseModel):
    id: int
    occurred_at: str
    event_type: str
    outcome: str
    actor_id: str | None
    metadata_json: dict[str, Any] | None


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def _to_response(record: DeliveryRecord) -> DeliveryRecordResponse:
    snapshot = snapshot_from_row(record)
    return DeliveryRecordResponse(
        id=record.id,
        tenant_id=record.tenant_id,
        resident_id=record.resident_id,
        occurrence_id=record.occurrence_id,
        sent_via=record.sent_via,
        provider_message_id=record.provider_message_id,
        raw_status=record.raw_status,
        canonical_status=canonical_state(snapshot).value,
        anomalies=detect_anomalies(snapshot),
        sent_at=_iso(record.sent_at),
        delivered_at=_iso(record.delivered_at),
        read_at=_iso(record.read_at),
    )


@router.post(
    "/reconcile",
    response_model=SuccessEnvelope[SweepReportResponse],
    responses=STORE_UNAVAILABLE_RESPONSE,
)
async def reconcile_deliveries(request: Request, payload: ReconcileRequest | None = None) -> dict:
    # Run one pass inline; DeliveryStoreUnavailableError is mapped to 503 by the app handler.
    payload = payload or ReconcileRequest()
    report = await run_reconciliation_sweep(
        batch_limit=payload.batch_limit,
        check_provider=False if payload.ignore_provider_health else None,
        request_id=get_request_id(request),
    )
    return success_response(request=request, data=report.as_dict())


@router.get("", response_model=SuccessEnvelope[DeliveryRecordsPage])
async def list_deliveries(
    request: Request,
    raw_status: str | None = None,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows = await deliveries_repo.list_delivery_records(
        db, tenant_id=tenant_id, raw_status=raw_status, offset=offset, limit=limit
    )
    next_offset = offset + limit if len(rows) == limit else None
    page = DeliveryRecordsPage(items=[_to_response(row) for row in rows], next_offset=next_offset)
    return success_response(request=request, data=page.model_dump())


@router.get("/summary", response_model=SuccessEnvelope[dict[str, int]])
async def delivery_summary(
    request: Request,
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    counts = await deliveries_repo.count_by_raw_status(db, tenant_id=tenant_id)
    return success_response(request=request, data=counts)


@router.get("/{record_id}", response_model=SuccessEnvelope[DeliveryRecordResponse])
async def get_delivery(
    record_id: str,
    request: Request,
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    record = await deliveries_repo.get_tenant_delivery_record(db, tenant_id=tenant_id, record_id=record_id)
    if record is None:
        raise HTTPException(status_code=404, detail={"code": "DELIVERY_NOT_FOUND", "message": "Delivery record not found"})
    return success_response(request=request, data=_to_response(record).model_dump())


@router.get("/{record_id}/history", response_model=SuccessEnvelope[list[DeliveryHistoryEntry]])
async def get_delivery_history(
    record_id: str,
    request: Request,
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Resolve the record under the tenant first so history never leaks across condominiums.
    record = await deliveries_repo.get_tenant_delivery_record(db, tenant_id=tenant_id, record_id=record_id)
    if record is None:
        raise HTTPException(status_code=404, detail={"code": "DELIVERY_NOT_FOUND", "message": "Delivery record not found"})
    events = await audit_repo.list_record_history(db, record_id=record_id)
    entries = [
        DeliveryHistoryEntry(
            id=event.id,
            occurred_at=event.occurred_at.isoformat(),
            event_type=event.event_type,
            outcome=event.outcome,
            actor_id=event.actor_id,
            metadata_json=event.metadata_json,
        ).model_dump()
        for event in events
    ]
    return success_response(request=request, data=entries)
