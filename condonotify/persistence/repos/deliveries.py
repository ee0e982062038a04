from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from condonotify.domain.models import DeliveryRecord
from condonotify.domain.state import DeliveryState, fold_status, labels_guarded_against
from condonotify.persistence.guards import scope_to_tenant


# Statuses that may lag their timestamp evidence; null means no webhook has arrived yet.
_STALE_CANDIDATE_STATUSES = (DeliveryState.SENT.value,)
_SET_ONCE_COLUMNS = ("delivered_at", "read_at")


async def create_delivery_record(
    session: AsyncSession,
    *,
    record_id: str,
    tenant_id: str,
    sent_at: datetime | None = None,
    provider_message_id: str | None = None,
    raw_status: str | None = DeliveryState.SENT.value,
    resident_id: str | None = None,
    occurrence_id: str | None = None,
    sent_via: str = "whatsapp",
) -> DeliveryRecord:
    # Mirror the send path: a record starts life as sent, possibly before the provider acknowledges it.
    record = DeliveryRecord(
        id=record_id,
        tenant_id=tenant_id,
        resident_id=resident_id,
        occurrence_id=occurrence_id,
        sent_via=sent_via,
        provider_message_id=provider_message_id,
        raw_status=raw_status,
        sent_at=sent_at or datetime.now(timezone.utc),
    )
    session.add(record)
    return record


async def get_delivery_record(session: AsyncSession, record_id: str) -> DeliveryRecord | None:
    # Use with care; tenant checks should be enforced by callers.
    result = await session.execute(select(DeliveryRecord).where(DeliveryRecord.id == record_id))
    return result.scalar_one_or_none()


async def get_tenant_delivery_record(
    session: AsyncSession, *, tenant_id: str, record_id: str
) -> DeliveryRecord | None:
    # Return None for tenant mismatch to keep 404 semantics.
    stmt = scope_to_tenant(select(DeliveryRecord), DeliveryRecord, tenant_id)
    result = await session.execute(stmt.where(DeliveryRecord.id == record_id))
    return result.scalar_one_or_none()


async def list_delivery_records(
    session: AsyncSession,
    *,
    tenant_id: str,
    raw_status: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[DeliveryRecord]:
    stmt = scope_to_tenant(select(DeliveryRecord), DeliveryRecord, tenant_id)
    if raw_status:
        stmt = stmt.where(DeliveryRecord.raw_status == raw_status)
    stmt = stmt.order_by(DeliveryRecord.sent_at.desc(), DeliveryRecord.id.desc())
    result = await session.execute(stmt.offset(offset).limit(limit))
    return list(result.scalars().all())


async def select_reconciliation_candidates(session: AsyncSession, *, limit: int) -> list[DeliveryRecord]:
    # Newest first: recent sends are the most likely to have missed webhook corrections.
    stmt = (
        select(DeliveryRecord)
        .where(
            or_(
                DeliveryRecord.raw_status.in_(_STALE_CANDIDATE_STATUSES),
                DeliveryRecord.raw_status.is_(None),
            )
        )
        .order_by(DeliveryRecord.sent_at.desc(), DeliveryRecord.id.desc())
        .limit(max(1, int(limit)))
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


def _set_once(column_name: str, value: Any) -> Any:
    # Never clear or move a set-once timestamp: keep the stored value when one exists.
    return func.coalesce(getattr(DeliveryRecord, column_name), value)


async def apply_status_correction(
    session: AsyncSession,
    *,
    record_id: str,
    expected_raw_status: str | None,
    corrections: dict[str, Any],
) -> int:
    """Persist ``corrections`` as one conditional UPDATE scoped to ``record_id``.

    The update only applies while ``raw_status`` still holds the value the caller
    observed, so a webhook write that lands between read and write is never
    overwritten. Returns the affected row count (0 on a lost race).
    """
    if not corrections:
        return 0
    values: dict[str, Any] = {}
    for column_name, value in corrections.items():
        if column_name in _SET_ONCE_COLUMNS:
            values[column_name] = _set_once(column_name, value)
        else:
            values[column_name] = value
    if expected_raw_status is None:
        status_guard = DeliveryRecord.raw_status.is_(None)
    else:
        status_guard = DeliveryRecord.raw_status == expected_raw_status
    stmt = (
        update(DeliveryRecord)
        .where(DeliveryRecord.id == record_id, status_guard)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return int(result.rowcount or 0)


async def apply_provider_status(
    session: AsyncSession,
    *,
    provider_message_id: str,
    raw_status: str,
    delivered_at: datetime | None = None,
    read_at: datetime | None = None,
) -> int:
    # The label only moves forward and never leaves a terminal state; timestamps only ever fill when empty.
    guarded = sorted(labels_guarded_against(fold_status(raw_status)))
    stored = func.lower(func.trim(DeliveryRecord.raw_status))
    values: dict[str, Any] = {
        "raw_status": case((stored.in_(guarded), DeliveryRecord.raw_status), else_=raw_status),
    }
    if delivered_at is not None:
        values["delivered_at"] = _set_once("delivered_at", delivered_at)
    if read_at is not None:
        values["read_at"] = _set_once("read_at", read_at)
    stmt = (
        update(DeliveryRecord)
        .where(DeliveryRecord.provider_message_id == provider_message_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return int(result.rowcount or 0)


async def attach_provider_message_id(
    session: AsyncSession,
    *,
    record_id: str,
    provider_message_id: str,
) -> bool:
    # The provider id is assigned once on acknowledgement and never replaced.
    stmt = (
        update(DeliveryRecord)
        .where(DeliveryRecord.id == record_id, DeliveryRecord.provider_message_id.is_(None))
        .values(provider_message_id=provider_message_id)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return bool(result.rowcount)


async def count_by_raw_status(session: AsyncSession, *, tenant_id: str) -> dict[str, int]:
    # Summarize one tenant's delivery funnel for monitoring screens.
    stmt = scope_to_tenant(
        select(DeliveryRecord.raw_status, func.count()).group_by(DeliveryRecord.raw_status),
        DeliveryRecord,
        tenant_id,
    )
    rows = (await session.execute(stmt)).all()
    return {str(status) if status is not None else "unknown": int(count) for status, count in rows}
