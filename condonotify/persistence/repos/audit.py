from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from condonotify.domain.models import AuditEvent
from condonotify.persistence.guards import scope_to_tenant


async def list_events(
    session: AsyncSession,
    *,
    tenant_id: str,
    event_type: str | None = None,
    resource_id: str | None = None,
    occurred_from: datetime | None = None,
    occurred_to: datetime | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[AuditEvent]:
    # Scope all audit queries to a tenant to prevent cross-tenant leakage.
    stmt = scope_to_tenant(select(AuditEvent), AuditEvent, tenant_id)
    if event_type:
        stmt = stmt.where(AuditEvent.event_type == event_type)
    if resource_id:
        stmt = stmt.where(AuditEvent.resource_id == resource_id)
    if occurred_from:
        stmt = stmt.where(AuditEvent.occurred_at >= occurred_from)
    if occurred_to:
        stmt = stmt.where(AuditEvent.occurred_at <= occurred_to)

    stmt = stmt.order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc())
    stmt = stmt.offset(offset).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_record_history(session: AsyncSession, *, record_id: str) -> list[AuditEvent]:
    # Oldest first so a record's corrections read as a timeline.
    result = await session.execute(
        select(AuditEvent)
        .where(AuditEvent.resource_type == "delivery_record", AuditEvent.resource_id == record_id)
        .order_by(AuditEvent.occurred_at.asc(), AuditEvent.id.asc())
    )
    return list(result.scalars().all())
