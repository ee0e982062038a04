from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from condonotify.persistence.db import get_session
from condonotify.persistence.guards import require_tenant_id


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


async def get_tenant_id(x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id")) -> str:
    # The gateway in front of this service resolves the caller's condominium into this header.
    require_tenant_id(x_tenant_id)
    return x_tenant_id or ""
