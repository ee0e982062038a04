from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select

from condonotify.core.config import get_settings


@dataclass(frozen=True)
class TenantPredicateError(RuntimeError):
    # Raised when a tenant-scoped delivery query is built without a tenant.
    message: str


def require_tenant_id(tenant_id: str | None) -> None:
    settings = get_settings()
    if not settings.authz_require_tenant_predicate:
        return
    if not tenant_id:
        raise TenantPredicateError("Tenant predicate required but tenant_id is missing")


def tenant_predicate(model: Any, tenant_id: str) -> object:
    # Build tenant predicates through a single helper so every scoped read is guarded.
    require_tenant_id(tenant_id)
    return model.tenant_id == tenant_id


def scope_to_tenant(stmt: Select, model: Any, tenant_id: str) -> Select:
    # Records never join across condominiums; listing APIs narrow to one tenant.
    return stmt.where(tenant_predicate(model, tenant_id))
