from __future__ import annotations

import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError

from condonotify.apps.api.errors import (
    delivery_store_unavailable_handler,
    http_exception_handler,
    tenant_predicate_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
    webhook_payload_exception_handler,
)
from condonotify.apps.api.response import API_VERSION
from condonotify.apps.api.routes.audit import router as audit_router
from condonotify.apps.api.routes.deliveries import router as deliveries_router
from condonotify.apps.api.routes.health import router as health_router
from condonotify.apps.api.routes.provider import router as provider_router
from condonotify.apps.api.routes.webhooks import router as webhooks_router
from condonotify.core.config import get_settings
from condonotify.core.errors import DeliveryStoreUnavailableError, WebhookPayloadError
from condonotify.core.logging import configure_logging
from condonotify.persistence.guards import TenantPredicateError
from condonotify.services.telemetry import increment_counter


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=f"{get_settings().app_name} API")

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        increment_counter(f"http_requests_{response.status_code // 100}xx_total")
        response.headers.setdefault("X-Request-Id", request_id)
        response.headers["X-Response-Time-Ms"] = f"{(time.monotonic() - start) * 1000.0:.1f}"
        return response

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(TenantPredicateError, tenant_predicate_exception_handler)
    app.add_exception_handler(DeliveryStoreUnavailableError, delivery_store_unavailable_handler)
    app.add_exception_handler(WebhookPayloadError, webhook_payload_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(deliveries_router, prefix=f"/{API_VERSION}")
    app.include_router(provider_router, prefix=f"/{API_VERSION}")
    app.include_router(audit_router, prefix=f"/{API_VERSION}")
    # Provider callbacks keep the unversioned path registered with the messaging vendors.
    app.include_router(webhooks_router)

    return app


app = create_app()
