from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from condonotify.apps.api.response import error_response, is_versioned_request
from condonotify.core.errors import DeliveryStoreUnavailableError, WebhookPayloadError
from condonotify.persistence.guards import TenantPredicateError


logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


def _default_code(status_code: int) -> str:
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def _split_detail(detail: Any, status_code: int) -> tuple[str, str, dict[str, Any] | None]:
    # Routes raise HTTPException(detail={"code", "message", ...}) or a plain string.
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
        return code, message, details or None
    if isinstance(detail, str):
        return _default_code(status_code), detail, None
    return _default_code(status_code), "Request failed", None


def _error(request: Request, *, status_code: int, code: str, message: str, details: dict[str, Any] | None = None) -> JSONResponse:
    if not is_versioned_request(request):
        return JSONResponse(content={"success": False, "error": message}, status_code=status_code)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=status_code)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code, message, details = _split_detail(exc.detail, exc.status_code)
    response = _error(request, status_code=exc.status_code, code=code, message=message, details=details)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(
        request,
        status_code=422,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": exc.errors()},
    )


async def tenant_predicate_exception_handler(request: Request, exc: TenantPredicateError) -> JSONResponse:
    return _error(request, status_code=400, code="TENANT_PREDICATE_REQUIRED", message=exc.message)


async def delivery_store_unavailable_handler(request: Request, exc: DeliveryStoreUnavailableError) -> JSONResponse:
    logger.error("delivery_store_unavailable path=%s", request.url.path, exc_info=exc)
    return _error(request, status_code=503, code="DELIVERY_STORE_UNAVAILABLE", message=str(exc))


async def webhook_payload_exception_handler(request: Request, exc: WebhookPayloadError) -> JSONResponse:
    return _error(request, status_code=400, code="WEBHOOK_PAYLOAD_INVALID", message=str(exc))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; return a stable internal error envelope.
    logger.exception("unhandled_request_error path=%s", request.url.path, exc_info=exc)
    return _error(request, status_code=500, code="INTERNAL_ERROR", message="Internal server error")
