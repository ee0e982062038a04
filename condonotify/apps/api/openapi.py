from __future__ import annotations

from typing import Any

from condonotify.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str) -> dict[str, Any]:
    return {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }


def _error_response(description: str, *, code: str, message: str) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": _error_example(code=code, message=message)}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: _error_response(
        "Missing tenant",
        code="TENANT_PREDICATE_REQUIRED",
        message="Tenant predicate required but tenant_id is missing",
    ),
    422: _error_response("Validation error", code="REQUEST_VALIDATION_ERROR", message="Validation error"),
    500: _error_response("Internal error", code="INTERNAL_ERROR", message="Internal server error"),
}

STORE_UNAVAILABLE_RESPONSE: dict[int | str, dict[str, Any]] = {
    503: _error_response(
        "Delivery record store unavailable",
        code="DELIVERY_STORE_UNAVAILABLE",
        message="delivery record store unavailable",
    ),
}
