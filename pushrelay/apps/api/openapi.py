from __future__ import annotations

from typing import Any

from pushrelay.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    # Build a consistent error envelope example for OpenAPI docs.
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _error_response(description: str, *, code: str, message: str) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": _error_example(code=code, message=message)}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    422: _error_response("Validation error", code="REQUEST_VALIDATION_ERROR", message="Validation error"),
    500: _error_response("Internal error", code="INTERNAL_ERROR", message="Internal server error"),
    503: _error_response(
        "Store unavailable",
        code="STORE_UNAVAILABLE",
        message="Notification store unavailable",
    ),
}

SWEEP_CONFLICT_RESPONSE: dict[int | str, dict[str, Any]] = {
    409: _error_response(
        "Another sweep holds the lease",
        code="SWEEP_IN_PROGRESS",
        message="A retry sweep is already running",
    ),
}
