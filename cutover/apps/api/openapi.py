from __future__ import annotations

from typing import Any

from cutover.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
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
    400: _error_response(
        "Invalid failover request",
        code="FAILOVER_VALIDATION_FAILED",
        message="Unknown failover reason 'other'",
    ),
    404: _error_response("Not found", code="NOT_FOUND", message="Region not found"),
    409: _error_response(
        "Conflict",
        code="FAILOVER_IN_PROGRESS",
        message="Another failover operation is already running",
    ),
    422: _error_response("Validation error", code="REQUEST_VALIDATION_ERROR", message="Validation error"),
    500: _error_response("Internal server error", code="INTERNAL_ERROR", message="Internal server error"),
    502: _error_response(
        "Traffic manager failure",
        code="TRAFFIC_MANAGER_FAILED",
        message="Cloudflare PATCH /zones/.../dns_records/... failed",
    ),
    503: _error_response(
        "Store unavailable",
        code="PERSISTENCE_UNAVAILABLE",
        message="Failed to persist failover state",
    ),
}
