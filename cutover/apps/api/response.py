from __future__ import annotations

from typing import Any, Generic, TypeVar
from uuid import uuid4

from fastapi import Request
from pydantic import BaseModel, Field

from cutover.core.errors import CutoverError


API_VERSION = "v1"

T = TypeVar("T")


class ResponseMeta(BaseModel):
    # Echoed on every response so operators can correlate API calls with audit rows.
    request_id: str
    api_version: str = Field(default=API_VERSION)


class ErrorDetail(BaseModel):
    code: str
    message: str
    # Conflicts name the blocking failover event here.
    details: dict[str, Any] | None = None


class SuccessEnvelope(BaseModel, Generic[T]):
    data: T
    meta: ResponseMeta


class ErrorEnvelope(BaseModel):
    error: ErrorDetail
    meta: ResponseMeta


def request_id_for(request: Request) -> str:
    """Return the request id, adopting ``X-Request-Id`` or minting one on first use."""
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
    return request_id


def _meta(request: Request) -> dict[str, Any]:
    return ResponseMeta(request_id=request_id_for(request)).model_dump()


def success_response(*, request: Request, data: Any) -> dict[str, Any]:
    # All routers mount under /v1, so every success is enveloped.
    return {"data": data, "meta": _meta(request)}


def error_response(
    *,
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error = ErrorDetail(code=code, message=message, details=details)
    return {"error": error.model_dump(exclude_none=True), "meta": _meta(request)}


def cutover_error_response(*, request: Request, exc: CutoverError) -> dict[str, Any]:
    return error_response(request=request, code=exc.code, message=exc.message, details=exc.details)
