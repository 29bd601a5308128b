from __future__ import annotations

from typing import Any, Generic, TypeVar
from uuid import uuid4

from fastapi import Request
from pydantic import BaseModel, Field


API_VERSION = "v1"
VERSION_PREFIX = f"/{API_VERSION}"

T = TypeVar("T")


class ResponseMeta(BaseModel):
    request_id: str
    api_version: str = Field(default=API_VERSION)


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class SuccessEnvelope(BaseModel, Generic[T]):
    data: T
    meta: ResponseMeta


class ErrorEnvelope(BaseModel):
    error: ErrorDetail
    meta: ResponseMeta


def request_meta(request: Request) -> dict[str, Any]:
    # The request middleware assigns ids; fall back for handlers invoked outside it.
    request_id = getattr(request.state, "request_id", None) or str(uuid4())
    request.state.request_id = request_id
    return ResponseMeta(request_id=request_id).model_dump()


def is_versioned_request(request: Request) -> bool:
    return request.url.path.startswith(VERSION_PREFIX)


def success_response(*, request: Request, data: Any) -> Any:
    # Only versioned routes carry the envelope; /health stays a bare payload.
    if not is_versioned_request(request):
        return data
    return {"data": data, "meta": request_meta(request)}


def error_response(
    *,
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error = ErrorDetail(code=code, message=message, details=details)
    return {"error": error.model_dump(exclude_none=True), "meta": request_meta(request)}
