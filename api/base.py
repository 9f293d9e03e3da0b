"""Response envelope shared by every route, and the error codes it carries."""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field
from starlette.requests import Request

from utils.timezone import now_utc


class APIError(BaseModel):
    """What went wrong, in machine and human form."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(None, description="Offending input field, for validation errors")


class APIMeta(BaseModel):
    """When and for which request."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Request identifier for tracing")


class APIResponse(BaseModel):
    """{success, data, error, meta}; exactly one of data and error is meaningful."""

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def _request_id(request: Request | str | None) -> str:
    if isinstance(request, str):
        return request
    if request is not None:
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            return request_id
    return str(uuid4())


def success_response(data: Any, request: Request | str | None = None) -> dict:
    """Success envelope, as a JSON-ready dict."""
    return APIResponse(
        success=True,
        data=data,
        error=None,
        meta=APIMeta(timestamp=now_utc(), request_id=_request_id(request)),
    ).model_dump(mode="json")


def error_response(
    code: str,
    message: str,
    request: Request | str | None = None,
    field: str | None = None
) -> APIResponse:
    """Error envelope."""
    return APIResponse(
        success=False,
        data=None,
        error=APIError(code=code, message=message, field=field),
        meta=APIMeta(timestamp=now_utc(), request_id=_request_id(request)),
    )


class ErrorCodes:
    """Values of error.code; api.errors maps exceptions onto them."""

    # Identity
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    PROFILE_MISSING = "PROFILE_MISSING"
    AUTHORIZATION_DENIED = "AUTHORIZATION_DENIED"

    # Lookup
    NOT_FOUND = "NOT_FOUND"

    # Input
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    ASSIGNMENT_INCOMPLETE = "ASSIGNMENT_INCOMPLETE"

    # Scheduling
    NO_SLOT_AVAILABLE = "NO_SLOT_AVAILABLE"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
