"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from auth.exceptions import ProfileMissingError, SessionExpiredError
from core.errors import (
    AssignmentIncomplete, AuthorizationDenied, InvalidTransitionError, NoSlotAvailable,
    NotFoundError, PersistenceFailure, SlotUnavailable, ValidationError,
)

logger = logging.getLogger(__name__)

_DOMAIN_ERRORS: list[tuple[type[Exception], int, str]] = [
    (ValidationError, 422, ErrorCodes.VALIDATION_ERROR),
    (NotFoundError, 404, ErrorCodes.NOT_FOUND),
    (AuthorizationDenied, 403, ErrorCodes.AUTHORIZATION_DENIED),
    (NoSlotAvailable, 409, ErrorCodes.NO_SLOT_AVAILABLE),
    (SlotUnavailable, 409, ErrorCodes.NO_SLOT_AVAILABLE),
    (InvalidTransitionError, 409, ErrorCodes.INVALID_STATUS_TRANSITION),
    (AssignmentIncomplete, 400, ErrorCodes.ASSIGNMENT_INCOMPLETE),
    (PersistenceFailure, 503, ErrorCodes.SERVICE_UNAVAILABLE),
    (ProfileMissingError, 403, ErrorCodes.PROFILE_MISSING),
    (SessionExpiredError, 401, ErrorCodes.SESSION_EXPIRED),
]


def _json(request: Request, status_code: int, code: str, message: str, field: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message, request, field).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    for exc_type, status_code, code in _DOMAIN_ERRORS:

        def make_handler(status_code=status_code, code=code):
            async def handler(request: Request, exc: Exception):
                if status_code >= 500:
                    logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
                return _json(request, status_code, code, str(exc), getattr(exc, "field", None))
            return handler

        app.add_exception_handler(exc_type, make_handler())

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        # Malformed ids, unknown domains and actions
        return _json(request, 400, ErrorCodes.INVALID_REQUEST, str(exc))

    @app.exception_handler(PydanticValidationError)
    async def model_error_handler(request: Request, exc: PydanticValidationError):
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        return _json(request, 422, ErrorCodes.VALIDATION_ERROR, first["msg"], field)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _json(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _json(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
