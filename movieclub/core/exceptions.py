"""
Error taxonomy shared by services and the HTTP layer.

Services raise these for expected business outcomes (bad input, missing or
foreign entities, wrong state, short funds); the handlers below render every
failure as ``{"error": {"message", "code", "details"}, "request_id"}``.
"""

from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse

from movieclub.core.logging import get_logger

log = get_logger(__name__)


class AppError(Exception):
    code = "ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Something went wrong"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class InvalidInputError(AppError):
    """Malformed or out-of-range parameters; raised before any shared state is read."""
    code = "INVALID_INPUT"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class NotOwnedError(AppError):
    code = "NOT_OWNED"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You don't own this"


class ConflictError(AppError):
    """The entity exists but is in the wrong state (already listed, not pending, hand in progress)."""
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class InsufficientFundsError(AppError):
    code = "INSUFFICIENT_FUNDS"
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_message = "Not enough credits"


def _envelope(request: Request, status_code: int, message: str, code: str, details: dict[str, Any]) -> ORJSONResponse:
    body: dict[str, Any] = {"error": {"message": message, "code": code, "details": details}}
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        body["request_id"] = request_id
    return ORJSONResponse(status_code=status_code, content=body)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    if exc.status_code >= 500:
        log.error("app_error", code=exc.code, message=exc.message)
    return _envelope(request, exc.status_code, exc.message, exc.code, exc.details)


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    # ctx may carry the raw exception object, which ORJSON cannot encode
    out = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        out.append(err)
    return out


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    return _envelope(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        "VALIDATION_ERROR",
        {"errors": jsonable_errors(exc)},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    log.exception("unhandled_exception", exc_info=exc, path=request.url.path)
    return _envelope(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "INTERNAL_ERROR", {})
