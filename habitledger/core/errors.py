"""Error taxonomy for the obligation core and its HTTP handlers."""

import logging
import builtins
from datetime import date
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from habitledger.core.logging import LOGGER_NAME, get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id

    def details(self) -> dict:
        """Extra machine-readable fields rendered into the error envelope."""
        return {}


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class PermissionError(AppError, builtins.PermissionError):
    code = "forbidden"
    status_code = 403


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class AuthError(AppError):
    code = "unauthorized"
    status_code = 401


class FutureDateError(ValidationError):
    """Completion requested for a date after today."""
    code = "future_date"


class OutOfRangeError(ValidationError):
    """Completion requested outside the obligation's [start, end] window."""
    code = "out_of_range"


class CatchUpRequiredError(ConflictError):
    """An older period is still outstanding and must be completed first."""
    code = "catch_up_required"

    def __init__(self, last_uncompleted_date: date, **kwargs):
        super().__init__(
            f"Complete {last_uncompleted_date.isoformat()} before later periods",
            **kwargs,
        )
        self.last_uncompleted_date = last_uncompleted_date

    def details(self) -> dict:
        return {"last_uncompleted_date": self.last_uncompleted_date.isoformat()}


class NotAParticipantError(PermissionError):
    code = "not_a_participant"


class AlreadyRespondedError(ConflictError):
    code = "already_responded"


class ChallengeStateError(ConflictError):
    code = "invalid_challenge_state"


class DuplicateAccrualError(ConflictError):
    code = "duplicate_accrual"


class NothingToSettleError(ConflictError):
    code = "nothing_to_settle"


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str, details: Optional[dict] = None) -> dict:
    error = {"code": code, "message": message, "request_id": request_id}
    if details:
        error.update(details)
    return {
        "error": error,
        "detail": message,
    }


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid, exc.details())
    logger = logging.getLogger(LOGGER_NAME)
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger(LOGGER_NAME)
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger(LOGGER_NAME)
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Unexpected error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
