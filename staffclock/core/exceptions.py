"""
Error taxonomy for the attendance engine and global exception handlers.

Services raise :class:`ServiceError` with a machine-matchable
:class:`ErrorCode`; the handlers below turn it into a structured JSON body
and keep stack traces away from clients.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    # Lookup failures
    EMPLOYEE_NOT_FOUND = "EMPLOYEE_NOT_FOUND"
    NO_ASSIGNMENT = "NO_ASSIGNMENT"
    ATTENDANCE_NOT_FOUND = "ATTENDANCE_NOT_FOUND"
    VEHICLE_NOT_FOUND = "VEHICLE_NOT_FOUND"
    NOTIFICATION_NOT_FOUND = "NOTIFICATION_NOT_FOUND"

    # Malformed / absent input
    INVALID_COORDINATES = "INVALID_COORDINATES"
    MISSING_COORDINATES = "MISSING_COORDINATES"
    REASON_REQUIRED = "REASON_REQUIRED"

    # Validation-policy rejections (count against attempts)
    ASSIGNED_COORDS_MISSING = "ASSIGNED_COORDS_MISSING"
    ASSIGNED_LOCATION_GENERIC = "ASSIGNED_LOCATION_GENERIC"
    TIME_WINDOW_VIOLATION = "TIME_WINDOW_VIOLATION"
    LOCATION_MISMATCH = "LOCATION_MISMATCH"
    CITY_LEVEL_MATCH = "CITY_LEVEL_MATCH"
    LOCATION_SERVICE_ERROR = "LOCATION_SERVICE_ERROR"

    # Terminal for the day
    ATTENDANCE_LOCKED = "ATTENDANCE_LOCKED"
    MAX_ATTEMPTS_EXCEEDED = "MAX_ATTEMPTS_EXCEEDED"
    ATTENDANCE_REJECTED = "ATTENDANCE_REJECTED"

    # Sequencing violations
    CANNOT_CHECKOUT_WITHOUT_CHECKIN = "CANNOT_CHECKOUT_WITHOUT_CHECKIN"
    APPROVAL_PENDING = "APPROVAL_PENDING"
    NOT_PENDING = "NOT_PENDING"
    NOT_REENABLEABLE = "NOT_REENABLEABLE"
    DAY_NOT_STARTED = "DAY_NOT_STARTED"
    DAY_ALREADY_CLOSED = "DAY_ALREADY_CLOSED"
    VEHICLE_UNAVAILABLE = "VEHICLE_UNAVAILABLE"


# Codes produced by the location validator that consume a retry attempt.
ATTEMPT_BOUNDED_CODES = frozenset(
    {
        ErrorCode.ASSIGNED_COORDS_MISSING,
        ErrorCode.ASSIGNED_LOCATION_GENERIC,
        ErrorCode.TIME_WINDOW_VIOLATION,
        ErrorCode.LOCATION_MISMATCH,
        ErrorCode.CITY_LEVEL_MATCH,
        ErrorCode.LOCATION_SERVICE_ERROR,
    }
)

_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.EMPLOYEE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.NO_ASSIGNMENT: status.HTTP_404_NOT_FOUND,
    ErrorCode.ATTENDANCE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.VEHICLE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.NOTIFICATION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVALID_COORDINATES: status.HTTP_400_BAD_REQUEST,
    ErrorCode.MISSING_COORDINATES: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ATTENDANCE_LOCKED: status.HTTP_403_FORBIDDEN,
    ErrorCode.MAX_ATTEMPTS_EXCEEDED: status.HTTP_403_FORBIDDEN,
    ErrorCode.ATTENDANCE_REJECTED: status.HTTP_403_FORBIDDEN,
    ErrorCode.CANNOT_CHECKOUT_WITHOUT_CHECKIN: status.HTTP_409_CONFLICT,
    ErrorCode.APPROVAL_PENDING: status.HTTP_409_CONFLICT,
    ErrorCode.NOT_PENDING: status.HTTP_409_CONFLICT,
    ErrorCode.NOT_REENABLEABLE: status.HTTP_409_CONFLICT,
    ErrorCode.DAY_NOT_STARTED: status.HTTP_409_CONFLICT,
    ErrorCode.DAY_ALREADY_CLOSED: status.HTTP_409_CONFLICT,
    ErrorCode.VEHICLE_UNAVAILABLE: status.HTTP_409_CONFLICT,
}


class ServiceError(Exception):
    """A named, user-facing failure of a service operation."""

    def __init__(
        self,
        code: ErrorCode,
        details: str,
        *,
        remaining_attempts: int | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(details)
        self.code = code
        self.details = details
        self.remaining_attempts = remaining_attempts
        self.data = data
        # Policy rejections default to 400
        self.status_code = _STATUS_BY_CODE.get(code, status.HTTP_400_BAD_REQUEST)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": False,
            "code": self.code.value,
            "detail": self.details,
        }
        if self.remaining_attempts is not None:
            body["remaining_attempts"] = self.remaining_attempts
        if self.data:
            body["data"] = self.data
        return body


async def _service_error_handler(_request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False},
        headers=getattr(exc, "headers", None),
    )


async def _rate_limit_handler(_request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": f"Rate limit exceeded: {exc.detail}", "success": False},
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=409,
        content={"detail": "Database constraint violation", "success": False},
    )


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal database error", "success": False},
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "success": False},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(ServiceError, _service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
