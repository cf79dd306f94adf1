"""
Custom exceptions and error handlers for consistent error responses.

Every domain failure is an AppException subclass with a stable ``kind``
that clients switch on (e.g. offer "regenerate" only on ExpiredOtp).
"""

import logging
from datetime import datetime
from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    kind = "AppError"

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Bad input shape, category, photo count or contact details."""

    kind = "ValidationError"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"field": field} if field else None
        )


class NotFoundError(AppException):
    """Raised when requested resource is not found."""

    kind = "NotFound"

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class UnauthorizedError(AppException):
    """Actor is not the trip owner / request owner for this operation."""

    kind = "Unauthorized"

    def __init__(self, message: str = "You are not allowed to perform this action"):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN
        )


class StateConflictError(AppException):
    """Operation is not valid for the entity's current status."""

    kind = "StateConflict"

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="ERR_STATE_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"current_status": current_status} if current_status else None
        )


class NoSlotsAvailableError(AppException):
    kind = "NoSlotsAvailable"

    def __init__(self, trip_id: Any = None):
        super().__init__(
            message="No slots available on this trip",
            error_code="ERR_CAPACITY_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"trip_id": trip_id}
        )


class TripNotOpenError(AppException):
    kind = "TripNotOpen"

    def __init__(self, trip_id: Any = None, current_status: Optional[str] = None):
        super().__init__(
            message="Trip is not open for parcel requests",
            error_code="ERR_CAPACITY_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"trip_id": trip_id, "current_status": current_status}
        )


class CancellationWindowClosedError(AppException):
    kind = "CancellationWindowClosed"

    def __init__(self, hours_until_departure: float, window_hours: int = 24):
        super().__init__(
            message=f"Cancellation is not allowed within {window_hours} hours of trip departure",
            error_code="ERR_CANCEL_001",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "hours_until_departure": round(hours_until_departure, 2),
                "window_hours": window_hours
            }
        )


class InvalidOtpError(AppException):
    kind = "InvalidOtp"

    def __init__(self, attempts_remaining: Optional[int] = None):
        super().__init__(
            message="Invalid OTP. Please check and try again.",
            error_code="ERR_OTP_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"attempts_remaining": attempts_remaining}
        )


class ExpiredOtpError(AppException):
    kind = "ExpiredOtp"

    def __init__(self, expired_at: Optional[datetime] = None):
        super().__init__(
            message="This OTP has expired. Please request a new one.",
            error_code="ERR_OTP_002",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"expired_at": expired_at.isoformat() if expired_at else None}
        )


class TooManyAttemptsError(AppException):
    kind = "TooManyAttempts"

    def __init__(self, blocked_until: datetime):
        super().__init__(
            message="Too many invalid attempts. Please wait before trying again.",
            error_code="ERR_OTP_003",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details={"blocked_until": blocked_until.isoformat()}
        )


class TooLateToEditError(AppException):
    kind = "TooLateToEdit"

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="ERR_EDIT_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"current_status": current_status} if current_status else None
        )


class RateLimitedError(AppException):
    kind = "RateLimited"

    def __init__(self, retry_after_seconds: int):
        super().__init__(
            message="Too many requests. Please try again later.",
            error_code="ERR_RATE_001",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details={"retry_after_seconds": retry_after_seconds}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "kind": exc.kind,
            "error_code": exc.error_code,
            "message": exc.message,
            "details": jsonable_encoder(exc.details)
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: ("ERR_BAD_REQUEST", "ValidationError"),
        401: ("ERR_UNAUTHENTICATED", "Unauthenticated"),
        403: ("ERR_FORBIDDEN", "Unauthorized"),
        404: ("ERR_NOT_FOUND", "NotFound"),
        405: ("ERR_METHOD_NOT_ALLOWED", "MethodNotAllowed"),
        500: ("ERR_INTERNAL_SERVER", "InternalError")
    }

    error_code, kind = error_code_map.get(exc.status_code, ("ERR_UNKNOWN", "Unknown"))

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "kind": kind,
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "kind": "ValidationError",
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "kind": "InternalError",
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
