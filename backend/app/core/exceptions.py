"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes, the ledger error taxonomy and
global exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger("ledger")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


# Ledger errors

class LedgerValidationError(AppException):
    """Raised when an entry or request breaks a scoping or money rule."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_LEDGER_VALIDATION",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class EntryNotFoundError(ResourceNotFoundError):
    """Raised when a ledger entry is absent or soft-deleted."""

    def __init__(self, entry_id: Any = None, message: str = None):
        super().__init__("Advance", entry_id)
        if message:
            self.message = message
            self.args = (message,)


class InsufficientFundsError(AppException):
    """Raised when a deduction exceeds the entry's remaining balance."""

    def __init__(self, entry_id: int, requested_minor: int, available_minor: int):
        super().__init__(
            message=f"Advance {entry_id} has insufficient balance",
            error_code="ERR_LEDGER_INSUFFICIENT_FUNDS",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "advance_id": entry_id,
                "requested_minor": requested_minor,
                "available_minor": available_minor,
            }
        )


class InvalidStateTransitionError(AppException):
    """Raised when deducting from a refunded or non balance-tracked entry."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_LEDGER_INVALID_STATE",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class AtomicityFailureError(AppException):
    """Raised when paired expense and deduction writes could not both complete."""

    def __init__(self, message: str = "Expense and deduction could not be recorded together", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_LEDGER_ATOMICITY",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details
        )


# error_code -> exception class, used by the HTTP transport to re-raise
# the same failures a local call would
LEDGER_ERRORS_BY_CODE = {
    "ERR_LEDGER_VALIDATION": LedgerValidationError,
    "ERR_NOT_FOUND_001": EntryNotFoundError,
    "ERR_LEDGER_INSUFFICIENT_FUNDS": InsufficientFundsError,
    "ERR_LEDGER_INVALID_STATE": InvalidStateTransitionError,
    "ERR_LEDGER_ATOMICITY": AtomicityFailureError,
}


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Drop non-serializable ctx objects (e.g. the raised ValueError)."""
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception(
        "Unhandled exception",
        extra={"path": request.url.path, "exception": type(exc).__name__}
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
