"""
Hypatia Material Ingestion System - Error Handling
==================================================
Application exceptions and their translation into HTTP responses.
"""

from typing import Dict, Any, Optional, Callable, Type
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from hypatia.utils.logging_utils import get_logger

logger = get_logger("error_handler")


class AppError(Exception):
    """Base exception class for application errors."""

    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize the application error.

        Args:
            message: Human-readable error message
            code: Machine-readable error code
            status_code: HTTP status code
            details: Additional error details
        """
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a dictionary for response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationError(AppError):
    """Raised when a payload breaks a structural rule; nothing is persisted."""

    def __init__(
        self,
        message: str = "Validation error",
        field_errors: Optional[Dict[str, str]] = None,
        code: str = "validation_error",
        status_code: int = 400
    ):
        self.field_errors = field_errors or {}
        details = {"field_errors": self.field_errors}
        super().__init__(message, code, status_code, details)


class NotFoundError(AppError):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Any,
        message: Optional[str] = None,
        code: str = "not_found",
        status_code: int = 404
    ):
        if message is None:
            message = f"{resource_type} with ID {resource_id} not found"

        details = {
            "resource_type": resource_type,
            "resource_id": resource_id
        }

        super().__init__(message, code, status_code, details)


class RelationshipError(AppError):
    """Raised when an explicit relationship request cannot be honoured."""

    def __init__(
        self,
        message: str,
        source_id: Any = None,
        target_id: Any = None,
        relation_kind: Optional[str] = None,
        code: str = "relationship_conflict",
        status_code: int = 409
    ):
        details = {
            "source_id": source_id,
            "target_id": target_id,
            "relation_kind": relation_kind
        }
        super().__init__(message, code, status_code, details)


class PersistenceError(AppError):
    """Raised when the storage backend rejects an operation."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        operation: Optional[str] = None,
        code: str = "persistence_error",
        status_code: int = 500
    ):
        super().__init__(message, code, status_code, {"operation": operation})


def log_exception(exc: Exception) -> None:
    """
    Log an exception with appropriate level and details.

    Args:
        exc: The exception to log
    """
    if isinstance(exc, AppError):
        if exc.status_code >= 500:
            logger.error(f"Server error ({exc.code}): {exc.message}", exc_info=True)
        else:
            logger.warning(f"Client error ({exc.code}): {exc.message}")
    elif isinstance(exc, HTTPException):
        if exc.status_code >= 500:
            logger.error(f"HTTP error {exc.status_code}: {exc.detail}", exc_info=True)
        else:
            logger.warning(f"HTTP error {exc.status_code}: {exc.detail}")
    else:
        logger.error(f"Unexpected error: {str(exc)}", exc_info=True)


def format_exception_response(exc: Exception) -> JSONResponse:
    """
    Format an exception as a JSON response.

    Args:
        exc: The exception to format

    Returns:
        A FastAPI JSONResponse
    """
    if isinstance(exc, AppError):
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict()
        )
    elif isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": f"http_{exc.status_code}",
                    "message": exc.detail,
                    "details": {}
                }
            }
        )
    else:
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "internal_error",
                    "message": "An unexpected error occurred",
                    "details": {
                        "error_type": type(exc).__name__
                    }
                }
            }
        )


def exception_handler_factory(exception_type: Type[Exception]) -> Callable:
    """
    Create an exception handler for a specific exception type.

    Args:
        exception_type: The type of exception to handle

    Returns:
        An async function to handle the exception
    """
    async def handler(request: Request, exc: exception_type) -> JSONResponse:
        log_exception(exc)
        return format_exception_response(exc)

    return handler
