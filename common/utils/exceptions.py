"""
Custom HTTP exceptions with error codes.

Extends FastAPI's HTTPException with standardized error codes so the
same exception can be raised deep in a service and still render as a
consistent API error.

Example:
    from common.utils import NotFoundException

    async def update(record_id: str):
        result = await collection.update_one({"_id": record_id}, ...)
        if result.matched_count == 0:
            raise NotFoundException("Record not found", code="RECORD_NOT_FOUND")
"""

from typing import Optional, Any, Dict
from fastapi import HTTPException


class APIException(HTTPException):
    """
    Base API exception with error code support.

    Provides consistent error response format across the API.
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        code: Optional[str] = None,
        details: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Create an API exception.

        Args:
            status_code: HTTP status code
            message: Human-readable error message
            code: Machine-readable error code
            details: Additional error details
            headers: Optional response headers
        """
        detail: Dict[str, Any] = {"message": message}

        if code:
            detail["code"] = code

        if details is not None:
            detail["details"] = details

        super().__init__(
            status_code=status_code,
            detail=detail,
            headers=headers,
        )
        self.message = message
        self.code = code

    def __str__(self) -> str:
        return self.message


class UnauthorizedException(APIException):
    """401 Unauthorized - No authenticated user for the request."""

    def __init__(
        self,
        message: str = "Unauthorized",
        code: str = "UNAUTHORIZED",
        details: Optional[Any] = None,
    ):
        super().__init__(401, message, code, details)


class NotFoundException(APIException):
    """404 Not Found - Resource doesn't exist."""

    def __init__(
        self,
        message: str = "Not found",
        code: str = "NOT_FOUND",
        details: Optional[Any] = None,
    ):
        super().__init__(404, message, code, details)


class ConflictException(APIException):
    """409 Conflict - Resource already exists or state conflict."""

    def __init__(
        self,
        message: str = "Conflict",
        code: str = "CONFLICT",
        details: Optional[Any] = None,
    ):
        super().__init__(409, message, code, details)


class ValidationException(APIException):
    """422 Validation Error - Input rejected before reaching the store."""

    def __init__(
        self,
        message: str = "Validation error",
        code: str = "VALIDATION_ERROR",
        details: Optional[Any] = None,
        errors: Optional[list] = None,
    ):
        detail_info = details
        if errors:
            detail_info = {"errors": errors, **(details or {})}
        super().__init__(422, message, code, detail_info)


class ServiceUnavailableException(APIException):
    """503 Service Unavailable - Backing store temporarily unreachable."""

    def __init__(
        self,
        message: str = "Service unavailable",
        code: str = "SERVICE_UNAVAILABLE",
        details: Optional[Any] = None,
    ):
        super().__init__(503, message, code, details)


class WriteException(ServiceUnavailableException):
    """503 - A durable write failed (transport or permission failure)."""

    def __init__(
        self,
        message: str = "Failed to save data",
        code: str = "WRITE_FAILED",
        details: Optional[Any] = None,
    ):
        super().__init__(message, code, details)


class SubscriptionException(ServiceUnavailableException):
    """503 - The live subscription to the store broke."""

    def __init__(
        self,
        message: str = "Live updates unavailable",
        code: str = "SUBSCRIPTION_FAILED",
        details: Optional[Any] = None,
    ):
        super().__init__(message, code, details)
