"""
Utilities module - Common helpers for API responses and exceptions.
"""

from common.utils.responses import success_response
from common.utils.exceptions import (
    APIException,
    UnauthorizedException,
    NotFoundException,
    ConflictException,
    ValidationException,
    ServiceUnavailableException,
    WriteException,
    SubscriptionException,
)

__all__ = [
    "success_response",
    "APIException",
    "UnauthorizedException",
    "NotFoundException",
    "ConflictException",
    "ValidationException",
    "ServiceUnavailableException",
    "WriteException",
    "SubscriptionException",
]
