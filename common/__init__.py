"""
Common library for reusable infrastructure components.

- database: Async MongoDB connection (Motor)
- utils: Standard responses and the HTTP exception taxonomy
- config: Base settings class
"""

from common.database import MongoDB
from common.utils import (
    success_response,
    APIException,
    NotFoundException,
    ValidationException,
    WriteException,
    SubscriptionException,
)
from common.config import BaseAppSettings

__all__ = [
    # Database
    "MongoDB",
    # Utils
    "success_response",
    "APIException",
    "NotFoundException",
    "ValidationException",
    "WriteException",
    "SubscriptionException",
    # Config
    "BaseAppSettings",
]
