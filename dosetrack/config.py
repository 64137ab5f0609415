"""
Dosetrack application settings.

Extends the base settings with adherence-tracking configuration.
"""

from typing import Optional

import pytz

from common.config import BaseAppSettings


class Settings(BaseAppSettings):
    """Dosetrack-specific settings."""

    # ==========================================================================
    # Storage
    # ==========================================================================
    RECORDS_COLLECTION: str = "dailyRecords"

    # ==========================================================================
    # Day Boundary
    # ==========================================================================
    # How often the foreground process re-checks the calendar date
    DAY_CHECK_INTERVAL_SECONDS: float = 60.0

    # IANA zone name used for "today"; unset means device local time
    TIMEZONE: Optional[str] = None

    # ==========================================================================
    # Sync
    # ==========================================================================
    # Fixed delay before the single automatic write retry
    WRITE_RETRY_DELAY_SECONDS: float = 2.0

    # ==========================================================================
    # Records
    # ==========================================================================
    DEFAULT_DOSE_AMOUNT: int = 2
    MAX_NOTES_LENGTH: int = 500

    def collect_errors(self) -> list:
        errors = super().collect_errors()

        if self.DEFAULT_DOSE_AMOUNT <= 0:
            errors.append("DEFAULT_DOSE_AMOUNT must be a positive integer")

        if self.DAY_CHECK_INTERVAL_SECONDS <= 0:
            errors.append("DAY_CHECK_INTERVAL_SECONDS must be positive")

        if self.WRITE_RETRY_DELAY_SECONDS < 0:
            errors.append("WRITE_RETRY_DELAY_SECONDS cannot be negative")

        if self.TIMEZONE and self.TIMEZONE not in pytz.all_timezones_set:
            errors.append(f"TIMEZONE '{self.TIMEZONE}' is not a known IANA zone")

        return errors


# Global settings instance
settings = Settings()
