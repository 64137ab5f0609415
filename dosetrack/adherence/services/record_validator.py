"""
Daily record validation.

Rejects malformed record input before any write reaches the store.
"""

import re
from datetime import datetime
from typing import Tuple, Optional, Dict, Any

from dosetrack.adherence.models import DailyRecordCreate


class RecordValidator:
    """
    Validates daily record fields.
    """

    DATE_FORMAT = "%Y-%m-%d"
    DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

    MAX_NOTES_LENGTH = 500
    MAX_TIME_OF_DAY_LENGTH = 32

    UPDATABLE_FIELDS = {"doseAmount", "timeOfDay", "notes", "completed"}

    @classmethod
    def is_valid_date(cls, value: Any) -> bool:
        """True for a real calendar date in strict YYYY-MM-DD form."""
        if not isinstance(value, str) or not cls.DATE_PATTERN.match(value):
            return False
        try:
            datetime.strptime(value, cls.DATE_FORMAT)
        except ValueError:
            return False
        return True

    @classmethod
    def validate_date(cls, value: Any) -> Tuple[bool, Optional[str]]:
        if not cls.is_valid_date(value):
            return False, f"Invalid date '{value}': expected a calendar date in YYYY-MM-DD format"
        return True, None

    @classmethod
    def validate_dose_amount(cls, value: Any) -> Tuple[bool, Optional[str]]:
        # bool is an int subclass
        if isinstance(value, bool) or not isinstance(value, int):
            return False, "Field 'doseAmount' must be an integer"

        if value <= 0:
            return False, "Field 'doseAmount' must be a positive integer"

        return True, None

    @classmethod
    def validate_time_of_day(cls, value: Any) -> Tuple[bool, Optional[str]]:
        if not isinstance(value, str):
            return False, "Field 'timeOfDay' must be a string"

        if len(value) > cls.MAX_TIME_OF_DAY_LENGTH:
            return False, f"Field 'timeOfDay' cannot exceed {cls.MAX_TIME_OF_DAY_LENGTH} characters"

        return True, None

    @classmethod
    def validate_notes(
        cls,
        notes: Optional[str],
        max_length: Optional[int] = None
    ) -> Tuple[bool, Optional[str]]:
        """
        Validate optional notes field.

        Rules:
            - None is allowed
            - Max length measured after trimming whitespace
        """
        if notes is None:
            return True, None

        if not isinstance(notes, str):
            return False, "Notes must be a string"

        limit = max_length or cls.MAX_NOTES_LENGTH
        if len(notes.strip()) > limit:
            return False, f"Notes cannot exceed {limit} characters"

        return True, None

    @classmethod
    def validate_create(
        cls,
        data: DailyRecordCreate,
        max_notes_length: Optional[int] = None
    ) -> Tuple[bool, Optional[str]]:
        """
        Validate a full record about to be created.

        Returns:
            tuple of (is_valid, error_message)
        """
        checks = (
            cls.validate_date(data.date),
            cls.validate_dose_amount(data.doseAmount),
            cls.validate_time_of_day(data.timeOfDay),
            cls.validate_notes(data.notes, max_notes_length),
        )
        for is_valid, error in checks:
            if not is_valid:
                return False, error

        return True, None

    @classmethod
    def validate_update(
        cls,
        updates: Dict[str, Any],
        max_notes_length: Optional[int] = None
    ) -> Tuple[bool, Optional[str]]:
        """
        Validate a partial update.

        Identity fields (id, userId, date) cannot be changed; a record
        moving between dates would break the one-per-date ledger.
        """
        if not updates:
            return False, "Update must contain at least one field"

        unknown = set(updates) - cls.UPDATABLE_FIELDS
        if unknown:
            return False, f"Fields cannot be updated: {', '.join(sorted(unknown))}"

        if "doseAmount" in updates:
            is_valid, error = cls.validate_dose_amount(updates["doseAmount"])
            if not is_valid:
                return False, error

        if "timeOfDay" in updates:
            is_valid, error = cls.validate_time_of_day(updates["timeOfDay"])
            if not is_valid:
                return False, error

        if "notes" in updates:
            is_valid, error = cls.validate_notes(updates["notes"], max_notes_length)
            if not is_valid:
                return False, error

        if "completed" in updates and not isinstance(updates["completed"], bool):
            return False, "Field 'completed' must be a boolean"

        return True, None
