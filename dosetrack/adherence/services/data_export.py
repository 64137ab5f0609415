"""
Record export and integrity audit.
"""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List

from dosetrack.adherence.models import DailyRecord, IntegrityReport
from dosetrack.adherence.services.record_validator import RecordValidator

logger = logging.getLogger(__name__)


class RecordExporter:
    """
    Serializes a user's ledger for backup and audits it for the
    one-record-per-date invariant the store does not enforce.
    """

    EXPORT_VERSION = "1.0.0"

    @classmethod
    def export_user_data(cls, user_id: str, records: List[DailyRecord]) -> Dict[str, Any]:
        """
        Build a JSON-serializable export.

        Returns:
            dict with keys:
                - version: str
                - exportDate: str (ISO-8601, UTC)
                - userId: str
                - recordCount: int
                - records: list[dict] (most recent first)
        """
        ordered = sorted(records, key=lambda r: r.date, reverse=True)

        export = {
            "version": cls.EXPORT_VERSION,
            "exportDate": datetime.now(timezone.utc).isoformat(),
            "userId": user_id,
            "recordCount": len(ordered),
            "records": [r.model_dump(mode="json") for r in ordered],
        }

        logger.info(f"Exported {len(ordered)} records for user {user_id}")
        return export

    @classmethod
    def validate_integrity(cls, records: List[DailyRecord]) -> IntegrityReport:
        """
        Report duplicate dates and malformed records. Read-only.
        """
        date_counts = Counter(r.date for r in records)
        duplicate_dates = sorted(d for d, count in date_counts.items() if count > 1)

        invalid_records = [
            r.id for r in records
            if not RecordValidator.is_valid_date(r.date) or r.doseAmount <= 0
        ]

        if duplicate_dates:
            logger.warning(f"Duplicate records found for dates: {', '.join(duplicate_dates)}")

        return IntegrityReport(
            valid=not duplicate_dates and not invalid_records,
            recordCount=len(records),
            duplicateDates=duplicate_dates,
            invalidRecords=invalid_records,
        )
