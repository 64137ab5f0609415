"""
Adherence Tracking

Records one dose per calendar day, keeps a live cache of the user's
records in sync with the store, and derives streak, completion rate and
monthly statistics from it.
"""

from dosetrack.adherence.services.record_store import RecordStore
from dosetrack.adherence.services.record_sync import RecordSyncController
from dosetrack.adherence.services.record_validator import RecordValidator
from dosetrack.adherence.services.day_boundary import DayBoundaryDetector
from dosetrack.adherence.services.checkin_gate import CheckInGate
from dosetrack.adherence.services.data_export import RecordExporter
from dosetrack.adherence.services.adherence_session import AdherenceSession

__all__ = [
    "RecordStore",
    "RecordSyncController",
    "RecordValidator",
    "DayBoundaryDetector",
    "CheckInGate",
    "RecordExporter",
    "AdherenceSession",
]
