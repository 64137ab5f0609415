"""
Pydantic models for the adherence tracker.

Defines the ledger record, sync/gate states, derived statistics and the
request bodies accepted by the router.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SyncStatus(str, Enum):
    """Whether the local cache matches the store's last-known state."""
    SYNCED = "synced"
    SYNCING = "syncing"
    ERROR = "error"


class CheckInState(str, Enum):
    """Derived check-in availability for the current day."""
    AVAILABLE = "available"
    PENDING = "pending"
    COMPLETED = "completed"


# ─────────────────────────────────────────────────────────────────
# Ledger
# ─────────────────────────────────────────────────────────────────

class DailyRecord(BaseModel):
    """One calendar day's ledger entry."""
    id: str
    userId: str
    date: str
    doseAmount: int
    timeOfDay: str = ""
    notes: Optional[str] = None
    completed: bool = False
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "DailyRecord":
        """Build a record from a raw MongoDB document."""
        return cls(
            id=str(doc["_id"]),
            userId=str(doc.get("userId", "")),
            date=doc.get("date", ""),
            doseAmount=doc.get("doseAmount", 0),
            timeOfDay=doc.get("timeOfDay") or "",
            notes=doc.get("notes"),
            completed=bool(doc.get("completed", False)),
            createdAt=doc.get("createdAt"),
            updatedAt=doc.get("updatedAt"),
        )


class DailyRecordCreate(BaseModel):
    """Caller-supplied fields for a new record; the store assigns the rest."""
    date: str
    doseAmount: int
    timeOfDay: str = ""
    notes: Optional[str] = None
    completed: bool = True


class DailyRecordUpdate(BaseModel):
    """Partial update; only fields explicitly set are written."""
    doseAmount: Optional[int] = None
    timeOfDay: Optional[str] = None
    notes: Optional[str] = None
    completed: Optional[bool] = None


class RecordsState(BaseModel):
    """Reactive view of the record cache."""
    records: List[DailyRecord] = Field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None
    syncStatus: SyncStatus = SyncStatus.SYNCED


# ─────────────────────────────────────────────────────────────────
# Derived statistics
# ─────────────────────────────────────────────────────────────────

class MonthlyProgress(BaseModel):
    month: str = ""
    completedDays: int = 0
    totalDaysInMonth: int = 0
    consistency: float = 0.0
    totalDoseAmount: int = 0
    averageDoseAmount: float = 0.0


class PeriodStats(BaseModel):
    month: str = ""
    totalDoseAmount: int = 0
    averageDoseAmount: float = 0.0
    bestDay: Optional[str] = None
    consistency: float = 0.0
    completedDays: int = 0
    totalDays: int = 0


class DerivedStats(BaseModel):
    """Aggregates recomputed from the record set; never persisted."""
    totalCompletedDays: int = 0
    currentStreak: int = 0
    averageDoseAmount: float = 0.0
    totalDoseAmount: int = 0
    completionRate: float = 0.0
    monthlyProgress: MonthlyProgress = Field(default_factory=MonthlyProgress)
    periodStats: PeriodStats = Field(default_factory=PeriodStats)


class TodayContext(BaseModel):
    """Check-in availability for the current local date."""
    currentDate: str
    canCheckIn: bool
    isCompleted: bool
    state: CheckInState
    record: Optional[DailyRecord] = None


class IntegrityReport(BaseModel):
    """Result of auditing a record set for ledger invariants."""
    valid: bool
    recordCount: int
    duplicateDates: List[str] = Field(default_factory=list)
    invalidRecords: List[str] = Field(default_factory=list)


# ─────────────────────────────────────────────────────────────────
# Request bodies
# ─────────────────────────────────────────────────────────────────

class LoginRequest(BaseModel):
    """Identity provider login callback."""
    userId: str = Field(..., min_length=1)


class CheckInRequest(BaseModel):
    """Request body for today's check-in. Omitted fields use defaults."""
    doseAmount: Optional[int] = Field(None, gt=0)
    timeOfDay: Optional[str] = Field(None, max_length=32)
    notes: Optional[str] = Field(None, max_length=500)


class CreateRecordRequest(BaseModel):
    date: str = Field(..., description="YYYY-MM-DD format")
    doseAmount: int = Field(..., gt=0)
    timeOfDay: str = Field("", max_length=32)
    notes: Optional[str] = Field(None, max_length=500)
    completed: bool = True


class UpdateRecordRequest(BaseModel):
    doseAmount: Optional[int] = Field(None, gt=0)
    timeOfDay: Optional[str] = Field(None, max_length=32)
    notes: Optional[str] = Field(None, max_length=500)
    completed: Optional[bool] = None
