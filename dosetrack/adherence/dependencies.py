"""
FastAPI dependencies for adherence tracking.

Provides dependency injection for the adherence session and its services.
"""

from typing import Annotated, Optional

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from common.utils.exceptions import UnauthorizedException
from dosetrack.config import Settings
from dosetrack.adherence.services.adherence_session import AdherenceSession
from dosetrack.adherence.services.checkin_gate import CheckInGate
from dosetrack.adherence.services.day_boundary import DayBoundaryDetector, local_clock
from dosetrack.adherence.services.record_store import RecordStore
from dosetrack.adherence.services.record_sync import RecordSyncController


_adherence_session: Optional[AdherenceSession] = None


def init_adherence_services(db: AsyncIOMotorDatabase, settings: Settings) -> AdherenceSession:
    """
    Initialize adherence services with database connection.

    Called once at application startup.

    Args:
        db: MongoDB database connection
        settings: Application settings

    Returns:
        The adherence session (not yet started)
    """
    global _adherence_session

    store = RecordStore(db=db, collection_name=settings.RECORDS_COLLECTION)
    day_boundary = DayBoundaryDetector(
        clock=local_clock(settings.TIMEZONE),
        check_interval=settings.DAY_CHECK_INTERVAL_SECONDS,
    )
    _adherence_session = AdherenceSession(
        store=store,
        day_boundary=day_boundary,
        retry_delay=settings.WRITE_RETRY_DELAY_SECONDS,
        default_dose_amount=settings.DEFAULT_DOSE_AMOUNT,
        max_notes_length=settings.MAX_NOTES_LENGTH,
    )
    return _adherence_session


def get_adherence_session() -> AdherenceSession:
    """Get adherence session instance."""
    if _adherence_session is None:
        raise RuntimeError("Adherence services not initialized. Call init_adherence_services first.")
    return _adherence_session


def get_record_sync(
    session: Annotated[AdherenceSession, Depends(get_adherence_session)],
) -> RecordSyncController:
    """Get the record cache of the adherence session."""
    return session.records


def get_day_boundary(
    session: Annotated[AdherenceSession, Depends(get_adherence_session)],
) -> DayBoundaryDetector:
    """Get the day boundary detector of the adherence session."""
    return session.day_boundary


def get_checkin_gate(
    session: Annotated[AdherenceSession, Depends(get_adherence_session)],
) -> CheckInGate:
    """Get the check-in gate of the adherence session."""
    return session.gate


def require_active_user(
    session: Annotated[AdherenceSession, Depends(get_adherence_session)],
) -> str:
    """
    Require an active session.

    Returns:
        The logged-in user ID

    Raises:
        UnauthorizedException: If nobody is logged in
    """
    user_id = session.user_id
    if user_id is None:
        raise UnauthorizedException(
            message="No authenticated user",
            code="NO_ACTIVE_SESSION",
        )
    return user_id
