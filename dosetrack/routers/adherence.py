"""
FastAPI router for adherence tracking endpoints.

Session lifecycle, record CRUD, derived statistics and the daily check-in.
"""

import logging
from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from common.utils import success_response
from dosetrack.adherence.dependencies import (
    get_adherence_session,
    get_checkin_gate,
    get_day_boundary,
    get_record_sync,
    require_active_user,
)
from dosetrack.adherence.models import (
    CheckInRequest,
    CreateRecordRequest,
    DailyRecordCreate,
    DailyRecordUpdate,
    DerivedStats,
    LoginRequest,
    UpdateRecordRequest,
)
from dosetrack.adherence.services.adherence_session import AdherenceSession
from dosetrack.adherence.services.checkin_gate import CheckInGate
from dosetrack.adherence.services.day_boundary import DayBoundaryDetector
from dosetrack.adherence.services.record_sync import RecordSyncController
from dosetrack.adherence.services.stats_engine import round_percentage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["adherence"])


def stats_to_response(stats: DerivedStats) -> Dict[str, Any]:
    """Serialize stats with display-rounded percentages and averages."""
    data = stats.model_dump()
    data["completionRate"] = round_percentage(stats.completionRate)
    data["averageDoseAmount"] = round_percentage(stats.averageDoseAmount)

    for key in ("monthlyProgress", "periodStats"):
        data[key]["consistency"] = round_percentage(data[key]["consistency"])
        data[key]["averageDoseAmount"] = round_percentage(data[key]["averageDoseAmount"])

    return data


# =============================================================================
# Session
# =============================================================================
@router.post("/session/login")
async def login(
    body: LoginRequest,
    session: Annotated[AdherenceSession, Depends(get_adherence_session)],
):
    """Identity provider login callback. Subscribes to the user's records."""
    session.login(body.userId)
    return success_response(
        {"userId": session.user_id, "syncStatus": session.records.sync_status.value},
        message="Session started",
    )


@router.post("/session/logout")
async def logout(
    session: Annotated[AdherenceSession, Depends(get_adherence_session)],
):
    """Identity provider logout callback. Clears the record cache."""
    session.logout()
    return success_response(message="Session ended")


@router.post("/session/resume")
async def resume(
    session: Annotated[AdherenceSession, Depends(get_adherence_session)],
):
    """App resume hook; catches up on a day rollover missed while suspended."""
    rolled_over = session.resume()
    return success_response({
        "rolledOver": rolled_over,
        "currentDate": session.day_boundary.current_date,
    })


# =============================================================================
# Records
# =============================================================================
@router.get("/records")
async def list_records(
    user_id: Annotated[str, Depends(require_active_user)],
    records: Annotated[RecordSyncController, Depends(get_record_sync)],
):
    """Current cache contents and sync status."""
    return success_response(records.state().model_dump(mode="json"))


@router.post("/records")
async def create_record(
    body: CreateRecordRequest,
    user_id: Annotated[str, Depends(require_active_user)],
    records: Annotated[RecordSyncController, Depends(get_record_sync)],
):
    """
    Create a record. The cache shows it once the subscription echoes it.
    """
    record_id = await records.create_record(DailyRecordCreate(**body.model_dump()))
    return success_response({"id": record_id}, message="Record saved")


@router.get("/records/export")
async def export_records(
    user_id: Annotated[str, Depends(require_active_user)],
    session: Annotated[AdherenceSession, Depends(get_adherence_session)],
):
    """Export the user's records as JSON."""
    return success_response(session.export())


@router.get("/records/integrity")
async def check_integrity(
    user_id: Annotated[str, Depends(require_active_user)],
    session: Annotated[AdherenceSession, Depends(get_adherence_session)],
):
    """Audit cached records for duplicate dates and malformed entries."""
    return success_response(session.integrity().model_dump())


@router.post("/records/refresh")
async def refresh_records(
    user_id: Annotated[str, Depends(require_active_user)],
    records: Annotated[RecordSyncController, Depends(get_record_sync)],
):
    """Force a full re-fetch outside the subscription."""
    await records.refresh()
    return success_response(records.state().model_dump(mode="json"))


@router.get("/records/by-date/{date}")
async def get_record_by_date(
    date: str,
    user_id: Annotated[str, Depends(require_active_user)],
    records: Annotated[RecordSyncController, Depends(get_record_sync)],
):
    """Record for a date, or null when none exists."""
    record = await records.get_record_by_date(date)
    return success_response({"record": record.model_dump(mode="json") if record else None})


@router.patch("/records/{record_id}")
async def update_record(
    record_id: str,
    body: UpdateRecordRequest,
    user_id: Annotated[str, Depends(require_active_user)],
    records: Annotated[RecordSyncController, Depends(get_record_sync)],
):
    """Apply a partial update."""
    updates = DailyRecordUpdate(**body.model_dump(exclude_unset=True))
    await records.update_record(record_id, updates)
    return success_response({"id": record_id}, message="Record updated")


@router.delete("/records/{record_id}")
async def delete_record(
    record_id: str,
    user_id: Annotated[str, Depends(require_active_user)],
    records: Annotated[RecordSyncController, Depends(get_record_sync)],
):
    """Delete one record."""
    await records.delete_record(record_id)
    return success_response({"id": record_id}, message="Record deleted")


@router.delete("/records")
async def erase_records(
    user_id: Annotated[str, Depends(require_active_user)],
    records: Annotated[RecordSyncController, Depends(get_record_sync)],
):
    """Erase every record of the active user."""
    deleted = await records.delete_all_records()
    logger.info(f"Erased {deleted} records for user {user_id}")
    return success_response({"deletedCount": deleted}, message="All records deleted")


# =============================================================================
# Stats & Check-in
# =============================================================================
@router.get("/stats")
async def get_stats(
    user_id: Annotated[str, Depends(require_active_user)],
    session: Annotated[AdherenceSession, Depends(get_adherence_session)],
    month: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}$", description="YYYY-MM format"),
):
    """
    Derived statistics.

    `month` selects the period used for periodStats and persists for the
    session.
    """
    stats = session.stats
    if month:
        year, month_number = (int(part) for part in month.split("-"))
        stats = session.select_month(year, month_number)

    return success_response(stats_to_response(stats))


@router.get("/today")
async def get_today(
    gate: Annotated[CheckInGate, Depends(get_checkin_gate)],
    day_boundary: Annotated[DayBoundaryDetector, Depends(get_day_boundary)],
):
    """Today's check-in state and time left until the next day opens."""
    context = gate.refresh()
    data = context.model_dump(mode="json")
    data["timeUntilMidnight"] = day_boundary.format_time_until_midnight()
    return success_response(data)


@router.post("/checkin")
async def check_in(
    user_id: Annotated[str, Depends(require_active_user)],
    gate: Annotated[CheckInGate, Depends(get_checkin_gate)],
    body: Optional[CheckInRequest] = None,
):
    """
    Check in for today.

    The returned state stays pending until the subscription echoes the
    write; poll /today for completion.
    """
    body = body or CheckInRequest()
    context = await gate.check_in(
        dose_amount=body.doseAmount,
        time_of_day=body.timeOfDay,
        notes=body.notes,
    )
    return success_response(context.model_dump(mode="json"), message="Check-in saved")
