"""
Check-in gate.

Decides whether the user may check in right now and performs the
check-in. At most one completed record per local calendar day.
"""

import logging
from typing import Callable, List, Optional

from common.utils.exceptions import ConflictException
from dosetrack.adherence.models import (
    CheckInState,
    DailyRecordCreate,
    TodayContext,
)
from dosetrack.adherence.services.day_boundary import DayBoundaryDetector
from dosetrack.adherence.services.record_sync import RecordSyncController

logger = logging.getLogger(__name__)


class CheckInGate:
    """
    Derived state machine over the cache and the current date.

    COMPLETED: today's cached record has completed=True
    PENDING:   a write for today is in flight or awaiting its echo, or the
               first snapshot has not arrived yet
    AVAILABLE: anything else; the only state accepting a check-in

    Completed is only ever read from the cache, so a write that has not
    been echoed, or that failed, never shows as completed.
    """

    ALREADY_COMPLETED_MESSAGE = (
        "Today's check-in is already completed. Your next check-in opens tomorrow."
    )
    PENDING_MESSAGE = "Today's check-in is still being saved."

    def __init__(
        self,
        records: RecordSyncController,
        day_boundary: DayBoundaryDetector,
        default_dose_amount: int = 2
    ):
        """
        Initialize CheckInGate.

        Args:
            records: Record cache and sync controller
            day_boundary: Source of "today" and rollover events
            default_dose_amount: Dose recorded when the caller gives none
        """
        self._records = records
        self._day_boundary = day_boundary
        self._default_dose_amount = default_dose_amount
        self._listeners: List[Callable[[TodayContext], None]] = []
        self._context = self.evaluate()

        self._remove_day_listener = day_boundary.add_listener(self._on_day_change)

    @property
    def context(self) -> TodayContext:
        """Most recently derived context."""
        return self._context

    def add_listener(self, listener: Callable[[TodayContext], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def evaluate(self) -> TodayContext:
        """Derive today's context from the cache and pending writes."""
        today = self._day_boundary.current_date
        record = self._records.find_cached(today)

        if record is not None and record.completed:
            state = CheckInState.COMPLETED
        elif self._records.is_pending(today) or self._records.loading:
            state = CheckInState.PENDING
        else:
            state = CheckInState.AVAILABLE

        return TodayContext(
            currentDate=today,
            canCheckIn=state == CheckInState.AVAILABLE,
            isCompleted=state == CheckInState.COMPLETED,
            state=state,
            record=record,
        )

    def refresh(self) -> TodayContext:
        """Re-derive the context and notify listeners."""
        self._context = self.evaluate()
        for listener in list(self._listeners):
            listener(self._context)
        return self._context

    async def check_in(
        self,
        dose_amount: Optional[int] = None,
        time_of_day: Optional[str] = None,
        notes: Optional[str] = None
    ) -> TodayContext:
        """
        Record today's dose.

        Completes an existing not-completed record for today instead of
        creating a second one.

        Returns:
            The context after the write (PENDING until the echo arrives)

        Raises:
            ConflictException: Already completed, or a save is in flight
            ValidationException: Invalid dose/time/notes
            WriteException: Write and retry both failed
        """
        # The date may have rolled over since the last periodic check
        self._day_boundary.check()

        context = self.refresh()
        if context.state == CheckInState.COMPLETED:
            logger.info(f"Repeat check-in rejected for {context.currentDate}")
            raise ConflictException(
                message=self.ALREADY_COMPLETED_MESSAGE,
                code="ALREADY_CHECKED_IN",
                details={"date": context.currentDate},
            )
        if context.state == CheckInState.PENDING:
            raise ConflictException(
                message=self.PENDING_MESSAGE,
                code="CHECKIN_PENDING",
                details={"date": context.currentDate},
            )

        # Cache-first, falling back to the store for writes not yet echoed
        record = await self._records.get_record_by_date(context.currentDate)
        if record is not None and record.completed:
            logger.info(f"Repeat check-in rejected for {context.currentDate} (found in store)")
            raise ConflictException(
                message=self.ALREADY_COMPLETED_MESSAGE,
                code="ALREADY_CHECKED_IN",
                details={"date": context.currentDate},
            )

        dose = dose_amount if dose_amount is not None else self._default_dose_amount
        time_value = time_of_day if time_of_day is not None else self._day_boundary.now().strftime("%H:%M")

        try:
            if record is not None:
                updates = {"doseAmount": dose, "timeOfDay": time_value, "completed": True}
                if notes is not None:
                    updates["notes"] = notes
                await self._records.update_record(record.id, updates)
            else:
                await self._records.create_record(DailyRecordCreate(
                    date=context.currentDate,
                    doseAmount=dose,
                    timeOfDay=time_value,
                    notes=notes,
                    completed=True,
                ))
        finally:
            self.refresh()

        logger.info(f"Check-in saved for {context.currentDate}")
        return self._context

    def close(self) -> None:
        """Stop following day rollovers."""
        self._remove_day_listener()

    def _on_day_change(self, new_date: str, old_date: str) -> None:
        logger.info(f"Check-in gate reset for {new_date} (was {old_date})")
        self.refresh()
