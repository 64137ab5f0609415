"""
Adherence session.

Wires the record cache, day boundary detector, stats engine and check-in
gate for the single active user, and reacts to the identity provider's
login/logout callbacks.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from common.utils.exceptions import ValidationException
from dosetrack.adherence.models import DerivedStats, IntegrityReport, TodayContext
from dosetrack.adherence.services.checkin_gate import CheckInGate
from dosetrack.adherence.services.data_export import RecordExporter
from dosetrack.adherence.services.day_boundary import DayBoundaryDetector
from dosetrack.adherence.services.record_store import RecordStore
from dosetrack.adherence.services.record_sync import RecordSyncController
from dosetrack.adherence.services import stats_engine

logger = logging.getLogger(__name__)


class AdherenceSession:
    """
    One active session. Stats and today's context are recomputed on every
    cache change and every day rollover.
    """

    def __init__(
        self,
        store: RecordStore,
        day_boundary: DayBoundaryDetector,
        retry_delay: float = 2.0,
        default_dose_amount: int = 2,
        max_notes_length: int = 500
    ):
        """
        Initialize AdherenceSession.

        Args:
            store: Record store adapter
            day_boundary: Day boundary detector (not yet started)
            retry_delay: Delay before the single write retry
            default_dose_amount: Dose used by a plain check-in
            max_notes_length: Notes limit
        """
        self.store = store
        self.day_boundary = day_boundary
        self.records = RecordSyncController(
            store,
            retry_delay=retry_delay,
            max_notes_length=max_notes_length,
        )
        self.gate = CheckInGate(
            self.records,
            day_boundary,
            default_dose_amount=default_dose_amount,
        )

        self._selected_month: Optional[Tuple[int, int]] = None
        self._stats = DerivedStats()

        self._remove_listeners = [
            self.records.add_listener(self._on_records_changed),
            day_boundary.add_listener(self._on_day_change),
        ]
        self._recompute()

    # ─────────────────────────────────────────────────────────────
    # Identity lifecycle
    # ─────────────────────────────────────────────────────────────

    @property
    def user_id(self) -> Optional[str]:
        return self.records.user_id

    @property
    def is_authenticated(self) -> bool:
        return self.records.user_id is not None

    def login(self, user_id: str) -> None:
        """Identity provider login callback."""
        logger.info(f"Session login for user {user_id}")
        if user_id != self.user_id:
            self._selected_month = None
        self.records.start(user_id)

    def logout(self) -> None:
        """Identity provider logout callback."""
        if self.is_authenticated:
            logger.info(f"Session logout for user {self.user_id}")
        self._selected_month = None
        self.records.stop()

    def resume(self) -> bool:
        """App foreground/resume: catch up on a missed rollover."""
        return self.day_boundary.on_resume()

    def start(self) -> None:
        """Start periodic day checks. Must run inside the event loop."""
        self.day_boundary.start()

    async def close(self) -> None:
        """Tear down subscription, timer and listeners."""
        self.logout()
        await self.day_boundary.stop()
        for remove in self._remove_listeners:
            remove()
        self._remove_listeners = []
        self.gate.close()

    # ─────────────────────────────────────────────────────────────
    # Derived state
    # ─────────────────────────────────────────────────────────────

    @property
    def stats(self) -> DerivedStats:
        return self._stats

    @property
    def today_context(self) -> TodayContext:
        return self.gate.context

    @property
    def selected_month(self) -> Tuple[int, int]:
        if self._selected_month:
            return self._selected_month
        today = self._today()
        return today.year, today.month

    def select_month(self, year: int, month: int) -> DerivedStats:
        """Change the period used for periodStats and recompute."""
        if not 1 <= month <= 12 or not 1 <= year <= 9999:
            raise ValidationException(
                message=f"Invalid month {year}-{month:02d}",
                code="VALIDATION_ERROR",
            )
        self._selected_month = (year, month)
        self._recompute()
        return self._stats

    def export(self) -> Dict[str, Any]:
        return RecordExporter.export_user_data(self.user_id or "", self.records.records)

    def integrity(self) -> IntegrityReport:
        return RecordExporter.validate_integrity(self.records.records)

    # ─────────────────────────────────────────────────────────────
    # Listeners
    # ─────────────────────────────────────────────────────────────

    def _on_records_changed(self) -> None:
        self._recompute()
        self.gate.refresh()

    def _on_day_change(self, new_date: str, old_date: str) -> None:
        self._recompute()

    def _recompute(self) -> None:
        self._stats = stats_engine.derive_stats(
            self.records.records,
            self._today(),
            self._selected_month,
        )

    def _today(self):
        return datetime.strptime(self.day_boundary.current_date, "%Y-%m-%d").date()
