"""
Record cache and sync controller.

Mirrors the active user's records in memory, fed by the store's live
subscription. Every snapshot replaces the cache wholesale. Writes go
straight to the store and are never patched into the cache locally; the
subscription echo is the only path by which written data appears here.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

from common.utils.exceptions import (
    APIException,
    ConflictException,
    UnauthorizedException,
    ValidationException,
    WriteException,
)
from dosetrack.adherence.models import (
    DailyRecord,
    DailyRecordCreate,
    DailyRecordUpdate,
    RecordsState,
    SyncStatus,
)
from dosetrack.adherence.services.record_store import RecordStore
from dosetrack.adherence.services.record_validator import RecordValidator

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PendingWrite:
    """A write whose result has not yet been echoed by the subscription."""
    date: str
    record_id: Optional[str] = None
    expected: Dict[str, Any] = field(default_factory=dict)
    confirmed_by_store: bool = False

    def is_echoed_by(self, records: List[DailyRecord]) -> bool:
        if not self.confirmed_by_store or not self.record_id:
            return False
        for record in records:
            if record.id != self.record_id:
                continue
            values = record.model_dump()
            return all(values.get(k) == v for k, v in self.expected.items())
        return False


class RecordSyncController:
    """
    Owns the active user's RecordCollection and the SyncStatus machine.

    synced -> syncing on any write; syncing -> synced on success or
    error after the single automatic retry fails.
    """

    WRITE_FAILED_MESSAGE = (
        "Failed to save your data. Please check your internet connection and try again."
    )

    def __init__(
        self,
        store: RecordStore,
        retry_delay: float = 2.0,
        max_notes_length: int = RecordValidator.MAX_NOTES_LENGTH
    ):
        """
        Initialize RecordSyncController.

        Args:
            store: Record store adapter
            retry_delay: Seconds to wait before the single write retry
            max_notes_length: Notes limit applied on validation
        """
        self._store = store
        self._retry_delay = retry_delay
        self._max_notes_length = max_notes_length

        self._user_id: Optional[str] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        # Bumped on every user change; stale callbacks compare against it
        self._generation = 0

        self._records: List[DailyRecord] = []
        self._loading = False
        self._error: Optional[str] = None
        self._sync_status = SyncStatus.SYNCED
        self._writes_in_flight = 0
        self._pending: Dict[str, PendingWrite] = {}
        self._listeners: List[Callable[[], None]] = []

    # ─────────────────────────────────────────────────────────────
    # Reactive state
    # ─────────────────────────────────────────────────────────────

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def records(self) -> List[DailyRecord]:
        return list(self._records)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def sync_status(self) -> SyncStatus:
        return self._sync_status

    def state(self) -> RecordsState:
        return RecordsState(
            records=self.records,
            loading=self._loading,
            error=self._error,
            syncStatus=self._sync_status,
        )

    def add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """
        Register a callback fired after every cache or status change.

        Returns:
            Function removing the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def is_pending(self, date: str) -> bool:
        """True while a write for the date is in flight or awaiting its echo."""
        return date in self._pending

    def find_cached(self, date: str) -> Optional[DailyRecord]:
        """Cached record for a date, preferring a completed one."""
        matches = [r for r in self._records if r.date == date]
        for record in matches:
            if record.completed:
                return record
        return matches[0] if matches else None

    # ─────────────────────────────────────────────────────────────
    # Identity lifecycle
    # ─────────────────────────────────────────────────────────────

    def start(self, user_id: str) -> None:
        """
        Subscribe to a user's records, releasing any previous subscription.

        Must be called from a running event loop.
        """
        if user_id == self._user_id and self._unsubscribe is not None:
            return

        self._release()
        self._reset_state()

        self._user_id = user_id
        self._generation += 1
        generation = self._generation
        self._loading = True

        self._unsubscribe = self._store.subscribe(
            user_id,
            lambda records: self._on_snapshot(generation, records),
            lambda exc: self._on_subscription_error(generation, exc),
        )
        logger.info(f"Record cache started for user {user_id}")
        self._notify()

    def stop(self) -> None:
        """Release the subscription and clear the cache (logout/unmount)."""
        previous = self._user_id
        self._release()
        self._generation += 1
        self._user_id = None
        self._reset_state()

        if previous:
            logger.info(f"Record cache cleared for user {previous}")
        self._notify()

    # ─────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────

    async def create_record(self, data: DailyRecordCreate) -> str:
        """
        Create a record for the active user.

        Callers should check get_record_by_date() first. A second create
        for a date already in flight is rejected here; creates racing from
        other devices can still produce two records for one date.

        Returns:
            The store-assigned record ID

        Raises:
            ValidationException: Bad date, dose, time or notes
            ConflictException: A write for this date is already in progress
            WriteException: Both the write and its retry failed
        """
        user_id = self._require_user()

        is_valid, error = RecordValidator.validate_create(data, self._max_notes_length)
        if not is_valid:
            raise ValidationException(message=error, code="VALIDATION_ERROR")

        if data.date in self._pending:
            raise ConflictException(
                message=f"A save for {data.date} is already in progress",
                code="WRITE_IN_PROGRESS",
                details={"date": data.date},
            )

        pending = PendingWrite(date=data.date)
        self._pending[data.date] = pending

        record_id = await self._run_write(
            f"create record for {data.date}",
            lambda: self._store.create(user_id, data),
            retry=True,
            pending=pending,
        )
        pending.record_id = record_id
        self._confirm_write(pending)
        return record_id

    async def update_record(
        self,
        record_id: str,
        updates: Union[DailyRecordUpdate, Dict[str, Any]]
    ) -> None:
        """
        Apply a partial update. The cache changes only when the echo arrives.

        Raises:
            ValidationException: Invalid or non-updatable fields
            NotFoundException: Unknown record ID (no retry)
            WriteException: Both the write and its retry failed
        """
        self._require_user()

        if isinstance(updates, DailyRecordUpdate):
            updates = updates.model_dump(exclude_unset=True)

        is_valid, error = RecordValidator.validate_update(updates, self._max_notes_length)
        if not is_valid:
            raise ValidationException(message=error, code="VALIDATION_ERROR")

        pending = None
        cached = next((r for r in self._records if r.id == record_id), None)
        if cached and cached.date not in self._pending:
            pending = PendingWrite(date=cached.date, record_id=record_id, expected=dict(updates))
            self._pending[cached.date] = pending

        await self._run_write(
            f"update record {record_id}",
            lambda: self._store.update(record_id, updates),
            retry=True,
            pending=pending,
        )
        if pending:
            self._confirm_write(pending)

    async def delete_record(self, record_id: str) -> None:
        """
        Delete one record. Not retried.

        Raises:
            NotFoundException: Unknown record ID
            WriteException: Transport failure
        """
        self._require_user()
        await self._run_write(
            f"delete record {record_id}",
            lambda: self._store.delete(record_id),
            retry=False,
        )
        self._drop_pending(lambda pending: pending.record_id == record_id)

    async def delete_all_records(self) -> int:
        """
        Erase every record of the active user.

        Returns:
            Number of deleted records
        """
        user_id = self._require_user()
        count = await self._run_write(
            f"erase records for user {user_id}",
            lambda: self._store.delete_all(user_id),
            retry=False,
        )
        self._pending.clear()
        return count

    # ─────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────

    async def get_record_by_date(self, date: str) -> Optional[DailyRecord]:
        """
        Cache-first lookup, falling back to a point query for writes
        that have not been echoed yet.
        """
        if self._user_id is None:
            return None

        is_valid, error = RecordValidator.validate_date(date)
        if not is_valid:
            raise ValidationException(message=error, code="VALIDATION_ERROR")

        cached = self.find_cached(date)
        if cached:
            logger.debug(f"Record for {date} found in cache")
            return cached

        return await self._store.get_by_date(self._user_id, date)

    async def refresh(self) -> None:
        """
        Force a full non-subscribed re-fetch, replacing the cache wholesale.

        On failure the last snapshot stays and status becomes error.
        """
        user_id = self._require_user()
        generation = self._generation
        # Writes the store had confirmed before this full read began
        confirmed = [p for p in self._pending.values() if p.confirmed_by_store]

        self._loading = True
        self._notify()
        logger.info(f"Manually refreshing records for user {user_id}")

        try:
            records = await self._store.get_all(user_id)
        except APIException as e:
            if generation == self._generation:
                self._loading = False
                self._error = "Failed to refresh records"
                self._sync_status = SyncStatus.ERROR
                self._notify()
            logger.error(f"Refresh failed for user {user_id}: {e}")
            raise

        if generation == self._generation:
            record_ids = {r.id for r in records}
            self._drop_pending(
                lambda pending: any(pending is p for p in confirmed) and pending.record_id not in record_ids
            )
        self._on_snapshot(generation, records)

    # ─────────────────────────────────────────────────────────────
    # Subscription callbacks
    # ─────────────────────────────────────────────────────────────

    def _on_snapshot(self, generation: int, records: List[DailyRecord]) -> None:
        if generation != self._generation:
            logger.warning(
                f"Dropped stale snapshot of {len(records)} records from a released subscription"
            )
            return

        self._records = sorted(records, key=lambda r: r.date, reverse=True)
        self._loading = False
        self._error = None
        if self._writes_in_flight == 0:
            self._sync_status = SyncStatus.SYNCED

        for date, pending in list(self._pending.items()):
            if pending.is_echoed_by(self._records):
                del self._pending[date]

        logger.debug(f"Snapshot applied for user {self._user_id}: {len(records)} records")
        self._notify()

    def _on_subscription_error(self, generation: int, exc: APIException) -> None:
        if generation != self._generation:
            return

        self._loading = False
        self._error = exc.message
        self._sync_status = SyncStatus.ERROR
        logger.error(f"Live updates lost for user {self._user_id}; keeping last snapshot")
        self._notify()

    # ─────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────

    async def _run_write(
        self,
        description: str,
        operation: Callable[[], Awaitable[T]],
        retry: bool,
        pending: Optional[PendingWrite] = None,
    ) -> T:
        generation = self._generation
        self._writes_in_flight += 1
        self._sync_status = SyncStatus.SYNCING
        self._notify()

        succeeded = False
        failed = False
        try:
            if retry:
                result = await self._with_retry(description, operation)
            else:
                result = await operation()
            succeeded = True
        except WriteException:
            failed = True
            raise
        finally:
            # Writes outliving a user switch must not touch the new cache
            if generation == self._generation:
                self._finish_write(pending, failed=failed, succeeded=succeeded)

        return result

    def _finish_write(
        self,
        pending: Optional[PendingWrite],
        failed: bool,
        succeeded: bool
    ) -> None:
        self._writes_in_flight -= 1

        if pending is not None:
            if succeeded:
                pending.confirmed_by_store = True
            elif self._pending.get(pending.date) is pending:
                del self._pending[pending.date]

        if failed:
            self._sync_status = SyncStatus.ERROR
            self._error = self.WRITE_FAILED_MESSAGE
        elif self._writes_in_flight == 0:
            self._sync_status = SyncStatus.SYNCED
            if succeeded:
                self._error = None

        self._notify()

    async def _with_retry(self, description: str, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await operation()
        except WriteException as e:
            logger.warning(f"Failed to {description}, retrying in {self._retry_delay}s: {e}")

        await asyncio.sleep(self._retry_delay)

        try:
            result = await operation()
        except WriteException as e:
            logger.error(f"Retry failed to {description}: {e}")
            raise WriteException(message=self.WRITE_FAILED_MESSAGE, details=e.detail) from e

        logger.info(f"Succeeded on retry: {description}")
        return result

    def _confirm_write(self, pending: PendingWrite) -> None:
        """Drop the pending marker if the echo arrived before the write returned."""
        if self._pending.get(pending.date) is pending and pending.is_echoed_by(self._records):
            del self._pending[pending.date]
            self._notify()

    def _drop_pending(self, predicate: Callable[[PendingWrite], bool]) -> None:
        """Forget pending writes whose record is gone from the store."""
        for date, pending in list(self._pending.items()):
            if predicate(pending):
                logger.info(f"Pending write for {date} dropped; record {pending.record_id} no longer exists")
                del self._pending[date]
                self._notify()

    def _require_user(self) -> str:
        if self._user_id is None:
            raise UnauthorizedException(
                message="No authenticated user",
                code="NO_ACTIVE_SESSION",
            )
        return self._user_id

    def _release(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _reset_state(self) -> None:
        self._records = []
        self._loading = False
        self._error = None
        self._sync_status = SyncStatus.SYNCED
        self._writes_in_flight = 0
        self._pending = {}

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()
