"""Shared test fixtures for Dosetrack tests."""

import itertools
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

from common.utils.exceptions import (
    NotFoundException,
    ServiceUnavailableException,
    WriteException,
)
from dosetrack.adherence.models import DailyRecord, DailyRecordCreate
from dosetrack.adherence.services.day_boundary import DayBoundaryDetector
from dosetrack.adherence.services.record_sync import RecordSyncController


# ─────────────────────────────────────────────────────────────────
# Fakes
# ─────────────────────────────────────────────────────────────────


class FakeClock:
    """Settable wall clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeSubscription:
    def __init__(self, user_id: str, on_change: Callable, on_error: Optional[Callable]):
        self.user_id = user_id
        self.on_change = on_change
        self.on_error = on_error
        self.active = True


class FakeRecordStore:
    """
    In-memory record store.

    Every write publishes a full snapshot to the owner's active
    subscriptions unless auto_publish is off, in which case the test
    calls publish() to deliver the echo.
    """

    def __init__(self):
        self.docs: Dict[str, DailyRecord] = {}
        self.subscriptions: List[FakeSubscription] = []
        self.auto_publish = True
        self.fail_writes = 0
        self.fail_reads = False
        self.write_calls = 0
        self._ids = itertools.count(1)

    # Writes

    async def create(self, user_id: str, data: DailyRecordCreate) -> str:
        self._before_write()
        record_id = f"rec-{next(self._ids)}"
        self.docs[record_id] = DailyRecord(id=record_id, userId=user_id, **data.model_dump())
        self._after_write(user_id)
        return record_id

    async def update(self, record_id: str, updates: Dict[str, Any]) -> None:
        self._before_write()
        if record_id not in self.docs:
            raise NotFoundException(message=f"Record {record_id} not found", code="RECORD_NOT_FOUND")
        record = self.docs[record_id].model_copy(update=updates)
        self.docs[record_id] = record
        self._after_write(record.userId)

    async def delete(self, record_id: str) -> None:
        self._before_write()
        if record_id not in self.docs:
            raise NotFoundException(message=f"Record {record_id} not found", code="RECORD_NOT_FOUND")
        record = self.docs.pop(record_id)
        self._after_write(record.userId)

    async def delete_all(self, user_id: str) -> int:
        self._before_write()
        ids = [r.id for r in self.docs.values() if r.userId == user_id]
        for record_id in ids:
            del self.docs[record_id]
        self._after_write(user_id)
        return len(ids)

    # Reads

    async def get_by_date(self, user_id: str, date: str) -> Optional[DailyRecord]:
        self._before_read()
        return next(
            (r for r in self.docs.values() if r.userId == user_id and r.date == date),
            None,
        )

    async def get_all(self, user_id: str) -> List[DailyRecord]:
        self._before_read()
        return self.snapshot(user_id)

    # Subscription

    def subscribe(self, user_id: str, on_change: Callable, on_error: Optional[Callable] = None):
        subscription = FakeSubscription(user_id, on_change, on_error)
        self.subscriptions.append(subscription)
        if self.auto_publish:
            on_change(self.snapshot(user_id))

        def unsubscribe() -> None:
            subscription.active = False

        return unsubscribe

    @property
    def active_subscriptions(self) -> int:
        return sum(1 for s in self.subscriptions if s.active)

    # Test helpers

    def seed(self, record: DailyRecord) -> None:
        self.docs[record.id] = record

    def snapshot(self, user_id: str) -> List[DailyRecord]:
        records = [r for r in self.docs.values() if r.userId == user_id]
        return sorted(records, key=lambda r: r.date, reverse=True)

    def publish(self, user_id: str) -> None:
        for subscription in list(self.subscriptions):
            if subscription.active and subscription.user_id == user_id:
                subscription.on_change(self.snapshot(user_id))

    def break_subscription(self, user_id: str, exc: Exception) -> None:
        for subscription in self.subscriptions:
            if subscription.active and subscription.user_id == user_id and subscription.on_error:
                subscription.on_error(exc)

    def _before_write(self) -> None:
        self.write_calls += 1
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise WriteException(message="Network unreachable")

    def _before_read(self) -> None:
        if self.fail_reads:
            raise ServiceUnavailableException(message="Record store unavailable", code="STORE_UNAVAILABLE")

    def _after_write(self, user_id: str) -> None:
        if self.auto_publish:
            self.publish(user_id)


# ─────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────


@pytest.fixture
def sample_user_id():
    return str(ObjectId())


@pytest.fixture
def mock_collection():
    collection = AsyncMock()
    # Motor's find() and watch() return cursors synchronously (not
    # coroutines), so use MagicMock for them. Async methods like
    # find_one, insert_one, update_one etc. stay as AsyncMock.
    collection.find = MagicMock()
    collection.watch = MagicMock()
    return collection


@pytest.fixture
def mock_db(mock_collection):
    db = MagicMock()
    db.__getitem__ = MagicMock(return_value=mock_collection)
    return db


@pytest.fixture
def make_record(sample_user_id):
    ids = itertools.count(1)

    def _make(
        date: str,
        dose: int = 2,
        completed: bool = True,
        record_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> DailyRecord:
        return DailyRecord(
            id=record_id or f"seed-{next(ids)}",
            userId=user_id or sample_user_id,
            date=date,
            doseAmount=dose,
            timeOfDay="08:00",
            completed=completed,
        )

    return _make


@pytest.fixture
def fake_store():
    return FakeRecordStore()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 15, 9, 30))


@pytest.fixture
def day_boundary(clock):
    return DayBoundaryDetector(clock=clock, check_interval=60.0)


@pytest.fixture
def records(fake_store):
    return RecordSyncController(fake_store, retry_delay=0)
