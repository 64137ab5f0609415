"""Unit tests for AdherenceSession wiring."""

import pytest

from common.utils.exceptions import ValidationException
from dosetrack.adherence.models import CheckInState
from dosetrack.adherence.services.adherence_session import AdherenceSession


@pytest.fixture
def session(fake_store, day_boundary):
    return AdherenceSession(fake_store, day_boundary, retry_delay=0)


class TestIdentity:
    def test_login_and_logout(self, session, fake_store, sample_user_id):
        assert session.is_authenticated is False

        session.login(sample_user_id)
        assert session.user_id == sample_user_id
        assert fake_store.active_subscriptions == 1

        session.logout()
        assert session.is_authenticated is False
        assert fake_store.active_subscriptions == 0

    def test_user_switch_does_not_leak_records(self, session, fake_store, make_record):
        fake_store.seed(make_record("2024-03-15", user_id="user-a"))
        session.login("user-a")
        assert session.stats.totalCompletedDays == 1

        session.login("user-b")

        assert session.records.records == []
        assert session.stats.totalCompletedDays == 0
        assert session.today_context.state == CheckInState.AVAILABLE


class TestDerivedState:
    def test_stats_follow_snapshots(self, session, fake_store, make_record, sample_user_id):
        fake_store.seed(make_record("2024-03-14"))
        session.login(sample_user_id)
        assert session.stats.currentStreak == 1

        fake_store.seed(make_record("2024-03-15"))
        fake_store.publish(sample_user_id)

        assert session.stats.currentStreak == 2
        assert session.today_context.state == CheckInState.COMPLETED

    def test_empty_snapshot_resets_stats(self, session, fake_store, make_record, sample_user_id):
        fake_store.seed(make_record("2024-03-15"))
        session.login(sample_user_id)

        fake_store.docs.clear()
        fake_store.publish(sample_user_id)

        assert session.stats.totalCompletedDays == 0
        assert session.stats.completionRate == 0.0

    def test_rollover_recomputes_stats(self, session, fake_store, make_record, clock, sample_user_id):
        fake_store.seed(make_record("2024-03-15"))
        session.login(sample_user_id)
        assert session.stats.currentStreak == 1

        # Two days later with nothing logged the streak is broken
        clock.advance(days=2)
        assert session.resume() is True

        assert session.stats.currentStreak == 0
        assert session.today_context.currentDate == "2024-03-17"

    def test_select_month(self, session, fake_store, make_record, sample_user_id):
        fake_store.seed(make_record("2024-01-10", dose=4))
        session.login(sample_user_id)

        stats = session.select_month(2024, 1)

        assert session.selected_month == (2024, 1)
        assert stats.periodStats.month == "2024-01"
        assert stats.periodStats.bestDay == "2024-01-10"

    def test_selected_month_resets_on_logout(self, session, fake_store, sample_user_id):
        session.login(sample_user_id)
        session.select_month(2024, 1)

        session.logout()
        session.login(sample_user_id)

        assert session.selected_month == (2024, 3)
        assert session.stats.periodStats.month == "2024-03"

    def test_selected_month_resets_on_user_switch(self, session, fake_store):
        session.login("user-a")
        session.select_month(2024, 1)

        session.login("user-b")

        assert session.selected_month == (2024, 3)
        assert session.stats.periodStats.month == "2024-03"

    def test_select_invalid_month(self, session):
        with pytest.raises(ValidationException):
            session.select_month(2024, 13)

    def test_export_and_integrity(self, session, fake_store, make_record, sample_user_id):
        fake_store.seed(make_record("2024-03-15", record_id="a"))
        fake_store.seed(make_record("2024-03-15", record_id="b"))
        session.login(sample_user_id)

        assert session.export()["recordCount"] == 2
        assert session.integrity().duplicateDates == ["2024-03-15"]


class TestShutdown:
    @pytest.mark.asyncio
    async def test_close_tears_down(self, session, fake_store, day_boundary, clock, sample_user_id):
        session.start()
        session.login(sample_user_id)

        await session.close()

        assert day_boundary.is_running is False
        assert fake_store.active_subscriptions == 0
        clock.advance(days=1)
        day_boundary.check()
        assert session.today_context.currentDate == "2024-03-15"
