"""Endpoint tests for the adherence router."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from dosetrack.adherence.dependencies import get_adherence_session
from dosetrack.adherence.services.adherence_session import AdherenceSession
from dosetrack.routers import adherence_router


PREFIX = "/api/v1/tracker"


@pytest.fixture
def session(fake_store, day_boundary):
    return AdherenceSession(fake_store, day_boundary, retry_delay=0)


@pytest.fixture
def client(session):
    app = FastAPI()
    app.include_router(adherence_router, prefix=PREFIX)
    app.dependency_overrides[get_adherence_session] = lambda: session
    return TestClient(app)


@pytest.fixture
def logged_in(client, sample_user_id):
    response = client.post(f"{PREFIX}/session/login", json={"userId": sample_user_id})
    assert response.status_code == 200
    return client


# ─────────────────────────────────────────────────────────────────
# Session
# ─────────────────────────────────────────────────────────────────


class TestSessionEndpoints:
    def test_login(self, client, sample_user_id):
        response = client.post(f"{PREFIX}/session/login", json={"userId": sample_user_id})

        body = response.json()
        assert body["success"] is True
        assert body["data"]["userId"] == sample_user_id

    def test_login_requires_user_id(self, client):
        response = client.post(f"{PREFIX}/session/login", json={"userId": ""})

        assert response.status_code == 422

    def test_records_require_session(self, client):
        response = client.get(f"{PREFIX}/records")

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "NO_ACTIVE_SESSION"

    def test_logout_clears_session(self, logged_in):
        logged_in.post(f"{PREFIX}/session/logout")

        assert logged_in.get(f"{PREFIX}/records").status_code == 401

    def test_resume_reports_rollover(self, logged_in, clock):
        clock.advance(days=1)

        data = logged_in.post(f"{PREFIX}/session/resume").json()["data"]

        assert data == {"rolledOver": True, "currentDate": "2024-03-16"}


# ─────────────────────────────────────────────────────────────────
# Records
# ─────────────────────────────────────────────────────────────────


class TestRecordEndpoints:
    def test_create_and_list(self, logged_in):
        response = logged_in.post(f"{PREFIX}/records", json={"date": "2024-03-14", "doseAmount": 2})
        assert response.status_code == 200
        record_id = response.json()["data"]["id"]

        data = logged_in.get(f"{PREFIX}/records").json()["data"]

        assert [r["id"] for r in data["records"]] == [record_id]
        assert data["syncStatus"] == "synced"
        assert data["loading"] is False

    def test_create_rejects_bad_date(self, logged_in, fake_store):
        response = logged_in.post(f"{PREFIX}/records", json={"date": "14-03-2024", "doseAmount": 2})

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"
        assert fake_store.write_calls == 0

    def test_create_write_failure(self, logged_in, fake_store):
        fake_store.fail_writes = 2

        response = logged_in.post(f"{PREFIX}/records", json={"date": "2024-03-14", "doseAmount": 2})

        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "WRITE_FAILED"

    def test_get_by_date(self, logged_in, fake_store, make_record):
        fake_store.seed(make_record("2024-03-10", record_id="r1"))
        logged_in.post(f"{PREFIX}/records/refresh")

        found = logged_in.get(f"{PREFIX}/records/by-date/2024-03-10").json()["data"]
        missing = logged_in.get(f"{PREFIX}/records/by-date/2024-03-11").json()["data"]

        assert found["record"]["id"] == "r1"
        assert missing["record"] is None

    def test_update_and_delete(self, logged_in, fake_store, make_record):
        fake_store.seed(make_record("2024-03-10", record_id="r1"))

        update = logged_in.patch(f"{PREFIX}/records/r1", json={"doseAmount": 3})
        assert update.status_code == 200
        assert fake_store.docs["r1"].doseAmount == 3

        delete = logged_in.delete(f"{PREFIX}/records/r1")
        assert delete.status_code == 200
        assert fake_store.docs == {}

    def test_update_unknown_record(self, logged_in):
        response = logged_in.patch(f"{PREFIX}/records/missing", json={"doseAmount": 3})

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "RECORD_NOT_FOUND"

    def test_erase_all(self, logged_in, fake_store, make_record):
        fake_store.seed(make_record("2024-03-10"))
        fake_store.seed(make_record("2024-03-11"))

        data = logged_in.delete(f"{PREFIX}/records").json()["data"]

        assert data["deletedCount"] == 2

    def test_export_and_integrity(self, logged_in, fake_store, make_record):
        fake_store.seed(make_record("2024-03-10"))
        logged_in.post(f"{PREFIX}/records/refresh")

        export = logged_in.get(f"{PREFIX}/records/export").json()["data"]
        integrity = logged_in.get(f"{PREFIX}/records/integrity").json()["data"]

        assert export["recordCount"] == 1
        assert integrity["valid"] is True

    def test_refresh_failure(self, logged_in, fake_store):
        fake_store.fail_reads = True

        response = logged_in.post(f"{PREFIX}/records/refresh")

        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "STORE_UNAVAILABLE"


# ─────────────────────────────────────────────────────────────────
# Stats, today, check-in
# ─────────────────────────────────────────────────────────────────


class TestStatsEndpoints:
    def test_percentages_rounded(self, logged_in, fake_store, make_record):
        # 1 of 30 days -> 3.333...
        fake_store.seed(make_record("2024-03-14"))
        logged_in.post(f"{PREFIX}/records/refresh")

        data = logged_in.get(f"{PREFIX}/stats").json()["data"]

        assert data["completionRate"] == 3.3
        assert data["currentStreak"] == 1
        assert data["monthlyProgress"]["consistency"] == 3.2

    def test_month_selection(self, logged_in, fake_store, make_record):
        fake_store.seed(make_record("2024-02-10", dose=5))
        logged_in.post(f"{PREFIX}/records/refresh")

        data = logged_in.get(f"{PREFIX}/stats", params={"month": "2024-02"}).json()["data"]

        assert data["periodStats"]["month"] == "2024-02"
        assert data["periodStats"]["bestDay"] == "2024-02-10"

    def test_month_format_validated(self, logged_in):
        response = logged_in.get(f"{PREFIX}/stats", params={"month": "2024-2"})

        assert response.status_code == 422

    def test_invalid_month_number(self, logged_in):
        response = logged_in.get(f"{PREFIX}/stats", params={"month": "2024-13"})

        assert response.status_code == 422


class TestCheckInEndpoints:
    def test_today_available(self, logged_in):
        data = logged_in.get(f"{PREFIX}/today").json()["data"]

        assert data["state"] == "available"
        assert data["canCheckIn"] is True
        assert data["timeUntilMidnight"] == "14h 30m"

    def test_check_in_then_repeat_rejected(self, logged_in, fake_store):
        first = logged_in.post(f"{PREFIX}/checkin", json={"doseAmount": 2})
        second = logged_in.post(f"{PREFIX}/checkin", json={})

        assert first.status_code == 200
        assert first.json()["data"]["state"] == "completed"
        assert second.status_code == 409
        assert second.json()["detail"]["code"] == "ALREADY_CHECKED_IN"
        assert len(fake_store.docs) == 1

    def test_check_in_without_body_uses_defaults(self, logged_in, fake_store):
        response = logged_in.post(f"{PREFIX}/checkin")

        assert response.status_code == 200
        record = next(iter(fake_store.docs.values()))
        assert record.doseAmount == 2

    def test_check_in_rejects_non_positive_dose(self, logged_in, fake_store):
        response = logged_in.post(f"{PREFIX}/checkin", json={"doseAmount": 0})

        assert response.status_code == 422
        assert fake_store.docs == {}
