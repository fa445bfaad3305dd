"""
Unit tests for API endpoints.

Tests endpoint behavior using FastAPI TestClient against the in-memory
test database.
"""

import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from custody_scheduler.api.dependencies import get_db_session, get_scheduling_engine
from custody_scheduler.api.main import app
from custody_scheduler.models.schedules import Schedule
from custody_scheduler.services.scheduling import SchedulingEngine

ACTOR = {"X-User-ID": "1"}


@pytest.fixture
def client(db_session):
    """Create test client bound to the test session."""
    app.dependency_overrides[get_db_session] = lambda: db_session
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def activity_payload(**overrides) -> dict:
    payload = {
        "subject_id": 42,
        "start_time": "2026-03-02T10:00:00Z",
        "end_time": "2026-03-02T11:00:00Z",
        "activity_type": "court_hearing",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def conflict_id(client) -> str:
    """Create two overlapping hearings and return their conflict id."""
    client.post("/activities", json=activity_payload(), headers=ACTOR)
    response = client.post(
        "/activities",
        json=activity_payload(start_time="2026-03-02T10:30:00Z", end_time="2026-03-02T11:30:00Z"),
        headers=ACTOR,
    )
    return response.json()["conflicts"][0]["id"]


class TestHealthEndpoint:
    """Test /health endpoint."""

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert data["database_connected"] is True

    def test_health_check_has_request_id(self, client):
        response = client.get("/health")

        assert "X-Request-ID" in response.headers
        assert "X-Response-Time" in response.headers

    def test_incoming_request_id_is_reused(self, client):
        response = client.get("/health", headers={"X-Request-ID": "court-42"})

        assert response.headers["X-Request-ID"] == "court-42"


class TestActivityEndpoints:
    """Test /activities endpoints."""

    def test_create_activity(self, client):
        response = client.post("/activities", json=activity_payload(title="Arraignment"), headers=ACTOR)

        assert response.status_code == 201
        data = response.json()
        assert data["has_conflicts"] is False
        assert data["activity"]["title"] == "Arraignment"
        assert data["activity"]["created_by"] == 1

    def test_create_with_conflict_is_not_an_error(self, client):
        client.post("/activities", json=activity_payload(), headers=ACTOR)

        response = client.post(
            "/activities",
            json=activity_payload(start_time="2026-03-02T10:30:00Z", end_time="2026-03-02T11:30:00Z"),
            headers=ACTOR,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["has_conflicts"] is True
        assert data["conflicts"][0]["type"] == "subject_double_booking"
        assert data["conflicts"][0]["severity"] == "critical"
        assert data["conflicts"][0]["status"] == "detected"

    def test_create_requires_actor(self, client):
        response = client.post("/activities", json=activity_payload())

        assert response.status_code == 401
        assert response.json()["error_type"] == "http_error"

    def test_invalid_interval(self, client):
        response = client.post(
            "/activities",
            json=activity_payload(start_time="2026-03-02T11:00:00Z", end_time="2026-03-02T10:00:00Z"),
            headers=ACTOR,
        )

        assert response.status_code == 400
        assert response.json()["error_type"] == "invalid_interval"

    def test_missing_subject_is_validation_error(self, client):
        payload = activity_payload()
        del payload["subject_id"]

        response = client.post("/activities", json=payload, headers=ACTOR)

        assert response.status_code == 422

    def test_full_slot(self, client, visit_slot):
        for subject_id in (1, 2):
            client.post(
                "/activities",
                json=activity_payload(subject_id=subject_id, time_slot_key=visit_slot.slot_key),
                headers=ACTOR,
            )

        response = client.post(
            "/activities",
            json=activity_payload(subject_id=3, time_slot_key=visit_slot.slot_key),
            headers=ACTOR,
        )

        assert response.status_code == 409
        data = response.json()
        assert data["error_type"] == "capacity_exhausted"
        assert data["retryable"] is True

    def test_get_activity(self, client):
        created = client.post("/activities", json=activity_payload(), headers=ACTOR).json()

        response = client.get(f"/activities/{created['activity']['id']}")

        assert response.status_code == 200
        assert response.json()["subject_id"] == 42

    def test_get_missing_activity(self, client):
        response = client.get(f"/activities/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["error_type"] == "not_found"

    def test_patch_moves_activity_and_retires_conflict(self, client, conflict_id):
        conflict = client.get(f"/conflicts/{conflict_id}").json()
        activity_id = conflict["activity_b_id"]

        response = client.patch(
            f"/activities/{activity_id}",
            json={"start_time": "2026-03-02T13:00:00Z", "end_time": "2026-03-02T14:00:00Z"},
            headers={"X-User-ID": "2"},
        )

        assert response.status_code == 200
        assert response.json()["has_conflicts"] is False
        assert response.json()["activity"]["updated_by"] == 2
        assert client.get(f"/conflicts/{conflict_id}").status_code == 404

    def test_patch_invalid_status(self, client):
        created = client.post("/activities", json=activity_payload(), headers=ACTOR).json()

        response = client.patch(
            f"/activities/{created['activity']['id']}", json={"status": "postponed"}, headers=ACTOR
        )

        assert response.status_code == 422

    @pytest.mark.parametrize("name", ["subject_id", "start_time", "end_time", "activity_type", "status"])
    def test_patch_null_required_field(self, client, name):
        created = client.post("/activities", json=activity_payload(), headers=ACTOR).json()
        activity_id = created["activity"]["id"]

        response = client.patch(f"/activities/{activity_id}", json={name: None}, headers=ACTOR)

        assert response.status_code == 422
        assert name in response.text
        assert client.get(f"/activities/{activity_id}").json() == created["activity"]

    def test_patch_null_additional_data_clears_it(self, client, db_session):
        created = client.post(
            "/activities", json=activity_payload(additional_data={"case_number": "CR-1"}), headers=ACTOR
        ).json()
        activity_id = created["activity"]["id"]

        response = client.patch(f"/activities/{activity_id}", json={"additional_data": None}, headers=ACTOR)

        assert response.status_code == 200
        db_session.expire_all()
        assert db_session.get(Schedule, uuid.UUID(activity_id)).additional_data == {}

    def test_patch_null_optional_field_clears_it(self, client):
        created = client.post("/activities", json=activity_payload(title="Arraignment"), headers=ACTOR).json()

        response = client.patch(f"/activities/{created['activity']['id']}", json={"title": None}, headers=ACTOR)

        assert response.status_code == 200
        assert response.json()["activity"]["title"] is None

    def test_cancel_activity(self, client, conflict_id):
        activity_id = client.get(f"/conflicts/{conflict_id}").json()["activity_a_id"]

        response = client.post(f"/activities/{activity_id}/cancel", headers=ACTOR)

        assert response.status_code == 200
        assert response.json()["activity"]["status"] == "cancelled"
        assert client.get("/conflicts/unresolved").json()["total"] == 0

    def test_delete_activity_leaves_stale_conflict(self, client, conflict_id):
        activity_id = client.get(f"/conflicts/{conflict_id}").json()["activity_a_id"]

        response = client.delete(f"/activities/{activity_id}", headers=ACTOR)

        assert response.status_code == 200
        assert response.json()["success"] is True
        conflict = client.get(f"/conflicts/{conflict_id}").json()
        assert conflict["is_stale"] is True
        assert conflict["activity_a"] is None

    def test_delete_missing_activity(self, client):
        response = client.delete(f"/activities/{uuid.uuid4()}", headers=ACTOR)

        assert response.status_code == 404

    def test_detect_rerun(self, client, conflict_id):
        activity_id = client.get(f"/conflicts/{conflict_id}").json()["activity_a_id"]

        response = client.post(f"/activities/{activity_id}/detect", headers=ACTOR)

        assert response.status_code == 200
        assert [c["id"] for c in response.json()["conflicts"]] == [conflict_id]


class TestActivityListEndpoints:
    """Test /activities, /activities/upcoming and /activities/today."""

    @pytest.fixture
    def fixed_clock(self, client, db_session, settings):
        """Pin "now" to 10:30 on the test day."""
        now = datetime(2026, 3, 2, 10, 30, tzinfo=timezone.utc)
        app.dependency_overrides[get_scheduling_engine] = lambda: SchedulingEngine(
            db_session, settings=settings, clock=lambda: now
        )
        return now

    @pytest.fixture
    def schedule_day(self, client) -> dict[str, str]:
        """A hearing, a visit for another subject, a cancelled call and a next-day hearing."""
        ids = {}
        for name, payload in {
            "hearing": activity_payload(),
            "visit": activity_payload(
                subject_id=7, activity_type="visit",
                start_time="2026-03-02T14:00:00Z", end_time="2026-03-02T15:00:00Z",
            ),
            "call": activity_payload(start_time="2026-03-02T16:00:00Z", end_time="2026-03-02T16:30:00Z"),
            "tomorrow": activity_payload(start_time="2026-03-03T10:00:00Z", end_time="2026-03-03T11:00:00Z"),
        }.items():
            ids[name] = client.post("/activities", json=payload, headers=ACTOR).json()["activity"]["id"]
        client.post(f"/activities/{ids['call']}/cancel", headers=ACTOR)
        return ids

    def test_list_date_range(self, client, schedule_day):
        response = client.get(
            "/activities", params={"start": "2026-03-02T00:00:00Z", "end": "2026-03-03T00:00:00Z"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert [a["id"] for a in data["activities"]] == [schedule_day["hearing"], schedule_day["visit"]]

    def test_list_filters(self, client, schedule_day):
        by_subject = client.get("/activities", params={"subject_id": 7}).json()
        by_type = client.get("/activities", params={"type": "court_hearing"}).json()
        cancelled = client.get("/activities", params={"status": "cancelled"}).json()
        everything = client.get("/activities", params={"include_cancelled": True}).json()

        assert [a["id"] for a in by_subject["activities"]] == [schedule_day["visit"]]
        assert [a["id"] for a in by_type["activities"]] == [schedule_day["hearing"], schedule_day["tomorrow"]]
        assert [a["id"] for a in cancelled["activities"]] == [schedule_day["call"]]
        assert everything["total"] == 4

    def test_list_end_is_exclusive(self, client, schedule_day):
        response = client.get("/activities", params={"start": "2026-03-02T11:00:00Z", "end": "2026-03-02T14:00:00Z"})

        assert response.json()["total"] == 0

    def test_list_inverted_range(self, client):
        response = client.get(
            "/activities", params={"start": "2026-03-03T00:00:00Z", "end": "2026-03-02T00:00:00Z"}
        )

        assert response.status_code == 400
        assert response.json()["error_type"] == "invalid_interval"

    def test_list_bad_date(self, client):
        response = client.get("/activities", params={"start": "someday"})

        assert response.status_code == 400
        assert response.json()["error_type"] == "http_error"

    def test_list_unknown_status(self, client):
        response = client.get("/activities", params={"status": "postponed"})

        assert response.status_code == 400
        assert response.json()["error_type"] == "validation_error"

    def test_upcoming(self, client, fixed_clock, schedule_day):
        response = client.get("/activities/upcoming", params={"limit": 1})

        assert response.status_code == 200
        assert [a["id"] for a in response.json()["activities"]] == [schedule_day["visit"]]
        assert client.get("/activities/upcoming").json()["total"] == 2

    def test_upcoming_limit_bounds(self, client):
        assert client.get("/activities/upcoming", params={"limit": 0}).status_code == 422

    def test_today(self, client, fixed_clock, schedule_day):
        response = client.get("/activities/today")

        assert response.status_code == 200
        assert [a["id"] for a in response.json()["activities"]] == [schedule_day["hearing"], schedule_day["visit"]]
        only_visit = client.get("/activities/today", params={"subject_id": 7}).json()
        assert only_visit["total"] == 1


class TestAvailabilityEndpoints:
    """Test /availability endpoints."""

    def test_facility_available_at_boundary(self, client):
        client.post(
            "/activities",
            json=activity_payload(facility_id=7, start_time="2026-03-02T09:00:00Z", end_time="2026-03-02T10:00:00Z"),
            headers=ACTOR,
        )

        response = client.get(
            "/availability",
            params={
                "dimension": "facility",
                "key": "7",
                "start": "2026-03-02T10:00:00Z",
                "end": "2026-03-02T11:00:00Z",
            },
        )

        assert response.status_code == 200
        assert response.json()["available"] is True

    def test_officer_busy(self, client):
        client.post("/activities", json=activity_payload(officer="Officer Reyes"), headers=ACTOR)

        response = client.get(
            "/availability",
            params={
                "dimension": "officer",
                "key": "Officer Reyes",
                "start": "2026-03-02T10:30:00+00:00",
                "end": "2026-03-02T11:30:00+00:00",
            },
        )

        assert response.json()["available"] is False

    def test_exclude_id(self, client):
        created = client.post("/activities", json=activity_payload(facility_id=7), headers=ACTOR).json()

        response = client.get(
            "/availability",
            params={
                "dimension": "facility",
                "key": "7",
                "start": "2026-03-02T10:15:00Z",
                "end": "2026-03-02T10:45:00Z",
                "exclude_id": created["activity"]["id"],
            },
        )

        assert response.json()["available"] is True

    def test_unknown_dimension(self, client):
        response = client.get(
            "/availability",
            params={"dimension": "vehicle", "key": "1", "start": "2026-03-02T10:00", "end": "2026-03-02T11:00"},
        )

        assert response.status_code == 400
        assert response.json()["error_type"] == "validation_error"

    def test_bad_date(self, client):
        response = client.get(
            "/availability",
            params={"dimension": "subject", "key": "42", "start": "not-a-date", "end": "2026-03-02T11:00"},
        )

        assert response.status_code == 400

    def test_slot_check(self, client):
        client.post("/activities", json=activity_payload(facility_id=7), headers=ACTOR)

        response = client.post(
            "/availability/check",
            json={
                "subject_id": 5,
                "facility_id": 7,
                "start_time": "2026-03-02T10:30:00Z",
                "end_time": "2026-03-02T11:30:00Z",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["available"] is False
        assert data["reasons"] == ["Facility 7 is not available during this time"]


class TestConflictEndpoints:
    """Test /conflicts endpoints."""

    def test_list_conflicts(self, client, conflict_id):
        response = client.get("/conflicts")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["conflicts"][0]["id"] == conflict_id
        assert data["conflicts"][0]["activity_a"]["subject_id"] == 42

    def test_list_filters(self, client, conflict_id):
        assert client.get("/conflicts", params={"severity": "low"}).json()["total"] == 0
        assert client.get("/conflicts", params={"type": "subject_double_booking"}).json()["total"] == 1
        assert client.get("/conflicts", params={"status": "unresolved"}).json()["total"] == 1

    def test_unknown_filter(self, client):
        response = client.get("/conflicts", params={"severity": "urgent"})

        assert response.status_code == 400
        assert response.json()["error_type"] == "validation_error"

    def test_get_missing_conflict(self, client):
        response = client.get(f"/conflicts/{uuid.uuid4()}")

        assert response.status_code == 404

    def test_acknowledge(self, client, conflict_id):
        response = client.post(f"/conflicts/{conflict_id}/acknowledge", headers={"X-User-ID": "3"})

        assert response.status_code == 200
        data = response.json()
        assert data["conflict"]["status"] == "acknowledged"
        assert data["conflict"]["acknowledged_by"] == 3
        assert client.get("/conflicts/unresolved").json()["total"] == 1

    def test_resolve_then_ignore(self, client, conflict_id):
        response = client.post(
            f"/conflicts/{conflict_id}/resolve",
            json={"resolution_notes": "split into two rooms"},
            headers={"X-User-ID": "9"},
        )

        assert response.status_code == 200
        conflict = response.json()["conflict"]
        assert conflict["status"] == "resolved"
        assert conflict["resolved_by"] == 9
        assert conflict["resolved_at"] is not None

        again = client.post(f"/conflicts/{conflict_id}/ignore", headers={"X-User-ID": "9"})
        assert again.status_code == 409
        assert again.json()["error_type"] == "invalid_transition"

    def test_resolve_without_body(self, client, conflict_id):
        response = client.post(f"/conflicts/{conflict_id}/resolve", headers=ACTOR)

        assert response.status_code == 200

    def test_resolve_cancelling_one_side(self, client, conflict_id):
        activity_id = client.get(f"/conflicts/{conflict_id}").json()["activity_b_id"]

        response = client.post(
            f"/conflicts/{conflict_id}/resolve",
            json={"cancel_activity_id": activity_id},
            headers=ACTOR,
        )

        assert response.status_code == 200
        assert [a["id"] for a in response.json()["cancelled_activities"]] == [activity_id]
        assert client.get(f"/activities/{activity_id}").json()["status"] == "cancelled"

    def test_resolve_cancelling_outside_pair(self, client, conflict_id):
        response = client.post(
            f"/conflicts/{conflict_id}/resolve",
            json={"cancel_activity_id": str(uuid.uuid4())},
            headers=ACTOR,
        )

        assert response.status_code == 400

    def test_ignore(self, client, conflict_id):
        response = client.post(
            f"/conflicts/{conflict_id}/ignore", json={"notes": "joint hearing"}, headers=ACTOR
        )

        assert response.status_code == 200
        assert response.json()["conflict"]["status"] == "ignored"
        assert response.json()["conflict"]["resolution_notes"] == "joint hearing"

    def test_lifecycle_requires_actor(self, client, conflict_id):
        response = client.post(f"/conflicts/{conflict_id}/acknowledge")

        assert response.status_code == 401

    def test_statistics(self, client, conflict_id):
        response = client.get("/conflicts/statistics")

        assert response.status_code == 200
        data = response.json()
        assert data["total_conflicts"] == 1
        assert data["unresolved_conflicts"] == 1
        assert data["critical_conflicts"] == 1
        assert data["conflicts_by_type"] == {"subject_double_booking": 1}
        assert data["conflicts_by_severity"] == {"critical": 1}
