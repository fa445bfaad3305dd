"""
Unit tests for API response builder.

Tests transformation of engine results to API responses.
"""

import uuid
from datetime import datetime, timezone

from custody_scheduler.api.response_builder import (
    build_activity,
    build_activity_response,
    build_conflict_detail,
    build_lifecycle_response,
    build_statistics,
)
from custody_scheduler.domain import Activity, ConflictRecord, ConflictStatistics, ConflictView
from custody_scheduler.services.lifecycle import LifecycleResult
from custody_scheduler.services.scheduling import ScheduleOutcome


def at(hour: int) -> datetime:
    return datetime(2026, 3, 2, hour, tzinfo=timezone.utc)


def make_activity(**overrides) -> Activity:
    values = dict(
        id=uuid.uuid4(),
        subject_id=42,
        start_time=at(10),
        end_time=at(11),
        activity_type="court_hearing",
        resources=("escort-van-2",),
        created_by=1,
    )
    values.update(overrides)
    return Activity(**values)


def make_record(a: Activity, b: Activity, **overrides) -> ConflictRecord:
    values = dict(
        id=uuid.uuid4(),
        activity_a_id=a.id,
        activity_b_id=b.id,
        conflict_type="subject_double_booking",
        severity="critical",
        detected_at=at(9),
        description="Subject 42 has overlapping activities",
    )
    values.update(overrides)
    return ConflictRecord(**values)


class TestBuildActivity:
    """Test build_activity function."""

    def test_resources_become_list(self):
        result = build_activity(make_activity())

        assert result.resources == ["escort-van-2"]
        assert result.created_by == 1
        assert result.activity_type == "court_hearing"


class TestBuildActivityResponse:
    """Test build_activity_response function."""

    def test_without_conflicts(self):
        response = build_activity_response(ScheduleOutcome(activity=make_activity()))

        assert response.has_conflicts is False
        assert response.conflicts == []

    def test_with_conflicts(self):
        a, b = make_activity(), make_activity()
        record = make_record(a, b)

        response = build_activity_response(ScheduleOutcome(activity=a, conflicts=[record]))

        assert response.has_conflicts is True
        assert response.conflicts[0].id == record.id
        assert response.conflicts[0].type == "subject_double_booking"


class TestBuildConflictDetail:
    """Test build_conflict_detail function."""

    def test_joined_activities(self):
        a, b = make_activity(), make_activity()
        detail = build_conflict_detail(ConflictView(record=make_record(a, b), activity_a=a, activity_b=b))

        assert detail.is_stale is False
        assert detail.activity_a.id == a.id
        assert detail.activity_b.id == b.id

    def test_missing_activity_is_stale(self):
        a, b = make_activity(), make_activity()
        detail = build_conflict_detail(ConflictView(record=make_record(a, b), activity_a=a))

        assert detail.is_stale is True
        assert detail.activity_b is None


class TestBuildLifecycleResponse:
    """Test build_lifecycle_response function."""

    def test_resolution_with_cancellation(self):
        a, b = make_activity(), make_activity(status="cancelled", time_slot_key="visit:hall-a")
        resolved = make_record(a, b, status="resolved", resolved_by=9, resolved_at=at(12))
        retired = make_record(b, make_activity(), conflict_type="resource_conflict", severity="low")
        result = LifecycleResult(
            conflict=resolved,
            cancelled_activities=[b],
            retired_conflicts=[retired],
            released_slots=["visit:hall-a"],
        )

        response = build_lifecycle_response(result, "Conflict resolved")

        assert response.message == "Conflict resolved"
        assert response.conflict.status == "resolved"
        assert [c.id for c in response.cancelled_activities] == [b.id]
        assert response.retired_conflict_ids == [retired.id]
        assert response.released_slots == ["visit:hall-a"]


class TestBuildStatistics:
    """Test build_statistics function."""

    def test_field_mapping(self):
        stats = ConflictStatistics(
            total=5,
            unresolved=3,
            critical_unresolved=1,
            by_type={"subject_double_booking": 2, "officer_conflict": 3},
            by_severity={"critical": 2, "medium": 3},
        )

        response = build_statistics(stats)

        assert response.total_conflicts == 5
        assert response.unresolved_conflicts == 3
        assert response.critical_conflicts == 1
        assert response.conflicts_by_type["officer_conflict"] == 3
