"""
Response builder utilities for transforming engine results to API responses.
"""

from custody_scheduler.api.models import (
    ActivityResponse,
    ActivityResult,
    ConflictDetailResult,
    ConflictResult,
    LifecycleResponse,
    StatisticsResponse,
)
from custody_scheduler.domain import Activity, ConflictRecord, ConflictStatistics, ConflictView
from custody_scheduler.services.lifecycle import LifecycleResult
from custody_scheduler.services.scheduling import ScheduleOutcome


def build_activity(activity: Activity) -> ActivityResult:
    return ActivityResult(
        id=activity.id,
        subject_id=activity.subject_id,
        activity_type=activity.activity_type,
        status=activity.status,
        start_time=activity.start_time,
        end_time=activity.end_time,
        title=activity.title,
        facility_id=activity.facility_id,
        program_id=activity.program_id,
        counterpart_id=activity.counterpart_id,
        officer=activity.officer,
        location=activity.location,
        resources=list(activity.resources),
        time_slot_key=activity.time_slot_key,
        created_by=activity.created_by,
        updated_by=activity.updated_by,
    )


def _conflict_fields(record: ConflictRecord) -> dict:
    return dict(
        id=record.id,
        activity_a_id=record.activity_a_id,
        activity_b_id=record.activity_b_id,
        type=record.conflict_type,
        severity=record.severity,
        status=record.status,
        description=record.description,
        detected_at=record.detected_at,
        acknowledged_at=record.acknowledged_at,
        acknowledged_by=record.acknowledged_by,
        resolution_notes=record.resolution_notes,
        resolved_by=record.resolved_by,
        resolved_at=record.resolved_at,
    )


def build_conflict(record: ConflictRecord) -> ConflictResult:
    return ConflictResult(**_conflict_fields(record))


def build_conflict_detail(view: ConflictView) -> ConflictDetailResult:
    """Conflict with both activities; missing activities are reported as stale."""
    return ConflictDetailResult(
        **_conflict_fields(view.record),
        activity_a=build_activity(view.activity_a) if view.activity_a else None,
        activity_b=build_activity(view.activity_b) if view.activity_b else None,
        is_stale=view.is_stale,
    )


def build_activity_response(outcome: ScheduleOutcome) -> ActivityResponse:
    return ActivityResponse(
        activity=build_activity(outcome.activity),
        conflicts=[build_conflict(c) for c in outcome.conflicts],
        has_conflicts=outcome.has_conflicts,
    )


def build_lifecycle_response(result: LifecycleResult, message: str) -> LifecycleResponse:
    return LifecycleResponse(
        conflict=build_conflict(result.conflict),
        cancelled_activities=[build_activity(a) for a in result.cancelled_activities],
        retired_conflict_ids=[c.id for c in result.retired_conflicts],
        released_slots=list(result.released_slots),
        message=message,
    )


def build_statistics(stats: ConflictStatistics) -> StatisticsResponse:
    return StatisticsResponse(
        total_conflicts=stats.total,
        unresolved_conflicts=stats.unresolved,
        critical_conflicts=stats.critical_unresolved,
        conflicts_by_type=dict(stats.by_type),
        conflicts_by_severity=dict(stats.by_severity),
    )
