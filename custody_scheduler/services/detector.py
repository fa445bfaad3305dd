"""
Conflict detector.

Runs after an activity is written, inside the same transaction, and brings the
conflict records touching that activity in line with the current schedule:

1. For each dimension on the activity (subject, facility, officer, resources),
   scan other active activities sharing the key and keep the overlapping ones.
2. A counterpart matching on several dimensions gets one record, typed by the
   highest-precedence dimension (subject > facility > officer > resource).
3. Existing records for the (pair, type) are returned untouched; missing ones
   are created as 'detected' with a severity fixed at creation.
4. Open records that no longer hold are retired.

Finding a conflict is a normal outcome, never an exception.
"""

import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from custody_scheduler.domain import (
    Activity,
    ConflictRecord,
    DimensionKey,
    canonical_pair,
)
from custody_scheduler.intervals import utc_now, validate_interval
from custody_scheduler.stores.base import ActivityStore, ConflictStore, FacilityDirectory

logger = logging.getLogger(__name__)


def classify_severity(conflict_type: str, facility_capacity: Optional[int] = None) -> str:
    """
    Severity policy for a newly detected conflict.

    - subject_double_booking: critical (a person cannot be in two places at once)
    - facility_double_booking: high for single-capacity facilities, else medium
    - officer_conflict: medium
    - resource_conflict and anything else: low
    """
    if conflict_type == "subject_double_booking":
        return "critical"
    if conflict_type == "facility_double_booking":
        return "high" if facility_capacity == 1 else "medium"
    if conflict_type == "officer_conflict":
        return "medium"
    return "low"


def describe_conflict(key: DimensionKey, activity: Activity, other: Activity) -> str:
    """Operator-facing description of a conflict between two activities."""
    if key.dimension == "subject":
        subject = f"Subject {key.value} has overlapping activities"
        return f"{subject}: {activity.label()} and {other.label()}"
    if key.dimension == "facility":
        return f"Facility {key.value} is double booked: {activity.label()} and {other.label()}"
    if key.dimension == "officer":
        return f"Officer {key.value} has overlapping assignments: {activity.label()} and {other.label()}"
    return f"Resource '{key.value}' is held by overlapping activities: {activity.label()} and {other.label()}"


class ConflictDetector:
    """
    Detects and records conflicts for a single activity.

    Args:
        activities: Activity store to scan
        conflicts: Conflict store to read and write records
        facilities: Facility directory for capacity-dependent severity
        clock: Source of "now" for detected_at / retirement timestamps
        retire_stale: Retire open records that no longer hold
    """

    def __init__(
        self,
        activities: ActivityStore,
        conflicts: ConflictStore,
        facilities: Optional[FacilityDirectory] = None,
        clock: Callable[[], datetime] = utc_now,
        retire_stale: bool = True,
    ):
        self.activities = activities
        self.conflicts = conflicts
        self.facilities = facilities
        self.clock = clock
        self.retire_stale = retire_stale

    def detect_conflicts(self, activity: Activity) -> list[ConflictRecord]:
        """
        Detect conflicts for a persisted activity.

        Args:
            activity: The activity as just written

        Returns:
            New and pre-existing conflict records touching the activity

        Raises:
            InvalidIntervalError: If the activity's start >= end
        """
        interval = validate_interval(activity.start_time, activity.end_time)
        now = self.clock()

        if not activity.is_active:
            if self.retire_stale:
                self._retire_stale(activity, expected=set(), now=now)
            return []

        # Dimension keys come in precedence order, so the first match per
        # counterpart carries the winning type.
        matches: dict[uuid.UUID, tuple[DimensionKey, Activity]] = {}
        for key in activity.dimension_keys():
            for candidate in self.activities.find_overlapping_candidates(
                key, exclude_id=activity.id, window=interval
            ):
                if candidate.id in matches or not candidate.is_active:
                    continue
                if candidate.interval.overlaps(interval):
                    matches[candidate.id] = (key, candidate)

        expected = {(other_id, key.conflict_type) for other_id, (key, _) in matches.items()}
        if self.retire_stale:
            self._retire_stale(activity, expected=expected, now=now)

        records = []
        for other_id, (key, other) in matches.items():
            existing = self.conflicts.find_by_pair(activity.id, other_id, key.conflict_type)
            if existing is not None:
                records.append(existing)
                continue
            records.append(self._create(activity, other, key, now))

        if records:
            logger.info(
                f"Activity {activity.id} has {len(records)} conflict(s)",
                extra={
                    "activity_id": str(activity.id),
                    "conflict_ids": [str(r.id) for r in records],
                },
            )
        return records

    def _create(self, activity: Activity, other: Activity, key: DimensionKey, now: datetime) -> ConflictRecord:
        capacity = None
        if key.dimension == "facility" and self.facilities is not None:
            capacity = self.facilities.get_capacity(key.value)

        low, high = canonical_pair(activity.id, other.id)
        record = ConflictRecord(
            id=uuid.uuid4(),
            activity_a_id=low,
            activity_b_id=high,
            conflict_type=key.conflict_type,
            severity=classify_severity(key.conflict_type, capacity),
            status="detected",
            description=describe_conflict(key, activity, other),
            detected_at=now,
        )
        stored = self.conflicts.insert_if_absent(record)
        if stored.id == record.id:
            logger.info(
                f"Detected {stored.conflict_type} ({stored.severity}) between {low} and {high}",
                extra={
                    "conflict_id": str(stored.id),
                    "conflict_type": stored.conflict_type,
                    "severity": stored.severity,
                },
            )
        return stored

    def _retire_stale(self, activity: Activity, expected: set, now: datetime) -> None:
        for record in self.conflicts.list_touching(activity.id):
            if not record.is_unresolved:
                continue
            if (record.other(activity.id), record.conflict_type) in expected:
                continue
            self.conflicts.retire(record.id, now)
            logger.info(
                f"Retired stale conflict {record.id} ({record.conflict_type})",
                extra={"conflict_id": str(record.id), "activity_id": str(activity.id)},
            )
