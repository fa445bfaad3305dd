"""
Availability oracle.

Answers "is this subject/facility/officer/resource free in [start, end)?"
for pre-emptive checks in booking flows. The answer is advisory: the write
path re-checks everything through conflict detection inside its own
transaction.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from custody_scheduler.domain import Activity, DimensionKey, normalize_label
from custody_scheduler.intervals import Interval, validate_interval
from custody_scheduler.stores.base import ActivityStore, CapacityGate

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityReport:
    """Combined availability answer for a prospective activity."""

    available: bool
    reasons: list[str] = field(default_factory=list)
    blocking_activity_ids: list[UUID] = field(default_factory=list)


class AvailabilityOracle:
    """
    Read-only availability checks over the activity store.

    When a capacity gate is configured, facility checks also consult the
    fixed-capacity slot covering the requested interval.
    """

    def __init__(self, activities: ActivityStore, capacity_gate: Optional[CapacityGate] = None):
        self.activities = activities
        self.capacity_gate = capacity_gate

    def is_available(
        self,
        key: DimensionKey,
        start: datetime,
        end: datetime,
        exclude_activity_id: Optional[UUID] = None,
    ) -> bool:
        """
        Check whether a dimension is free for a time range.

        Args:
            key: Subject, facility, officer or resource key
            start: Requested start time
            end: Requested end time
            exclude_activity_id: Activity to ignore (for "would this edit still fit" checks)

        Returns:
            True if nothing overlaps and no capacity slot vetoes the range

        Raises:
            InvalidIntervalError: If start >= end
        """
        interval = validate_interval(start, end)

        for candidate in self.activities.find_overlapping_candidates(
            key, exclude_id=exclude_activity_id, window=interval
        ):
            if candidate.is_active and candidate.interval.overlaps(interval):
                return False

        return not self._capacity_vetoes(key, interval, exclude_activity_id)

    def find_blocking(
        self,
        key: DimensionKey,
        start: datetime,
        end: datetime,
        exclude_activity_id: Optional[UUID] = None,
    ) -> list[Activity]:
        """
        List every active activity on the dimension that overlaps the range.

        Raises:
            InvalidIntervalError: If start >= end
        """
        interval = validate_interval(start, end)
        return [
            candidate
            for candidate in self.activities.find_overlapping_candidates(
                key, exclude_id=exclude_activity_id, window=interval
            )
            if candidate.is_active and candidate.interval.overlaps(interval)
        ]

    def check_activity_slot(
        self,
        subject_id: int,
        start: datetime,
        end: datetime,
        facility_id: Optional[int] = None,
        officer: Optional[str] = None,
        resources: Sequence[str] = (),
        exclude_activity_id: Optional[UUID] = None,
    ) -> AvailabilityReport:
        """
        Check every dimension a prospective activity would occupy.

        Args:
            subject_id: Subject the activity is for
            start: Requested start time
            end: Requested end time
            facility_id: Facility to book, if any
            officer: Officer label, if any
            resources: Shared resource labels
            exclude_activity_id: Activity being edited

        Returns:
            AvailabilityReport with one reason per blocked dimension
        """
        interval = validate_interval(start, end)

        checks: list[tuple[DimensionKey, str]] = [
            (DimensionKey.subject(subject_id), f"Subject {subject_id} is not available during this time"),
        ]
        if facility_id is not None:
            checks.append(
                (DimensionKey.facility(facility_id), f"Facility {facility_id} is not available during this time")
            )
        officer_label = normalize_label(officer)
        if officer_label is not None:
            checks.append(
                (DimensionKey.officer(officer_label), f"Officer {officer_label} is not available during this time")
            )
        for label in sorted({normalize_label(r) for r in resources} - {None}):
            checks.append(
                (DimensionKey.resource(label), f"Resource '{label}' is not available during this time")
            )

        report = AvailabilityReport(available=True)
        for key, reason in checks:
            blocking = self.find_blocking(key, interval.start, interval.end, exclude_activity_id)
            vetoed = self._capacity_vetoes(key, interval, exclude_activity_id)
            if blocking or vetoed:
                report.available = False
                report.reasons.append(reason if blocking else f"{reason}: time slot is full")
                for activity in blocking:
                    if activity.id not in report.blocking_activity_ids:
                        report.blocking_activity_ids.append(activity.id)

        logger.debug(
            f"Availability for subject {subject_id} {interval.start}-{interval.end}: {report.available}",
            extra={"subject_id": subject_id, "reasons": report.reasons},
        )
        return report

    def _capacity_vetoes(
        self,
        key: DimensionKey,
        interval: Interval,
        exclude_activity_id: Optional[UUID],
    ) -> bool:
        """True when the facility slot covering the interval has no room left."""
        if self.capacity_gate is None or key.dimension != "facility":
            return False

        slot_key = self.capacity_gate.slot_key_for(key.value, interval.start, interval.end)
        if slot_key is None:
            return False

        remaining = self.capacity_gate.remaining_capacity(slot_key)
        if exclude_activity_id is not None:
            excluded = self.activities.get(exclude_activity_id)
            # The edited activity's own booking would be handed back
            if excluded is not None and excluded.is_active and excluded.time_slot_key == slot_key:
                remaining += 1
        return remaining <= 0
