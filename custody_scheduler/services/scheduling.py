"""
Scheduling engine.

Composes the stores, availability oracle, conflict detector and lifecycle
manager around one SQLAlchemy session. Every mutating call is one unit of
work: the activity write, capacity booking and conflict detection commit
together or roll back together.
"""

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timedelta
from typing import Callable, Generator, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from custody_scheduler.config import Settings, get_settings
from custody_scheduler.domain import (
    ACTIVITY_STATUSES,
    Activity,
    ConflictRecord,
    ConflictStatistics,
    ConflictView,
    DimensionKey,
)
from custody_scheduler.exceptions import CapacityExhaustedError, NotFoundError
from custody_scheduler.intervals import to_utc, utc_now, validate_interval
from custody_scheduler.services.availability import AvailabilityOracle, AvailabilityReport
from custody_scheduler.services.detector import ConflictDetector
from custody_scheduler.services.lifecycle import ConflictLifecycleManager, LifecycleResult
from custody_scheduler.stores.sqlalchemy_store import (
    SQLAlchemyActivityStore,
    SQLAlchemyCapacityGate,
    SQLAlchemyConflictStore,
    SQLAlchemyFacilityDirectory,
)

logger = logging.getLogger(__name__)

# Fields an update may change; identity and creator are fixed
UPDATABLE_FIELDS = frozenset(
    f.name for f in fields(Activity) if f.name not in {"id", "created_by", "updated_by"}
)

# Fields an update may change but never clear
REQUIRED_FIELDS = frozenset({"subject_id", "start_time", "end_time", "activity_type", "status"})


@dataclass(frozen=True)
class ActivityDraft:
    """Request to create a new activity."""

    subject_id: int
    start_time: datetime
    end_time: datetime
    activity_type: str = "general"
    status: str = "scheduled"
    title: Optional[str] = None
    description: Optional[str] = None
    facility_id: Optional[int] = None
    program_id: Optional[int] = None
    counterpart_id: Optional[int] = None
    officer: Optional[str] = None
    location: Optional[str] = None
    resources: tuple[str, ...] = ()
    time_slot_key: Optional[str] = None
    notes: Optional[str] = None
    additional_data: dict = field(default_factory=dict, compare=False)


@dataclass
class ScheduleOutcome:
    """An activity as written plus the conflicts touching it."""

    activity: Activity
    conflicts: list[ConflictRecord] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


@contextmanager
def transactional(session: Session) -> Generator[Session, None, None]:
    """Commit on success, roll back and re-raise on any error."""
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


class SchedulingEngine:
    """
    Entry point for activity writes, availability checks and conflict triage.

    Args:
        session: Database session all stores share
        settings: Application settings (defaults to get_settings())
        clock: Source of "now"
    """

    def __init__(
        self,
        session: Session,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.clock = clock
        self.activities = SQLAlchemyActivityStore(session)
        self.conflicts = SQLAlchemyConflictStore(session)
        self.capacity_gate = SQLAlchemyCapacityGate(session)
        self.facilities = SQLAlchemyFacilityDirectory(session)
        self.oracle = AvailabilityOracle(self.activities, self.capacity_gate)
        self.detector = ConflictDetector(
            self.activities,
            self.conflicts,
            facilities=self.facilities,
            clock=clock,
            retire_stale=self.settings.retire_stale_conflicts,
        )
        self.lifecycle = ConflictLifecycleManager(
            self.conflicts,
            self.activities,
            capacity_gate=self.capacity_gate,
            clock=clock,
        )

    # =========================================================================
    # Activity writes
    # =========================================================================

    def schedule_activity(self, draft: ActivityDraft, actor_id: int) -> ScheduleOutcome:
        """
        Create an activity and detect its conflicts in one transaction.

        Raises:
            InvalidIntervalError: If start >= end
            CapacityExhaustedError: If the requested time slot is full
            NotFoundError: If the requested time slot does not exist
        """
        interval = validate_interval(draft.start_time, draft.end_time)
        _validate_status(draft.status)
        activity = Activity(
            id=uuid.uuid4(),
            subject_id=draft.subject_id,
            start_time=interval.start,
            end_time=interval.end,
            activity_type=draft.activity_type,
            status=draft.status,
            title=draft.title,
            description=draft.description,
            facility_id=draft.facility_id,
            program_id=draft.program_id,
            counterpart_id=draft.counterpart_id,
            officer=draft.officer,
            location=draft.location,
            resources=tuple(draft.resources),
            time_slot_key=draft.time_slot_key,
            notes=draft.notes,
            additional_data=dict(draft.additional_data),
            created_by=actor_id,
            updated_by=actor_id,
        )

        with transactional(self.session):
            self._lock(activity.dimension_keys())
            if activity.time_slot_key and activity.is_active:
                self._reserve(activity.time_slot_key)
            saved = self.activities.save(activity)
            conflicts = self.detector.detect_conflicts(saved)

        logger.info(
            f"Scheduled {saved.activity_type} {saved.id} for subject {saved.subject_id} "
            f"with {len(conflicts)} conflict(s)",
            extra={"activity_id": str(saved.id), "actor_id": actor_id},
        )
        return ScheduleOutcome(activity=saved, conflicts=conflicts)

    def update_activity(self, activity_id: UUID, changes: dict, actor_id: int) -> ScheduleOutcome:
        """
        Apply field changes to an activity and re-run detection.

        Moving the interval or a binding retires conflicts that no longer
        hold. Changing time_slot_key moves the capacity booking.

        Raises:
            NotFoundError: If the activity does not exist
            InvalidIntervalError: If the new start >= end
            CapacityExhaustedError: If the new time slot is full
            ValueError: If changes name a field that cannot be updated, or
                clear a required one
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        cleared = sorted(name for name in REQUIRED_FIELDS & set(changes) if changes[name] is None)
        if cleared:
            raise ValueError(f"Cannot clear required field(s): {', '.join(cleared)}")

        current = self.get_activity(activity_id)
        updates = dict(changes)
        if "resources" in updates:
            updates["resources"] = tuple(updates["resources"] or ())
        if "additional_data" in updates:
            updates["additional_data"] = dict(updates["additional_data"] or {})
        updated = replace(current, **updates, updated_by=actor_id)
        interval = validate_interval(updated.start_time, updated.end_time)
        _validate_status(updated.status)
        updated = replace(updated, start_time=interval.start, end_time=interval.end)

        with transactional(self.session):
            self._lock(set(current.dimension_keys()) | set(updated.dimension_keys()))
            self._move_booking(current, updated)
            saved = self.activities.save(updated)
            conflicts = self.detector.detect_conflicts(saved)

        logger.info(
            f"Updated activity {activity_id} ({', '.join(sorted(changes))}); "
            f"{len(conflicts)} conflict(s)",
            extra={"activity_id": str(activity_id), "actor_id": actor_id},
        )
        return ScheduleOutcome(activity=saved, conflicts=conflicts)

    def cancel_activity(self, activity_id: UUID, actor_id: int) -> ScheduleOutcome:
        """
        Cancel an activity, release its booking and retire its open conflicts.

        Raises:
            NotFoundError: If the activity does not exist
        """
        return self.update_activity(activity_id, {"status": "cancelled"}, actor_id)

    def delete_activity(self, activity_id: UUID, actor_id: int) -> bool:
        """
        Soft-delete an activity.

        Its conflict records are left in place and surface as stale.

        Returns:
            True if deleted, False if not found
        """
        with transactional(self.session):
            activity = self.activities.get(activity_id)
            if activity is None:
                return False
            if activity.time_slot_key and activity.is_active:
                self.capacity_gate.release(activity.time_slot_key)
            self.activities.save(replace(activity, updated_by=actor_id))
            deleted = self.activities.delete(activity_id)

        logger.info(f"Deleted activity {activity_id}", extra={"actor_id": actor_id})
        return deleted

    def get_activity(self, activity_id: UUID) -> Activity:
        """
        Raises:
            NotFoundError: If the activity does not exist
        """
        activity = self.activities.get(activity_id)
        if activity is None:
            raise NotFoundError("Activity", activity_id)
        return activity

    def detect_conflicts(self, activity_id: UUID) -> list[ConflictRecord]:
        """Re-run detection for a stored activity."""
        with transactional(self.session):
            activity = self.get_activity(activity_id)
            return self.detector.detect_conflicts(activity)

    # =========================================================================
    # Activity queries
    # =========================================================================

    def list_activities(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        subject_id: Optional[int] = None,
        facility_id: Optional[int] = None,
        activity_type: Optional[str] = None,
        status: Optional[str] = None,
        include_cancelled: bool = False,
    ) -> list[Activity]:
        """
        Activities overlapping [start, end), ordered by start time.

        Either bound may be left open. Cancelled activities are left out
        unless include_cancelled is set or status asks for them.

        Raises:
            InvalidIntervalError: If both bounds are given and start >= end
            ValueError: If status is not an activity status
        """
        if start is not None and end is not None:
            interval = validate_interval(start, end)
            start, end = interval.start, interval.end
        if status is not None:
            _validate_status(status)
        return self.activities.list_in_range(
            start=start,
            end=end,
            subject_id=subject_id,
            facility_id=facility_id,
            activity_type=activity_type,
            status=status,
            include_cancelled=include_cancelled,
        )

    def upcoming_activities(self, limit: int = 10, subject_id: Optional[int] = None) -> list[Activity]:
        """The next non-cancelled activities starting after now."""
        if limit < 1:
            raise ValueError("limit must be at least 1")
        return self.activities.list_upcoming(self.clock(), limit=limit, subject_id=subject_id)

    def activities_today(self, subject_id: Optional[int] = None) -> list[Activity]:
        """Non-cancelled activities overlapping the current UTC day."""
        midnight = to_utc(self.clock()).replace(hour=0, minute=0, second=0, microsecond=0)
        return self.list_activities(midnight, midnight + timedelta(days=1), subject_id=subject_id)

    # =========================================================================
    # Availability
    # =========================================================================

    def check_availability(
        self,
        key: DimensionKey,
        start: datetime,
        end: datetime,
        exclude_id: Optional[UUID] = None,
    ) -> bool:
        return self.oracle.is_available(key, start, end, exclude_id)

    def check_activity_slot(
        self,
        subject_id: int,
        start: datetime,
        end: datetime,
        facility_id: Optional[int] = None,
        officer: Optional[str] = None,
        resources: Sequence[str] = (),
        exclude_id: Optional[UUID] = None,
    ) -> AvailabilityReport:
        return self.oracle.check_activity_slot(
            subject_id, start, end, facility_id, officer, resources, exclude_id
        )

    # =========================================================================
    # Conflict lifecycle
    # =========================================================================

    def acknowledge(self, conflict_id: UUID, actor_id: int) -> LifecycleResult:
        with transactional(self.session):
            return self.lifecycle.acknowledge(conflict_id, actor_id)

    def resolve(
        self,
        conflict_id: UUID,
        resolver_id: int,
        notes: Optional[str] = None,
        cancel_activity_id: Optional[UUID] = None,
    ) -> LifecycleResult:
        with transactional(self.session):
            return self.lifecycle.resolve(conflict_id, resolver_id, notes, cancel_activity_id)

    def ignore(self, conflict_id: UUID, actor_id: int, notes: Optional[str] = None) -> LifecycleResult:
        with transactional(self.session):
            return self.lifecycle.ignore(conflict_id, actor_id, notes)

    def get_conflict(self, conflict_id: UUID) -> ConflictView:
        return self.lifecycle.get_conflict(conflict_id)

    def list_conflicts(
        self,
        status: Optional[str] = None,
        severity: Optional[str] = None,
        conflict_type: Optional[str] = None,
    ) -> list[ConflictView]:
        return self.lifecycle.list_conflicts(status, severity, conflict_type)

    def list_unresolved(
        self,
        severity: Optional[str] = None,
        conflict_type: Optional[str] = None,
    ) -> list[ConflictView]:
        return self.lifecycle.list_unresolved(severity, conflict_type)

    def statistics(self) -> ConflictStatistics:
        return self.lifecycle.statistics()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _lock(self, keys) -> None:
        # Stable order so concurrent writers take locks the same way
        for key in sorted(keys, key=str):
            self.activities.lock_dimension(key)

    def _reserve(self, slot_key: str) -> None:
        if not self.capacity_gate.reserve(slot_key):
            raise CapacityExhaustedError(slot_key)

    def _move_booking(self, current: Activity, updated: Activity) -> None:
        held = current.time_slot_key if current.is_active else None
        wanted = updated.time_slot_key if updated.is_active else None
        if held == wanted:
            return
        if held:
            self.capacity_gate.release(held)
        if wanted:
            self._reserve(wanted)


def _validate_status(status: str) -> None:
    if status not in ACTIVITY_STATUSES:
        raise ValueError(f"Unknown activity status: {status}")
