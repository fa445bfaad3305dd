"""
Conflict lifecycle management.

States: detected -> acknowledged -> resolved | ignored.
Resolved and ignored are terminal. Acknowledging is optional before resolving.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from custody_scheduler.domain import (
    CONFLICT_TYPE_PRECEDENCE,
    SEVERITY_RANK,
    Activity,
    ConflictRecord,
    ConflictStatistics,
    ConflictView,
)
from custody_scheduler.exceptions import InvalidTransitionError, NotFoundError
from custody_scheduler.intervals import utc_now
from custody_scheduler.stores.base import ActivityStore, CapacityGate, ConflictStore

logger = logging.getLogger(__name__)


@dataclass
class LifecycleResult:
    """Every entity a lifecycle transition changed."""

    conflict: ConflictRecord
    cancelled_activities: list[Activity] = field(default_factory=list)
    retired_conflicts: list[ConflictRecord] = field(default_factory=list)
    released_slots: list[str] = field(default_factory=list)


def _validate_filters(severity: Optional[str], conflict_type: Optional[str]) -> None:
    if severity is not None and severity not in SEVERITY_RANK:
        raise ValueError(f"Unknown severity: {severity}")
    if conflict_type is not None and conflict_type not in CONFLICT_TYPE_PRECEDENCE:
        raise ValueError(f"Unknown conflict type: {conflict_type}")


class ConflictLifecycleManager:
    """
    Moves conflicts through their lifecycle and serves triage queues.

    Actor ids come from the calling context; this class does not authenticate.
    """

    def __init__(
        self,
        conflicts: ConflictStore,
        activities: ActivityStore,
        capacity_gate: Optional[CapacityGate] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.conflicts = conflicts
        self.activities = activities
        self.capacity_gate = capacity_gate
        self.clock = clock

    def _require(self, conflict_id: UUID) -> ConflictRecord:
        record = self.conflicts.get(conflict_id)
        if record is None:
            raise NotFoundError("Conflict", conflict_id)
        return record

    def acknowledge(self, conflict_id: UUID, actor_id: int) -> LifecycleResult:
        """
        Mark a detected conflict as seen.

        Acknowledging an already acknowledged conflict changes nothing.

        Raises:
            NotFoundError: If the conflict does not exist
            InvalidTransitionError: If the conflict is resolved or ignored
        """
        record = self._require(conflict_id)
        if record.is_terminal:
            raise InvalidTransitionError(conflict_id, record.status, "acknowledge")
        if record.status == "acknowledged":
            return LifecycleResult(conflict=record)

        updated = self.conflicts.save(
            replace(
                record,
                status="acknowledged",
                acknowledged_at=self.clock(),
                acknowledged_by=actor_id,
            )
        )
        logger.info(f"Conflict {conflict_id} acknowledged by user {actor_id}")
        return LifecycleResult(conflict=updated)

    def resolve(
        self,
        conflict_id: UUID,
        resolver_id: int,
        notes: Optional[str] = None,
        cancel_activity_id: Optional[UUID] = None,
    ) -> LifecycleResult:
        """
        Resolve a conflict, optionally cancelling one of its activities.

        Args:
            conflict_id: Conflict to resolve
            resolver_id: User resolving it
            notes: Resolution notes
            cancel_activity_id: One side of the pair to cancel in the same transaction

        Returns:
            LifecycleResult listing the resolved conflict and any cancelled
            activity, released slot and retired conflicts

        Raises:
            NotFoundError: If the conflict (or the activity to cancel) does not exist
            InvalidTransitionError: If the conflict is resolved or ignored
            ValueError: If cancel_activity_id is not part of the pair
        """
        record = self._require(conflict_id)
        if record.is_terminal:
            raise InvalidTransitionError(conflict_id, record.status, "resolve")
        if cancel_activity_id is not None and not record.involves(cancel_activity_id):
            raise ValueError(f"Activity {cancel_activity_id} is not part of conflict {conflict_id}")

        now = self.clock()
        updated = self.conflicts.save(
            replace(
                record,
                status="resolved",
                resolved_by=resolver_id,
                resolved_at=now,
                resolution_notes=notes,
            )
        )
        result = LifecycleResult(conflict=updated)

        if cancel_activity_id is not None:
            self._cancel_activity(cancel_activity_id, resolver_id, now, result)

        logger.info(
            f"Conflict {conflict_id} resolved by user {resolver_id}",
            extra={
                "conflict_id": str(conflict_id),
                "cancelled": [str(a.id) for a in result.cancelled_activities],
                "retired": [str(c.id) for c in result.retired_conflicts],
            },
        )
        return result

    def ignore(self, conflict_id: UUID, actor_id: int, notes: Optional[str] = None) -> LifecycleResult:
        """
        Close a conflict as non-actionable.

        Raises:
            NotFoundError: If the conflict does not exist
            InvalidTransitionError: If the conflict is resolved or ignored
        """
        record = self._require(conflict_id)
        if record.is_terminal:
            raise InvalidTransitionError(conflict_id, record.status, "ignore")

        updated = self.conflicts.save(
            replace(
                record,
                status="ignored",
                resolved_by=actor_id,
                resolved_at=self.clock(),
                resolution_notes=notes,
            )
        )
        logger.info(f"Conflict {conflict_id} ignored by user {actor_id}")
        return LifecycleResult(conflict=updated)

    def get_conflict(self, conflict_id: UUID) -> ConflictView:
        """
        Get one conflict joined with its activities.

        Raises:
            NotFoundError: If the conflict does not exist
        """
        return self._views([self._require(conflict_id)])[0]

    def list_conflicts(
        self,
        status: Optional[str] = None,
        severity: Optional[str] = None,
        conflict_type: Optional[str] = None,
    ) -> list[ConflictView]:
        """
        List conflicts for triage, highest severity first, newest first within a severity.

        Args:
            status: 'unresolved', 'resolved', a single status, or None for all
            severity: Optional severity filter
            conflict_type: Optional conflict type filter

        Raises:
            ValueError: If a filter value is unknown
        """
        _validate_filters(severity, conflict_type)
        records = self.conflicts.list_by_status_group(status, severity, conflict_type)
        return self._views(records)

    def list_unresolved(
        self,
        severity: Optional[str] = None,
        conflict_type: Optional[str] = None,
    ) -> list[ConflictView]:
        """Detected and acknowledged conflicts, for the operator queue."""
        return self.list_conflicts("unresolved", severity, conflict_type)

    def statistics(self) -> ConflictStatistics:
        return self.conflicts.statistics()

    def _views(self, records: list[ConflictRecord]) -> list[ConflictView]:
        ids = [r.activity_a_id for r in records] + [r.activity_b_id for r in records]
        activities = self.activities.get_many(ids)
        return [
            ConflictView(
                record=record,
                activity_a=activities.get(record.activity_a_id),
                activity_b=activities.get(record.activity_b_id),
            )
            for record in records
        ]

    def _cancel_activity(
        self,
        activity_id: UUID,
        actor_id: int,
        now: datetime,
        result: LifecycleResult,
    ) -> None:
        activity = self.activities.get(activity_id)
        if activity is None:
            raise NotFoundError("Activity", activity_id)
        if not activity.is_active:
            return

        cancelled = self.activities.save(replace(activity, status="cancelled", updated_by=actor_id))
        result.cancelled_activities.append(cancelled)

        if activity.time_slot_key and self.capacity_gate is not None:
            self.capacity_gate.release(activity.time_slot_key)
            result.released_slots.append(activity.time_slot_key)

        # A cancelled activity no longer takes part in any conflict
        for other in self.conflicts.list_touching(activity_id):
            if other.id != result.conflict.id and other.is_unresolved:
                self.conflicts.retire(other.id, now)
                result.retired_conflicts.append(other)
