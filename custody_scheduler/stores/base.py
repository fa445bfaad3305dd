"""
Store protocols for the conflict engine.

Defines the interfaces the detector, availability oracle and lifecycle manager
depend on. The SQLAlchemy implementations live in stores.sqlalchemy_store.
"""

from abc import abstractmethod
from datetime import datetime
from typing import Optional, Protocol, Sequence
from uuid import UUID

from custody_scheduler.domain import (
    Activity,
    ConflictRecord,
    ConflictStatistics,
    DimensionKey,
)
from custody_scheduler.intervals import Interval


class ActivityStore(Protocol):
    """
    Protocol for activity persistence.

    Implementations:
    - SQLAlchemyActivityStore: Uses the schedules table
    """

    @abstractmethod
    def get(self, activity_id: UUID, include_deleted: bool = False) -> Optional[Activity]:
        """
        Get a single activity by ID.

        Args:
            activity_id: Activity ID
            include_deleted: Return soft-deleted activities too

        Returns:
            Activity or None if not found
        """
        ...

    @abstractmethod
    def get_many(self, activity_ids: Sequence[UUID]) -> dict[UUID, Activity]:
        """
        Get several live activities at once.

        Missing or deleted ids are simply absent from the result.
        """
        ...

    @abstractmethod
    def save(self, activity: Activity) -> Activity:
        """
        Insert or update an activity.

        Returns:
            The activity as persisted
        """
        ...

    @abstractmethod
    def delete(self, activity_id: UUID) -> bool:
        """
        Soft-delete an activity.

        Returns:
            True if deleted, False if not found
        """
        ...

    @abstractmethod
    def find_overlapping_candidates(
        self,
        key: DimensionKey,
        exclude_id: Optional[UUID] = None,
        window: Optional[Interval] = None,
    ) -> list[Activity]:
        """
        Find non-cancelled activities sharing a dimension key.

        Args:
            key: Dimension key to match
            exclude_id: Activity to leave out (the one being checked)
            window: Optional interval used to narrow the scan

        Returns:
            Candidate activities ordered by start time
        """
        ...

    @abstractmethod
    def list_in_range(
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
        List live activities overlapping [start, end).

        Args:
            start: Window start; None leaves it open
            end: Window end; None leaves it open
            subject_id: Optional subject filter
            facility_id: Optional facility filter
            activity_type: Optional type filter
            status: Optional exact status; when given it overrides include_cancelled
            include_cancelled: Return cancelled activities too

        Returns:
            Activities ordered by start time
        """
        ...

    @abstractmethod
    def list_upcoming(
        self,
        after: datetime,
        limit: int = 10,
        subject_id: Optional[int] = None,
    ) -> list[Activity]:
        """The next `limit` non-cancelled activities starting after `after`."""
        ...

    @abstractmethod
    def lock_dimension(self, key: DimensionKey) -> None:
        """
        Serialize writers on a dimension for the rest of the transaction.

        Backends without row locks may rely on database-level write serialization.
        """
        ...


class ConflictStore(Protocol):
    """
    Protocol for conflict record persistence.

    Implementations:
    - SQLAlchemyConflictStore: Uses the schedule_conflicts table
    """

    @abstractmethod
    def get(self, conflict_id: UUID) -> Optional[ConflictRecord]:
        """Get a live conflict by ID, or None."""
        ...

    @abstractmethod
    def find_by_pair(self, id_a: UUID, id_b: UUID, conflict_type: str) -> Optional[ConflictRecord]:
        """
        Find the live record for an unordered pair and type.

        Argument order does not matter.
        """
        ...

    @abstractmethod
    def insert_if_absent(self, record: ConflictRecord) -> ConflictRecord:
        """
        Insert a record unless one already exists for its pair and type.

        Returns:
            The live record for the pair and type (the given one or the existing one)
        """
        ...

    @abstractmethod
    def save(self, record: ConflictRecord) -> ConflictRecord:
        """
        Persist status and resolution fields of an existing record.

        Returns:
            The record as persisted
        """
        ...

    @abstractmethod
    def list_touching(self, activity_id: UUID) -> list[ConflictRecord]:
        """List live records where activity_id is either side of the pair."""
        ...

    @abstractmethod
    def list_by_status_group(
        self,
        group: Optional[str] = None,
        severity: Optional[str] = None,
        conflict_type: Optional[str] = None,
    ) -> list[ConflictRecord]:
        """
        List live records for triage.

        Args:
            group: 'unresolved', 'resolved', a single status, or None for all
            severity: Optional severity filter
            conflict_type: Optional conflict type filter

        Returns:
            Records sorted by severity (highest first) then most recently detected
        """
        ...

    @abstractmethod
    def retire(self, conflict_id: UUID, when: datetime) -> None:
        """Remove a record from the live set (soft delete)."""
        ...

    @abstractmethod
    def statistics(self) -> ConflictStatistics:
        """Aggregate counts over live records."""
        ...


class CapacityGate(Protocol):
    """
    Fixed-capacity slot counter consulted as an extra availability veto.

    Implementations:
    - SQLAlchemyCapacityGate: Uses the time_slots table
    """

    @abstractmethod
    def remaining_capacity(self, slot_key: str) -> int:
        """
        Bookings still available in a slot (0 when closed).

        Raises:
            NotFoundError: If the slot does not exist
        """
        ...

    @abstractmethod
    def reserve(self, slot_key: str) -> bool:
        """
        Atomically take one booking.

        Returns:
            True if reserved, False if the slot is full or closed

        Raises:
            NotFoundError: If the slot does not exist
        """
        ...

    @abstractmethod
    def release(self, slot_key: str) -> None:
        """
        Give one booking back (never below zero).

        Raises:
            NotFoundError: If the slot does not exist
        """
        ...

    @abstractmethod
    def slot_key_for(self, facility_id: int, start: datetime, end: datetime) -> Optional[str]:
        """Find the slot of a facility that fully contains [start, end), if any."""
        ...


class FacilityDirectory(Protocol):
    """Read-only view of facility configuration owned by the records layer."""

    @abstractmethod
    def get_capacity(self, facility_id: int) -> Optional[int]:
        """Declared capacity of a facility, or None if unknown."""
        ...
