"""
Value objects for the conflict engine.

Stores map ORM rows to these frozen dataclasses so the detector and the
lifecycle manager never touch persistence objects directly.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional, Union
from uuid import UUID

from custody_scheduler.intervals import Interval


ActivityStatus = Literal["scheduled", "confirmed", "completed", "cancelled", "rescheduled"]
ACTIVITY_STATUSES: tuple[str, ...] = ("scheduled", "confirmed", "completed", "cancelled", "rescheduled")
INACTIVE_STATUSES = frozenset({"cancelled"})

ConflictType = Literal[
    "subject_double_booking",
    "facility_double_booking",
    "officer_conflict",
    "resource_conflict",
]
# Highest priority first
CONFLICT_TYPE_PRECEDENCE: tuple[str, ...] = (
    "subject_double_booking",
    "facility_double_booking",
    "officer_conflict",
    "resource_conflict",
)

Severity = Literal["low", "medium", "high", "critical"]
SEVERITY_RANK = {"low": 1, "medium": 2, "high": 3, "critical": 4}

ConflictStatus = Literal["detected", "acknowledged", "resolved", "ignored"]
CONFLICT_STATUSES: tuple[str, ...] = ("detected", "acknowledged", "resolved", "ignored")
UNRESOLVED_STATUSES = frozenset({"detected", "acknowledged"})
TERMINAL_STATUSES = frozenset({"resolved", "ignored"})

Dimension = Literal["subject", "facility", "officer", "resource"]
DIMENSION_CONFLICT_TYPES = {
    "subject": "subject_double_booking",
    "facility": "facility_double_booking",
    "officer": "officer_conflict",
    "resource": "resource_conflict",
}


def normalize_label(label: Optional[str]) -> Optional[str]:
    """Strip a free-text label; blank labels count as absent."""
    if label is None:
        return None
    label = label.strip()
    return label or None


def statuses_for_group(group: Optional[str]) -> Optional[frozenset[str]]:
    """
    Expand a status filter into concrete statuses.

    Args:
        group: 'unresolved', 'resolved', a single status, or None for all

    Returns:
        Set of statuses to match, or None for no filtering

    Raises:
        ValueError: If group is not recognized
    """
    if group is None:
        return None
    if group == "unresolved":
        return UNRESOLVED_STATUSES
    if group in CONFLICT_STATUSES:
        return frozenset({group})
    raise ValueError(f"Unknown status filter: {group}")


def canonical_pair(first: UUID, second: UUID) -> tuple[UUID, UUID]:
    """Order an unordered activity pair the way it is persisted."""
    if first.hex <= second.hex:
        return first, second
    return second, first


@dataclass(frozen=True)
class DimensionKey:
    """
    A shared-resource axis value two activities can clash on.

    Subject and facility keys carry integer ids; officer and resource keys
    carry normalized labels.
    """

    dimension: Dimension
    value: Union[int, str]

    @classmethod
    def subject(cls, subject_id: int) -> "DimensionKey":
        return cls("subject", int(subject_id))

    @classmethod
    def facility(cls, facility_id: int) -> "DimensionKey":
        return cls("facility", int(facility_id))

    @classmethod
    def officer(cls, label: str) -> "DimensionKey":
        normalized = normalize_label(label)
        if normalized is None:
            raise ValueError("Officer label cannot be empty")
        return cls("officer", normalized)

    @classmethod
    def resource(cls, label: str) -> "DimensionKey":
        normalized = normalize_label(label)
        if normalized is None:
            raise ValueError("Resource label cannot be empty")
        return cls("resource", normalized)

    @classmethod
    def parse(cls, dimension: str, raw: str) -> "DimensionKey":
        """
        Build a key from untyped input (query strings).

        Raises:
            ValueError: If the dimension is unknown or the value malformed
        """
        builders = {
            "subject": cls.subject,
            "facility": cls.facility,
            "officer": cls.officer,
            "resource": cls.resource,
        }
        if dimension not in builders:
            raise ValueError(f"Unknown dimension: {dimension}")
        return builders[dimension](raw)

    @property
    def conflict_type(self) -> str:
        return DIMENSION_CONFLICT_TYPES[self.dimension]

    def __str__(self) -> str:
        return f"{self.dimension}:{self.value}"


@dataclass(frozen=True)
class Activity:
    """
    Immutable snapshot of a scheduled activity.

    This is the common format used by the service layer, mapped from
    Schedule rows by the store.
    """

    id: UUID
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
    created_by: Optional[int] = None
    updated_by: Optional[int] = None

    @property
    def interval(self) -> Interval:
        return Interval(self.start_time, self.end_time)

    @property
    def is_active(self) -> bool:
        """Whether the activity takes part in conflict detection."""
        return self.status not in INACTIVE_STATUSES

    def dimension_keys(self) -> list[DimensionKey]:
        """Dimensions present on this activity, in conflict-type precedence order."""
        keys = [DimensionKey.subject(self.subject_id)]
        if self.facility_id is not None:
            keys.append(DimensionKey.facility(self.facility_id))
        officer = normalize_label(self.officer)
        if officer is not None:
            keys.append(DimensionKey("officer", officer))
        for label in sorted({normalize_label(r) for r in self.resources} - {None}):
            keys.append(DimensionKey("resource", label))
        return keys

    def label(self) -> str:
        """Short description used in conflict descriptions and logs."""
        name = self.title or self.activity_type.replace("_", " ")
        return f"{name} ({self.start_time:%Y-%m-%d %H:%M}-{self.end_time:%H:%M})"


@dataclass(frozen=True)
class ConflictRecord:
    """Immutable snapshot of a persisted conflict between two activities."""

    id: UUID
    activity_a_id: UUID
    activity_b_id: UUID
    conflict_type: str
    severity: str
    detected_at: datetime
    status: str = "detected"
    description: str = ""
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[int] = None
    resolution_notes: Optional[str] = None
    resolved_by: Optional[int] = None
    resolved_at: Optional[datetime] = None

    @property
    def pair(self) -> frozenset[UUID]:
        return frozenset({self.activity_a_id, self.activity_b_id})

    @property
    def is_unresolved(self) -> bool:
        return self.status in UNRESOLVED_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def involves(self, activity_id: UUID) -> bool:
        return activity_id in (self.activity_a_id, self.activity_b_id)

    def other(self, activity_id: UUID) -> UUID:
        """The counterpart of activity_id in this pair."""
        if activity_id == self.activity_a_id:
            return self.activity_b_id
        if activity_id == self.activity_b_id:
            return self.activity_a_id
        raise ValueError(f"Activity {activity_id} is not part of conflict {self.id}")


@dataclass(frozen=True)
class ConflictView:
    """
    A conflict joined with both of its activities for operator triage.

    Either activity may be None when it was deleted after detection; such
    conflicts are stale but still listed.
    """

    record: ConflictRecord
    activity_a: Optional[Activity] = None
    activity_b: Optional[Activity] = None

    @property
    def is_stale(self) -> bool:
        return self.activity_a is None or self.activity_b is None


@dataclass(frozen=True)
class ConflictStatistics:
    """Aggregate counts for operator dashboards."""

    total: int
    unresolved: int
    critical_unresolved: int
    by_type: dict[str, int] = field(default_factory=dict)
    by_severity: dict[str, int] = field(default_factory=dict)
