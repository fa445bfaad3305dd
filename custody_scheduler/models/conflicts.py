"""
ScheduleConflict model.

Entities:
- ScheduleConflict: A detected overlap between two schedules and its triage state
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from custody_scheduler.models.base import BaseModel, GUID, UTCDateTime


class ScheduleConflict(BaseModel):
    """
    Tracks detected scheduling conflicts between two schedules.

    The pair is unordered; it is persisted in canonical order
    (schedule_a_id < schedule_b_id by hex value) so (A, B) and (B, A)
    map to the same row.

    Conflict types:
    - subject_double_booking: Same subject booked twice
    - facility_double_booking: Same facility booked twice
    - officer_conflict: Same officer assigned twice
    - resource_conflict: Same shared resource held twice

    Lifecycle:
    1. detected: Conflict identified by the detector
    2. acknowledged: Operator has seen it
    3. resolved: Operator resolved it (terminal)
    4. ignored: Operator judged it non-actionable (terminal)

    Schedule ids carry no foreign key: a deleted schedule leaves its conflicts
    behind, and readers report them as stale.
    """

    __tablename__ = "schedule_conflicts"

    schedule_a_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        nullable=False,
        doc="Lower schedule id of the pair"
    )

    schedule_b_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        nullable=False,
        doc="Higher schedule id of the pair"
    )

    # Conflict classification
    conflict_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Conflict type: 'subject_double_booking', 'facility_double_booking', "
            "'officer_conflict', 'resource_conflict'"
    )

    severity: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Severity: 'low', 'medium', 'high', 'critical'"
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        doc="Human-readable conflict description"
    )

    # Status tracking
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="detected",
        doc="Status: 'detected', 'acknowledged', 'resolved', 'ignored'"
    )

    detected_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        doc="Timestamp when conflict was detected (UTC)"
    )

    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        doc="Timestamp when an operator acknowledged the conflict (UTC)"
    )

    acknowledged_by: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="User who acknowledged the conflict"
    )

    # Resolution data
    resolution_notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Operator notes recorded when resolving or ignoring"
    )

    resolved_by: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="User who resolved or ignored the conflict"
    )

    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        doc="Timestamp when conflict reached a terminal state (UTC)"
    )

    __table_args__ = (
        Index("idx_conflict_schedule_a", "schedule_a_id"),
        Index("idx_conflict_schedule_b", "schedule_b_id"),
        Index("idx_conflict_type", "conflict_type"),
        Index("idx_conflict_severity", "severity"),
        Index("idx_conflict_status", "status"),
        Index("idx_conflict_deleted", "deleted_at"),
        # Composite index for triage queue queries
        Index("idx_conflict_status_detected", "status", "detected_at"),
        # One live record per unordered pair and type
        Index(
            "uq_conflict_pair_type",
            "schedule_a_id",
            "schedule_b_id",
            "conflict_type",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )

    def __repr__(self) -> str:
        """String representation showing type and status."""
        return f"<ScheduleConflict(type='{self.conflict_type}', severity='{self.severity}', status='{self.status}')>"
