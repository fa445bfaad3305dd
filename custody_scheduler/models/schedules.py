"""
Schedule and ScheduleResource models.

Entities:
- Schedule: A timed activity (court hearing, visit, program session) for a subject
- ScheduleResource: Shared resource labels an activity occupies (escort van, interpreter)
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from custody_scheduler.models.base import Base, BaseModel, JSONData, UTCDateTime


class Schedule(BaseModel):
    """
    A scheduled, time-bounded activity bound to a subject (PDL).

    Conflict dimensions carried by the record:
    - subject_id: always present
    - facility_id: room/area, optional
    - responsible_officer: free-text officer label, optional
    - resources: shared resource labels, optional

    Status workflow:
    scheduled -> confirmed -> completed, with cancelled/rescheduled as side exits.
    Cancelled schedules are ignored by conflict detection.
    """

    __tablename__ = "schedules"

    # Classification
    schedule_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="general",
        doc="Activity type tag: 'court_hearing', 'visit', 'program', 'medical', ..."
    )

    title: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        doc="Short activity title"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Detailed activity description"
    )

    # Bindings (ids owned by the records layer)
    subject_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Subject (PDL) the activity is held for"
    )

    facility_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Facility the activity occupies"
    )

    program_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Program this session belongs to"
    )

    counterpart_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Counterpart person (e.g., visitor) taking part"
    )

    responsible_officer: Mapped[Optional[str]] = mapped_column(
        String(150),
        nullable=True,
        doc="Officer label (free text)"
    )

    location: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        doc="Free-text location for activities held outside a registered facility"
    )

    # Time range
    start_time: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        doc="Activity start time (UTC)"
    )

    end_time: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        doc="Activity end time (UTC, exclusive)"
    )

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="scheduled",
        doc="Status: 'scheduled', 'confirmed', 'completed', 'cancelled', 'rescheduled'"
    )

    time_slot_key: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        doc="Capacity-gated time slot this activity holds a booking in"
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Additional notes"
    )

    additional_data: Mapped[dict] = mapped_column(
        JSONData,
        nullable=False,
        default=dict,
        doc="Type-specific attributes (case number, court branch, visit type, ...)"
    )

    # Audit (user ids supplied by the calling context)
    created_by: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="User who created the activity"
    )

    updated_by: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="User who last updated the activity"
    )

    # Relationships
    resources: Mapped[list["ScheduleResource"]] = relationship(
        "ScheduleResource",
        back_populates="schedule",
        cascade="all, delete-orphan",
        lazy="selectin",
        doc="Shared resources occupied by the activity"
    )

    # Indexes for dimension + time-range scans
    __table_args__ = (
        Index("idx_schedule_subject_time", "subject_id", "start_time", "end_time"),
        Index("idx_schedule_facility_time", "facility_id", "start_time", "end_time"),
        Index("idx_schedule_officer_time", "responsible_officer", "start_time", "end_time"),
        Index("idx_schedule_status", "status"),
        Index("idx_schedule_deleted", "deleted_at"),
    )

    @property
    def resource_keys(self) -> list[str]:
        """Resource labels sorted for stable comparison."""
        return sorted(r.resource_key for r in self.resources)

    def __repr__(self) -> str:
        """String representation showing subject and time range."""
        return f"<Schedule(subject_id={self.subject_id}, start={self.start_time}, status='{self.status}')>"


class ScheduleResource(Base):
    """
    Association between a schedule and a shared resource label.

    Two overlapping schedules holding the same label produce a resource conflict.
    """

    __tablename__ = "schedule_resources"

    schedule_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("schedules.id", ondelete="CASCADE"),
        primary_key=True,
        doc="Schedule holding the resource"
    )

    resource_key: Mapped[str] = mapped_column(
        String(100),
        primary_key=True,
        doc="Resource label (e.g., 'escort-van-2', 'interpreter:ilocano')"
    )

    schedule: Mapped["Schedule"] = relationship(
        "Schedule",
        back_populates="resources",
    )

    __table_args__ = (
        Index("idx_schedule_resource_key", "resource_key"),
    )

    def __repr__(self) -> str:
        return f"<ScheduleResource(schedule_id={self.schedule_id}, key='{self.resource_key}')>"
