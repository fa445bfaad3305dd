"""
TimeSlot model.

Entities:
- TimeSlot: Fixed-capacity booking window (e.g., visiting hours) backing the capacity gate
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from custody_scheduler.models.base import BaseModel, UTCDateTime


class TimeSlot(BaseModel):
    """
    A bounded-capacity booking window.

    Each booking increments current_bookings; the slot is full when
    current_bookings reaches max_capacity. Holiday and maintenance flags are
    maintained by the slot-configuration layer.
    """

    __tablename__ = "time_slots"

    slot_key: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        doc="Stable slot identifier (e.g., 'visit:hall-a:2026-03-02T09:00')"
    )

    facility_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Facility the slot belongs to"
    )

    label: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
        doc="Display label (e.g., 'Morning visiting hours')"
    )

    start_time: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        doc="Slot start (UTC)"
    )

    end_time: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        doc="Slot end (UTC, exclusive)"
    )

    max_capacity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Maximum concurrent bookings"
    )

    current_bookings: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Bookings currently held"
    )

    is_available: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Whether the slot accepts bookings"
    )

    is_maintenance: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Whether the slot is closed for maintenance"
    )

    special_notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Operator notes"
    )

    __table_args__ = (
        CheckConstraint("current_bookings >= 0", name="ck_time_slot_bookings_floor"),
        Index("idx_time_slot_facility_time", "facility_id", "start_time", "end_time"),
    )

    @property
    def available_slots(self) -> int:
        """Remaining bookings, zero when closed."""
        if not self.is_available or self.is_maintenance:
            return 0
        return max(0, self.max_capacity - self.current_bookings)

    @property
    def is_full(self) -> bool:
        return self.current_bookings >= self.max_capacity

    def __repr__(self) -> str:
        return f"<TimeSlot(key='{self.slot_key}', bookings={self.current_bookings}/{self.max_capacity})>"
