"""
Facility model.

Entities:
- Facility: Rooms and areas activities can be held in (court room, visiting hall)

Facilities are maintained by the records layer; the conflict engine only reads
their declared capacity.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from custody_scheduler.models.base import Base, UTCDateTime


class Facility(Base):
    """
    A room or area inside the custodial facility.

    Key features:
    - Integer ids shared with the records layer
    - Capacity model: 1 = exclusive room, >1 = hall hosting concurrent activities
    - Active/inactive status for lifecycle management
    """

    __tablename__ = "facilities"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        doc="Facility identifier"
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Facility name (e.g., 'Visiting Hall A', 'Video Court Room')"
    )

    facility_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="room",
        doc="Facility type: 'room', 'hall', 'court', 'clinic', 'other'"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Detailed description of the facility"
    )

    capacity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Maximum concurrent activities (1 = exclusive)"
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        doc="Whether the facility can currently be booked"
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        nullable=False,
        doc="Timestamp of record creation (UTC)"
    )

    __table_args__ = (
        Index("idx_facility_active", "active"),
    )

    def __repr__(self) -> str:
        """String representation showing name and capacity."""
        return f"<Facility(id={self.id}, name='{self.name}', capacity={self.capacity})>"
