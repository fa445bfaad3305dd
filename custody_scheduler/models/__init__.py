"""
SQLAlchemy models for the Custody Scheduler.

Importing this package registers every table on Base.metadata, which
Alembic autogenerate and init_db() rely on.
"""

from custody_scheduler.models.base import GUID, Base, BaseModel, JSONData, UTCDateTime
from custody_scheduler.models.conflicts import ScheduleConflict
from custody_scheduler.models.facilities import Facility
from custody_scheduler.models.schedules import Schedule, ScheduleResource
from custody_scheduler.models.time_slots import TimeSlot

__all__ = [
    "Base",
    "BaseModel",
    "GUID",
    "JSONData",
    "UTCDateTime",
    "Facility",
    "Schedule",
    "ScheduleResource",
    "ScheduleConflict",
    "TimeSlot",
]
