"""
Persistence adapters for the conflict engine.

The protocols in stores.base are what the services depend on; the SQLAlchemy
classes implement them over the application's tables.
"""

from custody_scheduler.stores.base import (
    ActivityStore,
    CapacityGate,
    ConflictStore,
    FacilityDirectory,
)
from custody_scheduler.stores.sqlalchemy_store import (
    SQLAlchemyActivityStore,
    SQLAlchemyCapacityGate,
    SQLAlchemyConflictStore,
    SQLAlchemyFacilityDirectory,
)

__all__ = [
    "ActivityStore",
    "CapacityGate",
    "ConflictStore",
    "FacilityDirectory",
    "SQLAlchemyActivityStore",
    "SQLAlchemyCapacityGate",
    "SQLAlchemyConflictStore",
    "SQLAlchemyFacilityDirectory",
]
