"""
Service layer for the Custody Scheduler.

Provides business logic for:
- Availability checks (AvailabilityOracle)
- Conflict detection (ConflictDetector)
- Conflict lifecycle and triage queues (ConflictLifecycleManager)
- Transactional activity writes (SchedulingEngine)
"""

from custody_scheduler.services.availability import (
    AvailabilityOracle,
    AvailabilityReport,
)

from custody_scheduler.services.detector import (
    ConflictDetector,
    classify_severity,
    describe_conflict,
)

from custody_scheduler.services.lifecycle import (
    ConflictLifecycleManager,
    LifecycleResult,
)

from custody_scheduler.services.scheduling import (
    ActivityDraft,
    ScheduleOutcome,
    SchedulingEngine,
    transactional,
)

__all__ = [
    # Availability
    "AvailabilityOracle",
    "AvailabilityReport",
    # Detection
    "ConflictDetector",
    "classify_severity",
    "describe_conflict",
    # Lifecycle
    "ConflictLifecycleManager",
    "LifecycleResult",
    # Engine
    "ActivityDraft",
    "ScheduleOutcome",
    "SchedulingEngine",
    "transactional",
]
