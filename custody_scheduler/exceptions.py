"""
Exceptions raised by the conflict engine.

Provides structured error handling with retryable flags. Finding a conflict is
never an error; these cover invalid input, missing records, illegal lifecycle
transitions and exhausted capacity slots.
"""


class SchedulingError(Exception):
    """Base exception for scheduling operations."""

    retryable: bool = False
    error_type: str = "scheduling_error"

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class InvalidIntervalError(SchedulingError):
    """
    Activity interval is empty or inverted.

    Raised when start >= end, before any detection runs.
    """

    error_type = "invalid_interval"

    def __init__(self, start, end):
        super().__init__(f"Invalid interval: start {start} must be before end {end}")
        self.start = start
        self.end = end


class NotFoundError(SchedulingError):
    """
    Referenced record does not exist.

    Causes:
    - Activity was deleted or never existed
    - Conflict id is invalid
    - Capacity slot key is unknown
    """

    error_type = "not_found"

    def __init__(self, entity: str, identifier):
        super().__init__(f"{entity} {identifier} not found")
        self.entity = entity
        self.identifier = identifier


class InvalidTransitionError(SchedulingError):
    """
    Lifecycle transition attempted from a state that does not allow it.

    Resolved and ignored conflicts are terminal.
    """

    error_type = "invalid_transition"

    def __init__(self, conflict_id, current_status: str, action: str):
        super().__init__(
            f"Cannot {action} conflict {conflict_id}: status is '{current_status}'"
        )
        self.conflict_id = conflict_id
        self.current_status = current_status
        self.action = action


class CapacityExhaustedError(SchedulingError):
    """
    Capacity slot reservation failed.

    Surfaced to the caller as "slot unavailable"; no conflict record is created.
    Retryable once another booking in the slot is released.
    """

    retryable = True
    error_type = "capacity_exhausted"

    def __init__(self, slot_key: str):
        super().__init__(f"Time slot '{slot_key}' is unavailable: capacity exhausted")
        self.slot_key = slot_key
