"""
Pydantic request and response models for the Custody Scheduler API.
"""

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# Request Models
# =============================================================================

NON_NULLABLE_ACTIVITY_FIELDS = frozenset(
    {"subject_id", "start_time", "end_time", "activity_type", "status"}
)


class CreateActivityRequest(BaseModel):
    """Request to schedule a new activity."""

    subject_id: int = Field(..., description="Subject (PDL) the activity is for")
    start_time: datetime = Field(..., description="Start time (ISO 8601)")
    end_time: datetime = Field(..., description="End time (ISO 8601, exclusive)")
    activity_type: str = Field(
        default="general",
        max_length=50,
        description="Activity type tag",
        examples=["court_hearing", "visit", "program"],
    )
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    facility_id: Optional[int] = Field(None, description="Facility to book")
    program_id: Optional[int] = None
    counterpart_id: Optional[int] = Field(None, description="Visitor or other counterpart")
    officer: Optional[str] = Field(None, max_length=150, description="Responsible officer label")
    location: Optional[str] = Field(None, max_length=200)
    resources: list[str] = Field(default_factory=list, description="Shared resource labels")
    time_slot_key: Optional[str] = Field(None, max_length=100, description="Capacity-gated slot to book")
    notes: Optional[str] = None
    additional_data: dict = Field(default_factory=dict)

    @field_validator("officer")
    @classmethod
    def blank_officer_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v


class UpdateActivityRequest(BaseModel):
    """Partial update of an activity. Only fields that are sent are changed."""

    subject_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    activity_type: Optional[str] = Field(None, max_length=50)
    status: Optional[Literal["scheduled", "confirmed", "completed", "cancelled", "rescheduled"]] = None
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    facility_id: Optional[int] = None
    program_id: Optional[int] = None
    counterpart_id: Optional[int] = None
    officer: Optional[str] = Field(None, max_length=150)
    location: Optional[str] = Field(None, max_length=200)
    resources: Optional[list[str]] = None
    time_slot_key: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    additional_data: Optional[dict] = None

    @model_validator(mode="after")
    def required_fields_not_null(self) -> "UpdateActivityRequest":
        """Fields an activity cannot lack may be omitted but not sent as null."""
        cleared = sorted(
            name for name in NON_NULLABLE_ACTIVITY_FIELDS
            if name in self.model_fields_set and getattr(self, name) is None
        )
        if cleared:
            raise ValueError(f"Field(s) cannot be null: {', '.join(cleared)}")
        return self


class SlotCheckRequest(BaseModel):
    """Check every dimension a prospective activity would occupy."""

    subject_id: int
    start_time: datetime
    end_time: datetime
    facility_id: Optional[int] = None
    officer: Optional[str] = None
    resources: list[str] = Field(default_factory=list)
    exclude_activity_id: Optional[UUID] = None


class ResolveConflictRequest(BaseModel):
    """Request to resolve a conflict."""

    resolution_notes: Optional[str] = Field(
        None,
        max_length=2000,
        description="How the conflict was resolved",
        examples=["split into two rooms"],
    )
    cancel_activity_id: Optional[UUID] = Field(
        None,
        description="One side of the pair to cancel as part of the resolution",
    )


class IgnoreConflictRequest(BaseModel):
    """Request to ignore a conflict."""

    notes: Optional[str] = Field(None, max_length=2000, description="Why the overlap is acceptable")


# =============================================================================
# Response Models
# =============================================================================


class ActivityResult(BaseModel):
    """Activity data in responses."""

    id: UUID
    subject_id: int
    activity_type: str
    status: str
    start_time: datetime
    end_time: datetime
    title: Optional[str] = None
    facility_id: Optional[int] = None
    program_id: Optional[int] = None
    counterpart_id: Optional[int] = None
    officer: Optional[str] = None
    location: Optional[str] = None
    resources: list[str] = Field(default_factory=list)
    time_slot_key: Optional[str] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None


class ConflictResult(BaseModel):
    """Conflict information in responses."""

    id: UUID
    activity_a_id: UUID
    activity_b_id: UUID
    type: str = Field(..., description="subject_double_booking, facility_double_booking, officer_conflict, resource_conflict")
    severity: str = Field(..., description="Severity: low, medium, high, critical")
    status: str = Field(..., description="Status: detected, acknowledged, resolved, ignored")
    description: str
    detected_at: datetime
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[int] = None
    resolution_notes: Optional[str] = None
    resolved_by: Optional[int] = None
    resolved_at: Optional[datetime] = None


class ConflictDetailResult(ConflictResult):
    """Conflict joined with its activities."""

    activity_a: Optional[ActivityResult] = None
    activity_b: Optional[ActivityResult] = None
    is_stale: bool = Field(False, description="True when either activity no longer exists")


class ActivityResponse(BaseModel):
    """
    Response for activity writes.

    Conflicts are not errors: they are returned alongside the saved activity.
    """

    activity: ActivityResult
    conflicts: list[ConflictResult] = Field(default_factory=list)
    has_conflicts: bool = False

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "activity": {
                    "id": "5b1f5c0e-8f43-4a5e-9a0c-2f0c5b1d6a11",
                    "subject_id": 42,
                    "activity_type": "court_hearing",
                    "status": "scheduled",
                    "start_time": "2026-03-02T10:30:00Z",
                    "end_time": "2026-03-02T11:30:00Z",
                },
                "conflicts": [
                    {
                        "type": "subject_double_booking",
                        "severity": "critical",
                        "status": "detected",
                    }
                ],
                "has_conflicts": True,
            }
        }
    )


class ActivityListResponse(BaseModel):
    """Response for activity listings, ordered by start time."""

    activities: list[ActivityResult]
    total: int


class DetectConflictsResponse(BaseModel):
    """Conflicts found by re-running detection for one activity."""

    activity_id: UUID
    conflicts: list[ConflictResult] = Field(default_factory=list)
    has_conflicts: bool = False


class DeleteActivityResponse(BaseModel):
    """Response for activity deletion."""

    success: bool
    activity_id: UUID
    message: str


class ConflictListResponse(BaseModel):
    """Response for listing conflicts."""

    conflicts: list[ConflictDetailResult]
    total: int


class LifecycleResponse(BaseModel):
    """Response for acknowledge/resolve/ignore."""

    conflict: ConflictResult
    cancelled_activities: list[ActivityResult] = Field(default_factory=list)
    retired_conflict_ids: list[UUID] = Field(default_factory=list)
    released_slots: list[str] = Field(default_factory=list)
    message: str


class AvailabilityResponse(BaseModel):
    """Availability of one dimension for a time range."""

    dimension: str
    key: str
    start_time: datetime
    end_time: datetime
    available: bool


class SlotCheckResponse(BaseModel):
    """Combined availability for a prospective activity."""

    available: bool
    reasons: list[str] = Field(default_factory=list)
    blocking_activity_ids: list[UUID] = Field(default_factory=list)


class StatisticsResponse(BaseModel):
    """Conflict counts for dashboards."""

    total_conflicts: int
    unresolved_conflicts: int
    critical_conflicts: int
    conflicts_by_type: dict[str, int]
    conflicts_by_severity: dict[str, int]


class ErrorResponse(BaseModel):
    """Error information for failed requests."""

    error_type: Literal[
        "validation_error",
        "not_found",
        "invalid_interval",
        "invalid_transition",
        "capacity_exhausted",
        "scheduling_error",
        "http_error",
        "internal_error",
    ] = Field(..., description="Type of error")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[dict] = Field(None, description="Additional error details")
    retryable: bool = Field(default=False, description="Whether request can be retried")


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "unhealthy"] = Field(..., description="Health status")
    version: str = Field(..., description="API version")
    database_connected: bool = Field(..., description="Database connection status")
