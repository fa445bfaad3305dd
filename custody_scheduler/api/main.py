"""
FastAPI application for the Custody Scheduler.

HTTP surface over the conflict engine:
- Activity writes (create, update, cancel, delete) with conflict detection
- Activity listings (date range, upcoming, today)
- Availability checks
- Conflict triage (list, acknowledge, resolve, ignore, statistics)
- Health endpoint
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
from uuid import UUID

from dateutil.parser import parse as parse_date
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from custody_scheduler import __version__
from custody_scheduler.api.dependencies import (
    get_actor_id,
    get_db_session,
    get_scheduling_engine,
)
from custody_scheduler.api.middleware import RequestLoggingMiddleware, configure_logging
from custody_scheduler.api.models import (
    ActivityListResponse,
    ActivityResponse,
    ActivityResult,
    AvailabilityResponse,
    ConflictDetailResult,
    ConflictListResponse,
    CreateActivityRequest,
    DeleteActivityResponse,
    DetectConflictsResponse,
    ErrorResponse,
    HealthResponse,
    IgnoreConflictRequest,
    LifecycleResponse,
    ResolveConflictRequest,
    SlotCheckRequest,
    SlotCheckResponse,
    StatisticsResponse,
    UpdateActivityRequest,
)
from custody_scheduler.api.response_builder import (
    build_activity,
    build_activity_response,
    build_conflict,
    build_conflict_detail,
    build_lifecycle_response,
    build_statistics,
)
from custody_scheduler.config import get_settings
from custody_scheduler.domain import DimensionKey
from custody_scheduler.exceptions import (
    CapacityExhaustedError,
    InvalidIntervalError,
    InvalidTransitionError,
    NotFoundError,
    SchedulingError,
)
from custody_scheduler.intervals import to_utc
from custody_scheduler.services.scheduling import ActivityDraft, SchedulingEngine

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    InvalidIntervalError: 400,
    NotFoundError: 404,
    InvalidTransitionError: 409,
    CapacityExhaustedError: 409,
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def parse_instant(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 query value into UTC; naive values are taken as UTC."""
    if value is None:
        return None
    try:
        return to_utc(parse_date(value))
    except (ValueError, OverflowError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid date format: {e}")


# =============================================================================
# Application Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(f"Starting Custody Scheduler API ({settings.python_env})")
    if settings.auto_create_tables:
        from custody_scheduler.database import init_db

        init_db()

    yield

    logger.info("Shutting down Custody Scheduler API")


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Custody Scheduler API",
    description="""
# Custody Scheduler API

Conflict detection and resolution for custody activities (court hearings,
visits, programs, medical appointments).

## Core Workflows

### Scheduling
1. **POST /activities** - Save an activity; conflicts are detected in the same transaction
2. Response lists every conflict touching the activity
3. **PATCH /activities/{id}** or **POST /activities/{id}/cancel** re-checks and
   retires conflicts that no longer hold

### Calendar
- **GET /activities?start=&end=** - Activities in a date range, filterable by subject, type and status
- **GET /activities/upcoming** and **GET /activities/today**

### Triage
- **GET /conflicts/unresolved** - Work queue, most severe first
- **POST /conflicts/{id}/acknowledge** - Mark as seen
- **POST /conflicts/{id}/resolve** - Close, optionally cancelling one side
- **POST /conflicts/{id}/ignore** - Close as acceptable

## Error Handling

**Conflicts are not errors** - Activities with conflicts are saved and returned with 200/201.

- **400** - Invalid interval or filter value
- **401** - Missing X-User-ID on a mutating request
- **404** - Activity, conflict or time slot not found
- **409** - Conflict already closed, or time slot full
- **422** - Request body validation error
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_type": "http_error",
            "message": exc.detail,
            "retryable": exc.status_code >= 500,
        },
    )


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request, exc: SchedulingError):
    """Render engine errors with their type and retryable flag."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 400)
    logger.info(f"{exc.error_type}: {exc.message}", extra={"status_code": status_code})
    return JSONResponse(
        status_code=status_code,
        content={
            "error_type": exc.error_type,
            "message": exc.message,
            "retryable": exc.retryable,
        },
    )


@app.exception_handler(ValueError)
async def value_error_handler(request, exc: ValueError):
    """Unknown filters, dimensions, statuses and similar bad input."""
    return JSONResponse(
        status_code=400,
        content={
            "error_type": "validation_error",
            "message": str(exc),
            "retryable": False,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error_type": "internal_error",
            "message": "An unexpected error occurred",
            "retryable": True,
        },
    )


# =============================================================================
# Health & Status Endpoints
# =============================================================================


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    tags=["System"],
)
def health_check(db: Session = Depends(get_db_session)) -> HealthResponse:
    """Check API health and database connectivity."""
    try:
        db.execute(text("SELECT 1"))
        database_connected = True
    except Exception as e:
        logger.error(f"Health check database query failed: {e}")
        database_connected = False

    return HealthResponse(
        status="healthy" if database_connected else "unhealthy",
        version=__version__,
        database_connected=database_connected,
    )


# =============================================================================
# Activity Endpoints
# =============================================================================


@app.post(
    "/activities",
    response_model=ActivityResponse,
    status_code=201,
    summary="Schedule an activity",
    responses=ERROR_RESPONSES,
    tags=["Activities"],
)
def create_activity(
    request: CreateActivityRequest,
    actor_id: int = Depends(get_actor_id),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> ActivityResponse:
    """
    Save an activity and detect its conflicts.

    The activity is saved even when it conflicts; the conflicts are returned
    for an operator to triage.
    """
    draft = ActivityDraft(
        subject_id=request.subject_id,
        start_time=request.start_time,
        end_time=request.end_time,
        activity_type=request.activity_type,
        title=request.title,
        description=request.description,
        facility_id=request.facility_id,
        program_id=request.program_id,
        counterpart_id=request.counterpart_id,
        officer=request.officer,
        location=request.location,
        resources=tuple(request.resources),
        time_slot_key=request.time_slot_key,
        notes=request.notes,
        additional_data=request.additional_data,
    )
    outcome = engine.schedule_activity(draft, actor_id)
    return build_activity_response(outcome)


@app.get(
    "/activities",
    response_model=ActivityListResponse,
    summary="List activities in a date range",
    responses=ERROR_RESPONSES,
    tags=["Activities"],
)
def list_activities(
    start: Optional[str] = Query(None, description="Range start (ISO 8601)"),
    end: Optional[str] = Query(None, description="Range end (ISO 8601, exclusive)"),
    subject_id: Optional[int] = Query(None),
    facility_id: Optional[int] = Query(None),
    activity_type: Optional[str] = Query(None, alias="type"),
    status: Optional[str] = Query(None, description="Exact status; overrides include_cancelled"),
    include_cancelled: bool = Query(False),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> ActivityListResponse:
    """
    Activities overlapping [start, end), earliest first.

    Either bound may be omitted. Cancelled activities are left out unless
    requested.
    """
    activities = engine.list_activities(
        start=parse_instant(start),
        end=parse_instant(end),
        subject_id=subject_id,
        facility_id=facility_id,
        activity_type=activity_type,
        status=status,
        include_cancelled=include_cancelled,
    )
    return ActivityListResponse(
        activities=[build_activity(a) for a in activities],
        total=len(activities),
    )


@app.get(
    "/activities/upcoming",
    response_model=ActivityListResponse,
    summary="Next activities",
    responses=ERROR_RESPONSES,
    tags=["Activities"],
)
def upcoming_activities(
    limit: int = Query(10, ge=1, le=100),
    subject_id: Optional[int] = Query(None),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> ActivityListResponse:
    activities = engine.upcoming_activities(limit=limit, subject_id=subject_id)
    return ActivityListResponse(
        activities=[build_activity(a) for a in activities],
        total=len(activities),
    )


@app.get(
    "/activities/today",
    response_model=ActivityListResponse,
    summary="Activities on the current UTC day",
    tags=["Activities"],
)
def todays_activities(
    subject_id: Optional[int] = Query(None),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> ActivityListResponse:
    activities = engine.activities_today(subject_id=subject_id)
    return ActivityListResponse(
        activities=[build_activity(a) for a in activities],
        total=len(activities),
    )


@app.get(
    "/activities/{activity_id}",
    response_model=ActivityResult,
    summary="Get activity",
    responses=ERROR_RESPONSES,
    tags=["Activities"],
)
def get_activity(
    activity_id: UUID,
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> ActivityResult:
    return build_activity(engine.get_activity(activity_id))


@app.patch(
    "/activities/{activity_id}",
    response_model=ActivityResponse,
    summary="Update an activity",
    responses=ERROR_RESPONSES,
    tags=["Activities"],
)
def update_activity(
    activity_id: UUID,
    request: UpdateActivityRequest,
    actor_id: int = Depends(get_actor_id),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> ActivityResponse:
    """
    Change an activity and re-run detection.

    Only fields present in the body are changed. Conflicts that no longer
    hold after the change are retired.
    """
    changes = request.model_dump(exclude_unset=True)
    outcome = engine.update_activity(activity_id, changes, actor_id)
    return build_activity_response(outcome)


@app.post(
    "/activities/{activity_id}/cancel",
    response_model=ActivityResponse,
    summary="Cancel an activity",
    responses=ERROR_RESPONSES,
    tags=["Activities"],
)
def cancel_activity(
    activity_id: UUID,
    actor_id: int = Depends(get_actor_id),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> ActivityResponse:
    """Cancel an activity, release its time slot and retire its open conflicts."""
    outcome = engine.cancel_activity(activity_id, actor_id)
    return build_activity_response(outcome)


@app.delete(
    "/activities/{activity_id}",
    response_model=DeleteActivityResponse,
    summary="Delete an activity",
    responses=ERROR_RESPONSES,
    tags=["Activities"],
)
def delete_activity(
    activity_id: UUID,
    actor_id: int = Depends(get_actor_id),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> DeleteActivityResponse:
    """
    Delete an activity.

    Conflict records that reference it stay in place and are reported as stale.
    """
    if not engine.delete_activity(activity_id, actor_id):
        raise HTTPException(status_code=404, detail=f"Activity {activity_id} not found")

    return DeleteActivityResponse(
        success=True,
        activity_id=activity_id,
        message="Activity deleted",
    )


@app.post(
    "/activities/{activity_id}/detect",
    response_model=DetectConflictsResponse,
    summary="Re-run conflict detection",
    responses=ERROR_RESPONSES,
    tags=["Activities"],
)
def detect_conflicts(
    activity_id: UUID,
    actor_id: int = Depends(get_actor_id),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> DetectConflictsResponse:
    conflicts = engine.detect_conflicts(activity_id)
    logger.info(
        f"Re-detected {len(conflicts)} conflict(s) for activity {activity_id}",
        extra={"actor_id": actor_id},
    )
    return DetectConflictsResponse(
        activity_id=activity_id,
        conflicts=[build_conflict(c) for c in conflicts],
        has_conflicts=bool(conflicts),
    )


# =============================================================================
# Availability Endpoints
# =============================================================================


@app.get(
    "/availability",
    response_model=AvailabilityResponse,
    summary="Check one dimension for a time range",
    responses=ERROR_RESPONSES,
    tags=["Availability"],
)
def check_availability(
    dimension: str = Query(..., description="subject, facility, officer or resource"),
    key: str = Query(..., description="Subject/facility id or officer/resource label"),
    start: str = Query(..., description="Range start (ISO 8601)"),
    end: str = Query(..., description="Range end (ISO 8601, exclusive)"),
    exclude_id: Optional[UUID] = Query(None, description="Activity to ignore (when editing it)"),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> AvailabilityResponse:
    """
    Report whether a subject, facility, officer or resource is free.

    Advisory only: the answer can change before a write commits.
    """
    start_time = parse_instant(start)
    end_time = parse_instant(end)

    dimension_key = DimensionKey.parse(dimension, key)
    available = engine.check_availability(dimension_key, start_time, end_time, exclude_id)

    return AvailabilityResponse(
        dimension=dimension_key.dimension,
        key=str(dimension_key.value),
        start_time=start_time,
        end_time=end_time,
        available=available,
    )


@app.post(
    "/availability/check",
    response_model=SlotCheckResponse,
    summary="Check every dimension of a prospective activity",
    responses=ERROR_RESPONSES,
    tags=["Availability"],
)
def check_activity_slot(
    request: SlotCheckRequest,
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> SlotCheckResponse:
    report = engine.check_activity_slot(
        subject_id=request.subject_id,
        start=request.start_time,
        end=request.end_time,
        facility_id=request.facility_id,
        officer=request.officer,
        resources=request.resources,
        exclude_id=request.exclude_activity_id,
    )
    return SlotCheckResponse(
        available=report.available,
        reasons=report.reasons,
        blocking_activity_ids=report.blocking_activity_ids,
    )


# =============================================================================
# Conflict Endpoints
# =============================================================================


@app.get(
    "/conflicts",
    response_model=ConflictListResponse,
    summary="List conflicts",
    responses=ERROR_RESPONSES,
    tags=["Conflicts"],
)
def list_conflicts(
    status: Optional[str] = Query(None, description="unresolved or a single status"),
    severity: Optional[str] = Query(None, description="low, medium, high or critical"),
    conflict_type: Optional[str] = Query(None, alias="type", description="Conflict type"),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> ConflictListResponse:
    """List conflicts, most severe and most recent first."""
    views = engine.list_conflicts(status=status, severity=severity, conflict_type=conflict_type)
    return ConflictListResponse(
        conflicts=[build_conflict_detail(v) for v in views],
        total=len(views),
    )


@app.get(
    "/conflicts/unresolved",
    response_model=ConflictListResponse,
    summary="List unresolved conflicts",
    responses=ERROR_RESPONSES,
    tags=["Conflicts"],
)
def list_unresolved_conflicts(
    severity: Optional[str] = Query(None),
    conflict_type: Optional[str] = Query(None, alias="type"),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> ConflictListResponse:
    """Detected and acknowledged conflicts, most severe first."""
    views = engine.list_unresolved(severity=severity, conflict_type=conflict_type)
    return ConflictListResponse(
        conflicts=[build_conflict_detail(v) for v in views],
        total=len(views),
    )


@app.get(
    "/conflicts/statistics",
    response_model=StatisticsResponse,
    summary="Conflict statistics",
    tags=["Conflicts"],
)
def conflict_statistics(
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> StatisticsResponse:
    return build_statistics(engine.statistics())


@app.get(
    "/conflicts/{conflict_id}",
    response_model=ConflictDetailResult,
    summary="Get conflict",
    responses=ERROR_RESPONSES,
    tags=["Conflicts"],
)
def get_conflict(
    conflict_id: UUID,
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> ConflictDetailResult:
    return build_conflict_detail(engine.get_conflict(conflict_id))


@app.post(
    "/conflicts/{conflict_id}/acknowledge",
    response_model=LifecycleResponse,
    summary="Acknowledge a conflict",
    responses=ERROR_RESPONSES,
    tags=["Conflicts"],
)
def acknowledge_conflict(
    conflict_id: UUID,
    actor_id: int = Depends(get_actor_id),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> LifecycleResponse:
    result = engine.acknowledge(conflict_id, actor_id)
    return build_lifecycle_response(result, "Conflict acknowledged")


@app.post(
    "/conflicts/{conflict_id}/resolve",
    response_model=LifecycleResponse,
    summary="Resolve a conflict",
    responses=ERROR_RESPONSES,
    tags=["Conflicts"],
)
def resolve_conflict(
    conflict_id: UUID,
    request: Optional[ResolveConflictRequest] = None,
    actor_id: int = Depends(get_actor_id),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> LifecycleResponse:
    """
    Resolve a conflict.

    If cancel_activity_id names one side of the pair, that activity is
    cancelled in the same transaction and its other open conflicts retired.
    """
    request = request or ResolveConflictRequest()
    result = engine.resolve(
        conflict_id,
        actor_id,
        notes=request.resolution_notes,
        cancel_activity_id=request.cancel_activity_id,
    )
    return build_lifecycle_response(result, "Conflict resolved")


@app.post(
    "/conflicts/{conflict_id}/ignore",
    response_model=LifecycleResponse,
    summary="Ignore a conflict",
    responses=ERROR_RESPONSES,
    tags=["Conflicts"],
)
def ignore_conflict(
    conflict_id: UUID,
    request: Optional[IgnoreConflictRequest] = None,
    actor_id: int = Depends(get_actor_id),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> LifecycleResponse:
    request = request or IgnoreConflictRequest()
    result = engine.ignore(conflict_id, actor_id, notes=request.notes)
    return build_lifecycle_response(result, "Conflict ignored")


# =============================================================================
# Run with Uvicorn
# =============================================================================


def run_server(host: Optional[str] = None, port: Optional[int] = None, reload: Optional[bool] = None):
    """Run the API server with Uvicorn, defaulting to configured host/port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "custody_scheduler.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=settings.api_reload if reload is None else reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run_server()
