"""
SQLAlchemy-backed stores.

Maps Schedule, ScheduleConflict, TimeSlot and Facility rows to the value
objects in custody_scheduler.domain. Every method works inside the caller's
session; nothing here commits. Database errors propagate unchanged.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from custody_scheduler.domain import (
    INACTIVE_STATUSES,
    SEVERITY_RANK,
    UNRESOLVED_STATUSES,
    Activity,
    ConflictRecord,
    ConflictStatistics,
    DimensionKey,
    canonical_pair,
    normalize_label,
    statuses_for_group,
)
from custody_scheduler.exceptions import NotFoundError
from custody_scheduler.intervals import Interval, to_utc
from custody_scheduler.models.conflicts import ScheduleConflict
from custody_scheduler.models.facilities import Facility
from custody_scheduler.models.schedules import Schedule, ScheduleResource
from custody_scheduler.models.time_slots import TimeSlot

logger = logging.getLogger(__name__)


def _utc_or_none(value: Optional[datetime]) -> Optional[datetime]:
    return to_utc(value) if value is not None else None


def _dimension_condition(key: DimensionKey):
    """SQL condition selecting schedules that carry the dimension key."""
    if key.dimension == "subject":
        return Schedule.subject_id == key.value
    if key.dimension == "facility":
        return Schedule.facility_id == key.value
    if key.dimension == "officer":
        return Schedule.responsible_officer == key.value
    if key.dimension == "resource":
        return Schedule.resources.any(ScheduleResource.resource_key == key.value)
    raise ValueError(f"Unknown dimension: {key.dimension}")


def _window_conditions(start: Optional[datetime], end: Optional[datetime]) -> list:
    """Half-open overlap with [start, end); an open bound is unbounded."""
    conditions = []
    if end is not None:
        conditions.append(Schedule.start_time < to_utc(end))
    if start is not None:
        conditions.append(Schedule.end_time > to_utc(start))
    return conditions


def schedule_to_activity(row: Schedule) -> Activity:
    """Map a Schedule row to an immutable Activity."""
    return Activity(
        id=row.id,
        subject_id=row.subject_id,
        start_time=to_utc(row.start_time),
        end_time=to_utc(row.end_time),
        activity_type=row.schedule_type,
        status=row.status,
        title=row.title,
        description=row.description,
        facility_id=row.facility_id,
        program_id=row.program_id,
        counterpart_id=row.counterpart_id,
        officer=row.responsible_officer,
        location=row.location,
        resources=tuple(row.resource_keys),
        time_slot_key=row.time_slot_key,
        notes=row.notes,
        additional_data=dict(row.additional_data or {}),
        created_by=row.created_by,
        updated_by=row.updated_by,
    )


def conflict_to_record(row: ScheduleConflict) -> ConflictRecord:
    """Map a ScheduleConflict row to an immutable ConflictRecord."""
    return ConflictRecord(
        id=row.id,
        activity_a_id=row.schedule_a_id,
        activity_b_id=row.schedule_b_id,
        conflict_type=row.conflict_type,
        severity=row.severity,
        status=row.status,
        description=row.description,
        detected_at=to_utc(row.detected_at),
        acknowledged_at=_utc_or_none(row.acknowledged_at),
        acknowledged_by=row.acknowledged_by,
        resolution_notes=row.resolution_notes,
        resolved_by=row.resolved_by,
        resolved_at=_utc_or_none(row.resolved_at),
    )


class SQLAlchemyActivityStore:
    """Activity store over the schedules table."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, activity_id: UUID, include_deleted: bool = False) -> Optional[Activity]:
        row = self.session.get(Schedule, activity_id)
        if row is None or (row.is_deleted and not include_deleted):
            return None
        return schedule_to_activity(row)

    def get_many(self, activity_ids: Sequence[UUID]) -> dict[UUID, Activity]:
        if not activity_ids:
            return {}
        stmt = select(Schedule).where(
            and_(
                Schedule.id.in_(list(set(activity_ids))),
                Schedule.deleted_at.is_(None),
            )
        )
        return {row.id: schedule_to_activity(row) for row in self.session.scalars(stmt).all()}

    def save(self, activity: Activity) -> Activity:
        row = self.session.get(Schedule, activity.id)
        if row is None:
            row = Schedule(id=activity.id)
            self.session.add(row)

        row.schedule_type = activity.activity_type
        row.title = activity.title
        row.description = activity.description
        row.subject_id = activity.subject_id
        row.facility_id = activity.facility_id
        row.program_id = activity.program_id
        row.counterpart_id = activity.counterpart_id
        row.responsible_officer = normalize_label(activity.officer)
        row.location = activity.location
        row.start_time = to_utc(activity.start_time)
        row.end_time = to_utc(activity.end_time)
        row.status = activity.status
        row.time_slot_key = activity.time_slot_key
        row.notes = activity.notes
        row.additional_data = dict(activity.additional_data)
        row.created_by = activity.created_by
        row.updated_by = activity.updated_by

        # Diff the resource labels so unchanged association rows are kept
        wanted = {label for label in (normalize_label(r) for r in activity.resources) if label}
        for link in list(row.resources):
            if link.resource_key not in wanted:
                row.resources.remove(link)
        held = {link.resource_key for link in row.resources}
        for label in sorted(wanted - held):
            row.resources.append(ScheduleResource(resource_key=label))

        self.session.flush()
        return schedule_to_activity(row)

    def delete(self, activity_id: UUID) -> bool:
        row = self.session.get(Schedule, activity_id)
        if row is None or row.is_deleted:
            return False
        row.soft_delete()
        self.session.flush()
        return True

    def find_overlapping_candidates(
        self,
        key: DimensionKey,
        exclude_id: Optional[UUID] = None,
        window: Optional[Interval] = None,
    ) -> list[Activity]:
        conditions = [
            _dimension_condition(key),
            Schedule.deleted_at.is_(None),
            Schedule.status.not_in(list(INACTIVE_STATUSES)),
        ]
        if exclude_id is not None:
            conditions.append(Schedule.id != exclude_id)
        if window is not None:
            conditions.extend(_window_conditions(window.start, window.end))

        stmt = select(Schedule).where(and_(*conditions)).order_by(Schedule.start_time)
        return [schedule_to_activity(row) for row in self.session.scalars(stmt).all()]

    def list_in_range(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        subject_id: Optional[int] = None,
        facility_id: Optional[int] = None,
        activity_type: Optional[str] = None,
        status: Optional[str] = None,
        include_cancelled: bool = False,
    ) -> list[Activity]:
        conditions = [Schedule.deleted_at.is_(None), *_window_conditions(start, end)]
        if subject_id is not None:
            conditions.append(Schedule.subject_id == subject_id)
        if facility_id is not None:
            conditions.append(Schedule.facility_id == facility_id)
        if activity_type:
            conditions.append(Schedule.schedule_type == activity_type)
        if status:
            conditions.append(Schedule.status == status)
        elif not include_cancelled:
            conditions.append(Schedule.status.not_in(list(INACTIVE_STATUSES)))

        stmt = (
            select(Schedule)
            .where(and_(*conditions))
            .order_by(Schedule.start_time, Schedule.end_time)
        )
        return [schedule_to_activity(row) for row in self.session.scalars(stmt).all()]

    def list_upcoming(
        self,
        after: datetime,
        limit: int = 10,
        subject_id: Optional[int] = None,
    ) -> list[Activity]:
        conditions = [
            Schedule.deleted_at.is_(None),
            Schedule.status.not_in(list(INACTIVE_STATUSES)),
            Schedule.start_time > to_utc(after),
        ]
        if subject_id is not None:
            conditions.append(Schedule.subject_id == subject_id)

        stmt = select(Schedule).where(and_(*conditions)).order_by(Schedule.start_time).limit(limit)
        return [schedule_to_activity(row) for row in self.session.scalars(stmt).all()]

    def lock_dimension(self, key: DimensionKey) -> None:
        if self.session.get_bind().dialect.name != "postgresql":
            # SQLite serializes writers at the database level
            return
        self.session.execute(select(func.pg_advisory_xact_lock(func.hashtext(str(key)))))


class SQLAlchemyConflictStore:
    """Conflict record store over the schedule_conflicts table."""

    def __init__(self, session: Session):
        self.session = session

    def _live_row(self, conflict_id: UUID) -> Optional[ScheduleConflict]:
        row = self.session.get(ScheduleConflict, conflict_id)
        if row is None or row.is_deleted:
            return None
        return row

    def get(self, conflict_id: UUID) -> Optional[ConflictRecord]:
        row = self._live_row(conflict_id)
        return conflict_to_record(row) if row is not None else None

    def find_by_pair(self, id_a: UUID, id_b: UUID, conflict_type: str) -> Optional[ConflictRecord]:
        low, high = canonical_pair(id_a, id_b)
        stmt = select(ScheduleConflict).where(
            and_(
                ScheduleConflict.schedule_a_id == low,
                ScheduleConflict.schedule_b_id == high,
                ScheduleConflict.conflict_type == conflict_type,
                ScheduleConflict.deleted_at.is_(None),
            )
        )
        row = self.session.scalars(stmt).first()
        return conflict_to_record(row) if row is not None else None

    def insert_if_absent(self, record: ConflictRecord) -> ConflictRecord:
        low, high = canonical_pair(record.activity_a_id, record.activity_b_id)
        values = dict(
            id=record.id or uuid.uuid4(),
            schedule_a_id=low,
            schedule_b_id=high,
            conflict_type=record.conflict_type,
            severity=record.severity,
            status=record.status,
            description=record.description,
            detected_at=to_utc(record.detected_at),
        )

        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = postgresql.insert(ScheduleConflict).values(**values).on_conflict_do_nothing()
            self.session.execute(stmt)
        elif dialect == "sqlite":
            stmt = sqlite.insert(ScheduleConflict).values(**values).on_conflict_do_nothing()
            self.session.execute(stmt)
        elif self.find_by_pair(low, high, record.conflict_type) is None:
            self.session.add(ScheduleConflict(**values))
            self.session.flush()

        stored = self.find_by_pair(low, high, record.conflict_type)
        if stored is None:
            # Only reachable if the row vanished between insert and read
            raise NotFoundError("Conflict", values["id"])
        return stored

    def save(self, record: ConflictRecord) -> ConflictRecord:
        row = self._live_row(record.id)
        if row is None:
            raise NotFoundError("Conflict", record.id)

        row.status = record.status
        row.acknowledged_at = record.acknowledged_at
        row.acknowledged_by = record.acknowledged_by
        row.resolution_notes = record.resolution_notes
        row.resolved_by = record.resolved_by
        row.resolved_at = record.resolved_at

        self.session.flush()
        return conflict_to_record(row)

    def list_touching(self, activity_id: UUID) -> list[ConflictRecord]:
        stmt = (
            select(ScheduleConflict)
            .where(
                and_(
                    or_(
                        ScheduleConflict.schedule_a_id == activity_id,
                        ScheduleConflict.schedule_b_id == activity_id,
                    ),
                    ScheduleConflict.deleted_at.is_(None),
                )
            )
            .order_by(ScheduleConflict.detected_at)
        )
        return [conflict_to_record(row) for row in self.session.scalars(stmt).all()]

    def list_by_status_group(
        self,
        group: Optional[str] = None,
        severity: Optional[str] = None,
        conflict_type: Optional[str] = None,
    ) -> list[ConflictRecord]:
        conditions = [ScheduleConflict.deleted_at.is_(None)]

        statuses = statuses_for_group(group)
        if statuses is not None:
            conditions.append(ScheduleConflict.status.in_(sorted(statuses)))
        if severity:
            conditions.append(ScheduleConflict.severity == severity)
        if conflict_type:
            conditions.append(ScheduleConflict.conflict_type == conflict_type)

        severity_rank = case(SEVERITY_RANK, value=ScheduleConflict.severity, else_=0)
        stmt = (
            select(ScheduleConflict)
            .where(and_(*conditions))
            .order_by(severity_rank.desc(), ScheduleConflict.detected_at.desc())
        )
        return [conflict_to_record(row) for row in self.session.scalars(stmt).all()]

    def retire(self, conflict_id: UUID, when: datetime) -> None:
        row = self._live_row(conflict_id)
        if row is None:
            raise NotFoundError("Conflict", conflict_id)
        row.soft_delete(when)
        self.session.flush()

    def statistics(self) -> ConflictStatistics:
        live = ScheduleConflict.deleted_at.is_(None)

        total = self.session.scalar(select(func.count(ScheduleConflict.id)).where(live)) or 0
        unresolved = self.session.scalar(
            select(func.count(ScheduleConflict.id)).where(
                and_(live, ScheduleConflict.status.in_(sorted(UNRESOLVED_STATUSES)))
            )
        ) or 0
        critical_unresolved = self.session.scalar(
            select(func.count(ScheduleConflict.id)).where(
                and_(
                    live,
                    ScheduleConflict.status.in_(sorted(UNRESOLVED_STATUSES)),
                    ScheduleConflict.severity == "critical",
                )
            )
        ) or 0

        by_type = dict(
            self.session.execute(
                select(ScheduleConflict.conflict_type, func.count(ScheduleConflict.id))
                .where(live)
                .group_by(ScheduleConflict.conflict_type)
            ).all()
        )
        by_severity = dict(
            self.session.execute(
                select(ScheduleConflict.severity, func.count(ScheduleConflict.id))
                .where(live)
                .group_by(ScheduleConflict.severity)
            ).all()
        )

        return ConflictStatistics(
            total=total,
            unresolved=unresolved,
            critical_unresolved=critical_unresolved,
            by_type=by_type,
            by_severity=by_severity,
        )


class SQLAlchemyCapacityGate:
    """
    Capacity gate over the time_slots table.

    reserve() and release() are single conditional UPDATE statements, so
    concurrent bookings of one slot cannot lose updates.
    """

    def __init__(self, session: Session):
        self.session = session

    def _slot_exists(self, slot_key: str) -> bool:
        stmt = select(TimeSlot.id).where(
            and_(TimeSlot.slot_key == slot_key, TimeSlot.deleted_at.is_(None))
        )
        return self.session.scalar(stmt) is not None

    def remaining_capacity(self, slot_key: str) -> int:
        stmt = select(
            TimeSlot.max_capacity,
            TimeSlot.current_bookings,
            TimeSlot.is_available,
            TimeSlot.is_maintenance,
        ).where(and_(TimeSlot.slot_key == slot_key, TimeSlot.deleted_at.is_(None)))
        row = self.session.execute(stmt).one_or_none()
        if row is None:
            raise NotFoundError("Time slot", slot_key)
        if not row.is_available or row.is_maintenance:
            return 0
        return max(0, row.max_capacity - row.current_bookings)

    def reserve(self, slot_key: str) -> bool:
        stmt = (
            update(TimeSlot)
            .where(
                and_(
                    TimeSlot.slot_key == slot_key,
                    TimeSlot.deleted_at.is_(None),
                    TimeSlot.is_available.is_(True),
                    TimeSlot.is_maintenance.is_(False),
                    TimeSlot.current_bookings < TimeSlot.max_capacity,
                )
            )
            .values(current_bookings=TimeSlot.current_bookings + 1)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount == 1:
            logger.debug(f"Reserved booking in slot {slot_key}")
            return True
        if not self._slot_exists(slot_key):
            raise NotFoundError("Time slot", slot_key)
        logger.info(f"Slot {slot_key} has no remaining capacity", extra={"slot_key": slot_key})
        return False

    def release(self, slot_key: str) -> None:
        stmt = (
            update(TimeSlot)
            .where(
                and_(
                    TimeSlot.slot_key == slot_key,
                    TimeSlot.deleted_at.is_(None),
                    TimeSlot.current_bookings > 0,
                )
            )
            .values(current_bookings=TimeSlot.current_bookings - 1)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount == 0 and not self._slot_exists(slot_key):
            raise NotFoundError("Time slot", slot_key)

    def slot_key_for(self, facility_id: int, start: datetime, end: datetime) -> Optional[str]:
        stmt = (
            select(TimeSlot.slot_key)
            .where(
                and_(
                    TimeSlot.facility_id == facility_id,
                    TimeSlot.deleted_at.is_(None),
                    TimeSlot.start_time <= to_utc(start),
                    TimeSlot.end_time >= to_utc(end),
                )
            )
            .order_by(TimeSlot.start_time)
            .limit(1)
        )
        return self.session.scalar(stmt)


class SQLAlchemyFacilityDirectory:
    """Reads declared facility capacity from the facilities table."""

    def __init__(self, session: Session):
        self.session = session

    def get_capacity(self, facility_id: int) -> Optional[int]:
        facility = self.session.get(Facility, facility_id)
        if facility is None:
            return None
        return facility.capacity
