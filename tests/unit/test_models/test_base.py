"""
Unit tests for the shared column types and BaseModel.

Tests:
- GUID storage on SQLite (CHAR hex)
- UTCDateTime normalization
- BaseModel defaults and soft deletion
- JSON column handling
"""

import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.dialects import sqlite
from sqlalchemy.orm import Session

from custody_scheduler.models.base import GUID, UTCDateTime
from custody_scheduler.models.schedules import Schedule


def make_schedule(**overrides) -> Schedule:
    fields = dict(
        subject_id=42,
        start_time=datetime(2026, 3, 2, 10, tzinfo=timezone.utc),
        end_time=datetime(2026, 3, 2, 11, tzinfo=timezone.utc),
        additional_data={},
    )
    fields.update(overrides)
    return Schedule(**fields)


class TestGUIDTypeDecorator:
    """Test the GUID TypeDecorator for UUID handling."""

    def test_guid_generation(self, db_session: Session):
        """GUID primary keys are generated on insert."""
        schedule = make_schedule()
        db_session.add(schedule)
        db_session.commit()
        db_session.refresh(schedule)

        assert isinstance(schedule.id, uuid.UUID)

    def test_guid_custom_value(self, db_session: Session):
        """An explicit UUID survives a round trip."""
        custom_id = uuid.uuid4()
        db_session.add(make_schedule(id=custom_id))
        db_session.commit()
        db_session.expire_all()

        assert db_session.get(Schedule, custom_id) is not None

    def test_sqlite_stores_hex(self):
        value = uuid.uuid4()
        assert GUID().process_bind_param(value, sqlite.dialect()) == value.hex
        assert GUID().process_bind_param(str(value), sqlite.dialect()) == value.hex
        assert GUID().process_result_value(value.hex, sqlite.dialect()) == value


class TestUTCDateTime:
    """Test UTC normalization of stored instants."""

    def test_offset_converted_before_binding(self):
        manila = timezone(timedelta(hours=8))
        bound = UTCDateTime().process_bind_param(datetime(2026, 3, 2, 18, tzinfo=manila), sqlite.dialect())

        assert bound == datetime(2026, 3, 2, 10, tzinfo=timezone.utc)

    def test_naive_result_read_as_utc(self):
        value = UTCDateTime().process_result_value(datetime(2026, 3, 2, 10), sqlite.dialect())

        assert value.tzinfo == timezone.utc

    def test_round_trip_keeps_instant(self, db_session: Session):
        """A +08:00 start time is read back as the same instant in UTC."""
        manila = timezone(timedelta(hours=8))
        schedule = make_schedule(
            start_time=datetime(2026, 3, 2, 18, tzinfo=manila),
            end_time=datetime(2026, 3, 2, 19, tzinfo=manila),
        )
        db_session.add(schedule)
        db_session.commit()
        db_session.expire_all()

        stored = db_session.get(Schedule, schedule.id)
        assert stored.start_time == datetime(2026, 3, 2, 10, tzinfo=timezone.utc)
        assert stored.start_time.utcoffset() == timedelta(0)


class TestBaseModel:
    """Test BaseModel common fields."""

    def test_created_at_auto_set(self, db_session: Session):
        schedule = make_schedule()
        db_session.add(schedule)
        db_session.commit()
        db_session.refresh(schedule)

        assert schedule.created_at is not None
        assert schedule.deleted_at is None

    def test_soft_deletion(self, db_session: Session):
        """soft_delete marks the row without removing it."""
        schedule = make_schedule()
        db_session.add(schedule)
        db_session.commit()

        when = datetime(2026, 3, 3, tzinfo=timezone.utc)
        schedule.soft_delete(when)
        db_session.commit()

        assert schedule.is_deleted is True
        remaining = db_session.scalars(select(Schedule).where(Schedule.id == schedule.id)).all()
        assert len(remaining) == 1
        assert remaining[0].deleted_at == when

    def test_repr(self, db_session: Session):
        schedule = make_schedule()
        db_session.add(schedule)
        db_session.commit()

        assert "subject_id=42" in repr(schedule)

    def test_json_storage_and_retrieval(self, db_session: Session):
        """additional_data round-trips nested JSON."""
        payload = {"case_number": "CR-2026-0113", "court": {"branch": 12, "judge": "Santos"}}
        schedule = make_schedule(additional_data=payload)
        db_session.add(schedule)
        db_session.commit()
        db_session.expire_all()

        assert db_session.get(Schedule, schedule.id).additional_data == payload
