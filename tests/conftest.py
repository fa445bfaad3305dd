"""
Pytest configuration and fixtures for Custody Scheduler tests.

Provides database session fixtures and sample facilities, time slots and
activities.
"""

import uuid
from datetime import datetime, timezone
from typing import Generator

import pytest
import sqlalchemy as sa
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from custody_scheduler.config import Settings
from custody_scheduler.models.base import Base
from custody_scheduler.models.facilities import Facility
from custody_scheduler.models.schedules import Schedule, ScheduleResource
from custody_scheduler.models.conflicts import ScheduleConflict
from custody_scheduler.models.time_slots import TimeSlot
from custody_scheduler.services.scheduling import SchedulingEngine


def at(hour: int, minute: int = 0, day: int = 2) -> datetime:
    """UTC instant on the test day (2 March 2026)."""
    return datetime(2026, 3, day, hour, minute, tzinfo=timezone.utc)


# Configure SQLite to enforce foreign key constraints in tests
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable foreign key constraints for SQLite connections."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """
    Create a clean database session for each test.

    Uses an in-memory SQLite database on a single shared connection, so the
    API tests can use it from the TestClient's worker threads.

    Yields:
        Session: SQLAlchemy session for database operations
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()
        with engine.begin() as connection:
            connection.execute(sa.text("PRAGMA foreign_keys=OFF"))
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def engine(db_session: Session, settings: Settings) -> SchedulingEngine:
    """Scheduling engine bound to the test session."""
    return SchedulingEngine(db_session, settings=settings)


@pytest.fixture
def facilities(db_session: Session) -> dict[str, Facility]:
    """
    Create sample facilities.

    Returns:
        dict with an exclusive court room (id 7) and a visiting hall (id 8)
    """
    court_room = Facility(id=7, name="Video Court Room", facility_type="court", capacity=1)
    hall = Facility(id=8, name="Visiting Hall A", facility_type="hall", capacity=40)
    db_session.add_all([court_room, hall])
    db_session.commit()
    return {"court_room": court_room, "hall": hall}


@pytest.fixture
def visit_slot(db_session: Session, facilities) -> TimeSlot:
    """
    Create a two-booking visiting slot in the hall, 09:00-12:00.

    Returns:
        TimeSlot: A persisted slot with no bookings
    """
    slot = TimeSlot(
        slot_key="visit:hall-a:2026-03-02T09:00",
        facility_id=8,
        label="Morning visits",
        start_time=at(9),
        end_time=at(12),
        max_capacity=2,
        current_bookings=0,
    )
    db_session.add(slot)
    db_session.commit()
    db_session.refresh(slot)
    return slot


@pytest.fixture
def sample_schedule(db_session: Session) -> Schedule:
    """
    Create a sample court hearing row.

    Returns:
        Schedule: A persisted schedule with one resource label
    """
    schedule = Schedule(
        schedule_type="court_hearing",
        title="Arraignment",
        subject_id=42,
        facility_id=7,
        responsible_officer="Officer Reyes",
        start_time=at(10),
        end_time=at(11),
        status="scheduled",
        additional_data={"case_number": "CR-2026-0113"},
        created_by=1,
    )
    schedule.resources.append(ScheduleResource(resource_key="escort-van-2"))
    db_session.add(schedule)
    db_session.commit()
    db_session.refresh(schedule)
    return schedule


@pytest.fixture
def sample_conflict(db_session: Session, sample_schedule: Schedule) -> ScheduleConflict:
    """
    Create a detected subject conflict between the sample schedule and a second hearing.

    Returns:
        ScheduleConflict: A persisted conflict
    """
    other = Schedule(
        schedule_type="medical",
        subject_id=42,
        start_time=at(10, 30),
        end_time=at(11, 30),
        status="scheduled",
        additional_data={},
    )
    db_session.add(other)
    db_session.commit()

    low, high = sorted([sample_schedule.id, other.id], key=lambda value: value.hex)
    conflict = ScheduleConflict(
        id=uuid.uuid4(),
        schedule_a_id=low,
        schedule_b_id=high,
        conflict_type="subject_double_booking",
        severity="critical",
        description="Subject 42 has overlapping activities",
        status="detected",
        detected_at=at(8),
    )
    db_session.add(conflict)
    db_session.commit()
    db_session.refresh(conflict)
    return conflict
