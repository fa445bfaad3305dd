"""
Engine and session management.

One module-level engine and SessionLocal built from Settings. Request
handlers use get_db(); scripts use get_db_context(). Both commit when the
block succeeds and roll back when it raises.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from custody_scheduler.config import Settings, get_settings

logger = logging.getLogger(__name__)


def build_engine(settings: Optional[Settings] = None) -> Engine:
    """
    Create an engine for the configured database.

    SQLite connections enforce foreign keys and wait up to
    sqlite_busy_timeout_ms for the write lock, so concurrent schedulers queue
    instead of failing. PostgreSQL gets a pre-pinged, recycled pool.
    """
    settings = settings or get_settings()
    echo = settings.log_level == "DEBUG"

    if not settings.uses_sqlite:
        return create_engine(
            settings.database_url,
            pool_size=settings.db_pool_size,
            pool_recycle=settings.db_pool_recycle_seconds,
            pool_pre_ping=True,
            echo=echo,
        )

    url = make_url(settings.database_url)
    if url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    sqlite_engine = create_engine(
        url,
        connect_args={"check_same_thread": False},
        echo=echo,
    )
    busy_timeout = settings.sqlite_busy_timeout_ms

    @event.listens_for(sqlite_engine, "connect")
    def configure_sqlite(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout)}")
        cursor.close()

    return sqlite_engine


settings = get_settings()
if settings.is_production:
    settings.validate_production_config()

engine = build_engine(settings)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency yielding a request-scoped session.

    SchedulingEngine commits its own units of work; the commit here covers
    anything a route writes outside them.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Session for scripts and maintenance tasks.

    Example:
        with get_db_context() as db:
            engine = SchedulingEngine(db)
            engine.cancel_activity(activity_id, actor_id=1)
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """Create all tables directly. Development only; production runs Alembic."""
    import custody_scheduler.models  # noqa: F401
    from custody_scheduler.models.base import Base

    logger.info(f"Creating tables on {settings.database_backend} database")
    Base.metadata.create_all(bind=engine)
