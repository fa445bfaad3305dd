"""
FastAPI dependency injection providers.

Provides database sessions, the scheduling engine and the acting user.
"""

import logging
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from custody_scheduler.config import get_settings
from custody_scheduler.database import get_db
from custody_scheduler.services.scheduling import SchedulingEngine

logger = logging.getLogger(__name__)


def get_db_session() -> Generator[Session, None, None]:
    """
    Dependency injection for database session.

    The engine commits each unit of work itself; get_db closes the session
    and rolls back anything left open by a failed request.
    """
    yield from get_db()


def get_scheduling_engine(db: Session = Depends(get_db_session)) -> SchedulingEngine:
    """Build a scheduling engine bound to the request's session."""
    return SchedulingEngine(db, settings=get_settings())


def get_optional_actor_id(
    x_user_id: Optional[int] = Header(None, description="Acting user ID"),
) -> Optional[int]:
    return x_user_id


def get_actor_id(actor_id: Optional[int] = Depends(get_optional_actor_id)) -> int:
    """
    Require the acting user for mutating endpoints.

    Raises:
        HTTPException: 401 if the X-User-ID header is missing
    """
    if actor_id is None:
        logger.warning("Rejected mutation without X-User-ID header")
        raise HTTPException(status_code=401, detail="X-User-ID header is required")
    return actor_id
