"""
Shared column types and declarative base for the conflict engine tables.

- GUID: activity and conflict ids, native UUID on PostgreSQL, hex CHAR(32) on SQLite
- UTCDateTime: instants stored and returned in UTC on every backend
- JSONData: JSONB on PostgreSQL, JSON elsewhere
- BaseModel: UUID id, audit timestamps, soft deletion
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, TypeDecorator, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PostgreSQL_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import CHAR

from custody_scheduler.intervals import to_utc, utc_now


class GUID(TypeDecorator):
    """
    UUID column that works on SQLite and PostgreSQL.

    SQLite stores the 32-char hex form. Conflict pairs are ordered by that
    same hex string, so the ordering is identical on both backends.
    """

    impl = CHAR(32)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PostgreSQL_UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(32))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, uuid.UUID):
            value = uuid.UUID(str(value))
        return value if dialect.name == "postgresql" else value.hex

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp normalized to UTC.

    SQLite keeps no offset, so values are converted to UTC before binding
    (including query parameters) and read back with tzinfo=UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect):
        return to_utc(value) if value is not None else None

    def process_result_value(self, value: Optional[datetime], dialect):
        return to_utc(value) if value is not None else None


JSONData = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all models."""

    type_annotation_map = {
        uuid.UUID: GUID,
        datetime: UTCDateTime,
    }


class BaseModel(Base):
    """
    Base for tables keyed by UUID with audit timestamps.

    Rows are soft-deleted: deleted_at is set and queries filter on it. The
    conflict table relies on this for its partial unique index.
    """

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        primary_key=True,
        default=uuid.uuid4,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        onupdate=func.now(),
        nullable=True,
    )

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        default=None,
        doc="Set when the row is soft-deleted; NULL for live rows",
    )

    def soft_delete(self, when: Optional[datetime] = None) -> None:
        """Mark the row deleted as of `when` (default: now)."""
        self.deleted_at = when or utc_now()

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.id})>"
