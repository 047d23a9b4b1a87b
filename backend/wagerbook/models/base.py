"""Base model utilities for SQLAlchemy."""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Uuid
from sqlalchemy.sql import func

from wagerbook.database.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Mixin that adds created_at and updated_at fields to models.

    Timestamps are generated client-side so they are loaded on the
    instance after a flush without a refresh round-trip.
    """

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        comment="When the record was created"
    )

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        comment="When the record was last updated"
    )


class UUIDMixin:
    """Mixin that adds UUID primary key."""

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
        nullable=False,
        comment="Unique identifier"
    )


class BaseModel(UUIDMixin, TimestampMixin, Base):
    """
    Base model class for all Wagerbook models.

    Provides:
    - UUID primary key
    - Automatic timestamps (created_at, updated_at)
    """
    __abstract__ = True
