"""
Column helpers shared by the ORM models.

Types are chosen so the schema runs on PostgreSQL in production and on
SQLite in the test suite: ``Uuid`` maps to native UUID on PostgreSQL,
JSON columns become JSONB on PostgreSQL.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional, Type

from sqlalchemy import JSON, Column, DateTime, Enum as SQLEnum, Uuid
from sqlalchemy.dialects.postgresql import JSONB


JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def enum_type(enum_cls: Type[enum.Enum], name: str) -> SQLEnum:
    """Store enum values (not member names), as the API exposes them."""
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=lambda e: [x.value for x in e],
        validate_strings=True,
    )


def uuid_pk() -> Column:
    return Column(Uuid, primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    """created_at / updated_at maintained on the Python side."""

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
