"""SQLAlchemy ORM base and reusable column mixins.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Resource modules declare their tables against `Base` and pick the mixins
matching the DataService options they turn on:

- TimestampMixin   → created_at / updated_at   (enable_audit_fields)
- SoftDeleteMixin  → deleted_at / is_deleted   (enable_soft_delete)

Column types are portable (no PostgreSQL-only types) so the same models run
on SQLite in the test suite.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, false, func, inspect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    def to_dict(self) -> dict[str, Any]:
        """Column values keyed by attribute name (used for event payloads)."""
        return {
            attr.key: getattr(self, attr.key)
            for attr in inspect(self).mapper.column_attrs
        }


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class SoftDeleteMixin:
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
