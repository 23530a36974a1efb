"""Base model class for SQLAlchemy ORM."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import DateTime, Numeric, String, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Money is stored at 4 places; cents rounding happens when values are persisted.
MONEY = Numeric(14, 4)


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def new_id() -> UUID:
    return uuid.uuid4()


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        UUID: Uuid(as_uuid=True),
        datetime: DateTime(timezone=True),
        Decimal: MONEY,
    }

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary."""
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class TimestampMixin:
    """Mixin for models with created_at timestamp."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )


class TenantMixin:
    """Mixin for tenant-scoped rows."""

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
