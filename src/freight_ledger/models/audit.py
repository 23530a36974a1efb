"""Audit record model."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from freight_ledger.models.base import Base, TenantMixin, new_id, utcnow


class AuditRecord(Base, TenantMixin):
    """(entity, patch, reason, actor, timestamp) written by the database audit sink."""

    __tablename__ = "audit_record"

    audit_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    patch: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
