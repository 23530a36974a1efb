"""Per-tenant, per-kind, per-year sequence counters."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from freight_ledger.models.base import Base, TenantMixin, new_id, utcnow


class SequenceCounter(Base, TenantMixin):
    """Last issued sequence value for one (tenant, kind, year) key.

    Rows are created lazily on first allocation and never deleted. A new
    calendar year is a new row, so an old year's counter is never reset.
    """

    __tablename__ = "sequence_counter"

    counter_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "kind", "year", name="sequence_counter_key_unique"),
        CheckConstraint(
            "kind IN ('invoice', 'load', 'settlement')",
            name="sequence_counter_kind_check",
        ),
        CheckConstraint("seq >= 0", name="sequence_counter_seq_check"),
    )
