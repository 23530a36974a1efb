"""Load, load adjustment log and adjustment request models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from freight_ledger.models.base import Base, TenantMixin, TimestampMixin, new_id, utcnow


class Load(Base, TenantMixin, TimestampMixin):
    """The financial subset of a load record."""

    __tablename__ = "load"

    load_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    load_number: Mapped[str] = mapped_column(String(64), nullable=False)
    driver_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("driver.driver_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    customer_name: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="available")
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pickup_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Customer-facing financials
    rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    miles: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    fsc_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    detention_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    layover_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    lumper_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    tonu_fee: Mapped[Decimal | None] = mapped_column(nullable=True)
    other_accessorials: Mapped[Decimal | None] = mapped_column(nullable=True)
    grand_total: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Driver-pay overrides
    driver_base_pay: Mapped[Decimal | None] = mapped_column(nullable=True)
    driver_detention_pay: Mapped[Decimal | None] = mapped_column(nullable=True)
    driver_layover_pay: Mapped[Decimal | None] = mapped_column(nullable=True)
    driver_total_gross: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Paperwork
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    pod_number: Mapped[str | None] = mapped_column(String, nullable=True)
    bol_number: Mapped[str | None] = mapped_column(String, nullable=True)
    documents: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    # Ledger linkage
    invoice_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("invoice.invoice_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    settlement_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("settlement.settlement_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    updated_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "load_number", name="load_tenant_number_unique"),
        CheckConstraint(
            "status IN ('available', 'dispatched', 'in_transit', 'delivered', "
            "'delivered_with_bol', 'invoiced', 'paid', 'completed', 'cancelled', 'tonu')",
            name="load_status_check",
        ),
    )
    __mapper_args__ = {"version_id_col": version}


class LoadAdjustmentLogEntry(Base, TenantMixin):
    """One changed field on a locked load. Append-only."""

    __tablename__ = "load_adjustment_log"

    entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    load_id: Mapped[UUID] = mapped_column(
        ForeignKey("load.load_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    field: Mapped[str] = mapped_column(String(64), nullable=False)
    old_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    new_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_by: Mapped[str] = mapped_column(String(128), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    adjustment_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("adjustment.adjustment_id", ondelete="SET NULL"),
        nullable=True,
    )


class Adjustment(Base, TenantMixin, TimestampMixin):
    """A requested change to a load, optionally gated behind approval."""

    __tablename__ = "adjustment"

    adjustment_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    load_id: Mapped[UUID] = mapped_column(
        ForeignKey("load.load_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    patch: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    require_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)

    approved_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    applied_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'applied')",
            name="adjustment_status_check",
        ),
    )
    __mapper_args__ = {"version_id_col": version}
