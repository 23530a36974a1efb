"""Settlement and settlement load models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from freight_ledger.models.base import Base, TenantMixin, TimestampMixin, new_id, utcnow


class Settlement(Base, TenantMixin, TimestampMixin):
    """Driver pay statement for a set of loads over a period."""

    __tablename__ = "settlement"

    settlement_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    settlement_number: Mapped[str] = mapped_column(String(64), nullable=False)
    driver_id: Mapped[UUID] = mapped_column(
        ForeignKey("driver.driver_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    period_end: Mapped[date | None] = mapped_column(Date, nullable=True)

    gross_pay: Mapped[Decimal] = mapped_column(nullable=False)
    other_earnings_total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    net_pay: Mapped[Decimal] = mapped_column(nullable=False)
    total_miles: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    effective_rate: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Manual deductions as entered, then the full breakdown with expenses folded in,
    # both {category: "amount"}; other earnings as [{"description": ..., "amount": "..."}]
    deduction_inputs: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    deductions: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    other_earnings: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "settlement_number", name="settlement_tenant_number_unique"
        ),
        CheckConstraint(
            "status IN ('draft', 'pending', 'processed', 'paid', 'void')",
            name="settlement_status_check",
        ),
    )

    # Relationships
    loads: Mapped[list[SettlementLoad]] = relationship(
        back_populates="settlement",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class SettlementLoad(Base):
    """Per-load pay entry within a settlement."""

    __tablename__ = "settlement_load"

    settlement_load_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    settlement_id: Mapped[UUID] = mapped_column(
        ForeignKey("settlement.settlement_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    load_id: Mapped[UUID] = mapped_column(
        ForeignKey("load.load_id", ondelete="RESTRICT"),
        nullable=False,
    )
    load_number: Mapped[str] = mapped_column(String(64), nullable=False)
    pay_source: Mapped[str] = mapped_column(String(32), nullable=False)
    base_pay: Mapped[Decimal] = mapped_column(nullable=False)
    detention: Mapped[Decimal] = mapped_column(nullable=False)
    layover: Mapped[Decimal] = mapped_column(nullable=False)
    tonu: Mapped[Decimal] = mapped_column(nullable=False)
    total_pay: Mapped[Decimal] = mapped_column(nullable=False)
    miles: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    settlement: Mapped[Settlement] = relationship(back_populates="loads")
