"""Invoice, invoice line and invoice payment models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
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
from sqlalchemy.orm import Mapped, mapped_column, relationship

from freight_ledger.models.base import Base, TenantMixin, TimestampMixin, new_id, utcnow


class Invoice(Base, TenantMixin, TimestampMixin):
    """Customer invoice.

    ``amount`` is fixed at creation. ``status`` and ``paid_amount`` are
    caches of values derived from the payment list; they are rewritten on
    every payment and never set directly.
    """

    __tablename__ = "invoice"

    invoice_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    invoice_number: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_name: Mapped[str] = mapped_column(String, nullable=False)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    factoring_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    factoring_company: Mapped[str | None] = mapped_column(String, nullable=True)
    factoring_fee_percent: Mapped[Decimal | None] = mapped_column(Numeric(6, 3), nullable=True)
    factoring_fee: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    net_amount: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="invoice_tenant_number_unique"),
        CheckConstraint(
            "status IN ('draft', 'pending', 'partial', 'overdue', 'paid')",
            name="invoice_status_check",
        ),
        CheckConstraint("amount >= 0", name="invoice_amount_check"),
    )
    __mapper_args__ = {"version_id_col": version}

    # Relationships
    lines: Mapped[list[InvoiceLine]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoiceLine.line_number",
    )
    payments: Mapped[list[InvoicePayment]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoicePayment.created_at",
    )

    @property
    def load_ids(self) -> list[UUID]:
        return [line.load_id for line in self.lines]


class InvoiceLine(Base):
    """One billed load."""

    __tablename__ = "invoice_line"

    line_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoice.invoice_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    load_id: Mapped[UUID] = mapped_column(
        ForeignKey("load.load_id", ondelete="RESTRICT"),
        nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    load_number: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str] = mapped_column(String, nullable=False)
    base_amount: Mapped[Decimal] = mapped_column(nullable=False)
    fuel_surcharge: Mapped[Decimal] = mapped_column(nullable=False)
    detention: Mapped[Decimal] = mapped_column(nullable=False)
    layover: Mapped[Decimal] = mapped_column(nullable=False)
    lumper: Mapped[Decimal] = mapped_column(nullable=False)
    other_accessorials: Mapped[Decimal] = mapped_column(nullable=False)
    line_total: Mapped[Decimal] = mapped_column(nullable=False)

    invoice: Mapped[Invoice] = relationship(back_populates="lines")


class InvoicePayment(Base, TimestampMixin):
    """A received payment. Rows are only ever appended."""

    __tablename__ = "invoice_payment"

    payment_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoice.invoice_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    method: Mapped[str] = mapped_column(String(32), nullable=False, default="check")
    reference: Mapped[str | None] = mapped_column(String, nullable=True)
    recorded_by: Mapped[str] = mapped_column(String(128), nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="invoice_payment_amount_check"),
        CheckConstraint(
            "method IN ('check', 'ach', 'wire', 'credit_card', 'cash', 'factoring', 'other')",
            name="invoice_payment_method_check",
        ),
    )

    invoice: Mapped[Invoice] = relationship(back_populates="payments")
