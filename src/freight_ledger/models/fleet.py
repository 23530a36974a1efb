"""Driver and expense models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from freight_ledger.models.base import Base, TenantMixin, TimestampMixin, new_id


class Driver(Base, TenantMixin, TimestampMixin):
    """Driver or dispatcher with a payment profile.

    Percentages may be stored either as whole numbers (88) or fractions
    (0.88); consumers go through ``PaymentProfile.from_driver``.
    """

    __tablename__ = "driver"

    driver_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    driver_type: Mapped[str] = mapped_column(String(32), nullable=False, default="Company")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Payment profile
    payment_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_percentage: Mapped[Decimal | None] = mapped_column(Numeric(10, 4), nullable=True)
    per_mile_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 4), nullable=True)
    flat_rate: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Legacy fallbacks
    pay_percentage: Mapped[Decimal | None] = mapped_column(Numeric(10, 4), nullable=True)
    rate_or_split: Mapped[Decimal | None] = mapped_column(Numeric(10, 4), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "driver_type IN ('Company', 'OwnerOperator')",
            name="driver_type_check",
        ),
        CheckConstraint(
            "payment_type IS NULL OR payment_type IN ('percentage', 'per_mile', 'flat_rate')",
            name="driver_payment_type_check",
        ),
    )


class Expense(Base, TenantMixin, TimestampMixin):
    """Driver expense. Approved, company-paid expenses become settlement deductions."""

    __tablename__ = "expense"

    expense_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    driver_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("driver.driver_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    load_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("load.load_id", ondelete="SET NULL"),
        nullable=True,
    )
    expense_type: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    paid_by: Mapped[str] = mapped_column(String(32), nullable=False, default="company")
    expense_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "expense_type IN ('fuel', 'maintenance', 'insurance', 'toll', 'lumper', "
            "'permit', 'lodging', 'other')",
            name="expense_type_check",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="expense_status_check",
        ),
        CheckConstraint(
            "paid_by IN ('company', 'owner_operator', 'tracked_only')",
            name="expense_paid_by_check",
        ),
    )
