"""Type definitions for the ledger calculators."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from freight_ledger.exceptions import ValidationFailed

ZERO = Decimal("0")
CENTS = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Coerce an optional numeric field to Decimal, treating None as zero."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(amount: Decimal) -> Decimal:
    """Round amount to 2 decimal places (cents)."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


class InvoiceStatus(str, Enum):
    """Invoice status values. Everything but DRAFT is derived from payments."""

    DRAFT = "draft"
    PENDING = "pending"
    PARTIAL = "partial"
    OVERDUE = "overdue"
    PAID = "paid"


class PaySource(str, Enum):
    """Which tier of the driver pay cascade produced a load's pay."""

    STORED_TOTAL = "driver_total_gross"
    STORED_BASE = "driver_base_pay"
    PROFILE = "profile"


class DeductionCategory(str, Enum):
    """Named settlement deduction buckets."""

    INSURANCE = "insurance"
    IFTA = "ifta"
    CASH_ADVANCE = "cash_advance"
    FUEL = "fuel"
    TRAILER = "trailer"
    REPAIRS = "repairs"
    PARKING = "parking"
    FORM_2290 = "form2290"
    ELD = "eld"
    TOLL = "toll"
    IRP = "irp"
    UCR = "ucr"
    ESCROW = "escrow"
    OCCUPATIONAL_ACCIDENT = "occupational_accident"
    OTHER = "other"


@dataclass
class ValidationResult:
    """Errors block an operation; warnings are passed back to the caller."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def raise_if_invalid(self) -> None:
        if self.errors:
            raise ValidationFailed(self.errors, self.warnings)


@dataclass
class LoadPayEntry:
    """Driver pay for one load."""

    load_id: UUID | None
    load_number: str
    pay_source: PaySource
    base_pay: Decimal
    detention: Decimal
    layover: Decimal
    tonu: Decimal
    miles: Decimal = ZERO
    delivery_date: date | None = None

    @property
    def total_pay(self) -> Decimal:
        return self.base_pay + self.detention + self.layover + self.tonu


@dataclass
class OtherEarning:
    """Reimbursement or bonus added on top of gross pay."""

    amount: Decimal
    description: str = ""
    earning_type: str = "other"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.earning_type,
            "description": self.description,
            "amount": str(self.amount),
        }


@dataclass
class SettlementCalculation:
    """Result of a settlement computation, before persistence."""

    entries: list[LoadPayEntry]
    deductions: dict[DeductionCategory, Decimal]
    other_earnings: list[OtherEarning]
    warnings: list[str] = field(default_factory=list)

    @property
    def gross_pay(self) -> Decimal:
        return sum((entry.total_pay for entry in self.entries), ZERO)

    @property
    def total_deductions(self) -> Decimal:
        return sum(self.deductions.values(), ZERO)

    @property
    def other_earnings_total(self) -> Decimal:
        return sum((earning.amount for earning in self.other_earnings), ZERO)

    @property
    def net_pay(self) -> Decimal:
        return self.gross_pay + self.other_earnings_total - self.total_deductions

    @property
    def total_miles(self) -> Decimal:
        return sum((entry.miles for entry in self.entries), ZERO)

    @property
    def effective_rate(self) -> Decimal:
        """Gross pay per mile; zero when no miles were driven."""
        miles = self.total_miles
        if miles == 0:
            return ZERO
        return self.gross_pay / miles


@dataclass
class InvoiceLineCandidate:
    """One billed load before persistence."""

    load_id: UUID | None
    load_number: str
    description: str
    base_amount: Decimal
    fuel_surcharge: Decimal
    detention: Decimal
    layover: Decimal
    lumper: Decimal
    other_accessorials: Decimal

    @property
    def accessorials(self) -> Decimal:
        return self.detention + self.layover + self.lumper + self.other_accessorials

    @property
    def line_total(self) -> Decimal:
        return self.base_amount + self.fuel_surcharge + self.accessorials


@dataclass
class InvoiceCalculation:
    """Invoice totals. ``amount`` is what the customer owes."""

    lines: list[InvoiceLineCandidate]
    factoring_fee_percent: Decimal = ZERO
    factored: bool = False

    @property
    def subtotal(self) -> Decimal:
        return sum((line.base_amount for line in self.lines), ZERO)

    @property
    def total_fuel_surcharge(self) -> Decimal:
        return sum((line.fuel_surcharge for line in self.lines), ZERO)

    @property
    def total_accessorials(self) -> Decimal:
        return sum((line.accessorials for line in self.lines), ZERO)

    @property
    def amount(self) -> Decimal:
        return sum((line.line_total for line in self.lines), ZERO)

    @property
    def factoring_fee(self) -> Decimal:
        if not self.factored:
            return ZERO
        return self.amount * self.factoring_fee_percent / Decimal("100")

    @property
    def net_amount(self) -> Decimal:
        return self.amount - self.factoring_fee


@dataclass
class AgingBuckets:
    """Outstanding receivables by days past due."""

    current: Decimal = ZERO
    days_31_60: Decimal = ZERO
    days_61_90: Decimal = ZERO
    days_90_plus: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.current + self.days_31_60 + self.days_61_90 + self.days_90_plus

    def __add__(self, other: AgingBuckets) -> AgingBuckets:
        return AgingBuckets(
            current=self.current + other.current,
            days_31_60=self.days_31_60 + other.days_31_60,
            days_61_90=self.days_61_90 + other.days_61_90,
            days_90_plus=self.days_90_plus + other.days_90_plus,
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "current": str(round_money(self.current)),
            "31-60": str(round_money(self.days_31_60)),
            "61-90": str(round_money(self.days_61_90)),
            "90+": str(round_money(self.days_90_plus)),
            "total": str(round_money(self.total)),
        }
