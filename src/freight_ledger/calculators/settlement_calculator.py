"""Settlement computation: gross pay, deductions and net pay for a driver.

Everything here is pure. Services load the inputs, call in, and persist
the returned ``SettlementCalculation``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from freight_ledger.calculators.driver_pay import DriverPayResolver
from freight_ledger.calculators.pay_rate import PaymentProfile
from freight_ledger.calculators.types import (
    ZERO,
    DeductionCategory,
    OtherEarning,
    SettlementCalculation,
    ValidationResult,
    to_decimal,
)
from freight_ledger.exceptions import CrossOwnerViolation, ValidationFailed

if TYPE_CHECKING:
    from freight_ledger.models import Driver, Expense, Load, Settlement

DELIVERED_STATUSES = frozenset({"delivered", "completed"})

# Expense types without an entry here land in OTHER.
EXPENSE_DEDUCTION_CATEGORY: dict[str, DeductionCategory] = {
    "fuel": DeductionCategory.FUEL,
    "maintenance": DeductionCategory.REPAIRS,
    "insurance": DeductionCategory.INSURANCE,
    "toll": DeductionCategory.TOLL,
}


@dataclass
class SettlementValidation(ValidationResult):
    """Validation result that remembers loads owned by another driver."""

    driver_id: UUID | None = None
    cross_owner_load_ids: list[Any] = field(default_factory=list)

    def raise_if_invalid(self) -> None:
        if not self.errors:
            return
        if self.cross_owner_load_ids:
            raise CrossOwnerViolation(
                self.driver_id,
                self.cross_owner_load_ids,
                errors=self.errors,
                warnings=self.warnings,
            )
        raise ValidationFailed(self.errors, self.warnings)


@dataclass
class SettlementSummary:
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    count: int

    @property
    def average_net(self) -> Decimal:
        if self.count == 0:
            return ZERO
        return self.total_net / self.count


def _load_numbers(loads: Iterable[Load]) -> str:
    return ", ".join(load.load_number for load in loads)


def validate_settlement_input(
    driver: Driver | None,
    loads: list[Load],
    period_start: date | None = None,
    period_end: date | None = None,
    current_settlement_id: UUID | None = None,
) -> SettlementValidation:
    """Collect every problem with a settlement request.

    Missing driver, missing pay configuration, no loads, loads owned by
    another driver and an inverted period are errors. Undelivered loads and
    loads settled elsewhere are warnings; loads already on
    ``current_settlement_id`` (a recalculation) are not.
    """
    result = SettlementValidation(driver_id=driver.driver_id if driver else None)

    if driver is None:
        result.errors.append("Driver is required for settlement calculation")
    elif not PaymentProfile.from_driver(driver).has_configuration:
        result.errors.append(f"Driver {driver.name} has no payment configuration")

    if not loads:
        result.errors.append("At least one load is required for settlement")
    else:
        undelivered = [load for load in loads if load.status not in DELIVERED_STATUSES]
        if undelivered:
            result.warnings.append(
                f"{len(undelivered)} load(s) are not yet delivered: {_load_numbers(undelivered)}"
            )

        settled = [
            load
            for load in loads
            if load.settlement_id is not None and load.settlement_id != current_settlement_id
        ]
        if settled:
            result.warnings.append(
                f"{len(settled)} load(s) already have settlements: {_load_numbers(settled)}"
            )

        if driver is not None:
            foreign = [
                load
                for load in loads
                if load.driver_id is not None and load.driver_id != driver.driver_id
            ]
            if foreign:
                result.cross_owner_load_ids = [load.load_id for load in foreign]
                result.errors.append(
                    f"{len(foreign)} load(s) are assigned to a different driver"
                )

    if period_start and period_end and period_start > period_end:
        result.errors.append("Period start date must be before end date")

    return result


def aggregate_deductions(
    deductions: Mapping[str, Any] | None = None,
    expenses: Iterable[Expense] | None = None,
) -> dict[DeductionCategory, Decimal]:
    """Build the full deduction breakdown.

    Manual amounts are taken per category; approved, company-paid expenses
    are then folded in by type.
    """
    result = {category: ZERO for category in DeductionCategory}
    errors: list[str] = []

    for key, value in (deductions or {}).items():
        try:
            category = DeductionCategory(key)
        except ValueError:
            errors.append(f"Unknown deduction category: {key}")
            continue
        amount = to_decimal(value)
        if amount < 0:
            errors.append(f"Deduction {category.value} cannot be negative")
            continue
        result[category] += amount

    if errors:
        raise ValidationFailed(errors)

    for expense in expenses or ():
        if expense.paid_by != "company" or expense.status != "approved":
            continue
        category = EXPENSE_DEDUCTION_CATEGORY.get(expense.expense_type, DeductionCategory.OTHER)
        result[category] += to_decimal(expense.amount)

    return result


def compute_settlement(
    driver: Driver | None,
    loads: list[Load],
    deductions: Mapping[str, Any] | None = None,
    other_earnings: list[OtherEarning] | None = None,
    expenses: Iterable[Expense] | None = None,
    period_start: date | None = None,
    period_end: date | None = None,
    current_settlement_id: UUID | None = None,
) -> SettlementCalculation:
    """Validate inputs and compute the settlement.

    Raises:
        CrossOwnerViolation: If any load belongs to another driver
        ValidationFailed: For every other blocking problem, all listed at once
    """
    validation = validate_settlement_input(
        driver, loads, period_start, period_end, current_settlement_id
    )
    validation.raise_if_invalid()

    resolver = DriverPayResolver(driver)
    warnings = list(validation.warnings)
    entries = []
    for load in loads:
        entry, load_warnings = resolver.resolve(load)
        entries.append(entry)
        warnings.extend(load_warnings)

    return SettlementCalculation(
        entries=entries,
        deductions=aggregate_deductions(deductions, expenses),
        other_earnings=list(other_earnings or []),
        warnings=warnings,
    )


def eligible_loads_for_settlement(
    loads: Iterable[Load],
    driver_id: UUID,
    period_start: date,
    period_end: date,
) -> list[Load]:
    """Delivered, unsettled loads of one driver whose delivery falls in the period.

    Loads without a delivery date are dated by pickup; undated loads are skipped.
    """
    eligible = []
    for load in loads:
        if load.driver_id != driver_id:
            continue
        if load.status not in DELIVERED_STATUSES:
            continue
        if load.settlement_id is not None:
            continue
        when = load.delivery_date or load.pickup_date
        if when is None:
            continue
        if period_start <= when <= period_end:
            eligible.append(load)
    return eligible


def summarize_settlements(settlements: Iterable[Settlement]) -> SettlementSummary:
    """Totals across settlements."""
    total_gross = ZERO
    total_deductions = ZERO
    total_net = ZERO
    count = 0
    for settlement in settlements:
        total_gross += to_decimal(settlement.gross_pay)
        total_deductions += to_decimal(settlement.total_deductions)
        total_net += to_decimal(settlement.net_pay)
        count += 1
    return SettlementSummary(
        total_gross=total_gross,
        total_deductions=total_deductions,
        total_net=total_net,
        count=count,
    )


def week_period(year: int, week: int) -> tuple[date, date]:
    """Monday-to-Sunday bounds of an ISO week."""
    start = date.fromisocalendar(year, week, 1)
    return start, start + timedelta(days=6)
