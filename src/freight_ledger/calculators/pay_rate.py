"""Driver payment profiles and percentage normalization.

Percentages arrive either as whole numbers (88) or fractions (0.88). The
rule "greater than 1 means divide by 100" is applied exactly once, here,
when a driver record is turned into a ``PaymentProfile``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

from freight_ledger.calculators.types import ZERO, to_decimal

if TYPE_CHECKING:
    from freight_ledger.models import Driver

HUNDRED = Decimal("100")


class DriverType(str, Enum):
    COMPANY = "Company"
    OWNER_OPERATOR = "OwnerOperator"


class PaymentType(str, Enum):
    PERCENTAGE = "percentage"
    PER_MILE = "per_mile"
    FLAT_RATE = "flat_rate"


@dataclass(frozen=True)
class Fraction:
    """A pay split already expressed as a fraction, e.g. 0.88."""

    value: Decimal

    def as_fraction(self) -> Decimal:
        return self.value


@dataclass(frozen=True)
class Percent:
    """A pay split expressed as a whole-number percentage, e.g. 88."""

    value: Decimal

    def as_fraction(self) -> Decimal:
        return self.value / HUNDRED


PayRate = Union[Fraction, Percent]


def normalize_percentage(value: Any) -> PayRate | None:
    """Classify a stored percentage. Missing or non-positive values give None."""
    if value is None:
        return None
    amount = to_decimal(value)
    if amount <= 0:
        return None
    if amount > 1:
        return Percent(amount)
    return Fraction(amount)


@dataclass(frozen=True)
class PaymentProfile:
    """A driver's resolved pay configuration."""

    driver_type: DriverType
    payment_type: PaymentType | None = None
    percentage: PayRate | None = None
    per_mile_rate: Decimal = ZERO
    flat_rate: Decimal = ZERO

    @classmethod
    def from_driver(cls, driver: Driver) -> PaymentProfile:
        """Resolve the profile, walking legacy percentage fields in priority order."""
        percentage: PayRate | None = None
        for candidate in (
            driver.payment_percentage,
            driver.pay_percentage,
            driver.rate_or_split,
        ):
            percentage = normalize_percentage(candidate)
            if percentage is not None:
                break

        try:
            driver_type = DriverType(driver.driver_type)
        except ValueError:
            driver_type = DriverType.COMPANY

        payment_type = None
        if driver.payment_type:
            payment_type = PaymentType(driver.payment_type)

        return cls(
            driver_type=driver_type,
            payment_type=payment_type,
            percentage=percentage,
            per_mile_rate=to_decimal(driver.per_mile_rate),
            flat_rate=to_decimal(driver.flat_rate),
        )

    @property
    def has_configuration(self) -> bool:
        """True when any pay setting is present, even one that resolves to zero."""
        return self.payment_type is not None or self.percentage is not None

    @property
    def uses_percentage(self) -> bool:
        if self.driver_type == DriverType.OWNER_OPERATOR:
            return True
        if self.payment_type == PaymentType.PERCENTAGE:
            return True
        return self.payment_type is None and self.percentage is not None

    @property
    def split(self) -> Decimal:
        """The percentage as a fraction, zero when unset."""
        if self.percentage is None:
            return ZERO
        return self.percentage.as_fraction()
