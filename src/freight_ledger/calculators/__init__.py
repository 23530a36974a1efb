"""Pure ledger calculators: driver pay, settlements, invoices and receivables."""

from freight_ledger.calculators.driver_pay import DriverPayResolver, calculate_driver_pay
from freight_ledger.calculators.pay_rate import (
    Fraction,
    PaymentProfile,
    PayRate,
    Percent,
    normalize_percentage,
)
from freight_ledger.calculators.types import (
    AgingBuckets,
    DeductionCategory,
    InvoiceCalculation,
    InvoiceStatus,
    LoadPayEntry,
    OtherEarning,
    SettlementCalculation,
    ValidationResult,
    round_money,
)

__all__ = [
    "AgingBuckets",
    "DeductionCategory",
    "DriverPayResolver",
    "Fraction",
    "InvoiceCalculation",
    "InvoiceStatus",
    "LoadPayEntry",
    "OtherEarning",
    "PayRate",
    "PaymentProfile",
    "Percent",
    "SettlementCalculation",
    "ValidationResult",
    "calculate_driver_pay",
    "normalize_percentage",
    "round_money",
]
