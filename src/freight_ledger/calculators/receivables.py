"""Accounts receivable: payment ceilings, invoice status and aging.

Status is a pure function of (amount, total paid, due date, today):

- paid     total paid >= 99% of amount
- overdue  due date before today, whether or not partly paid
- partial  something paid
- pending  nothing paid

Payments may total up to 101% of the amount to absorb rounding.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from freight_ledger.calculators.types import (
    ZERO,
    AgingBuckets,
    InvoiceStatus,
    round_money,
    to_decimal,
)
from freight_ledger.exceptions import InvalidPayment

if TYPE_CHECKING:
    from freight_ledger.models import Invoice

OVERPAYMENT_TOLERANCE = Decimal("1.01")
PAID_THRESHOLD = Decimal("0.99")

CURRENT_MAX_DAYS = 30
DAYS_60 = 60
DAYS_90 = 90


@dataclass
class InvoiceSummary:
    total_invoiced: Decimal
    total_paid: Decimal
    count: int
    paid_count: int
    overdue_count: int

    @property
    def total_outstanding(self) -> Decimal:
        return self.total_invoiced - self.total_paid


def total_paid(invoice: Invoice) -> Decimal:
    """Sum of the payment list; the cached ``paid_amount`` only when no payments are loaded."""
    if invoice.payments:
        return sum((to_decimal(payment.amount) for payment in invoice.payments), ZERO)
    return to_decimal(invoice.paid_amount)


def outstanding_balance(invoice: Invoice) -> Decimal:
    return max(ZERO, to_decimal(invoice.amount) - total_paid(invoice))


def derive_status(
    amount: Decimal,
    paid: Decimal,
    due_date: date | None,
    today: date,
) -> InvoiceStatus:
    """Pure status derivation. Overdue is checked before partial."""
    if paid >= amount * PAID_THRESHOLD:
        return InvoiceStatus.PAID
    if due_date is not None and due_date < today:
        return InvoiceStatus.OVERDUE
    if paid > 0:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.PENDING


def invoice_status(invoice: Invoice, today: date) -> InvoiceStatus:
    return derive_status(to_decimal(invoice.amount), total_paid(invoice), invoice.due_date, today)


def max_payment(amount: Decimal, paid: Decimal) -> Decimal:
    """Largest payment that keeps total paid within the overpayment tolerance."""
    return max(ZERO, amount * OVERPAYMENT_TOLERANCE - paid)


def validate_payment(amount: Decimal, paid: Decimal, payment_amount: Decimal) -> None:
    """Check a payment against an invoice's amount and what is already paid.

    Raises:
        InvalidPayment: If the payment is not positive or would push total
            paid above ``amount * 1.01``
    """
    outstanding = max(ZERO, amount - paid)
    if payment_amount <= 0:
        raise InvalidPayment(
            "Payment amount must be greater than 0",
            amount=payment_amount,
            max_amount=max_payment(amount, paid),
            outstanding=outstanding,
        )
    if paid + payment_amount > amount * OVERPAYMENT_TOLERANCE:
        ceiling = max_payment(amount, paid)
        raise InvalidPayment(
            f"Payment would exceed invoice amount. Maximum payment: ${round_money(ceiling)}. "
            f"Invoice total: ${round_money(amount)}, already paid: ${round_money(paid)}",
            amount=payment_amount,
            max_amount=ceiling,
            outstanding=outstanding,
        )


def days_past_due(due_date: date | None, as_of: date) -> int:
    if due_date is None:
        return 0
    return (as_of - due_date).days


def bucket_balance(outstanding: Decimal, due_date: date | None, as_of: date) -> AgingBuckets:
    """Place the whole balance in exactly one bucket.

    An invoice with no due date cannot be past due and ages as current.
    """
    if outstanding <= 0:
        return AgingBuckets()
    days = days_past_due(due_date, as_of)
    if days <= CURRENT_MAX_DAYS:
        return AgingBuckets(current=outstanding)
    if days <= DAYS_60:
        return AgingBuckets(days_31_60=outstanding)
    if days <= DAYS_90:
        return AgingBuckets(days_61_90=outstanding)
    return AgingBuckets(days_90_plus=outstanding)


def aging_for_invoice(invoice: Invoice, as_of: date) -> AgingBuckets:
    return bucket_balance(outstanding_balance(invoice), invoice.due_date, as_of)


def ar_aging_summary(invoices: Iterable[Invoice], as_of: date) -> AgingBuckets:
    """Bucket totals across invoices. Order of invoices does not matter."""
    summary = AgingBuckets()
    for invoice in invoices:
        summary = summary + aging_for_invoice(invoice, as_of)
    return summary


def days_outstanding(invoice: Invoice, as_of: date) -> int:
    return max(0, days_past_due(invoice.due_date, as_of))


def invoice_summary(invoices: Iterable[Invoice]) -> InvoiceSummary:
    total_invoiced = ZERO
    paid_total = ZERO
    count = paid_count = overdue_count = 0
    for invoice in invoices:
        total_invoiced += to_decimal(invoice.amount)
        paid_total += total_paid(invoice)
        count += 1
        if invoice.status == InvoiceStatus.PAID:
            paid_count += 1
        elif invoice.status == InvoiceStatus.OVERDUE:
            overdue_count += 1
    return InvoiceSummary(
        total_invoiced=total_invoiced,
        total_paid=paid_total,
        count=count,
        paid_count=paid_count,
        overdue_count=overdue_count,
    )
