"""Tests for invoice status derivation, payment ceilings and AR aging."""

from datetime import date
from decimal import Decimal

import pytest

from freight_ledger.calculators.receivables import (
    aging_for_invoice,
    ar_aging_summary,
    bucket_balance,
    derive_status,
    invoice_status,
    invoice_summary,
    max_payment,
    outstanding_balance,
    total_paid,
    validate_payment,
)
from freight_ledger.calculators.types import InvoiceStatus
from freight_ledger.exceptions import InvalidPayment

TODAY = date(2025, 4, 1)


class TestDeriveStatus:
    """Status is a pure function of amount, payments, due date and today."""

    def test_partial_from_payment_list(self, make_invoice):
        invoice = make_invoice(amount="1000.00", paid=["400.00", "550.00"])
        assert total_paid(invoice) == Decimal("950.00")
        assert invoice_status(invoice, TODAY) == InvoiceStatus.PARTIAL

    def test_paid_at_ninety_nine_percent(self):
        assert derive_status(Decimal("1000"), Decimal("990"), None, TODAY) == InvoiceStatus.PAID
        assert derive_status(Decimal("1000"), Decimal("989.99"), None, TODAY) == InvoiceStatus.PARTIAL

    def test_overdue_beats_partial(self):
        status = derive_status(Decimal("1000"), Decimal("500"), date(2025, 3, 31), TODAY)
        assert status == InvoiceStatus.OVERDUE

    def test_due_today_is_not_overdue(self):
        assert derive_status(Decimal("1000"), Decimal("0"), TODAY, TODAY) == InvoiceStatus.PENDING

    def test_no_due_date_never_overdue(self):
        assert derive_status(Decimal("1000"), Decimal("0"), None, date(2030, 1, 1)) == InvoiceStatus.PENDING

    def test_paid_even_when_past_due(self):
        status = derive_status(Decimal("1000"), Decimal("1000"), date(2025, 1, 1), TODAY)
        assert status == InvoiceStatus.PAID


class TestValidatePayment:
    """Payments may total up to 101% of the invoice."""

    def test_payment_up_to_tolerance_is_accepted(self):
        validate_payment(Decimal("1000.00"), Decimal("950.00"), Decimal("60.00"))

    def test_payment_over_tolerance_is_rejected(self):
        with pytest.raises(InvalidPayment) as exc_info:
            validate_payment(Decimal("1000.00"), Decimal("950.00"), Decimal("61.00"))

        error = exc_info.value
        assert error.max_amount == Decimal("60.0000")
        assert error.outstanding == Decimal("50.00")
        assert "Maximum payment: $60.00" in str(error)
        assert error.to_dict()["code"] == "INVALID_PAYMENT"

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10")])
    def test_non_positive_is_rejected(self, amount):
        with pytest.raises(InvalidPayment, match="greater than 0"):
            validate_payment(Decimal("1000"), Decimal("0"), amount)

    def test_max_payment_never_negative(self):
        assert max_payment(Decimal("1000"), Decimal("1010")) == Decimal("0")


class TestAging:
    def test_buckets(self):
        outstanding = Decimal("100")
        due = date(2025, 1, 1)
        assert bucket_balance(outstanding, due, date(2025, 1, 31)).current == outstanding
        assert bucket_balance(outstanding, due, date(2025, 2, 1)).days_31_60 == outstanding
        assert bucket_balance(outstanding, due, date(2025, 3, 2)).days_31_60 == outstanding
        assert bucket_balance(outstanding, due, date(2025, 3, 3)).days_61_90 == outstanding
        assert bucket_balance(outstanding, due, date(2025, 4, 1)).days_61_90 == outstanding
        assert bucket_balance(outstanding, due, date(2025, 4, 2)).days_90_plus == outstanding

    def test_not_yet_due_is_current(self):
        buckets = bucket_balance(Decimal("100"), date(2025, 5, 1), TODAY)
        assert buckets.current == Decimal("100")

    def test_no_due_date_is_current(self, make_invoice):
        invoice = make_invoice(due_date=None)
        assert aging_for_invoice(invoice, TODAY).current == Decimal("1000.00")

    def test_paid_invoice_has_no_balance(self, make_invoice):
        invoice = make_invoice(paid=["1005.00"])
        assert outstanding_balance(invoice) == Decimal("0")
        assert aging_for_invoice(invoice, TODAY).total == Decimal("0")

    def test_summary(self, make_invoice):
        invoices = [
            make_invoice(amount="1000.00", paid=["250.00"], due_date=date(2025, 3, 15)),
            make_invoice(amount="500.00", due_date=date(2025, 1, 15)),
            make_invoice(amount="300.00", due_date=date(2024, 12, 1)),
        ]
        summary = ar_aging_summary(invoices, TODAY)
        assert summary.current == Decimal("750.00")
        assert summary.days_31_60 == Decimal("0")
        assert summary.days_61_90 == Decimal("500.00")
        assert summary.days_90_plus == Decimal("300.00")
        assert summary.to_dict() == {
            "current": "750.00",
            "31-60": "0.00",
            "61-90": "500.00",
            "90+": "300.00",
            "total": "1550.00",
        }


def test_invoice_summary_counts(make_invoice):
    invoices = [
        make_invoice(paid=["1000.00"], status="paid"),
        make_invoice(status="overdue"),
        make_invoice(paid=["100.00"], status="partial"),
    ]
    summary = invoice_summary(invoices)
    assert summary.count == 3
    assert summary.paid_count == 1
    assert summary.overdue_count == 1
    assert summary.total_outstanding == Decimal("1900.00")
