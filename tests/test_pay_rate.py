"""Tests for driver payment profiles and percentage normalization."""

from decimal import Decimal

import pytest

from freight_ledger.calculators.pay_rate import (
    DriverType,
    Fraction,
    PaymentProfile,
    PaymentType,
    Percent,
    normalize_percentage,
)


class TestNormalizePercentage:
    """A stored percentage is classified once and never re-divided."""

    def test_whole_number_is_percent(self):
        rate = normalize_percentage(Decimal("88"))
        assert rate == Percent(Decimal("88"))
        assert rate.as_fraction() == Decimal("0.88")

    def test_fraction_is_kept(self):
        rate = normalize_percentage(Decimal("0.88"))
        assert rate == Fraction(Decimal("0.88"))
        assert rate.as_fraction() == Decimal("0.88")

    def test_exactly_one_is_a_fraction(self):
        assert normalize_percentage(1).as_fraction() == Decimal("1")

    @pytest.mark.parametrize("value", [None, 0, Decimal("-5")])
    def test_missing_or_non_positive_is_none(self, value):
        assert normalize_percentage(value) is None

    def test_float_input_is_exact(self):
        assert normalize_percentage(0.75).as_fraction() == Decimal("0.75")


class TestPaymentProfile:
    def test_percentage_field_priority(self, make_driver):
        """payment_percentage wins over the legacy fields."""
        driver = make_driver(
            payment_percentage=Decimal("80"),
            pay_percentage=Decimal("70"),
            rate_or_split=Decimal("0.60"),
        )
        assert PaymentProfile.from_driver(driver).split == Decimal("0.80")

    def test_falls_back_to_legacy_fields(self, make_driver):
        driver = make_driver(payment_percentage=None, pay_percentage=None, rate_or_split=Decimal("0.65"))
        assert PaymentProfile.from_driver(driver).split == Decimal("0.65")

    def test_zero_percentage_is_skipped(self, make_driver):
        driver = make_driver(payment_percentage=Decimal("0"), pay_percentage=Decimal("75"))
        assert PaymentProfile.from_driver(driver).split == Decimal("0.75")

    def test_unknown_driver_type_is_company(self, make_driver):
        driver = make_driver(driver_type="Lease")
        assert PaymentProfile.from_driver(driver).driver_type == DriverType.COMPANY

    def test_owner_operator_always_uses_percentage(self, make_driver):
        driver = make_driver(payment_type="per_mile", per_mile_rate=Decimal("0.60"))
        assert PaymentProfile.from_driver(driver).uses_percentage is True

    def test_company_per_mile_driver(self, make_driver):
        driver = make_driver(
            driver_type="Company",
            payment_type="per_mile",
            payment_percentage=None,
            per_mile_rate=Decimal("0.55"),
        )
        profile = PaymentProfile.from_driver(driver)
        assert profile.uses_percentage is False
        assert profile.payment_type == PaymentType.PER_MILE
        assert profile.per_mile_rate == Decimal("0.55")

    def test_no_configuration(self, make_driver):
        driver = make_driver(driver_type="Company", payment_type=None, payment_percentage=None)
        profile = PaymentProfile.from_driver(driver)
        assert profile.has_configuration is False
        assert profile.split == Decimal("0")
