"""Per-load driver pay resolution."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from freight_ledger.calculators.pay_rate import PaymentProfile, PaymentType
from freight_ledger.calculators.types import ZERO, LoadPayEntry, PaySource, to_decimal

if TYPE_CHECKING:
    from decimal import Decimal

    from freight_ledger.models import Driver, Load

logger = logging.getLogger(__name__)


class DriverPayResolver:
    """Resolves what a driver earns for a load.

    Pay selection priority:
    1. Stored ``driver_total_gross`` on the load, used verbatim
    2. Stored ``driver_base_pay`` plus accessorials
    3. The driver's payment profile plus accessorials:
       - owner operators and percentage drivers: revenue x split
       - per-mile drivers: miles x per-mile rate
       - flat-rate drivers: the flat rate

    Accessorials (driver detention, driver layover, TONU) pass through at
    100%. Revenue is the load rate, or its grand total when no rate is set.
    There is no fallback percentage: an unresolvable profile pays zero and
    says so in the warnings.
    """

    def __init__(self, driver: Driver | None):
        self.driver = driver
        self.profile = PaymentProfile.from_driver(driver) if driver is not None else None

    def resolve(self, load: Load) -> tuple[LoadPayEntry, list[str]]:
        """Return the pay entry for a load and any warnings raised resolving it."""
        warnings: list[str] = []
        detention = to_decimal(load.driver_detention_pay)
        layover = to_decimal(load.driver_layover_pay)
        tonu = to_decimal(load.tonu_fee)

        stored_total = to_decimal(load.driver_total_gross)
        stored_base = to_decimal(load.driver_base_pay)

        if stored_total > 0:
            source = PaySource.STORED_TOTAL
            base_pay = stored_total - detention - layover - tonu
        elif stored_base > 0:
            source = PaySource.STORED_BASE
            base_pay = stored_base
        else:
            source = PaySource.PROFILE
            base_pay = self._profile_base_pay(load, warnings)

        entry = LoadPayEntry(
            load_id=load.load_id,
            load_number=load.load_number,
            pay_source=source,
            base_pay=base_pay,
            detention=detention,
            layover=layover,
            tonu=tonu,
            miles=to_decimal(load.miles),
            delivery_date=load.delivery_date,
        )
        return entry, warnings

    def total_pay(self, load: Load) -> Decimal:
        entry, _ = self.resolve(load)
        return entry.total_pay

    def _profile_base_pay(self, load: Load, warnings: list[str]) -> Decimal:
        profile = self.profile
        if profile is None:
            return self._zero(load, warnings, "no driver is assigned")

        revenue = to_decimal(load.rate) or to_decimal(load.grand_total)

        if profile.uses_percentage:
            if profile.percentage is None:
                return self._zero(load, warnings, "driver has no pay percentage configured")
            base_pay = revenue * profile.split
        elif profile.payment_type == PaymentType.PER_MILE:
            if profile.per_mile_rate == 0:
                return self._zero(load, warnings, "driver has no per-mile rate configured")
            base_pay = to_decimal(load.miles) * profile.per_mile_rate
        elif profile.payment_type == PaymentType.FLAT_RATE:
            if profile.flat_rate == 0:
                return self._zero(load, warnings, "driver has no flat rate configured")
            base_pay = profile.flat_rate
        else:
            return self._zero(load, warnings, "driver has no payment configuration")

        if base_pay == 0:
            return self._zero(load, warnings, "pay profile resolved to zero")
        return base_pay

    def _zero(self, load: Load, warnings: list[str], reason: str) -> Decimal:
        message = f"Load {load.load_number}: {reason}; base pay is 0"
        logger.warning(message)
        warnings.append(message)
        return ZERO


def calculate_driver_pay(load: Load, driver: Driver | None) -> Decimal:
    """Total driver pay for one load (base plus accessorials)."""
    return DriverPayResolver(driver).total_pay(load)
