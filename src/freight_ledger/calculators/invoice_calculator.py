"""Invoice line items and totals built from delivered loads."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any

from freight_ledger.calculators.settlement_calculator import DELIVERED_STATUSES
from freight_ledger.calculators.types import (
    InvoiceCalculation,
    InvoiceLineCandidate,
    ValidationResult,
    to_decimal,
)

if TYPE_CHECKING:
    from freight_ledger.models import Load

UNKNOWN_CUSTOMER = "unknown"


def _load_numbers(loads: Iterable[Load]) -> str:
    return ", ".join(load.load_number for load in loads)


def has_pod(load: Load) -> bool:
    """Whether a proof-of-delivery document is attached."""
    for document in load.documents or []:
        if isinstance(document, dict) and str(document.get("type", "")).lower() == "pod":
            return True
    return False


def validate_invoice_input(
    customer_name: str | None,
    loads: list[Load],
    factored: bool = False,
    factoring_fee_percent: Any = None,
    factoring_company: str | None = None,
) -> ValidationResult:
    """Collect every problem with an invoice request.

    Errors: missing customer, no loads, loads already invoiced, loads with
    neither rate nor grand total, a fee percent outside 0-100.
    Warnings: undelivered loads, delivered loads without POD, factoring
    without a company or fee.
    """
    result = ValidationResult()

    if not customer_name or not customer_name.strip():
        result.errors.append("Customer name is required")

    if not loads:
        result.errors.append("At least one load is required for invoice")
    else:
        undelivered = [load for load in loads if load.status not in DELIVERED_STATUSES]
        if undelivered:
            result.warnings.append(
                f"{len(undelivered)} load(s) are not yet delivered: {_load_numbers(undelivered)}"
            )

        invoiced = [load for load in loads if load.invoice_id is not None]
        if invoiced:
            result.errors.append(
                f"{len(invoiced)} load(s) already have invoices: {_load_numbers(invoiced)}"
            )

        missing_pod = [
            load for load in loads if load.status in DELIVERED_STATUSES and not has_pod(load)
        ]
        if missing_pod:
            result.warnings.append(
                f"{len(missing_pod)} load(s) are missing POD: {_load_numbers(missing_pod)}"
            )

        unrated = [
            load
            for load in loads
            if to_decimal(load.rate) == 0 and to_decimal(load.grand_total) == 0
        ]
        if unrated:
            result.errors.append(
                f"{len(unrated)} load(s) have no rate: {_load_numbers(unrated)}"
            )

    if factored:
        fee = to_decimal(factoring_fee_percent)
        if not factoring_company and fee == 0:
            result.warnings.append("Factoring enabled but no factoring company or fee specified")
        if fee < 0 or fee > 100:
            result.errors.append("Factoring fee percent must be between 0 and 100")

    return result


def build_line(load: Load) -> InvoiceLineCandidate:
    """Bill one load: rate plus fuel surcharge plus accessorials."""
    description = f"Load {load.load_number}"
    if load.delivery_date:
        description += f" delivered {load.delivery_date.isoformat()}"
    return InvoiceLineCandidate(
        load_id=load.load_id,
        load_number=load.load_number,
        description=description,
        base_amount=to_decimal(load.rate),
        fuel_surcharge=to_decimal(load.fsc_amount),
        detention=to_decimal(load.detention_amount),
        layover=to_decimal(load.layover_amount),
        lumper=to_decimal(load.lumper_amount),
        other_accessorials=to_decimal(load.other_accessorials),
    )


def build_invoice_calculation(
    loads: list[Load],
    factored: bool = False,
    factoring_fee_percent: Any = None,
) -> InvoiceCalculation:
    """Line items and totals. Factoring only changes ``net_amount``."""
    return InvoiceCalculation(
        lines=[build_line(load) for load in loads],
        factoring_fee_percent=to_decimal(factoring_fee_percent),
        factored=factored,
    )


def default_due_date(issue_date: date, net_terms_days: int = 30) -> date:
    return issue_date + timedelta(days=net_terms_days)


def eligible_loads_for_invoice(
    loads: Iterable[Load],
    customer_name: str | None = None,
) -> list[Load]:
    """Delivered, uninvoiced loads, optionally for one customer."""
    eligible = []
    for load in loads:
        if load.status not in DELIVERED_STATUSES:
            continue
        if load.invoice_id is not None:
            continue
        if customer_name and load.customer_name != customer_name:
            continue
        eligible.append(load)
    return eligible


def group_loads_by_customer(loads: Iterable[Load]) -> dict[str, list[Load]]:
    """Batch loads per customer for bulk invoicing."""
    grouped: dict[str, list[Load]] = {}
    for load in loads:
        grouped.setdefault(load.customer_name or UNKNOWN_CUSTOMER, []).append(load)
    return grouped

