"""Pytest fixtures for freight ledger unit tests.

Unit tests work on transient ORM objects; nothing here touches a database.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Callable
from uuid import uuid4

import pytest

from freight_ledger.context import TenantContext
from freight_ledger.models import Driver, Expense, Invoice, InvoicePayment, Load


@pytest.fixture
def ctx() -> TenantContext:
    return TenantContext(tenant_id="tenant-a", actor_id="dispatcher-1", actor_role="dispatcher")


@pytest.fixture
def make_driver() -> Callable[..., Driver]:
    """Build a driver; defaults to an 88% owner operator."""

    def factory(**overrides: Any) -> Driver:
        values: dict[str, Any] = {
            "driver_id": uuid4(),
            "tenant_id": "tenant-a",
            "name": "Sam Rivera",
            "driver_type": "OwnerOperator",
            "is_active": True,
            "payment_type": "percentage",
            "payment_percentage": Decimal("88"),
        }
        values.update(overrides)
        return Driver(**values)

    return factory


@pytest.fixture
def make_load() -> Callable[..., Load]:
    """Build a delivered load worth $1,000 with a POD attached."""
    counter = iter(range(1, 10_000))

    def factory(**overrides: Any) -> Load:
        number = next(counter)
        values: dict[str, Any] = {
            "load_id": uuid4(),
            "tenant_id": "tenant-a",
            "load_number": f"LD-2025-{number}",
            "status": "delivered",
            "is_locked": False,
            "customer_name": "Acme Foods",
            "rate": Decimal("1000.00"),
            "miles": Decimal("500"),
            "delivery_date": date(2025, 3, 12),
            "documents": [{"type": "POD", "name": "pod.pdf"}],
        }
        values.update(overrides)
        return Load(**values)

    return factory


@pytest.fixture
def make_expense() -> Callable[..., Expense]:
    def factory(**overrides: Any) -> Expense:
        values: dict[str, Any] = {
            "expense_id": uuid4(),
            "tenant_id": "tenant-a",
            "expense_type": "fuel",
            "amount": Decimal("100.00"),
            "status": "approved",
            "paid_by": "company",
        }
        values.update(overrides)
        return Expense(**values)

    return factory


@pytest.fixture
def make_invoice() -> Callable[..., Invoice]:
    """Build a transient invoice; ``paid`` is a list of payment amounts."""

    def factory(
        amount: str = "1000.00",
        paid: list[str] | None = None,
        due_date: date | None = date(2025, 4, 11),
        status: str = "pending",
    ) -> Invoice:
        payments = [
            InvoicePayment(
                payment_id=uuid4(),
                amount=Decimal(value),
                payment_date=date(2025, 3, 20),
                method="check",
                recorded_by="ar-clerk",
            )
            for value in paid or []
        ]
        return Invoice(
            invoice_id=uuid4(),
            tenant_id="tenant-a",
            invoice_number="INV-2025-1000",
            customer_name="Acme Foods",
            issue_date=date(2025, 3, 12),
            due_date=due_date,
            amount=Decimal(amount),
            paid_amount=sum((p.amount for p in payments), Decimal("0")),
            net_amount=Decimal(amount),
            status=status,
            created_by="ar-clerk",
            payments=payments,
        )

    return factory
