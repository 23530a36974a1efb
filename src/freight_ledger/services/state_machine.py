"""Status enums and transition tables for ledger entities."""

from __future__ import annotations

from enum import Enum
from typing import ClassVar

from freight_ledger.calculators.types import InvoiceStatus
from freight_ledger.exceptions import InvalidStateTransition

__all__ = [
    "AdjustmentStateMachine",
    "AdjustmentStatus",
    "InvoiceStateMachine",
    "InvoiceStatus",
    "SettlementStateMachine",
    "SettlementStatus",
]


class SettlementStatus(str, Enum):
    """Settlement status values."""

    DRAFT = "draft"
    PENDING = "pending"
    PROCESSED = "processed"
    PAID = "paid"
    VOID = "void"


class AdjustmentStatus(str, Enum):
    """Adjustment status values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPLIED = "applied"


def status_value(status: str) -> str:
    """Plain string for a status given as an enum member or a string."""
    return getattr(status, "value", status)


class _StateMachine:
    ENTITY: ClassVar[str] = ""
    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidStateTransition if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransition(
                cls.ENTITY, status_value(from_status), status_value(to_status)
            )

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.VALID_TRANSITIONS.get(status)


class SettlementStateMachine(_StateMachine):
    """State machine for settlement status transitions.

    Allowed transitions:
    - draft → pending
    - pending → processed
    - pending → paid
    - processed → paid
    - any status except paid → void
    """

    ENTITY = "settlement"
    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        SettlementStatus.DRAFT: [SettlementStatus.PENDING, SettlementStatus.VOID],
        SettlementStatus.PENDING: [
            SettlementStatus.PROCESSED,
            SettlementStatus.PAID,
            SettlementStatus.VOID,
        ],
        SettlementStatus.PROCESSED: [SettlementStatus.PAID, SettlementStatus.VOID],
        SettlementStatus.PAID: [],  # Terminal state
        SettlementStatus.VOID: [],  # Terminal state
    }

    # Statuses where figures can still be recomputed
    CALCULATION_ALLOWED = {
        SettlementStatus.DRAFT,
        SettlementStatus.PENDING,
    }

    @classmethod
    def can_calculate(cls, status: str) -> bool:
        """Check if recalculation is allowed in this status."""
        return status in cls.CALCULATION_ALLOWED


class InvoiceStateMachine(_StateMachine):
    """State machine for invoice status.

    Only ``draft`` is set by hand. Leaving draft happens when the invoice
    is sent or first paid; after that the status is recomputed from
    payments and may move freely between the derived values.
    """

    ENTITY = "invoice"
    DERIVED = [
        InvoiceStatus.PENDING,
        InvoiceStatus.PARTIAL,
        InvoiceStatus.OVERDUE,
        InvoiceStatus.PAID,
    ]
    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        InvoiceStatus.DRAFT: DERIVED,
        InvoiceStatus.PENDING: DERIVED,
        InvoiceStatus.PARTIAL: DERIVED,
        InvoiceStatus.OVERDUE: DERIVED,
        InvoiceStatus.PAID: DERIVED,
    }


class AdjustmentStateMachine(_StateMachine):
    """State machine for adjustment status transitions.

    Allowed transitions:
    - pending → approved
    - pending → rejected
    - approved → applied
    """

    ENTITY = "adjustment"
    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        AdjustmentStatus.PENDING: [AdjustmentStatus.APPROVED, AdjustmentStatus.REJECTED],
        AdjustmentStatus.APPROVED: [AdjustmentStatus.APPLIED],
        AdjustmentStatus.REJECTED: [],  # Terminal state
        AdjustmentStatus.APPLIED: [],  # Terminal state
    }
