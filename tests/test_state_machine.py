"""Tests for settlement, invoice and adjustment state machines."""

import pytest

from freight_ledger.exceptions import InvalidStateTransition
from freight_ledger.services.state_machine import (
    AdjustmentStateMachine,
    AdjustmentStatus,
    InvoiceStateMachine,
    InvoiceStatus,
    SettlementStateMachine,
    SettlementStatus,
)


class TestSettlementStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        # draft → pending
        assert SettlementStateMachine.can_transition("draft", "pending") is True

        # pending → processed, pending → paid
        assert SettlementStateMachine.can_transition("pending", "processed") is True
        assert SettlementStateMachine.can_transition("pending", "paid") is True

        # processed → paid
        assert SettlementStateMachine.can_transition("processed", "paid") is True

        # void from anything not yet paid
        for status in ("draft", "pending", "processed"):
            assert SettlementStateMachine.can_transition(status, "void") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't skip pending
        assert SettlementStateMachine.can_transition("draft", "paid") is False

        # Can't go backwards
        assert SettlementStateMachine.can_transition("processed", "pending") is False

        # Paid and void are terminal
        assert SettlementStateMachine.can_transition("paid", "void") is False
        assert SettlementStateMachine.can_transition("void", "draft") is False
        assert SettlementStateMachine.is_terminal("paid") is True
        assert SettlementStateMachine.is_terminal("void") is True

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidStateTransition) as exc_info:
            SettlementStateMachine.validate_transition("paid", SettlementStatus.VOID)

        assert exc_info.value.current_status == "paid"
        assert exc_info.value.target_status == "void"
        assert exc_info.value.to_dict()["entity_type"] == "settlement"

    def test_can_calculate(self):
        assert SettlementStateMachine.can_calculate("draft") is True
        assert SettlementStateMachine.can_calculate("pending") is True
        assert SettlementStateMachine.can_calculate("processed") is False
        assert SettlementStateMachine.can_calculate("void") is False


class TestInvoiceStateMachine:
    def test_draft_leaves_to_any_derived_status(self):
        for status in ("pending", "partial", "overdue", "paid"):
            assert InvoiceStateMachine.can_transition("draft", status) is True

    def test_nothing_returns_to_draft(self):
        for status in InvoiceStatus:
            assert InvoiceStateMachine.can_transition(status, InvoiceStatus.DRAFT) is False

    def test_paid_can_fall_back_when_recomputed(self):
        assert InvoiceStateMachine.can_transition("paid", "partial") is True


class TestAdjustmentStateMachine:
    def test_transitions(self):
        assert AdjustmentStateMachine.get_next_statuses("pending") == [
            AdjustmentStatus.APPROVED,
            AdjustmentStatus.REJECTED,
        ]
        assert AdjustmentStateMachine.can_transition("approved", "applied") is True
        assert AdjustmentStateMachine.can_transition("rejected", "approved") is False
        assert AdjustmentStateMachine.can_transition("applied", "pending") is False
