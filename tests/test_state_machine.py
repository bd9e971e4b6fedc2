"""Tests for payment state machine."""

from types import SimpleNamespace
from uuid import uuid4

import pytest

from payroll_ledger.exceptions import InvalidStateError
from payroll_ledger.services.state_machine import (
    Operation,
    PaymentStateMachine,
    PaymentStatus,
)


def payment_in(status, **fields):
    values = {
        "payment_id": uuid4(),
        "status": status,
        "line_items": [object()],
        "payment_date": None,
        "reference_number": None,
        "cancellation_reason": None,
    }
    values.update(fields)
    return SimpleNamespace(**values)


class TestPaymentStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        assert PaymentStateMachine.can_transition("DRAFT", "PENDING_APPROVAL") is True
        assert PaymentStateMachine.can_transition("PENDING_APPROVAL", "APPROVED") is True
        assert PaymentStateMachine.can_transition("PENDING_APPROVAL", "CANCELLED") is True
        assert PaymentStateMachine.can_transition("APPROVED", "PAID") is True
        assert PaymentStateMachine.can_transition("APPROVED", "CANCELLED") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't skip approval
        assert PaymentStateMachine.can_transition("DRAFT", "APPROVED") is False
        assert PaymentStateMachine.can_transition("PENDING_APPROVAL", "PAID") is False

        # A draft is deleted, never cancelled
        assert PaymentStateMachine.can_transition("DRAFT", "CANCELLED") is False

        # No going back
        assert PaymentStateMachine.can_transition("APPROVED", "PENDING_APPROVAL") is False
        assert PaymentStateMachine.can_transition("PENDING_APPROVAL", "DRAFT") is False

    def test_terminal_states(self):
        """Test PAID and CANCELLED have no successors."""
        assert PaymentStateMachine.get_next_statuses("PAID") == []
        assert PaymentStateMachine.get_next_statuses("CANCELLED") == []

    def test_only_draft_is_editable(self):
        """Test edit and delete are DRAFT-only."""
        for status in PaymentStatus:
            expected = status == PaymentStatus.DRAFT
            assert PaymentStateMachine.can_edit(status.value) is expected
            assert PaymentStateMachine.can_delete(status.value) is expected

    def test_can_cancel(self):
        """Test cancellation allowed statuses."""
        assert PaymentStateMachine.can_cancel("DRAFT") is False
        assert PaymentStateMachine.can_cancel("PENDING_APPROVAL") is True
        assert PaymentStateMachine.can_cancel("APPROVED") is True
        assert PaymentStateMachine.can_cancel("PAID") is False
        assert PaymentStateMachine.can_cancel("CANCELLED") is False

    def test_documents_allowed_until_cancelled(self):
        """Test document attachment is refused only for CANCELLED."""
        assert PaymentStateMachine.is_allowed("PAID", Operation.ADD_DOCUMENT) is True
        assert PaymentStateMachine.is_allowed("CANCELLED", Operation.ADD_DOCUMENT) is False

    def test_release_locks_only_when_cancelled(self):
        """Test lock release retries are limited to CANCELLED."""
        for status in PaymentStatus:
            expected = status == PaymentStatus.CANCELLED
            assert PaymentStateMachine.is_allowed(status.value, Operation.RELEASE_LOCKS) is expected

    def test_uses_snapshot(self):
        """Test snapshot columns are authoritative once out of DRAFT."""
        assert PaymentStateMachine.uses_snapshot("DRAFT") is False
        assert PaymentStateMachine.uses_snapshot("PENDING_APPROVAL") is True
        assert PaymentStateMachine.uses_snapshot("PAID") is True

    def test_ensure_allowed_raises(self):
        """Test ensure_allowed raises InvalidStateError with context."""
        payment = payment_in("PAID")

        with pytest.raises(InvalidStateError) as exc_info:
            PaymentStateMachine.ensure_allowed(payment, Operation.ADD_LINE_ITEM)

        assert exc_info.value.status == "PAID"
        assert exc_info.value.payment_id == payment.payment_id
        assert "add line items to" in str(exc_info.value)

    def test_validate_submit_requires_line_items(self):
        """Test submission of an empty payment is invalid."""
        errors = PaymentStateMachine.validate_payment_for_transition(
            payment_in("DRAFT", line_items=[]), PaymentStatus.PENDING_APPROVAL
        )

        assert errors == ["Payment has no line items"]

    def test_validate_paid_requires_date_and_reference(self):
        """Test recording payment needs both a date and a reference."""
        errors = PaymentStateMachine.validate_payment_for_transition(
            payment_in("APPROVED", reference_number="  "), PaymentStatus.PAID
        )

        assert "Payment date is required" in errors
        assert "Reference number is required" in errors

    def test_validate_cancel_requires_reason(self):
        """Test cancellation needs a reason."""
        errors = PaymentStateMachine.validate_payment_for_transition(
            payment_in("APPROVED"), PaymentStatus.CANCELLED
        )

        assert errors == ["Cancellation reason is required"]

    def test_validate_invalid_transition(self):
        """Test an invalid transition short-circuits other checks."""
        errors = PaymentStateMachine.validate_payment_for_transition(
            payment_in("DRAFT"), PaymentStatus.PAID
        )

        assert len(errors) == 1
        assert "Cannot transition" in errors[0]
