"""Payment state machine with transition and operation validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from payroll_ledger.exceptions import InvalidStateError

if TYPE_CHECKING:
    from payroll_ledger.models import Payment


class PaymentStatus(str, Enum):
    """Payment status values."""

    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class Operation(str, Enum):
    """Lifecycle operations gated by payment status."""

    ADD_LINE_ITEM = "add line items to"
    REMOVE_LINE_ITEM = "remove line items from"
    UPDATE_DETAILS = "update"
    REEVALUATE = "re-evaluate"
    SUBMIT = "submit"
    APPROVE = "approve"
    RECORD_PAYMENT = "record payment for"
    CANCEL = "cancel"
    RELEASE_LOCKS = "release assignments held by"
    DELETE = "delete"
    ADD_DOCUMENT = "attach documents to"


class PaymentStateMachine:
    """State machine for payment status transitions.

    Allowed transitions:
    - DRAFT → PENDING_APPROVAL (submit)
    - PENDING_APPROVAL → APPROVED
    - PENDING_APPROVAL → CANCELLED
    - APPROVED → PAID
    - APPROVED → CANCELLED

    A DRAFT payment may also be deleted outright; that is not a transition.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PaymentStatus.DRAFT: [PaymentStatus.PENDING_APPROVAL],
        PaymentStatus.PENDING_APPROVAL: [PaymentStatus.APPROVED, PaymentStatus.CANCELLED],
        PaymentStatus.APPROVED: [PaymentStatus.PAID, PaymentStatus.CANCELLED],
        PaymentStatus.PAID: [],  # Terminal state
        PaymentStatus.CANCELLED: [],  # Terminal state
    }

    # Statuses in which each operation is allowed
    OPERATION_STATUSES: dict[Operation, frozenset[str]] = {
        Operation.ADD_LINE_ITEM: frozenset({PaymentStatus.DRAFT}),
        Operation.REMOVE_LINE_ITEM: frozenset({PaymentStatus.DRAFT}),
        Operation.UPDATE_DETAILS: frozenset({PaymentStatus.DRAFT}),
        Operation.REEVALUATE: frozenset({PaymentStatus.DRAFT}),
        Operation.SUBMIT: frozenset({PaymentStatus.DRAFT}),
        Operation.APPROVE: frozenset({PaymentStatus.PENDING_APPROVAL}),
        Operation.RECORD_PAYMENT: frozenset({PaymentStatus.APPROVED}),
        Operation.CANCEL: frozenset({PaymentStatus.PENDING_APPROVAL, PaymentStatus.APPROVED}),
        Operation.RELEASE_LOCKS: frozenset({PaymentStatus.CANCELLED}),
        Operation.DELETE: frozenset({PaymentStatus.DRAFT}),
        Operation.ADD_DOCUMENT: frozenset(
            {
                PaymentStatus.DRAFT,
                PaymentStatus.PENDING_APPROVAL,
                PaymentStatus.APPROVED,
                PaymentStatus.PAID,
            }
        ),
    }

    # Listing order: work in progress first
    STATUS_PRIORITY: dict[str, int] = {
        PaymentStatus.DRAFT: 0,
        PaymentStatus.PENDING_APPROVAL: 1,
        PaymentStatus.APPROVED: 2,
        PaymentStatus.PAID: 3,
        PaymentStatus.CANCELLED: 4,
    }

    # Statuses where line-item snapshot columns are authoritative
    SNAPSHOT_AUTHORITATIVE = frozenset(
        {
            PaymentStatus.PENDING_APPROVAL,
            PaymentStatus.APPROVED,
            PaymentStatus.PAID,
            PaymentStatus.CANCELLED,
        }
    )

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def is_allowed(cls, status: str, operation: Operation) -> bool:
        return status in cls.OPERATION_STATUSES[operation]

    @classmethod
    def ensure_allowed(cls, payment: Payment, operation: Operation) -> None:
        """Raise InvalidStateError unless the payment's status permits the operation."""
        if not cls.is_allowed(payment.status, operation):
            raise InvalidStateError(payment.payment_id, payment.status, operation.value)

    @classmethod
    def can_edit(cls, status: str) -> bool:
        return cls.is_allowed(status, Operation.ADD_LINE_ITEM)

    @classmethod
    def can_cancel(cls, status: str) -> bool:
        return cls.is_allowed(status, Operation.CANCEL)

    @classmethod
    def can_delete(cls, status: str) -> bool:
        return cls.is_allowed(status, Operation.DELETE)

    @classmethod
    def uses_snapshot(cls, status: str) -> bool:
        """Check if reporting should read the snapshot columns."""
        return status in cls.SNAPSHOT_AUTHORITATIVE

    @classmethod
    def validate_payment_for_transition(cls, payment: Payment, to_status: str) -> list[str]:
        """Validate a payment for a specific transition, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        from_status = payment.status

        if not cls.can_transition(from_status, to_status):
            errors.append(f"Cannot transition from '{from_status}' to '{to_status}'")
            return errors

        if to_status == PaymentStatus.PENDING_APPROVAL:
            if not payment.line_items:
                errors.append("Payment has no line items")

        elif to_status == PaymentStatus.PAID:
            if not payment.payment_date:
                errors.append("Payment date is required")
            if not (payment.reference_number or "").strip():
                errors.append("Reference number is required")

        elif to_status == PaymentStatus.CANCELLED:
            if not (payment.cancellation_reason or "").strip():
                errors.append("Cancellation reason is required")

        return errors
