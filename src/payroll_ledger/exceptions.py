"""Typed errors raised by the payment ledger.

Every error carries a machine-readable ``code`` plus the structured fields a
presentation layer needs to render an actionable message.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID


class PaymentLedgerError(Exception):
    """Base class for all ledger errors."""

    code: str = "PAYMENT_LEDGER_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details()}


class ValidationError(PaymentLedgerError):
    """Malformed input: blank required field, out-of-range value."""

    code = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {"field": self.field}


class EmptyPaymentError(ValidationError):
    """Submission attempted on a payment with no line items."""

    code = "EMPTY_PAYMENT"

    def __init__(self, payment_id: UUID):
        self.payment_id = payment_id
        super().__init__("line_items", f"Payment {payment_id} has no line items")

    def details(self) -> dict[str, Any]:
        return {"field": self.field, "payment_id": str(self.payment_id)}


class InvalidStateError(PaymentLedgerError):
    """Operation attempted from a status that forbids it."""

    code = "INVALID_STATE"

    def __init__(
        self,
        payment_id: UUID | None,
        status: str,
        operation: str,
        reason: str | None = None,
    ):
        self.payment_id = payment_id
        self.status = status
        self.operation = operation
        self.reason = reason
        msg = f"Cannot {operation} a payment in status '{status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

    def details(self) -> dict[str, Any]:
        return {
            "payment_id": str(self.payment_id) if self.payment_id else None,
            "status": self.status,
            "operation": self.operation,
        }


class NotEligibleError(PaymentLedgerError):
    """Assignment fails one of the attach preconditions."""

    code = "NOT_ELIGIBLE"

    def __init__(self, assignment_id: UUID, predicate: str, message: str | None = None):
        self.assignment_id = assignment_id
        self.predicate = predicate
        super().__init__(
            message or f"Assignment {assignment_id} is not eligible: {predicate}"
        )

    def details(self) -> dict[str, Any]:
        return {"assignment_id": str(self.assignment_id), "predicate": self.predicate}


class NotFoundError(PaymentLedgerError):
    """Unknown identifier."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: UUID | str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")

    def details(self) -> dict[str, Any]:
        return {"entity": self.entity, "entity_id": str(self.entity_id)}


class GatewayFailureError(PaymentLedgerError):
    """A lock, unlock or storage call failed or timed out.

    ``rolled_back`` lists the assignments whose earlier effects were
    compensated before this error was raised. ``uncompensated`` lists any
    whose compensation also failed.
    """

    code = "GATEWAY_FAILURE"

    def __init__(
        self,
        operation: str,
        message: str,
        assignment_id: UUID | None = None,
        rolled_back: list[UUID] | None = None,
        uncompensated: list[UUID] | None = None,
    ):
        self.operation = operation
        self.assignment_id = assignment_id
        self.rolled_back = list(rolled_back or [])
        self.uncompensated = list(uncompensated or [])
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "assignment_id": str(self.assignment_id) if self.assignment_id else None,
            "rolled_back": [str(a) for a in self.rolled_back],
            "uncompensated": [str(a) for a in self.uncompensated],
        }


class PartialUnlockError(GatewayFailureError):
    """Some assignments could not be unlocked; they remain locked."""

    code = "PARTIAL_UNLOCK"

    def __init__(self, payment_id: UUID, still_locked: list[UUID]):
        self.payment_id = payment_id
        self.still_locked = list(still_locked)
        super().__init__(
            "unlock",
            f"Payment {payment_id}: {len(self.still_locked)} assignment(s) remain locked",
        )

    def details(self) -> dict[str, Any]:
        return {
            **super().details(),
            "payment_id": str(self.payment_id),
            "still_locked": [str(a) for a in self.still_locked],
        }


class DocumentStorageError(GatewayFailureError):
    """The document store rejected or failed a read, write or delete."""

    code = "DOCUMENT_STORAGE_FAILURE"

    def __init__(self, operation: str, message: str):
        super().__init__(operation, message)


class ImmutabilityViolationError(PaymentLedgerError):
    """An append-only record was updated or deleted."""

    code = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity: str, entity_id: Any, operation: str):
        self.entity = entity
        self.entity_id = entity_id
        self.operation = operation
        super().__init__(f"{entity} {entity_id} is immutable; {operation} rejected")

    def details(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "entity_id": str(self.entity_id),
            "operation": self.operation,
        }
