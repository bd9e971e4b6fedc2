"""ORM models for the payroll ledger."""

from payroll_ledger.models.assignment import WorkAssignment
from payroll_ledger.models.base import Base, TimestampMixin
from payroll_ledger.models.history import ChangeType, PaymentHistory
from payroll_ledger.models.payment import Payment, PaymentDocument, PaymentLineItem

__all__ = [
    "Base",
    "ChangeType",
    "Payment",
    "PaymentDocument",
    "PaymentHistory",
    "PaymentLineItem",
    "TimestampMixin",
    "WorkAssignment",
]
