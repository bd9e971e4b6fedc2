"""Payroll ledger services."""

from payroll_ledger.services.state_machine import Operation, PaymentStateMachine, PaymentStatus
from payroll_ledger.services.history_service import HistoryRecorder
from payroll_ledger.services.locking_service import LockingService
from payroll_ledger.services.payment_service import PaymentService
from payroll_ledger.services.document_service import DocumentService, DocumentType

__all__ = [
    "DocumentService",
    "DocumentType",
    "HistoryRecorder",
    "LockingService",
    "Operation",
    "PaymentService",
    "PaymentStateMachine",
    "PaymentStatus",
]
