"""Assignment gateway protocol and normalized assignment summary."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Protocol, runtime_checkable
from uuid import UUID

COMPLETED_STATUS = "COMPLETED"
UNPAID_STATUS = "UNPAID"


class AssignmentLockStage(str, Enum):
    """How firmly an assignment is held by a payment."""

    RESERVED = "RESERVED"  # attached to a DRAFT payment
    LOCKED = "LOCKED"  # payment submitted or approved
    PAID = "PAID"  # payment recorded


class EligibilityPredicate(str, Enum):
    """The independent conditions an assignment must meet to be attached."""

    COMPLETED = "completed"
    EVALUATED = "evaluated"
    NOT_LINKED = "not_linked_to_other_payment"
    UNPAID = "unpaid"
    NOT_ALREADY_IN_PAYMENT = "not_already_in_payment"


@dataclass(frozen=True)
class AssignmentSummary:
    """One assignment as seen by the ledger, whatever the source's field names."""

    assignment_id: UUID
    employee_id: UUID
    employee_name: str | None
    assignment_status: str
    evaluation_count: int
    gross_amount: Decimal
    employee_code: str | None = None
    pf_account_id: str | None = None
    work_activity_id: UUID | None = None
    activity_name: str | None = None
    assignment_date: date | None = None
    completion_percentage: Decimal | None = None
    rate: Decimal | None = None
    voluntary_pf_amount: Decimal = Decimal("0")
    payment_status: str = UNPAID_STATUS
    locked_by_payment_id: UUID | None = None
    lock_stage: AssignmentLockStage | None = None

    @property
    def is_completed(self) -> bool:
        return self.assignment_status.upper() == COMPLETED_STATUS

    @property
    def has_evaluation(self) -> bool:
        return self.evaluation_count > 0

    @property
    def is_unpaid(self) -> bool:
        return self.payment_status.upper() == UNPAID_STATUS

    def is_linked_elsewhere(self, payment_id: UUID | None = None) -> bool:
        return (
            self.locked_by_payment_id is not None
            and self.locked_by_payment_id != payment_id
        )

    def failed_predicates(self, payment_id: UUID | None = None) -> list[EligibilityPredicate]:
        """Every attach precondition this assignment fails, in check order."""
        failed = []
        if not self.is_completed:
            failed.append(EligibilityPredicate.COMPLETED)
        if not self.has_evaluation:
            failed.append(EligibilityPredicate.EVALUATED)
        if self.is_linked_elsewhere(payment_id):
            failed.append(EligibilityPredicate.NOT_LINKED)
        if not self.is_unpaid:
            failed.append(EligibilityPredicate.UNPAID)
        return failed

    def is_eligible_for(self, payment_id: UUID | None = None) -> bool:
        return not self.failed_predicates(payment_id)


@runtime_checkable
class AssignmentGateway(Protocol):
    """Source of work assignments and the cross-payment lock on them.

    lock() is idempotent for the holding payment and raises
    NotEligibleError when another payment holds the assignment. It may
    move the lock between stages for the same payment. unlock() is
    idempotent.
    """

    async def list_eligible_assignments(
        self, start_date: date, end_date: date
    ) -> list[AssignmentSummary]:
        """Assignments in the range that are completed, evaluated, unlocked and unpaid."""
        ...

    async def get_assignment(self, assignment_id: UUID) -> AssignmentSummary | None:
        """Fetch one assignment, or None if it does not exist."""
        ...

    async def lock(
        self,
        assignment_id: UUID,
        payment_id: UUID,
        stage: AssignmentLockStage = AssignmentLockStage.RESERVED,
    ) -> None:
        """Hold the assignment for a payment at the given stage."""
        ...

    async def unlock(self, assignment_id: UUID) -> None:
        """Release the assignment."""
        ...
