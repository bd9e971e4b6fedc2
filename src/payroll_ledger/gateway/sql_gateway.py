"""Assignment gateway backed by the work_assignment table."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.exceptions import NotEligibleError, NotFoundError
from payroll_ledger.gateway.base import (
    COMPLETED_STATUS,
    UNPAID_STATUS,
    AssignmentLockStage,
    AssignmentSummary,
    EligibilityPredicate,
)
from payroll_ledger.models import WorkAssignment
from payroll_ledger.models.base import utcnow

logger = logging.getLogger(__name__)


def to_summary(row: WorkAssignment) -> AssignmentSummary:
    evaluation_count = row.evaluation_count
    if evaluation_count == 0 and row.last_evaluated_at is not None:
        evaluation_count = 1
    return AssignmentSummary(
        assignment_id=row.assignment_id,
        employee_id=row.employee_id,
        employee_name=row.employee_name,
        employee_code=row.employee_code,
        pf_account_id=row.pf_account_id,
        work_activity_id=row.work_activity_id,
        activity_name=row.activity_name,
        assignment_status=row.status,
        evaluation_count=evaluation_count,
        assignment_date=row.assignment_date,
        completion_percentage=row.completion_percentage,
        rate=row.rate,
        gross_amount=row.calculated_amount or Decimal("0"),
        voluntary_pf_amount=row.voluntary_pf_amount,
        payment_status=row.payment_status,
        locked_by_payment_id=row.locked_by_payment_id,
        lock_stage=AssignmentLockStage(row.lock_stage) if row.lock_stage else None,
    )


class SqlAssignmentGateway:
    """Reads assignments and holds them with conditional UPDATEs.

    Two payments racing for one assignment both issue the same guarded
    UPDATE; the database lets exactly one of them match the row.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_eligible_assignments(
        self, start_date: date, end_date: date
    ) -> list[AssignmentSummary]:
        result = await self.session.execute(
            select(WorkAssignment)
            .where(
                WorkAssignment.assignment_date >= start_date,
                WorkAssignment.assignment_date <= end_date,
                WorkAssignment.status == COMPLETED_STATUS,
                or_(
                    WorkAssignment.evaluation_count > 0,
                    WorkAssignment.last_evaluated_at.is_not(None),
                ),
                WorkAssignment.locked_by_payment_id.is_(None),
                WorkAssignment.payment_status == UNPAID_STATUS,
            )
            .order_by(
                WorkAssignment.employee_name,
                WorkAssignment.assignment_date,
                WorkAssignment.assignment_id,
            )
            .execution_options(populate_existing=True)
        )
        return [to_summary(row) for row in result.scalars()]

    async def get_assignment(self, assignment_id: UUID) -> AssignmentSummary | None:
        result = await self.session.execute(
            select(WorkAssignment)
            .where(WorkAssignment.assignment_id == assignment_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return to_summary(row) if row is not None else None

    async def lock(
        self,
        assignment_id: UUID,
        payment_id: UUID,
        stage: AssignmentLockStage = AssignmentLockStage.RESERVED,
    ) -> None:
        stage = AssignmentLockStage(stage)
        result = await self.session.execute(
            update(WorkAssignment)
            .where(
                WorkAssignment.assignment_id == assignment_id,
                or_(
                    WorkAssignment.locked_by_payment_id == payment_id,
                    and_(
                        WorkAssignment.locked_by_payment_id.is_(None),
                        WorkAssignment.payment_status == UNPAID_STATUS,
                    ),
                ),
            )
            .values(
                locked_by_payment_id=payment_id,
                lock_stage=stage.value,
                locked_at=utcnow(),
                payment_status="PAID" if stage == AssignmentLockStage.PAID else UNPAID_STATUS,
            )
            .execution_options(synchronize_session=False)
        )
        if (result.rowcount or 0) == 1:
            logger.debug("Assignment %s %s by payment %s", assignment_id, stage.value, payment_id)
            return

        current = await self.get_assignment(assignment_id)
        if current is None:
            raise NotFoundError("Assignment", assignment_id)
        if current.is_linked_elsewhere(payment_id):
            raise NotEligibleError(
                assignment_id,
                EligibilityPredicate.NOT_LINKED.value,
                f"Assignment {assignment_id} is held by payment {current.locked_by_payment_id}",
            )
        raise NotEligibleError(assignment_id, EligibilityPredicate.UNPAID.value)

    async def unlock(self, assignment_id: UUID) -> None:
        result = await self.session.execute(
            update(WorkAssignment)
            .where(
                WorkAssignment.assignment_id == assignment_id,
                or_(
                    WorkAssignment.lock_stage.is_(None),
                    WorkAssignment.lock_stage != AssignmentLockStage.PAID.value,
                ),
            )
            .values(locked_by_payment_id=None, lock_stage=None, locked_at=None)
            .execution_options(synchronize_session=False)
        )
        if (result.rowcount or 0) == 1:
            return

        current = await self.get_assignment(assignment_id)
        if current is None:
            raise NotFoundError("Assignment", assignment_id)
        raise NotEligibleError(
            assignment_id,
            EligibilityPredicate.UNPAID.value,
            f"Assignment {assignment_id} is paid and cannot be released",
        )
