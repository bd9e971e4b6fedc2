"""Assignment locking for payment lifecycle transitions."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from functools import partial
from uuid import UUID

from payroll_ledger.exceptions import PaymentLedgerError
from payroll_ledger.gateway.base import AssignmentGateway, AssignmentLockStage
from payroll_ledger.services.compensation import (
    call_external,
    compensate_all,
    run_all_or_compensate,
)

logger = logging.getLogger(__name__)


class LockingService:
    """Service for holding and releasing assignments through the gateway.

    Lock stages follow the payment:
    1. Attaching to a DRAFT reserves the assignment
    2. Submission promotes every reservation to LOCKED
    3. Recording payment marks them PAID
    4. Removal, deletion and cancellation release them

    Every batch either completes or is compensated before the error is
    raised, except release-on-cancel which reports what stayed locked.
    The undo_* methods compensate a batch that succeeded at the gateway
    when the local write that followed it failed; they return whatever
    could not be compensated.
    """

    def __init__(self, gateway: AssignmentGateway, timeout: float | None = 10.0):
        self.gateway = gateway
        self.timeout = timeout

    async def _lock(
        self, payment_id: UUID, stage: AssignmentLockStage, assignment_id: UUID
    ) -> None:
        await call_external(
            lambda: self.gateway.lock(assignment_id, payment_id, stage),
            "lock",
            self.timeout,
            assignment_id,
        )

    async def _unlock(self, assignment_id: UUID) -> None:
        await call_external(
            lambda: self.gateway.unlock(assignment_id),
            "unlock",
            self.timeout,
            assignment_id,
        )

    async def reserve(self, payment_id: UUID, assignment_ids: Sequence[UUID]) -> list[UUID]:
        """Reserve assignments for a DRAFT payment, all or none."""
        return await run_all_or_compensate(
            assignment_ids,
            partial(self._lock, payment_id, AssignmentLockStage.RESERVED),
            self._unlock,
            "reserve",
        )

    async def promote(
        self,
        payment_id: UUID,
        assignment_ids: Sequence[UUID],
        stage: AssignmentLockStage,
        fallback: AssignmentLockStage,
    ) -> list[UUID]:
        """Move every lock to ``stage``; on failure put promoted ones back to ``fallback``."""
        return await run_all_or_compensate(
            assignment_ids,
            partial(self._lock, payment_id, stage),
            partial(self._lock, payment_id, fallback),
            f"promote to {stage.value}",
        )

    async def release(self, payment_id: UUID, assignment_ids: Sequence[UUID]) -> list[UUID]:
        """Release every assignment, or re-reserve the released ones on failure."""
        return await run_all_or_compensate(
            assignment_ids,
            self._unlock,
            partial(self._lock, payment_id, AssignmentLockStage.RESERVED),
            "release",
        )

    async def release_best_effort(self, assignment_ids: Sequence[UUID]) -> list[UUID]:
        """Release every assignment, continuing past failures.

        Returns the assignments that are still locked.
        """
        still_locked: list[UUID] = []
        for aid in assignment_ids:
            try:
                await self._unlock(aid)
            except PaymentLedgerError as exc:
                logger.error("Could not release assignment %s: %s", aid, exc)
                still_locked.append(aid)
        return still_locked

    async def undo_reserve(self, assignment_ids: Sequence[UUID]) -> list[UUID]:
        _, uncompensated = await compensate_all(list(assignment_ids), self._unlock, "reserve")
        return uncompensated

    async def undo_promote(
        self,
        payment_id: UUID,
        assignment_ids: Sequence[UUID],
        fallback: AssignmentLockStage,
    ) -> list[UUID]:
        _, uncompensated = await compensate_all(
            list(assignment_ids), partial(self._lock, payment_id, fallback), "promote"
        )
        return uncompensated

    async def undo_release(self, payment_id: UUID, assignment_ids: Sequence[UUID]) -> list[UUID]:
        _, uncompensated = await compensate_all(
            list(assignment_ids),
            partial(self._lock, payment_id, AssignmentLockStage.RESERVED),
            "release",
        )
        return uncompensated
