"""Tests for gateway failures, timeouts and compensation."""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_ledger.config import PfRates
from payroll_ledger.exceptions import (
    GatewayFailureError,
    InvalidStateError,
    NotEligibleError,
    PartialUnlockError,
    ValidationError,
)
from payroll_ledger.gateway import AssignmentLockStage, SqlAssignmentGateway
from payroll_ledger.services import LockingService, PaymentService
from payroll_ledger.services.compensation import call_external, run_all_or_compensate


class FlakyGateway:
    """SQL gateway that fails or stalls on chosen assignments."""

    def __init__(self, inner: SqlAssignmentGateway):
        self.inner = inner
        self.fail_lock: set = set()
        self.fail_lock_stage: AssignmentLockStage | None = None
        self.fail_unlock: set = set()
        self.stall: set = set()

    async def list_eligible_assignments(self, start_date, end_date):
        return await self.inner.list_eligible_assignments(start_date, end_date)

    async def get_assignment(self, assignment_id):
        return await self.inner.get_assignment(assignment_id)

    async def lock(self, assignment_id, payment_id, stage=AssignmentLockStage.RESERVED):
        if assignment_id in self.stall:
            await asyncio.sleep(5)
        if assignment_id in self.fail_lock and self.fail_lock_stage in (None, stage):
            raise ConnectionError("work-tracking service unavailable")
        await self.inner.lock(assignment_id, payment_id, stage)

    async def unlock(self, assignment_id):
        if assignment_id in self.fail_unlock:
            raise ConnectionError("work-tracking service unavailable")
        await self.inner.unlock(assignment_id)


@pytest.fixture
def flaky(gateway):
    return FlakyGateway(gateway)


@pytest.fixture
def flaky_service(session, flaky, storage):
    return PaymentService(
        session,
        gateway=flaky,
        rates=PfRates(),
        gateway_timeout=0.2,
        storage=storage,
    )


class TestCallExternal:
    """Test collaborator call wrapping."""

    async def test_timeout_becomes_gateway_failure(self):
        """Test a slow call raises GatewayFailureError."""

        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(GatewayFailureError) as exc_info:
            await call_external(slow, "lock", 0.01)

        assert "timed out" in exc_info.value.message

    async def test_ledger_errors_pass_through(self):
        """Test typed errors are not rewrapped."""

        async def refuse():
            raise NotEligibleError(uuid4(), "unpaid")

        with pytest.raises(NotEligibleError):
            await call_external(refuse, "lock", 1)

    async def test_unexpected_error_wrapped(self):
        """Test arbitrary exceptions become GatewayFailureError."""
        aid = uuid4()

        async def broken():
            raise RuntimeError("socket closed")

        with pytest.raises(GatewayFailureError) as exc_info:
            await call_external(broken, "unlock", 1, aid)

        assert exc_info.value.assignment_id == aid
        assert isinstance(exc_info.value.__cause__, RuntimeError)


class TestRunAllOrCompensate:
    """Test batch compensation."""

    async def test_compensates_in_reverse(self):
        """Test earlier successes are undone newest first."""
        keys = [uuid4() for _ in range(3)]
        undone = []

        async def action(key):
            if key == keys[2]:
                raise GatewayFailureError("lock", "boom", assignment_id=key)

        async def compensate(key):
            undone.append(key)

        with pytest.raises(GatewayFailureError) as exc_info:
            await run_all_or_compensate(keys, action, compensate, "reserve")

        assert undone == [keys[1], keys[0]]
        assert exc_info.value.rolled_back == [keys[1], keys[0]]

    async def test_failed_compensation_reported(self):
        """Test uncompensated keys are named in a new error."""
        keys = [uuid4() for _ in range(3)]

        async def action(key):
            if key == keys[2]:
                raise GatewayFailureError("lock", "boom")

        async def compensate(key):
            if key == keys[0]:
                raise GatewayFailureError("unlock", "also boom")

        with pytest.raises(GatewayFailureError) as exc_info:
            await run_all_or_compensate(keys, action, compensate, "reserve")

        assert exc_info.value.uncompensated == [keys[0]]
        assert exc_info.value.rolled_back == [keys[1]]


class TestLockingService:
    """Test locking service batches."""

    async def test_release_best_effort_reports_failures(self, flaky, make_assignment):
        """Test release continues past failures and returns what stayed locked."""
        pid = uuid4()
        rows = [await make_assignment() for _ in range(3)]
        for wa in rows:
            await flaky.lock(wa.assignment_id, pid)
        flaky.fail_unlock = {rows[1].assignment_id}

        still_locked = await LockingService(flaky, 1).release_best_effort(
            [wa.assignment_id for wa in rows]
        )

        assert still_locked == [rows[1].assignment_id]


class TestServiceCompensation:
    """Test the payment service leaves no half-applied state."""

    async def test_attach_failure_rolls_back_reservations(
        self, flaky_service, flaky, make_assignment, refresh
    ):
        """Test a failed lock on the third assignment releases the first two."""
        rows = [await make_assignment() for _ in range(3)]
        flaky.fail_lock = {rows[2].assignment_id}
        payment = await flaky_service.create_draft(6, 2024)

        with pytest.raises(GatewayFailureError) as exc_info:
            await flaky_service.add_line_items(
                payment.payment_id, [wa.assignment_id for wa in rows]
            )

        assert exc_info.value.assignment_id == rows[2].assignment_id
        assert set(exc_info.value.rolled_back) == {rows[0].assignment_id, rows[1].assignment_id}
        assert payment.line_items == []
        assert payment.total_amount == Decimal("0")
        for wa in rows:
            await refresh(wa)
            assert wa.locked_by_payment_id is None

    async def test_attach_timeout(self, flaky_service, flaky, make_assignment, refresh):
        """Test a stalled gateway times out and leaves nothing reserved."""
        first = await make_assignment()
        slow = await make_assignment()
        flaky.stall = {slow.assignment_id}
        payment = await flaky_service.create_draft(6, 2024)

        with pytest.raises(GatewayFailureError) as exc_info:
            await flaky_service.add_line_items(
                payment.payment_id, [first.assignment_id, slow.assignment_id]
            )

        assert "timed out" in exc_info.value.message
        await refresh(first)
        assert first.locked_by_payment_id is None

    async def test_submit_failure_keeps_draft(
        self, flaky_service, flaky, make_assignment, refresh
    ):
        """Test a failed promotion leaves the payment DRAFT with reservations intact."""
        rows = [await make_assignment() for _ in range(2)]
        payment = await flaky_service.create_draft(
            6, 2024, assignment_ids=[wa.assignment_id for wa in rows]
        )
        flaky.fail_lock = {rows[1].assignment_id}
        flaky.fail_lock_stage = AssignmentLockStage.LOCKED

        with pytest.raises(GatewayFailureError):
            await flaky_service.submit_for_approval(payment.payment_id)

        assert payment.status == "DRAFT"
        assert all(not item.has_snapshot for item in payment.line_items)
        for wa in rows:
            await refresh(wa)
            assert wa.lock_stage == "RESERVED"
            assert wa.locked_by_payment_id == payment.payment_id

    async def test_record_payment_failure_keeps_approved(
        self, flaky_service, flaky, make_assignment, refresh
    ):
        """Test a failed PAID promotion leaves the payment APPROVED and assignments unpaid."""
        rows = [await make_assignment() for _ in range(2)]
        payment = await flaky_service.create_draft(
            6, 2024, assignment_ids=[wa.assignment_id for wa in rows]
        )
        await flaky_service.submit_for_approval(payment.payment_id)
        await flaky_service.approve(payment.payment_id)
        flaky.fail_lock = {rows[1].assignment_id}
        flaky.fail_lock_stage = AssignmentLockStage.PAID

        with pytest.raises(GatewayFailureError):
            await flaky_service.record_payment(payment.payment_id, date(2024, 6, 30), "UTR")

        assert payment.status == "APPROVED"
        assert payment.reference_number is None
        for wa in rows:
            await refresh(wa)
            assert wa.payment_status == "UNPAID"
            assert wa.lock_stage == "LOCKED"

    async def test_remove_failure_keeps_line_item(
        self, flaky_service, flaky, make_assignment, refresh
    ):
        """Test a failed release leaves the line item and its lock."""
        wa = await make_assignment()
        payment = await flaky_service.create_draft(6, 2024, assignment_ids=[wa.assignment_id])
        flaky.fail_unlock = {wa.assignment_id}

        with pytest.raises(GatewayFailureError):
            await flaky_service.remove_line_item(
                payment.payment_id, payment.line_items[0].line_item_id
            )

        assert payment.assignment_ids == [wa.assignment_id]
        await refresh(wa)
        assert wa.locked_by_payment_id == payment.payment_id

    async def test_delete_failure_keeps_draft(
        self, flaky_service, flaky, make_assignment, refresh
    ):
        """Test a failed release during delete re-reserves and keeps the draft."""
        rows = [await make_assignment() for _ in range(3)]
        payment = await flaky_service.create_draft(
            6, 2024, assignment_ids=[wa.assignment_id for wa in rows]
        )
        flaky.fail_unlock = {rows[2].assignment_id}

        with pytest.raises(GatewayFailureError):
            await flaky_service.delete_draft(payment.payment_id)

        kept = await flaky_service.get_payment(payment.payment_id)
        assert len(kept.line_items) == 3
        for wa in rows:
            await refresh(wa)
            assert wa.locked_by_payment_id == payment.payment_id

    async def test_cancel_partial_unlock(
        self, flaky_service, flaky, make_assignment, refresh
    ):
        """Test cancellation stands and names the assignments still locked."""
        rows = [await make_assignment() for _ in range(3)]
        payment = await flaky_service.create_draft(
            6, 2024, assignment_ids=[wa.assignment_id for wa in rows]
        )
        await flaky_service.submit_for_approval(payment.payment_id)
        flaky.fail_unlock = {rows[1].assignment_id}

        with pytest.raises(PartialUnlockError) as exc_info:
            await flaky_service.cancel(payment.payment_id, "Duplicate batch")

        assert exc_info.value.still_locked == [rows[1].assignment_id]
        assert exc_info.value.to_dict()["code"] == "PARTIAL_UNLOCK"
        cancelled = await flaky_service.get_payment(payment.payment_id)
        assert cancelled.status == "CANCELLED"
        await refresh(rows[0])
        await refresh(rows[1])
        assert rows[0].locked_by_payment_id is None
        assert rows[1].locked_by_payment_id == payment.payment_id

    async def test_invalid_amount_reserves_nothing(
        self, flaky_service, make_assignment, refresh
    ):
        """Test an assignment whose PF cannot be computed leaves no reservation behind."""
        good = await make_assignment()
        negative = await make_assignment(amount="-50.00")
        payment = await flaky_service.create_draft(6, 2024)

        with pytest.raises(ValidationError):
            await flaky_service.add_line_items(
                payment.payment_id, [good.assignment_id, negative.assignment_id]
            )

        assert payment.line_items == []
        for wa in (good, negative):
            await refresh(wa)
            assert wa.locked_by_payment_id is None
            assert wa.lock_stage is None

    async def test_release_locks_after_partial_unlock(
        self, flaky_service, flaky, make_assignment, refresh
    ):
        """Test a retry releases what a cancellation left locked."""
        rows = [await make_assignment() for _ in range(3)]
        payment = await flaky_service.create_draft(
            6, 2024, assignment_ids=[wa.assignment_id for wa in rows]
        )
        await flaky_service.submit_for_approval(payment.payment_id)
        flaky.fail_unlock = {rows[1].assignment_id}
        with pytest.raises(PartialUnlockError):
            await flaky_service.cancel(payment.payment_id, "Duplicate batch")

        with pytest.raises(PartialUnlockError) as exc_info:
            await flaky_service.release_locks(payment.payment_id)
        assert exc_info.value.still_locked == [rows[1].assignment_id]

        flaky.fail_unlock = set()
        released = await flaky_service.release_locks(payment.payment_id)

        assert released == [rows[1].assignment_id]
        for wa in rows:
            await refresh(wa)
            assert wa.locked_by_payment_id is None
        assert await flaky_service.release_locks(payment.payment_id) == []

    async def test_release_locks_leaves_new_holder(
        self, flaky_service, flaky, make_assignment, refresh
    ):
        """Test an assignment re-attached elsewhere keeps its new lock."""
        wa = await make_assignment()
        first = await flaky_service.create_draft(6, 2024, assignment_ids=[wa.assignment_id])
        await flaky_service.submit_for_approval(first.payment_id)
        await flaky_service.cancel(first.payment_id, "Wrong month")
        second = await flaky_service.create_draft(6, 2024, assignment_ids=[wa.assignment_id])

        assert await flaky_service.release_locks(first.payment_id) == []

        await refresh(wa)
        assert wa.locked_by_payment_id == second.payment_id

    async def test_release_locks_requires_cancelled(self, flaky_service, make_assignment):
        """Test only cancelled payments accept a release retry."""
        wa = await make_assignment()
        payment = await flaky_service.create_draft(6, 2024, assignment_ids=[wa.assignment_id])

        with pytest.raises(InvalidStateError):
            await flaky_service.release_locks(payment.payment_id)
