"""Payment service - orchestrates the payment lifecycle and line-item ledger."""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable
from uuid import UUID, uuid4

from sqlalchemy import case, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from payroll_ledger.calculators.line_builder import LineItemBuilder
from payroll_ledger.calculators.types import LineItemValues
from payroll_ledger.config import PfRates, get_settings
from payroll_ledger.database import payment_lock
from payroll_ledger.exceptions import (
    EmptyPaymentError,
    GatewayFailureError,
    InvalidStateError,
    NotEligibleError,
    NotFoundError,
    PartialUnlockError,
    ValidationError,
)
from payroll_ledger.gateway.base import (
    AssignmentGateway,
    AssignmentLockStage,
    AssignmentSummary,
    EligibilityPredicate,
)
from payroll_ledger.gateway.sql_gateway import SqlAssignmentGateway
from payroll_ledger.logging_config import LogContext
from payroll_ledger.models import ChangeType, Payment, PaymentHistory, PaymentLineItem
from payroll_ledger.models.base import utcnow
from payroll_ledger.services.compensation import call_external
from payroll_ledger.services.history_service import HistoryRecorder
from payroll_ledger.services.locking_service import LockingService
from payroll_ledger.services.state_machine import (
    Operation,
    PaymentStateMachine,
    PaymentStatus,
)
from payroll_ledger.storage.base import DocumentStorage

logger = logging.getLogger(__name__)

MIN_PAYMENT_YEAR = 2000


def default_payment_title(month: int, year: int) -> str:
    """Title naming the last Monday-to-Sunday week of the month.

    e.g. "Payments for Week ending 24-30 Jun 2024".
    """
    last_day = date(year, month, calendar.monthrange(year, month)[1])
    last_sunday = last_day - timedelta(days=(last_day.weekday() + 1) % 7)
    week_start = last_sunday - timedelta(days=6)
    return (
        f"Payments for Week ending {week_start.day:02d}-{last_sunday.day:02d} "
        f"{calendar.month_abbr[last_sunday.month]} {last_sunday.year}"
    )


def validate_period(month: int, year: int) -> None:
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise ValidationError("payment_month", f"Month must be between 1 and 12, got {month!r}")
    if not isinstance(year, int) or year < MIN_PAYMENT_YEAR:
        raise ValidationError(
            "payment_year", f"Year must be {MIN_PAYMENT_YEAR} or later, got {year!r}"
        )


def _require_text(value: str | None, field: str, label: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(field, f"{label} is required")
    return value.strip()


async def load_payment(
    session: AsyncSession,
    payment_id: UUID,
    for_update: bool = False,
    with_history: bool = False,
) -> Payment:
    """Load a payment with its line items and documents, or raise NotFoundError."""
    stmt = select(Payment).where(Payment.payment_id == payment_id)
    if with_history:
        stmt = stmt.options(selectinload(Payment.history))
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt.execution_options(populate_existing=True))
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFoundError("Payment", payment_id)
    return payment


class PaymentService:
    """Service for managing the payment lifecycle.

    Operations:
    - create_draft: new DRAFT payment, optionally with initial assignments
    - add_line_item(s) / remove_line_item: edit a DRAFT's ledger
    - reevaluate / refresh_line_item: recompute live values from the gateway
    - submit_for_approval: snapshot line items, lock assignments
    - approve, record_payment: move towards PAID
    - cancel: reopen assignments for other payments
    - release_locks: retry releases a cancellation could not complete
    - delete_draft: destroy a DRAFT and release its assignments

    Every mutating operation runs under the payment's lock and flushes
    without committing (cancel and release_locks commit before reporting a
    partial unlock).
    Gateway calls happen before local state changes, so a gateway failure
    leaves nothing to undo locally.
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: AssignmentGateway | None = None,
        rates: PfRates | None = None,
        gateway_timeout: float | None = None,
        storage: DocumentStorage | None = None,
    ):
        if rates is None or gateway_timeout is None:
            settings = get_settings()
            rates = rates or settings.pf_rates
            if gateway_timeout is None:
                gateway_timeout = settings.gateway_timeout_seconds
        self.session = session
        self.gateway = gateway if gateway is not None else SqlAssignmentGateway(session)
        self.gateway_timeout = gateway_timeout
        self.builder = LineItemBuilder(rates)
        self.locking = LockingService(self.gateway, gateway_timeout)
        self.history = HistoryRecorder(session)
        self.storage = storage

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_payment(self, payment_id: UUID) -> Payment:
        return await load_payment(self.session, payment_id)

    async def list_payments(
        self,
        status: str | None = None,
        month: int | None = None,
        year: int | None = None,
    ) -> list[Payment]:
        """Payments ordered by status priority, newest first within a status."""
        stmt = select(Payment)
        if status is not None:
            try:
                status = PaymentStatus(status.upper()).value
            except ValueError as exc:
                raise ValidationError("status", f"Unknown payment status {status!r}") from exc
            stmt = stmt.where(Payment.status == status)
        if month is not None:
            stmt = stmt.where(Payment.payment_month == month)
        if year is not None:
            stmt = stmt.where(Payment.payment_year == year)

        priority = case(
            {s.value: p for s, p in PaymentStateMachine.STATUS_PRIORITY.items()},
            value=Payment.status,
            else_=len(PaymentStateMachine.STATUS_PRIORITY),
        )
        result = await self.session.execute(
            stmt.order_by(priority, Payment.created_at.desc(), Payment.payment_id)
        )
        return list(result.scalars())

    async def get_history(self, payment_id: UUID) -> list[PaymentHistory]:
        """History entries for a payment, newest first."""
        await load_payment(self.session, payment_id)
        return await self.history.get_history(payment_id)

    async def list_eligible_assignments(
        self, payment_id: UUID, start_date: date, end_date: date
    ) -> list[AssignmentSummary]:
        """Eligible assignments in a date range that are not already on the payment."""
        if start_date > end_date:
            raise ValidationError("start_date", "start_date must not be after end_date")
        payment = await load_payment(self.session, payment_id)
        existing = set(payment.assignment_ids)
        candidates = await call_external(
            lambda: self.gateway.list_eligible_assignments(start_date, end_date),
            "list_eligible_assignments",
            self.gateway_timeout,
        )
        return [c for c in candidates if c.assignment_id not in existing]

    # ------------------------------------------------------------------
    # Draft creation and ledger edits
    # ------------------------------------------------------------------

    async def create_draft(
        self,
        month: int,
        year: int,
        title: str | None = None,
        remarks: str | None = None,
        assignment_ids: Iterable[UUID] | None = None,
        actor: str | None = None,
    ) -> Payment:
        """Create a DRAFT payment for a month, optionally attaching assignments."""
        validate_period(month, year)
        title = (title or "").strip() or default_payment_title(month, year)

        payment = Payment(
            payment_id=uuid4(),
            title=title,
            remarks=remarks,
            status=PaymentStatus.DRAFT.value,
            payment_month=month,
            payment_year=year,
            total_amount=Decimal("0.00"),
            created_by=actor,
            created_at=utcnow(),
            line_items=[],
            documents=[],
        )
        self.session.add(payment)
        await self.history.record(
            payment,
            ChangeType.CREATED,
            f"Payment created: {title}",
            changed_by=actor,
            new_status=payment.status,
            new_amount=payment.total_amount,
            remarks=remarks,
        )
        await self.session.flush()

        with LogContext.bind(actor=actor, payment_id=payment.payment_id):
            logger.info("Created draft payment for %02d/%d", month, year)
            ids = list(assignment_ids or [])
            if ids:
                async with payment_lock(self.session, payment.payment_id):
                    await self._attach(payment, ids, actor)
        return payment

    async def add_line_item(
        self, payment_id: UUID, assignment_id: UUID, actor: str | None = None
    ) -> PaymentLineItem:
        """Attach one eligible assignment to a DRAFT payment."""
        items = await self.add_line_items(payment_id, [assignment_id], actor)
        return items[0]

    async def add_line_items(
        self, payment_id: UUID, assignment_ids: Iterable[UUID], actor: str | None = None
    ) -> list[PaymentLineItem]:
        """Attach several assignments as one unit: all are added or none are."""
        with LogContext.bind(actor=actor, payment_id=payment_id):
            async with payment_lock(self.session, payment_id):
                payment = await load_payment(self.session, payment_id, for_update=True)
                PaymentStateMachine.ensure_allowed(payment, Operation.ADD_LINE_ITEM)
                return await self._attach(payment, list(assignment_ids), actor)

    async def _attach(
        self, payment: Payment, assignment_ids: list[UUID], actor: str | None
    ) -> list[PaymentLineItem]:
        ids = list(dict.fromkeys(assignment_ids))
        if not ids:
            raise ValidationError("assignment_ids", "At least one assignment is required")

        summaries = [await self._check_eligible(payment, aid) for aid in ids]
        # Amounts are validated before anything is reserved at the gateway.
        values = [self.builder.build(summary) for summary in summaries]
        reserved = await self.locking.reserve(payment.payment_id, ids)

        previous_amount = payment.total_amount
        try:
            items = [self._append_line_item(payment, v) for v in values]
            payment.recompute_total()
            names = ", ".join(sorted({s.employee_name or str(s.employee_id) for s in summaries}))
            await self.history.record(
                payment,
                ChangeType.LINE_ITEM_ADDED,
                f"Added {len(items)} assignment(s) for {names}",
                changed_by=actor,
                previous_amount=previous_amount,
                new_amount=payment.total_amount,
            )
            await self.session.flush()
        except SQLAlchemyError:
            logger.warning("Attach failed after reserving %d assignment(s); releasing", len(reserved))
            await self.locking.undo_reserve(reserved)
            raise

        logger.info(
            "Attached %d assignment(s); total %s -> %s",
            len(items), previous_amount, payment.total_amount,
        )
        return items

    async def _fetch_assignment(self, assignment_id: UUID) -> AssignmentSummary:
        summary = await call_external(
            lambda: self.gateway.get_assignment(assignment_id),
            "get_assignment",
            self.gateway_timeout,
            assignment_id,
        )
        if summary is None:
            raise NotFoundError("Assignment", assignment_id)
        return summary

    async def _check_eligible(self, payment: Payment, assignment_id: UUID) -> AssignmentSummary:
        """All four attach predicates, plus not already on this payment."""
        summary = await self._fetch_assignment(assignment_id)

        if assignment_id in payment.assignment_ids:
            raise NotEligibleError(
                assignment_id,
                EligibilityPredicate.NOT_ALREADY_IN_PAYMENT.value,
                f"Assignment {assignment_id} is already on this payment",
            )
        failed = summary.failed_predicates(payment.payment_id)
        if failed:
            raise NotEligibleError(assignment_id, failed[0].value)

        holder = await self._active_holder(assignment_id, exclude=payment.payment_id)
        if holder is not None:
            raise NotEligibleError(
                assignment_id,
                EligibilityPredicate.NOT_LINKED.value,
                f"Assignment {assignment_id} is already on payment {holder}",
            )
        return summary

    async def _active_holder(self, assignment_id: UUID, exclude: UUID) -> UUID | None:
        """A non-cancelled payment other than ``exclude`` that lists the assignment."""
        result = await self.session.execute(
            select(PaymentLineItem.payment_id)
            .join(Payment, Payment.payment_id == PaymentLineItem.payment_id)
            .where(
                PaymentLineItem.assignment_id == assignment_id,
                Payment.status != PaymentStatus.CANCELLED.value,
                Payment.payment_id != exclude,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    def _append_line_item(self, payment: Payment, values: LineItemValues) -> PaymentLineItem:
        position = max((item.position for item in payment.line_items), default=-1) + 1
        item = PaymentLineItem(
            line_item_id=uuid4(),
            payment_id=payment.payment_id,
            position=position,
            **values.column_values(),
        )
        payment.line_items.append(item)
        return item

    async def remove_line_item(
        self, payment_id: UUID, line_item_id: UUID, actor: str | None = None
    ) -> Payment:
        """Detach a line item from a DRAFT payment and release its assignment."""
        with LogContext.bind(actor=actor, payment_id=payment_id):
            async with payment_lock(self.session, payment_id):
                payment = await load_payment(self.session, payment_id, for_update=True)
                PaymentStateMachine.ensure_allowed(payment, Operation.REMOVE_LINE_ITEM)
                item = next(
                    (i for i in payment.line_items if i.line_item_id == line_item_id), None
                )
                if item is None:
                    raise NotFoundError("PaymentLineItem", line_item_id)

                released = await self.locking.release(payment_id, [item.assignment_id])

                previous_amount = payment.total_amount
                try:
                    payment.line_items.remove(item)
                    payment.recompute_total()
                    await self.history.record(
                        payment,
                        ChangeType.LINE_ITEM_REMOVED,
                        f"Removed assignment {item.assignment_id} "
                        f"({item.employee_name or item.employee_id})",
                        changed_by=actor,
                        previous_amount=previous_amount,
                        new_amount=payment.total_amount,
                    )
                    await self.session.flush()
                except SQLAlchemyError:
                    await self.locking.undo_release(payment_id, released)
                    raise

                logger.info("Removed line item %s; total %s -> %s",
                            line_item_id, previous_amount, payment.total_amount)
                return payment

    async def update_details(
        self,
        payment_id: UUID,
        title: str | None = None,
        remarks: str | None = None,
        actor: str | None = None,
    ) -> Payment:
        """Change the title and/or remarks of a DRAFT payment."""
        if title is None and remarks is None:
            raise ValidationError("title", "Nothing to update")
        with LogContext.bind(actor=actor, payment_id=payment_id):
            async with payment_lock(self.session, payment_id):
                payment = await load_payment(self.session, payment_id, for_update=True)
                PaymentStateMachine.ensure_allowed(payment, Operation.UPDATE_DETAILS)

                changes = []
                if title is not None:
                    title = _require_text(title, "title", "Title")
                    if title != payment.title:
                        changes.append(f"title '{payment.title}' -> '{title}'")
                        payment.title = title
                if remarks is not None and remarks != payment.remarks:
                    changes.append("remarks updated")
                    payment.remarks = remarks
                if not changes:
                    return payment

                await self.history.record(
                    payment,
                    ChangeType.REMARKS_UPDATED,
                    "; ".join(changes),
                    changed_by=actor,
                    remarks=payment.remarks,
                )
                await self.session.flush()
                logger.info("Updated payment details: %s", "; ".join(changes))
                return payment

    async def reevaluate(self, payment_id: UUID, actor: str | None = None) -> Payment:
        """Recompute every line item of a DRAFT from current assignment data."""
        with LogContext.bind(actor=actor, payment_id=payment_id):
            async with payment_lock(self.session, payment_id):
                payment = await load_payment(self.session, payment_id, for_update=True)
                PaymentStateMachine.ensure_allowed(payment, Operation.REEVALUATE)

                summaries = [
                    await self._fetch_assignment(item.assignment_id)
                    for item in payment.line_items
                ]
                previous_amount = payment.total_amount
                changed = 0
                for item, summary in zip(payment.line_items, summaries):
                    if self.builder.apply_live_values(item, self.builder.build(summary)):
                        changed += 1
                payment.recompute_total()

                await self.history.record(
                    payment,
                    ChangeType.REEVALUATED,
                    f"Re-evaluated {len(summaries)} line item(s); {changed} changed",
                    changed_by=actor,
                    previous_amount=previous_amount,
                    new_amount=payment.total_amount,
                )
                await self.session.flush()
                logger.info("Re-evaluated payment: %d of %d line items changed",
                            changed, len(summaries))
                return payment

    async def refresh_line_item(
        self, payment_id: UUID, line_item_id: UUID, actor: str | None = None
    ) -> PaymentLineItem:
        """Recompute one line item of a DRAFT from current assignment data."""
        with LogContext.bind(actor=actor, payment_id=payment_id):
            async with payment_lock(self.session, payment_id):
                payment = await load_payment(self.session, payment_id, for_update=True)
                PaymentStateMachine.ensure_allowed(payment, Operation.REEVALUATE)
                item = next(
                    (i for i in payment.line_items if i.line_item_id == line_item_id), None
                )
                if item is None:
                    raise NotFoundError("PaymentLineItem", line_item_id)

                summary = await self._fetch_assignment(item.assignment_id)
                previous_amount = payment.total_amount
                changed = self.builder.apply_live_values(item, self.builder.build(summary))
                if not changed:
                    return item
                payment.recompute_total()
                await self.history.record(
                    payment,
                    ChangeType.LINE_ITEM_UPDATED,
                    f"Line item for assignment {item.assignment_id} updated: "
                    + ", ".join(changed),
                    changed_by=actor,
                    previous_amount=previous_amount,
                    new_amount=payment.total_amount,
                )
                await self.session.flush()
                return item

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def _apply_transition(self, payment: Payment, to_status: PaymentStatus) -> str:
        errors = PaymentStateMachine.validate_payment_for_transition(payment, to_status)
        if errors:
            raise InvalidStateError(
                payment.payment_id, payment.status, f"move to {to_status.value}", "; ".join(errors)
            )
        from_status = payment.status
        payment.status = to_status.value
        return from_status

    async def submit_for_approval(
        self, payment_id: UUID, remarks: str | None = None, actor: str | None = None
    ) -> Payment:
        """Freeze line-item snapshots, lock every assignment, move to PENDING_APPROVAL."""
        with LogContext.bind(actor=actor, payment_id=payment_id):
            async with payment_lock(self.session, payment_id):
                payment = await load_payment(self.session, payment_id, for_update=True)
                PaymentStateMachine.ensure_allowed(payment, Operation.SUBMIT)
                if not payment.line_items:
                    raise EmptyPaymentError(payment_id)

                promoted = await self.locking.promote(
                    payment_id,
                    payment.assignment_ids,
                    AssignmentLockStage.LOCKED,
                    fallback=AssignmentLockStage.RESERVED,
                )
                try:
                    now = utcnow()
                    for item in payment.line_items:
                        item.take_snapshot(now)
                    payment.recompute_total()
                    from_status = self._apply_transition(payment, PaymentStatus.PENDING_APPROVAL)
                    payment.submitted_by = actor
                    payment.submitted_at = now
                    if remarks:
                        payment.remarks = (
                            f"{payment.remarks}\n{remarks}" if payment.remarks else remarks
                        )
                    await self.history.record(
                        payment,
                        ChangeType.SUBMITTED,
                        f"Submitted for approval with {len(payment.line_items)} line item(s)",
                        changed_by=actor,
                        previous_status=from_status,
                        new_status=payment.status,
                        previous_amount=payment.total_amount,
                        new_amount=payment.total_amount,
                        remarks=remarks,
                    )
                    await self.session.flush()
                except SQLAlchemyError:
                    await self.locking.undo_promote(
                        payment_id, promoted, AssignmentLockStage.RESERVED
                    )
                    raise

                logger.info("Submitted payment for approval (total %s)", payment.total_amount)
                return payment

    async def approve(
        self, payment_id: UUID, remarks: str | None = None, actor: str | None = None
    ) -> Payment:
        with LogContext.bind(actor=actor, payment_id=payment_id):
            async with payment_lock(self.session, payment_id):
                payment = await load_payment(self.session, payment_id, for_update=True)
                PaymentStateMachine.ensure_allowed(payment, Operation.APPROVE)

                from_status = self._apply_transition(payment, PaymentStatus.APPROVED)
                payment.approved_by = actor
                payment.approved_at = utcnow()
                await self.history.record(
                    payment,
                    ChangeType.APPROVED,
                    "Payment approved",
                    changed_by=actor,
                    previous_status=from_status,
                    new_status=payment.status,
                    previous_amount=payment.total_amount,
                    new_amount=payment.total_amount,
                    remarks=remarks,
                )
                await self.session.flush()
                logger.info("Approved payment")
                return payment

    async def record_payment(
        self,
        payment_id: UUID,
        payment_date: date | None,
        reference_number: str | None,
        remarks: str | None = None,
        actor: str | None = None,
    ) -> Payment:
        """Record the money transfer for an APPROVED payment and mark assignments paid."""
        with LogContext.bind(actor=actor, payment_id=payment_id):
            async with payment_lock(self.session, payment_id):
                payment = await load_payment(self.session, payment_id, for_update=True)
                PaymentStateMachine.ensure_allowed(payment, Operation.RECORD_PAYMENT)
                if payment_date is None:
                    raise ValidationError("payment_date", "Payment date is required")
                if isinstance(payment_date, datetime):
                    payment_date = payment_date.date()
                reference_number = _require_text(
                    reference_number, "reference_number", "Reference number"
                )

                promoted = await self.locking.promote(
                    payment_id,
                    payment.assignment_ids,
                    AssignmentLockStage.PAID,
                    fallback=AssignmentLockStage.LOCKED,
                )
                try:
                    payment.payment_date = payment_date
                    payment.reference_number = reference_number
                    from_status = self._apply_transition(payment, PaymentStatus.PAID)
                    payment.paid_by = actor
                    payment.paid_at = utcnow()
                    await self.history.record(
                        payment,
                        ChangeType.PAID,
                        f"Payment recorded on {payment_date.isoformat()} "
                        f"with reference {reference_number}",
                        changed_by=actor,
                        previous_status=from_status,
                        new_status=payment.status,
                        previous_amount=payment.total_amount,
                        new_amount=payment.total_amount,
                        remarks=remarks,
                    )
                    await self.session.flush()
                except SQLAlchemyError:
                    await self.locking.undo_promote(
                        payment_id, promoted, AssignmentLockStage.LOCKED
                    )
                    raise

                logger.info("Recorded payment %s on %s", reference_number, payment_date)
                return payment

    async def cancel(
        self, payment_id: UUID, cancellation_reason: str | None, actor: str | None = None
    ) -> Payment:
        """Cancel a submitted or approved payment and release its assignments.

        A cancellation is never reverted. If some assignments cannot be
        released the cancellation is committed and PartialUnlockError names
        the assignments that remain locked.
        """
        with LogContext.bind(actor=actor, payment_id=payment_id):
            async with payment_lock(self.session, payment_id):
                payment = await load_payment(self.session, payment_id, for_update=True)
                PaymentStateMachine.ensure_allowed(payment, Operation.CANCEL)
                reason = _require_text(
                    cancellation_reason, "cancellation_reason", "Cancellation reason"
                )

                payment.cancellation_reason = reason
                from_status = self._apply_transition(payment, PaymentStatus.CANCELLED)
                payment.cancelled_by = actor
                payment.cancelled_at = utcnow()
                await self.history.record(
                    payment,
                    ChangeType.CANCELLED,
                    f"Payment cancelled: {reason}",
                    changed_by=actor,
                    previous_status=from_status,
                    new_status=payment.status,
                    previous_amount=payment.total_amount,
                    new_amount=payment.total_amount,
                    remarks=reason,
                )
                await self.session.flush()

                still_locked = await self.locking.release_best_effort(payment.assignment_ids)
                if still_locked:
                    logger.error(
                        "Payment cancelled but %d assignment(s) remain locked: %s",
                        len(still_locked), ", ".join(str(a) for a in still_locked),
                    )
                    await self.session.commit()
                    raise PartialUnlockError(payment_id, still_locked)

                logger.info("Cancelled payment; released %d assignment(s)",
                            len(payment.line_items))
                return payment

    async def release_locks(self, payment_id: UUID, actor: str | None = None) -> list[UUID]:
        """Retry releasing the assignments a CANCELLED payment still holds.

        Only assignments whose lock still names this payment are touched, so
        ones already re-attached elsewhere keep their new holder. Returns the
        released ids; raises PartialUnlockError (after committing what was
        released) if some remain locked.
        """
        with LogContext.bind(actor=actor, payment_id=payment_id):
            async with payment_lock(self.session, payment_id):
                payment = await load_payment(self.session, payment_id, for_update=True)
                PaymentStateMachine.ensure_allowed(payment, Operation.RELEASE_LOCKS)

                held = []
                for aid in payment.assignment_ids:
                    summary = await self._fetch_assignment(aid)
                    if summary.locked_by_payment_id == payment_id:
                        held.append(aid)

                still_locked = await self.locking.release_best_effort(held)
                released = [aid for aid in held if aid not in still_locked]
                if still_locked:
                    logger.error(
                        "Released %d assignment(s); %d remain locked: %s",
                        len(released), len(still_locked),
                        ", ".join(str(a) for a in still_locked),
                    )
                    await self.session.commit()
                    raise PartialUnlockError(payment_id, still_locked)

                logger.info("Released %d assignment(s) held by cancelled payment", len(released))
                return released

    async def delete_draft(self, payment_id: UUID, actor: str | None = None) -> None:
        """Destroy a DRAFT payment, its line items, documents and history.

        Stored document content is removed after the rows are gone; a
        content delete that fails is logged and leaves an orphaned object
        rather than undoing the deletion.
        """
        with LogContext.bind(actor=actor, payment_id=payment_id):
            async with payment_lock(self.session, payment_id):
                payment = await load_payment(
                    self.session, payment_id, for_update=True, with_history=True
                )
                PaymentStateMachine.ensure_allowed(payment, Operation.DELETE)

                released = await self.locking.release(payment_id, payment.assignment_ids)
                storage_keys = [doc.storage_key for doc in payment.documents]
                try:
                    await self.session.delete(payment)
                    await self.session.flush()
                except SQLAlchemyError:
                    await self.locking.undo_release(payment_id, released)
                    raise

                await self._purge_documents(storage_keys)
                logger.info("Deleted draft payment; released %d assignment(s)", len(released))

    async def _purge_documents(self, storage_keys: list[str]) -> None:
        if self.storage is None:
            return
        for key in storage_keys:
            try:
                await call_external(
                    lambda: self.storage.delete(key), "delete document", self.gateway_timeout
                )
            except GatewayFailureError as exc:
                logger.warning("Orphaned document content %s: %s", key, exc)
