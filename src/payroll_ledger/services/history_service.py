"""History recorder: append-only audit entries for payment operations."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.models import ChangeType, Payment, PaymentHistory
from payroll_ledger.models.base import utcnow

logger = logging.getLogger(__name__)


class HistoryRecorder:
    """Appends one PaymentHistory row per state-affecting operation."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _next_sequence(self, payment_id: UUID) -> int:
        result = await self.session.execute(
            select(func.max(PaymentHistory.sequence)).where(
                PaymentHistory.payment_id == payment_id
            )
        )
        current = result.scalar() or 0
        pending = [
            obj.sequence
            for obj in self.session.new
            if isinstance(obj, PaymentHistory) and obj.payment_id == payment_id
        ]
        return max([current, *pending]) + 1

    async def record(
        self,
        payment: Payment,
        change_type: ChangeType,
        description: str,
        changed_by: str | None = None,
        previous_status: str | None = None,
        new_status: str | None = None,
        previous_amount: Decimal | None = None,
        new_amount: Decimal | None = None,
        remarks: str | None = None,
    ) -> PaymentHistory:
        entry = PaymentHistory(
            payment_id=payment.payment_id,
            change_type=ChangeType(change_type).value,
            previous_status=previous_status,
            new_status=new_status,
            previous_amount=previous_amount,
            new_amount=new_amount,
            remarks=remarks,
            change_description=description,
            changed_by=changed_by,
            changed_at=utcnow(),
            sequence=await self._next_sequence(payment.payment_id),
        )
        self.session.add(entry)
        logger.debug(
            "History %s #%d for payment %s",
            entry.change_type, entry.sequence, payment.payment_id,
        )
        return entry

    async def get_history(self, payment_id: UUID) -> list[PaymentHistory]:
        """Entries for a payment, newest first."""
        result = await self.session.execute(
            select(PaymentHistory)
            .where(PaymentHistory.payment_id == payment_id)
            .order_by(PaymentHistory.sequence.desc())
        )
        return list(result.scalars())
