"""Append-only payment history.

History rows are never updated. They are deleted only together with the
DRAFT payment they describe.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, object_session, relationship

from payroll_ledger.exceptions import ImmutabilityViolationError
from payroll_ledger.models.base import Base, utcnow

if TYPE_CHECKING:
    from payroll_ledger.models.payment import Payment

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    """Kinds of state-affecting operations recorded in history."""

    CREATED = "CREATED"
    LINE_ITEM_ADDED = "LINE_ITEM_ADDED"
    LINE_ITEM_REMOVED = "LINE_ITEM_REMOVED"
    LINE_ITEM_UPDATED = "LINE_ITEM_UPDATED"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    DOCUMENT_ADDED = "DOCUMENT_ADDED"
    DOCUMENT_REMOVED = "DOCUMENT_REMOVED"
    REMARKS_UPDATED = "REMARKS_UPDATED"
    REEVALUATED = "REEVALUATED"


class PaymentHistory(Base):
    """Immutable audit record of one operation on a payment."""

    __tablename__ = "payment_history"

    history_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payment_id: Mapped[UUID] = mapped_column(
        ForeignKey("payment.payment_id", ondelete="CASCADE"),
        nullable=False,
    )
    change_type: Mapped[str] = mapped_column(String(32), nullable=False)
    previous_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    previous_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    new_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    change_description: Mapped[str] = mapped_column(Text, nullable=False)
    changed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "change_type IN ("
            + ", ".join(f"'{c.value}'" for c in ChangeType)
            + ")",
            name="payment_history_change_type_check",
        ),
        UniqueConstraint("payment_id", "sequence", name="payment_history_sequence_uq"),
    )

    # Relationships
    payment: Mapped[Payment] = relationship(back_populates="history")


def _owner_is_being_deleted(session: Session | None, target: PaymentHistory) -> bool:
    if session is None:
        return False
    from payroll_ledger.models.payment import Payment

    return any(
        isinstance(obj, Payment) and obj.payment_id == target.payment_id
        for obj in session.deleted
    )


def _block_history_update(mapper: Any, connection: Any, target: PaymentHistory) -> None:
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    logger.error(
        "Blocked update of payment history %s", target.history_id,
        extra={"payment_id": str(target.payment_id)},
    )
    raise ImmutabilityViolationError("PaymentHistory", target.history_id, "update")


def _block_history_delete(mapper: Any, connection: Any, target: PaymentHistory) -> None:
    if _owner_is_being_deleted(object_session(target), target):
        return
    logger.error(
        "Blocked delete of payment history %s", target.history_id,
        extra={"payment_id": str(target.payment_id)},
    )
    raise ImmutabilityViolationError("PaymentHistory", target.history_id, "delete")


def _check_history_before_flush(session: Session, flush_context: Any, instances: Any) -> None:
    for obj in session.deleted:
        if isinstance(obj, PaymentHistory) and not _owner_is_being_deleted(session, obj):
            raise ImmutabilityViolationError("PaymentHistory", obj.history_id, "delete")


event.listen(PaymentHistory, "before_update", _block_history_update)
event.listen(PaymentHistory, "before_delete", _block_history_delete)
event.listen(Session, "before_flush", _check_history_before_flush)
