"""Work assignment table backing the SQL assignment gateway.

Assignments are owned by the work-tracking system. This table mirrors the
fields the ledger reads plus the lock columns it writes.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_ledger.models.base import Base, TimestampMixin


class WorkAssignment(Base, TimestampMixin):
    """A unit of work performed by one employee on one activity."""

    __tablename__ = "work_assignment"

    assignment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_name: Mapped[str] = mapped_column(String(255), nullable=False)
    employee_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    pf_account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    work_activity_id: Mapped[UUID | None] = mapped_column(nullable=True)
    activity_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    assignment_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="ASSIGNED")
    evaluation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_evaluated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completion_percentage: Mapped[Decimal | None] = mapped_column(
        Numeric(7, 2), nullable=True
    )
    rate: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    calculated_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    voluntary_pf_amount: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0.00")
    )
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default="UNPAID")

    locked_by_payment_id: Mapped[UUID | None] = mapped_column(nullable=True)
    lock_stage: Mapped[str | None] = mapped_column(String(16), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "payment_status IN ('UNPAID', 'PAID')",
            name="work_assignment_payment_status_check",
        ),
        CheckConstraint(
            "lock_stage IS NULL OR lock_stage IN ('RESERVED', 'LOCKED', 'PAID')",
            name="work_assignment_lock_stage_check",
        ),
        CheckConstraint(
            "(locked_by_payment_id IS NULL) = (lock_stage IS NULL)",
            name="work_assignment_lock_consistency_check",
        ),
        Index("ix_work_assignment_date", "assignment_date"),
        Index("ix_work_assignment_locked_by", "locked_by_payment_id"),
    )
