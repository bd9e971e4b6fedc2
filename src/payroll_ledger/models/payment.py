"""Payment, line item and document models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_ledger.exceptions import ImmutabilityViolationError
from payroll_ledger.models.base import Base, TimestampMixin, utcnow

if TYPE_CHECKING:
    from payroll_ledger.models.history import PaymentHistory


class Payment(Base, TimestampMixin):
    """One payroll batch for a (month, year)."""

    __tablename__ = "payment"

    payment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="DRAFT")
    payment_month: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_year: Mapped[int] = mapped_column(Integer, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))

    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True, onupdate=utcnow)
    submitted_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'PENDING_APPROVAL', 'APPROVED', 'PAID', 'CANCELLED')",
            name="payment_status_check",
        ),
        CheckConstraint(
            "payment_month BETWEEN 1 AND 12",
            name="payment_month_check",
        ),
        Index("ix_payment_status_period", "status", "payment_year", "payment_month"),
        Index("ix_payment_payment_date", "payment_date"),
    )

    # Relationships
    line_items: Mapped[list[PaymentLineItem]] = relationship(
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PaymentLineItem.position",
        lazy="selectin",
    )
    documents: Mapped[list[PaymentDocument]] = relationship(
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PaymentDocument.uploaded_at",
        lazy="selectin",
    )
    history: Mapped[list[PaymentHistory]] = relationship(
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PaymentHistory.sequence",
    )

    def recompute_total(self) -> Decimal:
        """Set total_amount to the sum of current line-item net amounts."""
        self.total_amount = sum(
            (item.net_amount for item in self.line_items), Decimal("0.00")
        )
        return self.total_amount

    @property
    def assignment_ids(self) -> list[UUID]:
        return [item.assignment_id for item in self.line_items]


class PaymentLineItem(Base, TimestampMixin):
    """One assignment's financial inclusion in a payment.

    Live columns are authoritative while the payment is DRAFT. The snapshot_*
    columns are written once at submission and are authoritative afterwards.
    """

    __tablename__ = "payment_line_item"

    line_item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payment_id: Mapped[UUID] = mapped_column(
        ForeignKey("payment.payment_id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assignment_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    pf_account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    work_activity_id: Mapped[UUID | None] = mapped_column(nullable=True)
    assignment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    rate: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)

    # Live values
    employee_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    activity_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    completion_percentage: Mapped[Decimal | None] = mapped_column(
        Numeric(7, 2), nullable=True
    )
    gross_amount: Mapped[Decimal] = mapped_column(nullable=False)
    employee_pf: Mapped[Decimal] = mapped_column(nullable=False)
    voluntary_pf: Mapped[Decimal] = mapped_column(nullable=False)
    employer_pf: Mapped[Decimal] = mapped_column(nullable=False)
    pf_amount: Mapped[Decimal] = mapped_column(nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(nullable=False)

    # Values frozen at submission
    snapshot_employee_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    snapshot_activity_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    snapshot_completion_percentage: Mapped[Decimal | None] = mapped_column(
        Numeric(7, 2), nullable=True
    )
    snapshot_gross_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    snapshot_employee_pf: Mapped[Decimal | None] = mapped_column(nullable=True)
    snapshot_voluntary_pf: Mapped[Decimal | None] = mapped_column(nullable=True)
    snapshot_employer_pf: Mapped[Decimal | None] = mapped_column(nullable=True)
    snapshot_pf_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    snapshot_net_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    snapshot_taken_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("payment_id", "assignment_id", name="payment_line_item_assignment_uq"),
        CheckConstraint("gross_amount >= 0", name="payment_line_item_gross_check"),
        Index("ix_payment_line_item_assignment", "assignment_id"),
        Index("ix_payment_line_item_employee", "employee_id"),
    )

    # Relationships
    payment: Mapped[Payment] = relationship(back_populates="line_items")

    @property
    def has_snapshot(self) -> bool:
        return self.snapshot_taken_at is not None

    def take_snapshot(self, taken_at: datetime) -> None:
        """Copy live values into the snapshot columns. Allowed once."""
        if self.has_snapshot:
            raise ImmutabilityViolationError("PaymentLineItem", self.line_item_id, "snapshot")
        self.snapshot_employee_name = self.employee_name
        self.snapshot_activity_name = self.activity_name
        self.snapshot_completion_percentage = self.completion_percentage
        self.snapshot_gross_amount = self.gross_amount
        self.snapshot_employee_pf = self.employee_pf
        self.snapshot_voluntary_pf = self.voluntary_pf
        self.snapshot_employer_pf = self.employer_pf
        self.snapshot_pf_amount = self.pf_amount
        self.snapshot_net_amount = self.net_amount
        self.snapshot_taken_at = taken_at


class PaymentDocument(Base):
    """Uploaded receipt, challan or statement attached to a payment.

    The bytes live in document storage under ``storage_key``.
    """

    __tablename__ = "payment_document"

    document_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payment_id: Mapped[UUID] = mapped_column(
        ForeignKey("payment.payment_id", ondelete="CASCADE"),
        nullable=False,
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    document_type: Mapped[str] = mapped_column(String(32), nullable=False, default="OTHER")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    storage_key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    checksum_sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    uploaded_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "document_type IN ('CHALLAN', 'RECEIPT', 'BANK_STATEMENT', 'OTHER')",
            name="payment_document_type_check",
        ),
        CheckConstraint("file_size > 0", name="payment_document_size_check"),
    )

    # Relationships
    payment: Mapped[Payment] = relationship(back_populates="documents")
