"""Pydantic schemas for serializing ledger results."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from payroll_ledger.services.state_machine import PaymentStateMachine, PaymentStatus


# ============================================================================
# Payment schemas
# ============================================================================


class LineItemRead(BaseModel):
    """Line item with both live and snapshot values."""

    model_config = ConfigDict(from_attributes=True)

    line_item_id: UUID
    assignment_id: UUID
    employee_id: UUID
    employee_code: str | None = None
    work_activity_id: UUID | None = None
    assignment_date: date | None = None
    rate: Decimal | None = None

    employee_name: str | None = None
    activity_name: str | None = None
    completion_percentage: Decimal | None = None
    gross_amount: Decimal
    employee_pf: Decimal
    voluntary_pf: Decimal
    employer_pf: Decimal
    pf_amount: Decimal
    net_amount: Decimal

    snapshot_employee_name: str | None = None
    snapshot_activity_name: str | None = None
    snapshot_completion_percentage: Decimal | None = None
    snapshot_gross_amount: Decimal | None = None
    snapshot_employee_pf: Decimal | None = None
    snapshot_voluntary_pf: Decimal | None = None
    snapshot_employer_pf: Decimal | None = None
    snapshot_pf_amount: Decimal | None = None
    snapshot_net_amount: Decimal | None = None
    snapshot_taken_at: datetime | None = None


class DocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    document_id: UUID
    file_name: str
    file_type: str | None = None
    file_size: int
    document_type: str
    description: str | None = None
    checksum_sha256: str
    uploaded_by: str | None = None
    uploaded_at: datetime


class PaymentSummaryRead(BaseModel):
    """Payment without its line items, for listings."""

    model_config = ConfigDict(from_attributes=True)

    payment_id: UUID
    title: str
    status: PaymentStatus
    payment_month: int
    payment_year: int
    total_amount: Decimal
    payment_date: date | None = None
    reference_number: str | None = None
    created_by: str | None = None
    created_at: datetime

    @computed_field
    @property
    def can_edit(self) -> bool:
        return PaymentStateMachine.can_edit(self.status)

    @computed_field
    @property
    def can_cancel(self) -> bool:
        return PaymentStateMachine.can_cancel(self.status)

    @computed_field
    @property
    def can_delete(self) -> bool:
        return PaymentStateMachine.can_delete(self.status)


class PaymentRead(PaymentSummaryRead):
    remarks: str | None = None
    submitted_by: str | None = None
    submitted_at: datetime | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    paid_by: str | None = None
    paid_at: datetime | None = None
    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    cancelled_at: datetime | None = None
    line_items: list[LineItemRead] = Field(default_factory=list)
    documents: list[DocumentRead] = Field(default_factory=list)


class HistoryEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    history_id: UUID
    payment_id: UUID
    sequence: int
    change_type: str
    previous_status: str | None = None
    new_status: str | None = None
    previous_amount: Decimal | None = None
    new_amount: Decimal | None = None
    remarks: str | None = None
    change_description: str
    changed_by: str | None = None
    changed_at: datetime


class PaymentFilter(BaseModel):
    """Filter for listing payments."""

    status: PaymentStatus | None = None
    month: int | None = Field(default=None, ge=1, le=12)
    year: int | None = Field(default=None, ge=2000)


# ============================================================================
# Assignment schemas
# ============================================================================


class AssignmentSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    assignment_id: UUID
    employee_id: UUID
    employee_name: str | None = None
    employee_code: str | None = None
    activity_name: str | None = None
    assignment_date: date | None = None
    assignment_status: str
    evaluation_count: int
    completion_percentage: Decimal | None = None
    gross_amount: Decimal
    voluntary_pf_amount: Decimal
    payment_status: str


# ============================================================================
# PF report schemas
# ============================================================================


class PaymentDetailRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payment_id: UUID
    payment_date: date | None = None
    reference_number: str | None = None
    gross_amount: Decimal
    employee_pf: Decimal
    voluntary_pf: Decimal
    employer_pf: Decimal
    total_pf: Decimal
    net_amount: Decimal
    assignment_count: int


class EmployeePfTotalsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_payments: int
    total_assignments: int
    total_gross_amount: Decimal
    total_employee_pf: Decimal
    total_voluntary_pf: Decimal
    total_employer_pf: Decimal
    total_pf_deduction: Decimal
    total_net_amount: Decimal


class EmployeePfSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    employee_name: str | None = None
    employee_code: str | None = None
    pf_account_id: str | None = None
    payments: list[PaymentDetailRead]
    totals: EmployeePfTotalsRead


class PfReportTotalsRead(EmployeePfTotalsRead):
    total_employees: int


class PfReportRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    month: int
    year: int
    month_name: str
    employees: list[EmployeePfSummaryRead]
    totals: PfReportTotalsRead
