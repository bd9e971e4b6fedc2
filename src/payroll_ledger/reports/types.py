"""PF report result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

ZERO = Decimal("0.00")


@dataclass
class PaymentDetail:
    """One employee's share of one paid payment."""

    payment_id: UUID
    payment_date: date | None
    reference_number: str | None
    gross_amount: Decimal = ZERO
    employee_pf: Decimal = ZERO
    voluntary_pf: Decimal = ZERO
    employer_pf: Decimal = ZERO
    total_pf: Decimal = ZERO  # employee_pf + voluntary_pf
    net_amount: Decimal = ZERO
    assignment_count: int = 0


@dataclass
class EmployeePfTotals:
    total_payments: int = 0
    total_assignments: int = 0
    total_gross_amount: Decimal = ZERO
    total_employee_pf: Decimal = ZERO
    total_voluntary_pf: Decimal = ZERO
    total_employer_pf: Decimal = ZERO
    total_pf_deduction: Decimal = ZERO
    total_net_amount: Decimal = ZERO

    def add(self, detail: PaymentDetail) -> None:
        self.total_payments += 1
        self.total_assignments += detail.assignment_count
        self.total_gross_amount += detail.gross_amount
        self.total_employee_pf += detail.employee_pf
        self.total_voluntary_pf += detail.voluntary_pf
        self.total_employer_pf += detail.employer_pf
        self.total_pf_deduction += detail.total_pf
        self.total_net_amount += detail.net_amount


@dataclass
class EmployeePfSummary:
    employee_id: UUID
    employee_name: str | None
    employee_code: str | None
    pf_account_id: str | None
    payments: list[PaymentDetail] = field(default_factory=list)
    totals: EmployeePfTotals = field(default_factory=EmployeePfTotals)


@dataclass
class PfReportTotals:
    total_employees: int = 0
    total_payments: int = 0  # distinct payments, not per-employee shares
    total_assignments: int = 0
    total_gross_amount: Decimal = ZERO
    total_employee_pf: Decimal = ZERO
    total_voluntary_pf: Decimal = ZERO
    total_employer_pf: Decimal = ZERO
    total_pf_deduction: Decimal = ZERO
    total_net_amount: Decimal = ZERO


@dataclass
class PfReport:
    month: int
    year: int
    month_name: str
    employees: list[EmployeePfSummary] = field(default_factory=list)
    totals: PfReportTotals = field(default_factory=PfReportTotals)
