"""Type definitions for PF and line-item calculations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID


@dataclass(frozen=True)
class PfBreakdown:
    """Provident Fund deduction breakdown for one gross amount.

    pf_amount is what is withheld from the employee (employee + voluntary);
    employer_pf is an employer-side contribution and does not reduce net pay.
    """

    gross_amount: Decimal
    employee_pf: Decimal
    employer_pf: Decimal
    voluntary_pf: Decimal
    pf_amount: Decimal
    net_amount: Decimal

    def to_dict(self) -> dict[str, str]:
        return {
            "gross_amount": str(self.gross_amount),
            "employee_pf": str(self.employee_pf),
            "employer_pf": str(self.employer_pf),
            "voluntary_pf": str(self.voluntary_pf),
            "pf_amount": str(self.pf_amount),
            "net_amount": str(self.net_amount),
        }


@dataclass(frozen=True)
class LineItemValues:
    """Column values for a line item before persistence."""

    assignment_id: UUID
    employee_id: UUID
    employee_name: str | None
    employee_code: str | None
    pf_account_id: str | None
    work_activity_id: UUID | None
    activity_name: str | None
    assignment_date: date | None
    rate: Decimal | None
    completion_percentage: Decimal | None
    breakdown: PfBreakdown

    def column_values(self) -> dict[str, Any]:
        return {
            "assignment_id": self.assignment_id,
            "employee_id": self.employee_id,
            "employee_name": self.employee_name,
            "employee_code": self.employee_code,
            "pf_account_id": self.pf_account_id,
            "work_activity_id": self.work_activity_id,
            "activity_name": self.activity_name,
            "assignment_date": self.assignment_date,
            "rate": self.rate,
            "completion_percentage": self.completion_percentage,
            "gross_amount": self.breakdown.gross_amount,
            "employee_pf": self.breakdown.employee_pf,
            "voluntary_pf": self.breakdown.voluntary_pf,
            "employer_pf": self.breakdown.employer_pf,
            "pf_amount": self.breakdown.pf_amount,
            "net_amount": self.breakdown.net_amount,
        }
