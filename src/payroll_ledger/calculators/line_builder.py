"""Builds line-item values from assignment summaries."""

from __future__ import annotations

from typing import TYPE_CHECKING

from payroll_ledger.calculators.pf_calculator import compute_deduction, round_currency
from payroll_ledger.calculators.types import LineItemValues
from payroll_ledger.config import PfRates

if TYPE_CHECKING:
    from payroll_ledger.gateway.base import AssignmentSummary
    from payroll_ledger.models import PaymentLineItem


class LineItemBuilder:
    """Turns an assignment into line-item column values.

    Rounding:
    - Money to 2 decimals, half up, at every persisted field
    - Completion percentage to 2 decimals
    """

    LIVE_FIELDS = (
        "employee_name",
        "activity_name",
        "completion_percentage",
        "gross_amount",
        "employee_pf",
        "voluntary_pf",
        "employer_pf",
        "pf_amount",
        "net_amount",
    )

    def __init__(self, rates: PfRates | None = None):
        self.rates = rates or PfRates()

    def build(self, summary: AssignmentSummary) -> LineItemValues:
        breakdown = compute_deduction(
            summary.gross_amount,
            employee_rate=self.rates.employee_rate,
            employer_rate=self.rates.employer_rate,
            voluntary_amount=summary.voluntary_pf_amount,
        )
        completion = summary.completion_percentage
        return LineItemValues(
            assignment_id=summary.assignment_id,
            employee_id=summary.employee_id,
            employee_name=summary.employee_name,
            employee_code=summary.employee_code,
            pf_account_id=summary.pf_account_id,
            work_activity_id=summary.work_activity_id,
            activity_name=summary.activity_name,
            assignment_date=summary.assignment_date,
            rate=summary.rate,
            completion_percentage=(
                round_currency(completion) if completion is not None else None
            ),
            breakdown=breakdown,
        )

    def apply_live_values(self, item: PaymentLineItem, values: LineItemValues) -> list[str]:
        """Overwrite an item's live fields; return the names that changed."""
        changed = []
        for name, value in values.column_values().items():
            if name == "assignment_id":
                continue
            if getattr(item, name) != value:
                setattr(item, name, value)
                if name in self.LIVE_FIELDS:
                    changed.append(name)
        return changed
