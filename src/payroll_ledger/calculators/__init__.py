"""PF and line-item calculations."""

from payroll_ledger.calculators.line_builder import LineItemBuilder
from payroll_ledger.calculators.pf_calculator import compute_deduction, round_currency
from payroll_ledger.calculators.types import LineItemValues, PfBreakdown

__all__ = [
    "LineItemBuilder",
    "LineItemValues",
    "PfBreakdown",
    "compute_deduction",
    "round_currency",
]
