"""PF reporting over paid payments."""

from payroll_ledger.reports.pf_report import PfReportService
from payroll_ledger.reports.types import (
    EmployeePfSummary,
    EmployeePfTotals,
    PaymentDetail,
    PfReport,
    PfReportTotals,
)

__all__ = [
    "EmployeePfSummary",
    "EmployeePfTotals",
    "PaymentDetail",
    "PfReport",
    "PfReportService",
    "PfReportTotals",
]
