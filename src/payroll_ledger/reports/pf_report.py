"""Monthly Provident Fund report built from paid payments."""

from __future__ import annotations

import calendar
import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.models import Payment, PaymentLineItem
from payroll_ledger.reports.types import (
    EmployeePfSummary,
    PaymentDetail,
    PfReport,
    PfReportTotals,
)
from payroll_ledger.services.payment_service import validate_period
from payroll_ledger.services.state_machine import PaymentStateMachine, PaymentStatus

logger = logging.getLogger(__name__)


def reported_values(item: PaymentLineItem, status: str) -> dict[str, Decimal | str | None]:
    """Line-item values for reporting: snapshot once the payment has left DRAFT."""
    if PaymentStateMachine.uses_snapshot(status) and item.has_snapshot:
        return {
            "employee_name": item.snapshot_employee_name,
            "gross_amount": item.snapshot_gross_amount,
            "employee_pf": item.snapshot_employee_pf,
            "voluntary_pf": item.snapshot_voluntary_pf,
            "employer_pf": item.snapshot_employer_pf,
            "pf_amount": item.snapshot_pf_amount,
            "net_amount": item.snapshot_net_amount,
        }
    return {
        "employee_name": item.employee_name,
        "gross_amount": item.gross_amount,
        "employee_pf": item.employee_pf,
        "voluntary_pf": item.voluntary_pf,
        "employer_pf": item.employer_pf,
        "pf_amount": item.pf_amount,
        "net_amount": item.net_amount,
    }


class PfReportService:
    """Aggregates PAID payments into a per-employee PF report.

    A payment belongs to the month of its recorded payment_date, not the
    payroll period it covers.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def paid_payments_in(self, month: int, year: int) -> list[Payment]:
        first = date(year, month, 1)
        last = date(year, month, calendar.monthrange(year, month)[1])
        result = await self.session.execute(
            select(Payment)
            .where(
                Payment.status == PaymentStatus.PAID.value,
                Payment.payment_date >= first,
                Payment.payment_date <= last,
            )
            .order_by(Payment.payment_date, Payment.payment_id)
        )
        return list(result.scalars())

    async def generate_report(self, month: int, year: int) -> PfReport:
        validate_period(month, year)
        payments = await self.paid_payments_in(month, year)

        summaries: dict[UUID, EmployeePfSummary] = {}
        for payment in payments:
            details: dict[UUID, PaymentDetail] = {}
            for item in payment.line_items:
                values = reported_values(item, payment.status)
                summary = summaries.get(item.employee_id)
                if summary is None:
                    summary = summaries[item.employee_id] = EmployeePfSummary(
                        employee_id=item.employee_id,
                        employee_name=values["employee_name"],
                        employee_code=item.employee_code,
                        pf_account_id=item.pf_account_id,
                    )
                detail = details.get(item.employee_id)
                if detail is None:
                    detail = details[item.employee_id] = PaymentDetail(
                        payment_id=payment.payment_id,
                        payment_date=payment.payment_date,
                        reference_number=payment.reference_number,
                    )
                    summary.payments.append(detail)
                detail.gross_amount += values["gross_amount"]
                detail.employee_pf += values["employee_pf"]
                detail.voluntary_pf += values["voluntary_pf"]
                detail.employer_pf += values["employer_pf"]
                detail.total_pf += values["pf_amount"]
                detail.net_amount += values["net_amount"]
                detail.assignment_count += 1

        employees = sorted(
            summaries.values(),
            key=lambda s: ((s.employee_name or "").casefold(), str(s.employee_id)),
        )
        totals = PfReportTotals(
            total_employees=len(employees),
            total_payments=len({p.payment_id for p in payments if p.line_items}),
        )
        for summary in employees:
            for detail in summary.payments:
                summary.totals.add(detail)
            totals.total_assignments += summary.totals.total_assignments
            totals.total_gross_amount += summary.totals.total_gross_amount
            totals.total_employee_pf += summary.totals.total_employee_pf
            totals.total_voluntary_pf += summary.totals.total_voluntary_pf
            totals.total_employer_pf += summary.totals.total_employer_pf
            totals.total_pf_deduction += summary.totals.total_pf_deduction
            totals.total_net_amount += summary.totals.total_net_amount

        logger.info(
            "PF report %02d/%d: %d employee(s) across %d payment(s)",
            month, year, totals.total_employees, totals.total_payments,
        )
        return PfReport(
            month=month,
            year=year,
            month_name=calendar.month_name[month],
            employees=employees,
            totals=totals,
        )
