"""Provident Fund deduction calculator."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from payroll_ledger.calculators.types import PfBreakdown
from payroll_ledger.config import DEFAULT_EMPLOYEE_PF_RATE, DEFAULT_EMPLOYER_PF_RATE
from payroll_ledger.exceptions import ValidationError

CURRENCY_PRECISION = Decimal("0.01")


def round_currency(amount: Decimal) -> Decimal:
    """Round to 2 decimal places, half up."""
    return amount.quantize(CURRENCY_PRECISION, rounding=ROUND_HALF_UP)


def _as_decimal(value: Decimal | int | str, field: str) -> Decimal:
    if isinstance(value, float):
        # Floats carry binary noise into currency math.
        raise ValidationError(field, f"{field} must be a Decimal, not float")
    try:
        return Decimal(value)
    except (ArithmeticError, ValueError, TypeError) as exc:
        raise ValidationError(field, f"{field} is not a number: {value!r}") from exc


def compute_deduction(
    gross_amount: Decimal,
    employee_rate: Decimal = DEFAULT_EMPLOYEE_PF_RATE,
    employer_rate: Decimal = DEFAULT_EMPLOYER_PF_RATE,
    voluntary_amount: Decimal = Decimal("0"),
) -> PfBreakdown:
    """Compute the PF breakdown for a gross amount.

    employee_pf and employer_pf are the rate applied to the unrounded gross,
    rounded half up to 2 places. Gross and the voluntary amount are carried
    through at the same precision. pf_amount = employee_pf + voluntary_pf and
    net_amount = gross_amount - pf_amount.

    Raises ValidationError for a negative gross or voluntary amount, a rate
    outside [0, 1], or a float input.
    """
    gross = _as_decimal(gross_amount, "gross_amount")
    employee_rate = _as_decimal(employee_rate, "employee_rate")
    employer_rate = _as_decimal(employer_rate, "employer_rate")
    voluntary = _as_decimal(voluntary_amount, "voluntary_amount")

    if gross < 0:
        raise ValidationError("gross_amount", "gross_amount cannot be negative")
    if voluntary < 0:
        raise ValidationError("voluntary_amount", "voluntary_amount cannot be negative")
    for name, rate in (("employee_rate", employee_rate), ("employer_rate", employer_rate)):
        if rate < 0 or rate > 1:
            raise ValidationError(name, f"{name} must be between 0 and 1, got {rate}")

    employee_pf = round_currency(gross * employee_rate)
    employer_pf = round_currency(gross * employer_rate)
    gross = round_currency(gross)
    voluntary_pf = round_currency(voluntary)
    pf_amount = employee_pf + voluntary_pf

    return PfBreakdown(
        gross_amount=gross,
        employee_pf=employee_pf,
        employer_pf=employer_pf,
        voluntary_pf=voluntary_pf,
        pf_amount=pf_amount,
        net_amount=gross - pf_amount,
    )
