"""Normalize raw assignment payloads into AssignmentSummary.

Upstream sources report the same assignment under different field names
(``status`` or ``assignmentStatus``, ``assignedEmployeeId`` or
``employee.id`` and so on). All of that variation is absorbed here.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from payroll_ledger.exceptions import ValidationError
from payroll_ledger.gateway.base import (
    UNPAID_STATUS,
    AssignmentLockStage,
    AssignmentSummary,
)

_MISSING = object()

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "assignment_id": ("assignmentId", "assignment_id", "id"),
    "employee_id": ("assignedEmployeeId", "employeeId", "employee_id", "employee.id"),
    "employee_name": (
        "assignedEmployeeName",
        "employeeName",
        "employee_name",
        "employee.fullName",
        "employee.name",
    ),
    "employee_code": ("employeeCode", "employee_code", "employee.employeeCode"),
    "pf_account_id": ("pfAccountId", "pf_account_id", "employee.pfAccountId"),
    "work_activity_id": ("workActivityId", "work_activity_id", "workActivity.id"),
    "activity_name": ("activityName", "activity_name", "workActivity.name"),
    "assignment_status": ("assignmentStatus", "assignment_status", "status"),
    "evaluation_count": ("evaluationCount", "evaluation_count"),
    "last_evaluated_at": ("lastEvaluatedAt", "last_evaluated_at", "evaluation.evaluatedAt"),
    "assignment_date": ("assignmentDate", "assignment_date", "startDate"),
    "completion_percentage": (
        "completionPercentage",
        "completion_percentage",
        "evaluation.evaluationScore",
    ),
    "rate": ("rate", "workActivity.rate"),
    "gross_amount": ("calculatedAmount", "calculated_amount", "grossAmount", "amount"),
    "voluntary_pf_amount": (
        "voluntaryPfAmount",
        "voluntary_pf_amount",
        "employee.voluntaryPfAmount",
    ),
    "payment_status": ("paymentStatus", "payment_status"),
    "locked_by_payment_id": ("paymentId", "lockedByPaymentId", "locked_by_payment_id"),
    "lock_stage": ("lockStage", "lock_stage"),
}


def _lookup(raw: Mapping[str, Any], path: str) -> Any:
    node: Any = raw
    for part in path.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return _MISSING
        node = node[part]
    return node


def first_present(raw: Mapping[str, Any], field: str) -> Any:
    """Value of the first alias for ``field`` that is present and not None."""
    for path in FIELD_ALIASES[field]:
        value = _lookup(raw, path)
        if value is not _MISSING and value is not None and value != "":
            return value
    return None


def _uuid(value: Any, field: str, required: bool = False) -> UUID | None:
    if value is None:
        if required:
            raise ValidationError(field, f"Assignment payload is missing {field}")
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise ValidationError(field, f"{field} is not a valid id: {value!r}") from exc


def _decimal(value: Any, field: str) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    try:
        # str() keeps floats from JSON at their printed precision
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(field, f"{field} is not a number: {value!r}") from exc


def _date(value: Any, field: str) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise ValidationError(field, f"{field} is not an ISO date: {value!r}") from exc


def _evaluation_count(raw: Mapping[str, Any]) -> int:
    count = int(first_present(raw, "evaluation_count") or 0)
    if count == 0 and first_present(raw, "last_evaluated_at") is not None:
        return 1
    return count


def normalize_assignment(raw: Mapping[str, Any]) -> AssignmentSummary:
    """Build an AssignmentSummary from any supported payload shape."""
    status = first_present(raw, "assignment_status")
    stage = first_present(raw, "lock_stage")
    return AssignmentSummary(
        assignment_id=_uuid(first_present(raw, "assignment_id"), "assignment_id", required=True),
        employee_id=_uuid(first_present(raw, "employee_id"), "employee_id", required=True),
        employee_name=first_present(raw, "employee_name"),
        employee_code=first_present(raw, "employee_code"),
        pf_account_id=first_present(raw, "pf_account_id"),
        work_activity_id=_uuid(first_present(raw, "work_activity_id"), "work_activity_id"),
        activity_name=first_present(raw, "activity_name"),
        assignment_status=str(status).upper() if status is not None else "",
        evaluation_count=_evaluation_count(raw),
        assignment_date=_date(first_present(raw, "assignment_date"), "assignment_date"),
        completion_percentage=_decimal(
            first_present(raw, "completion_percentage"), "completion_percentage"
        ),
        rate=_decimal(first_present(raw, "rate"), "rate"),
        gross_amount=_decimal(first_present(raw, "gross_amount"), "gross_amount")
        or Decimal("0"),
        voluntary_pf_amount=_decimal(
            first_present(raw, "voluntary_pf_amount"), "voluntary_pf_amount"
        )
        or Decimal("0"),
        payment_status=str(first_present(raw, "payment_status") or UNPAID_STATUS).upper(),
        locked_by_payment_id=_uuid(
            first_present(raw, "locked_by_payment_id"), "locked_by_payment_id"
        ),
        lock_stage=AssignmentLockStage(str(stage).upper()) if stage else None,
    )
