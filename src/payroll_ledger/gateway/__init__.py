"""Assignment gateway: the ledger's view of the work-tracking system."""

from payroll_ledger.gateway.adapter import normalize_assignment
from payroll_ledger.gateway.base import (
    AssignmentGateway,
    AssignmentLockStage,
    AssignmentSummary,
    EligibilityPredicate,
)
from payroll_ledger.gateway.sql_gateway import SqlAssignmentGateway

__all__ = [
    "AssignmentGateway",
    "AssignmentLockStage",
    "AssignmentSummary",
    "EligibilityPredicate",
    "SqlAssignmentGateway",
    "normalize_assignment",
]
