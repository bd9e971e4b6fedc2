"""Payroll payment ledger.

Carries batches of completed work assignments through a DRAFT to PAID
approval workflow, freezes their financial facts at submission, keeps an
append-only audit trail and rebuilds monthly Provident Fund reports from
paid batches.
"""

__version__ = "1.0.0"
