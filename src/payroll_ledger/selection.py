"""Immutable selection state for choosing assignments to attach.

Choosing assignments is a multi-step flow: pick a date range, load the
eligible candidates, pick employees, then pick assignments of those
employees. ``SelectionDraft`` holds that state as a value; every
transition returns a new draft and never mutates the old one.

The one cross-field rule lives in ``deselect_employee``: an employee that
is no longer selected keeps no selected assignments.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from payroll_ledger.exceptions import NotFoundError, ValidationError
from payroll_ledger.gateway.base import AssignmentSummary


@dataclass(frozen=True)
class EmployeeOption:
    """One employee among the candidates, with how many assignments they have."""

    employee_id: UUID
    employee_name: str | None
    employee_code: str | None
    assignment_count: int
    total_amount: Decimal


@dataclass(frozen=True)
class SelectionDraft:
    start_date: date | None = None
    end_date: date | None = None
    candidates: tuple[AssignmentSummary, ...] = ()
    selected_employee_ids: frozenset[UUID] = field(default_factory=frozenset)
    selected_assignment_ids: frozenset[UUID] = field(default_factory=frozenset)

    # -- transitions ----------------------------------------------------

    def with_date_range(self, start_date: date, end_date: date) -> SelectionDraft:
        """New range; candidates and selections from the old range are dropped."""
        if start_date > end_date:
            raise ValidationError("start_date", "start_date must not be after end_date")
        return SelectionDraft(start_date=start_date, end_date=end_date)

    def load_candidates(
        self,
        candidates: Iterable[AssignmentSummary],
        exclude_assignment_ids: Iterable[UUID] = (),
    ) -> SelectionDraft:
        """Replace the candidates, keeping only selections that still apply."""
        excluded = set(exclude_assignment_ids)
        kept = tuple(c for c in candidates if c.assignment_id not in excluded)
        employee_ids = {c.employee_id for c in kept}
        employees = self.selected_employee_ids & employee_ids
        assignments = frozenset(
            c.assignment_id
            for c in kept
            if c.assignment_id in self.selected_assignment_ids and c.employee_id in employees
        )
        return replace(
            self,
            candidates=kept,
            selected_employee_ids=frozenset(employees),
            selected_assignment_ids=assignments,
        )

    def select_employee(self, employee_id: UUID) -> SelectionDraft:
        self._require_employee(employee_id)
        return replace(self, selected_employee_ids=self.selected_employee_ids | {employee_id})

    def deselect_employee(self, employee_id: UUID) -> SelectionDraft:
        """Drop the employee and every selected assignment of theirs."""
        theirs = {c.assignment_id for c in self.candidates if c.employee_id == employee_id}
        return replace(
            self,
            selected_employee_ids=self.selected_employee_ids - {employee_id},
            selected_assignment_ids=self.selected_assignment_ids - theirs,
        )

    def toggle_employee(self, employee_id: UUID) -> SelectionDraft:
        if employee_id in self.selected_employee_ids:
            return self.deselect_employee(employee_id)
        return self.select_employee(employee_id)

    def select_all_employees(self) -> SelectionDraft:
        return replace(
            self, selected_employee_ids=frozenset(c.employee_id for c in self.candidates)
        )

    def select_assignment(self, assignment_id: UUID) -> SelectionDraft:
        candidate = self._require_assignment(assignment_id)
        if candidate.employee_id not in self.selected_employee_ids:
            raise ValidationError(
                "assignment_id",
                f"Assignment {assignment_id} belongs to an employee who is not selected",
            )
        return replace(
            self, selected_assignment_ids=self.selected_assignment_ids | {assignment_id}
        )

    def deselect_assignment(self, assignment_id: UUID) -> SelectionDraft:
        return replace(
            self, selected_assignment_ids=self.selected_assignment_ids - {assignment_id}
        )

    def toggle_assignment(self, assignment_id: UUID) -> SelectionDraft:
        if assignment_id in self.selected_assignment_ids:
            return self.deselect_assignment(assignment_id)
        return self.select_assignment(assignment_id)

    def select_all_visible_assignments(self) -> SelectionDraft:
        """Select every assignment of the selected employees."""
        return replace(
            self,
            selected_assignment_ids=frozenset(c.assignment_id for c in self.visible_assignments()),
        )

    def clear(self) -> SelectionDraft:
        return replace(
            self, selected_employee_ids=frozenset(), selected_assignment_ids=frozenset()
        )

    # -- queries --------------------------------------------------------

    def employees(self) -> list[EmployeeOption]:
        """Candidate employees ordered by name."""
        grouped: dict[UUID, list[AssignmentSummary]] = {}
        for c in self.candidates:
            grouped.setdefault(c.employee_id, []).append(c)
        options = [
            EmployeeOption(
                employee_id=employee_id,
                employee_name=items[0].employee_name,
                employee_code=items[0].employee_code,
                assignment_count=len(items),
                total_amount=sum((i.gross_amount for i in items), Decimal("0")),
            )
            for employee_id, items in grouped.items()
        ]
        return sorted(options, key=lambda o: ((o.employee_name or "").casefold(), str(o.employee_id)))

    def visible_assignments(self) -> list[AssignmentSummary]:
        """Candidates belonging to selected employees."""
        return [c for c in self.candidates if c.employee_id in self.selected_employee_ids]

    def selected_assignments(self) -> list[AssignmentSummary]:
        return [c for c in self.candidates if c.assignment_id in self.selected_assignment_ids]

    def selected_total(self) -> Decimal:
        """Sum of gross amounts of the selected assignments."""
        return sum((c.gross_amount for c in self.selected_assignments()), Decimal("0"))

    def can_review(self) -> bool:
        return bool(self.selected_assignment_ids)

    def _require_employee(self, employee_id: UUID) -> None:
        if not any(c.employee_id == employee_id for c in self.candidates):
            raise NotFoundError("Employee", employee_id)

    def _require_assignment(self, assignment_id: UUID) -> AssignmentSummary:
        for c in self.candidates:
            if c.assignment_id == assignment_id:
                return c
        raise NotFoundError("Assignment", assignment_id)
