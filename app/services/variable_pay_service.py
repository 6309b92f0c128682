"""
Mshahara Payroll - Variable Pay Resolver

Resolves the allowances and custom deductions that apply to one employee
on an as-of date.

Rules:
1. An assignment targets exactly one employee OR one department.
   Both employee-level and department-level assignments apply; there is
   no deduplication between the two scopes.
2. Only active assignments whose validity window contains the as-of date
   apply. The window is either dates (start_date/end_date) or (month, year)
   pairs; a missing end is open-ended.
3. Fixed assignments contribute their amount. Percentage assignments are
   always computed on BASE salary, never on a running gross.
4. Allowances split into cash (part of gross pay) and non-cash benefits
   (added to net pay, never taxed here).
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.pay_components import CalculationType
from app.services.assignment_store import AssignmentStore
from app.services.tax_calculators.common import ensure_valid_base, round_money
from app.utils.error_handling import MalformedAssignmentException

logger = logging.getLogger(__name__)


SCOPE_EMPLOYEE = "employee"
SCOPE_DEPARTMENT = "department"


@dataclass
class ResolvedPayItem:
    """One allowance or deduction evaluated for an employee."""
    assignment_id: uuid.UUID
    name: str
    amount: Decimal
    calculation_type: CalculationType
    value: Decimal
    scope: str
    is_cash: bool = True
    is_taxable: bool = True
    is_one_time: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assignment_id": str(self.assignment_id),
            "name": self.name,
            "amount": float(self.amount),
            "calculation_type": self.calculation_type.value,
            "value": float(self.value),
            "scope": self.scope,
            "is_cash": self.is_cash,
            "is_taxable": self.is_taxable,
            "is_one_time": self.is_one_time,
        }


@dataclass
class ResolvedVariablePay:
    """Resolved allowances and custom deductions for one employee."""
    allowances: List[ResolvedPayItem] = field(default_factory=list)
    deductions: List[ResolvedPayItem] = field(default_factory=list)

    @property
    def cash_allowances(self) -> List[ResolvedPayItem]:
        return [item for item in self.allowances if item.is_cash]

    @property
    def non_cash_benefits(self) -> List[ResolvedPayItem]:
        return [item for item in self.allowances if not item.is_cash]

    @property
    def total_cash_allowances(self) -> Decimal:
        return sum((item.amount for item in self.cash_allowances), Decimal("0.00"))

    @property
    def total_non_cash_benefits(self) -> Decimal:
        return sum((item.amount for item in self.non_cash_benefits), Decimal("0.00"))

    @property
    def total_custom_deductions(self) -> Decimal:
        return sum((item.amount for item in self.deductions), Decimal("0.00"))


# ===========================================
# PURE RULES
# ===========================================

def _month_index(year: int, month: int) -> int:
    return year * 12 + (month - 1)


def _check_month_pair(assignment: Any, month: Optional[int], year: Optional[int], label: str) -> None:
    if (month is None) != (year is None):
        raise MalformedAssignmentException(
            assignment.id, f"{label} month and year must be given together",
        )
    if month is not None and not 1 <= month <= 12:
        raise MalformedAssignmentException(assignment.id, f"{label} month {month} is out of range")


def validity_window_contains(assignment: Any, as_of: date) -> bool:
    """
    True when the assignment's validity window contains ``as_of``.

    Raises MalformedAssignmentException when the window mixes date and
    month forms, has half a (month, year) pair, or ends before it starts.
    """
    uses_dates = assignment.start_date is not None or assignment.end_date is not None
    uses_months = any(
        getattr(assignment, attr) is not None
        for attr in ("start_month", "start_year", "end_month", "end_year")
    )
    if uses_dates and uses_months:
        raise MalformedAssignmentException(
            assignment.id, "validity window mixes dates and (month, year) pairs",
        )

    if uses_months:
        _check_month_pair(assignment, assignment.start_month, assignment.start_year, "start")
        _check_month_pair(assignment, assignment.end_month, assignment.end_year, "end")

        current = _month_index(as_of.year, as_of.month)
        start = (
            _month_index(assignment.start_year, assignment.start_month)
            if assignment.start_year is not None else None
        )
        end = (
            _month_index(assignment.end_year, assignment.end_month)
            if assignment.end_year is not None else None
        )
        if start is not None and end is not None and end < start:
            raise MalformedAssignmentException(assignment.id, "validity window ends before it starts")
        if start is not None and current < start:
            return False
        return end is None or current <= end

    if (
        assignment.start_date is not None
        and assignment.end_date is not None
        and assignment.end_date < assignment.start_date
    ):
        raise MalformedAssignmentException(assignment.id, "validity window ends before it starts")
    if assignment.start_date is not None and as_of < assignment.start_date:
        return False
    return assignment.end_date is None or as_of <= assignment.end_date


def assignment_scope(
    assignment: Any,
    employee_id: uuid.UUID,
    department_id: Optional[uuid.UUID],
) -> Optional[str]:
    """
    Which scope makes this assignment apply to the employee, or None.

    An assignment that targets both an employee and a department, or
    neither, is malformed.
    """
    has_employee = assignment.employee_id is not None
    has_department = assignment.department_id is not None
    if has_employee == has_department:
        raise MalformedAssignmentException(
            assignment.id, "assignment must target exactly one employee or one department",
        )
    if has_employee:
        return SCOPE_EMPLOYEE if assignment.employee_id == employee_id else None
    if department_id is not None and assignment.department_id == department_id:
        return SCOPE_DEPARTMENT
    return None


def evaluate_assignment(assignment: Any, base_salary: Decimal) -> Decimal:
    """Fixed amount, or percentage of base salary, rounded to the cent."""
    if assignment.value is None:
        raise MalformedAssignmentException(assignment.id, "value is missing")
    try:
        value = Decimal(str(assignment.value))
    except InvalidOperation:
        raise MalformedAssignmentException(assignment.id, f"value {assignment.value!r} is not a number")
    if not value.is_finite() or value < 0:
        raise MalformedAssignmentException(assignment.id, f"value {assignment.value} is not a non-negative amount")

    if assignment.calculation_type == CalculationType.FIXED:
        return round_money(value)
    if assignment.calculation_type == CalculationType.PERCENTAGE:
        base = ensure_valid_base(base_salary, "base_salary")
        return round_money(base * value / 100)

    raise MalformedAssignmentException(
        assignment.id, f"unknown calculation type {assignment.calculation_type!r}",
    )


def _type_name(assignment: Any, relation: str, fallback: str) -> str:
    component_type = getattr(assignment, relation, None)
    return component_type.name if component_type is not None else fallback


class VariablePayResolver:
    """
    Resolves variable pay for employees.

    ``resolve`` fetches assignments from the store; ``resolve_from`` applies
    the rules to assignments already in memory.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = AssignmentStore(db)

    async def resolve(
        self,
        tenant_id: uuid.UUID,
        employee_id: uuid.UUID,
        department_id: Optional[uuid.UUID],
        base_salary: Decimal,
        as_of: date,
    ) -> ResolvedVariablePay:
        allowances = await self.store.list_applicable_allowances(
            tenant_id, employee_id, department_id, as_of,
        )
        deductions = await self.store.list_applicable_deductions(
            tenant_id, employee_id, department_id, as_of,
        )
        return self.resolve_from(
            allowances, deductions, employee_id, department_id, base_salary, as_of,
        )

    @staticmethod
    def resolve_from(
        allowances: Sequence[Any],
        deductions: Sequence[Any],
        employee_id: uuid.UUID,
        department_id: Optional[uuid.UUID],
        base_salary: Decimal,
        as_of: date,
    ) -> ResolvedVariablePay:
        resolved = ResolvedVariablePay()

        for allowance in allowances:
            scope = assignment_scope(allowance, employee_id, department_id)
            if scope is None or not allowance.is_active or not validity_window_contains(allowance, as_of):
                continue
            allowance_type = getattr(allowance, "allowance_type", None)
            resolved.allowances.append(ResolvedPayItem(
                assignment_id=allowance.id,
                name=_type_name(allowance, "allowance_type", "Allowance"),
                amount=evaluate_assignment(allowance, base_salary),
                calculation_type=allowance.calculation_type,
                value=Decimal(str(allowance.value)),
                scope=scope,
                is_cash=allowance_type.is_cash if allowance_type is not None else True,
                is_taxable=allowance_type.is_taxable if allowance_type is not None else True,
            ))

        for deduction in deductions:
            scope = assignment_scope(deduction, employee_id, department_id)
            if scope is None or not deduction.is_active or not validity_window_contains(deduction, as_of):
                continue
            resolved.deductions.append(ResolvedPayItem(
                assignment_id=deduction.id,
                name=_type_name(deduction, "deduction_type", "Deduction"),
                amount=evaluate_assignment(deduction, base_salary),
                calculation_type=deduction.calculation_type,
                value=Decimal(str(deduction.value)),
                scope=scope,
                is_one_time=bool(deduction.is_one_time),
            ))

        logger.debug(
            f"Resolved {len(resolved.allowances)} allowances and "
            f"{len(resolved.deductions)} deductions for employee {employee_id} as of {as_of}"
        )
        return resolved
