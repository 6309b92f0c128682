"""
Mshahara Payroll - Assignment Store

Database access for allowance and deduction assignments.

The store narrows candidates in SQL (tenant, target scope, active flag,
date-form window). Month-form windows and shape checks are applied by
the variable pay resolver.
"""

import logging
import uuid
from datetime import date
from typing import Iterable, List, Optional, Type, Union

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.pay_components import Allowance, Deduction

logger = logging.getLogger(__name__)


class AssignmentStore:
    """Read applicable assignments; deactivate consumed one-time deductions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _list_applicable(
        self,
        model: Union[Type[Allowance], Type[Deduction]],
        tenant_id: uuid.UUID,
        employee_id: uuid.UUID,
        department_id: Optional[uuid.UUID],
        as_of: date,
    ) -> list:
        target = model.employee_id == employee_id
        if department_id is not None:
            target = or_(target, model.department_id == department_id)

        query = (
            select(model)
            .where(
                and_(
                    model.tenant_id == tenant_id,
                    model.is_active == True,  # noqa: E712
                    target,
                    or_(model.start_date.is_(None), model.start_date <= as_of),
                    or_(model.end_date.is_(None), model.end_date >= as_of),
                )
            )
            .order_by(model.created_at, model.id)
        )
        result = await self.db.execute(query)
        return list(result.unique().scalars().all())

    async def list_applicable_allowances(
        self,
        tenant_id: uuid.UUID,
        employee_id: uuid.UUID,
        department_id: Optional[uuid.UUID],
        as_of: date,
    ) -> List[Allowance]:
        return await self._list_applicable(Allowance, tenant_id, employee_id, department_id, as_of)

    async def list_applicable_deductions(
        self,
        tenant_id: uuid.UUID,
        employee_id: uuid.UUID,
        department_id: Optional[uuid.UUID],
        as_of: date,
    ) -> List[Deduction]:
        return await self._list_applicable(Deduction, tenant_id, employee_id, department_id, as_of)

    async def deactivate_one_time_deductions(
        self,
        tenant_id: uuid.UUID,
        assignment_ids: Iterable[uuid.UUID],
    ) -> int:
        """
        Deactivate the tenant's one-time deductions among ``assignment_ids``.

        Callers pass the one-time deductions a completed run applied, so
        one-time deductions no run has consumed yet stay active. Returns
        the row count.
        """
        ids = set(assignment_ids)
        if not ids:
            return 0

        result = await self.db.execute(
            update(Deduction)
            .where(
                and_(
                    Deduction.tenant_id == tenant_id,
                    Deduction.id.in_(ids),
                    Deduction.is_one_time == True,  # noqa: E712
                    Deduction.is_active == True,  # noqa: E712
                )
            )
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        count = result.rowcount or 0
        logger.info(f"Deactivated {count} one-time deductions for tenant {tenant_id}")
        return count
