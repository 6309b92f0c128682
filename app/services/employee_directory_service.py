"""
Mshahara Payroll - Employee Directory

Read-only access to the employees the payroll engine pays.
"""

import uuid
from typing import List, Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.employee import Employee, EmployeeStatus


class EmployeeDirectory:
    """Employee lookups scoped to a tenant."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active_employees(self, tenant_id: uuid.UUID) -> List[Employee]:
        """Active employees with their payment route, in staff-number order."""
        result = await self.db.execute(
            select(Employee)
            .options(selectinload(Employee.bank_detail))
            .where(
                and_(
                    Employee.tenant_id == tenant_id,
                    Employee.employee_status == EmployeeStatus.ACTIVE,
                )
            )
            .order_by(Employee.employee_number)
        )
        return list(result.scalars().all())

    async def get_employee(
        self,
        tenant_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> Optional[Employee]:
        result = await self.db.execute(
            select(Employee)
            .options(selectinload(Employee.bank_detail))
            .where(
                and_(
                    Employee.id == employee_id,
                    Employee.tenant_id == tenant_id,
                )
            )
        )
        return result.scalar_one_or_none()
