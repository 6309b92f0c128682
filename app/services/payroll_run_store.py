"""
Mshahara Payroll - Payroll Run Store

Persistence for payroll runs and their per-employee details.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import and_, delete, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payroll import PayrollDetail, PayrollRun, PayrollStatus

logger = logging.getLogger(__name__)


class PayrollRunStore:
    """Reads and writes payroll runs for a tenant."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def lock_period(self, tenant_id: uuid.UUID, month: int, year: int) -> None:
        """
        Serialize calculations for one (tenant, period) until the transaction ends.

        Uses a transaction-scoped advisory lock on PostgreSQL. Other
        backends rely on the open-period unique index alone.
        """
        if self.db.get_bind().dialect.name != "postgresql":
            return
        await self.db.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
            {"key": f"payroll:{tenant_id}:{year}-{month:02d}"},
        )

    async def find_run(
        self,
        tenant_id: uuid.UUID,
        month: int,
        year: int,
        for_update: bool = False,
    ) -> Optional[PayrollRun]:
        """The non-cancelled run for the period, if any."""
        query = select(PayrollRun).where(
            and_(
                PayrollRun.tenant_id == tenant_id,
                PayrollRun.period_month == month,
                PayrollRun.period_year == year,
                PayrollRun.status != PayrollStatus.CANCELLED,
            )
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def next_sequence(self, tenant_id: uuid.UUID, month: int, year: int) -> int:
        """One more than the highest sequence used in the period, cancelled runs included."""
        result = await self.db.execute(
            select(func.max(PayrollRun.sequence)).where(
                and_(
                    PayrollRun.tenant_id == tenant_id,
                    PayrollRun.period_month == month,
                    PayrollRun.period_year == year,
                )
            )
        )
        return (result.scalar() or 0) + 1

    async def get_run(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[PayrollRun]:
        query = select(PayrollRun).where(
            and_(
                PayrollRun.id == run_id,
                PayrollRun.tenant_id == tenant_id,
            )
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_runs(
        self,
        tenant_id: uuid.UUID,
        status: Optional[PayrollStatus] = None,
        year: Optional[int] = None,
    ) -> List[PayrollRun]:
        """Runs for a tenant, newest period first."""
        query = select(PayrollRun).where(PayrollRun.tenant_id == tenant_id)
        if status:
            query = query.where(PayrollRun.status == status)
        if year:
            query = query.where(PayrollRun.period_year == year)

        query = query.order_by(
            PayrollRun.period_year.desc(),
            PayrollRun.period_month.desc(),
            PayrollRun.sequence.desc(),
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_completed_runs_for_year(self, tenant_id: uuid.UUID, year: int) -> List[PayrollRun]:
        return await self.list_runs(tenant_id, status=PayrollStatus.COMPLETED, year=year)

    async def delete_run(self, run: PayrollRun) -> None:
        """Remove a draft run and its details."""
        await self.db.execute(
            delete(PayrollDetail).where(PayrollDetail.payroll_run_id == run.id)
        )
        await self.db.execute(delete(PayrollRun).where(PayrollRun.id == run.id))
        logger.info(f"Deleted draft payroll run {run.run_number}")

    async def add_run(self, run: PayrollRun) -> PayrollRun:
        self.db.add(run)
        await self.db.flush()
        return run

    async def list_details(self, run_id: uuid.UUID) -> List[PayrollDetail]:
        result = await self.db.execute(
            select(PayrollDetail)
            .where(PayrollDetail.payroll_run_id == run_id)
            .order_by(PayrollDetail.employee_number)
        )
        return list(result.scalars().all())

    async def get_detail(self, run_id: uuid.UUID, employee_id: uuid.UUID) -> Optional[PayrollDetail]:
        result = await self.db.execute(
            select(PayrollDetail).where(
                and_(
                    PayrollDetail.payroll_run_id == run_id,
                    PayrollDetail.employee_id == employee_id,
                )
            )
        )
        return result.scalar_one_or_none()
