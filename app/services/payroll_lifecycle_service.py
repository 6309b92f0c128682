"""
Mshahara Payroll - Payroll Run Lifecycle

Draft -> Completed and Draft -> Cancelled transitions.

Completion applies three effects in one database transaction:
1. Loan ledger reductions for every detail with a positive loan deduction
2. Deactivation of the one-time custom deductions the run applied
3. The status flip to Completed

Each detail records whether its loan deduction was applied, and every
ledger reduction is keyed by detail, so a retried completion after a
failed commit cannot reduce a balance twice.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditAction
from app.models.payroll import PayrollRun, PayrollStatus
from app.services.assignment_store import AssignmentStore
from app.services.audit_service import AuditService
from app.services.loan_ledger_service import LoanLedgerService
from app.services.payroll_run_store import PayrollRunStore
from app.utils.error_handling import (
    InvalidStateException,
    PayrollAlreadyFinalizedException,
    PayrollRunNotFoundException,
)
from app.utils.retry import run_with_store_retry

logger = logging.getLogger(__name__)


class PayrollLifecycleService:
    """Owns the payroll run state machine and its completion side effects."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.runs = PayrollRunStore(db)
        self.loans = LoanLedgerService(db)
        self.assignments = AssignmentStore(db)
        self.audit = AuditService(db)

    async def _get_run_for_update(self, tenant_id: uuid.UUID, run_id: uuid.UUID) -> PayrollRun:
        run = await self.runs.get_run(tenant_id, run_id, for_update=True)
        if run is None:
            raise PayrollRunNotFoundException(run_id)
        return run

    # ===========================================
    # COMPLETE
    # ===========================================

    async def complete(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        caller_id: Optional[uuid.UUID] = None,
    ) -> PayrollRun:
        """Finalize a Draft run. A second call fails with a conflict."""

        async def attempt() -> PayrollRun:
            return await self._complete_once(tenant_id, run_id, caller_id)

        run = await run_with_store_retry(
            self.db, attempt, description=f"Completion of payroll run {run_id}",
        )
        await self.db.refresh(run)
        return run

    async def _complete_once(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        caller_id: Optional[uuid.UUID],
    ) -> PayrollRun:
        run = await self._get_run_for_update(tenant_id, run_id)

        if run.status == PayrollStatus.COMPLETED:
            raise PayrollAlreadyFinalizedException(run.id, period=run.period_label)
        if run.status != PayrollStatus.DRAFT:
            raise InvalidStateException(
                "Only draft payroll runs can be completed",
                current_state=run.status.value,
            )

        now = datetime.now(timezone.utc)
        loans_applied = 0
        consumed_one_time: Set[uuid.UUID] = set()
        for detail in await self.runs.list_details(run.id):
            consumed_one_time.update(
                uuid.UUID(item["assignment_id"])
                for item in detail.deduction_items or []
                if item.get("is_one_time")
            )
            if detail.loan_deduction_applied or Decimal(detail.loan_deduction) <= 0:
                continue
            await self.loans.apply_deduction(
                employee_id=detail.employee_id,
                amount=Decimal(detail.loan_deduction),
                payroll_run_id=run.id,
                payroll_detail_id=detail.id,
            )
            detail.loan_deduction_applied = True
            detail.loan_deduction_applied_at = now
            loans_applied += 1

        deactivated = await self.assignments.deactivate_one_time_deductions(
            tenant_id, consumed_one_time,
        )

        run.status = PayrollStatus.COMPLETED
        run.completed_by_id = caller_id
        run.completed_at = now

        await self.audit.log_action(
            tenant_id=tenant_id,
            entity_type="payroll_run",
            entity_id=str(run.id),
            action=AuditAction.COMPLETE,
            user_id=caller_id,
            new_values={
                "status": PayrollStatus.COMPLETED.value,
                "loan_deductions_applied": loans_applied,
                "one_time_deductions_deactivated": deactivated,
            },
        )
        await self.db.commit()

        logger.info(
            f"Completed payroll run {run.run_number}: {loans_applied} loan deductions applied, "
            f"{deactivated} one-time deductions deactivated"
        )
        return run

    # ===========================================
    # CANCEL
    # ===========================================

    async def cancel(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        caller_id: Optional[uuid.UUID] = None,
    ) -> PayrollRun:
        """Cancel a Draft run. Details and the loan ledger are left untouched."""

        async def attempt() -> PayrollRun:
            return await self._cancel_once(tenant_id, run_id, caller_id)

        run = await run_with_store_retry(
            self.db, attempt, description=f"Cancellation of payroll run {run_id}",
        )
        await self.db.refresh(run)
        return run

    async def _cancel_once(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        caller_id: Optional[uuid.UUID],
    ) -> PayrollRun:
        run = await self._get_run_for_update(tenant_id, run_id)

        if run.status != PayrollStatus.DRAFT:
            raise InvalidStateException(
                f"Cannot cancel a payroll run in {run.status.value} status",
                current_state=run.status.value,
            )

        run.status = PayrollStatus.CANCELLED
        run.cancelled_by_id = caller_id
        run.cancelled_at = datetime.now(timezone.utc)

        await self.audit.log_action(
            tenant_id=tenant_id,
            entity_type="payroll_run",
            entity_id=str(run.id),
            action=AuditAction.CANCEL,
            user_id=caller_id,
            new_values={"status": PayrollStatus.CANCELLED.value},
        )
        await self.db.commit()

        logger.info(f"Cancelled payroll run {run.run_number}")
        return run
