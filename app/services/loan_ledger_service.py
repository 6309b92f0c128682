"""
Mshahara Payroll - Loan Ledger Service

Student loan (HELB) ledger access for the payroll engine.

- get_monthly_deduction: the period's fixed deduction, capped at the
  outstanding balance; zero when the employee is not enrolled, has no
  ledger entry, or the loan is cleared.
- apply_deduction: reduces the balance when a run completes. Each
  payroll detail can reduce the balance at most once; a repeated call
  for the same detail returns the repayment already recorded. A
  deduction larger than the current balance is refused, so a run
  calculated before another run reduced the balance cannot over-collect.
"""

import logging
import uuid
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.loan import LoanLedgerEntry, LoanRepayment, LoanStatus
from app.services.tax_calculators.common import ZERO, round_money
from app.utils.error_handling import (
    ErrorCode,
    NotFoundException,
    StaleLoanDeductionException,
)

logger = logging.getLogger(__name__)


class LoanLedgerService:
    """Loan ledger reads and finalization-time balance reductions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_entry(self, employee_id: uuid.UUID, for_update: bool = False) -> Optional[LoanLedgerEntry]:
        query = select(LoanLedgerEntry).where(LoanLedgerEntry.employee_id == employee_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_monthly_deduction(
        self,
        employee_id: uuid.UUID,
        pays_loan_deduction: bool = True,
    ) -> Decimal:
        """Fixed deduction for the period; zero when nothing is owed."""
        if not pays_loan_deduction:
            return ZERO

        entry = await self.get_entry(employee_id)
        if entry is None or entry.status == LoanStatus.CLEARED:
            return ZERO

        balance = Decimal(entry.current_balance)
        if balance <= 0:
            return ZERO
        return round_money(min(Decimal(entry.monthly_deduction), balance))

    async def apply_deduction(
        self,
        employee_id: uuid.UUID,
        amount: Decimal,
        payroll_run_id: uuid.UUID,
        payroll_detail_id: uuid.UUID,
    ) -> Optional[LoanRepayment]:
        """
        Reduce the employee's loan balance by ``amount``.

        Returns None for non-positive amounts. Raises
        StaleLoanDeductionException when ``amount`` exceeds the balance
        outstanding now, which happens when another run reduced the
        balance after this one was calculated. Reaching zero marks the
        loan as cleared.
        """
        if amount <= 0:
            return None

        existing = await self.db.execute(
            select(LoanRepayment).where(LoanRepayment.payroll_detail_id == payroll_detail_id)
        )
        repayment = existing.scalar_one_or_none()
        if repayment is not None:
            logger.info(f"Loan deduction for payroll detail {payroll_detail_id} already applied")
            return repayment

        entry = await self.get_entry(employee_id, for_update=True)
        if entry is None:
            raise NotFoundException(
                resource_type="LoanLedgerEntry",
                message=f"No loan ledger entry for employee {employee_id}",
                code=ErrorCode.LOAN_LEDGER_NOT_FOUND,
            )

        balance = Decimal(entry.current_balance)
        if entry.status == LoanStatus.CLEARED or amount > balance:
            logger.warning(
                f"Loan deduction {amount} for employee {employee_id} exceeds balance {balance}"
            )
            raise StaleLoanDeductionException(employee_id, amount, balance)

        new_balance = round_money(balance - amount)
        entry.current_balance = new_balance
        if new_balance == 0:
            entry.status = LoanStatus.CLEARED

        repayment = LoanRepayment(
            ledger_entry_id=entry.id,
            payroll_run_id=payroll_run_id,
            payroll_detail_id=payroll_detail_id,
            amount=round_money(amount),
            balance_after=new_balance,
        )
        self.db.add(repayment)
        await self.db.flush()

        logger.info(
            f"Applied loan deduction {amount} for employee {employee_id}; balance now {new_balance}"
        )
        return repayment

    # ===========================================
    # LEDGER VIEWS
    # ===========================================

    async def list_entries(self, tenant_id: uuid.UUID) -> List[LoanLedgerEntry]:
        result = await self.db.execute(
            select(LoanLedgerEntry)
            .options(selectinload(LoanLedgerEntry.repayments))
            .where(LoanLedgerEntry.tenant_id == tenant_id)
            .order_by(LoanLedgerEntry.created_at)
        )
        return list(result.scalars().all())

    async def get_entry_for_tenant(
        self,
        tenant_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> LoanLedgerEntry:
        result = await self.db.execute(
            select(LoanLedgerEntry)
            .options(selectinload(LoanLedgerEntry.repayments))
            .where(
                and_(
                    LoanLedgerEntry.tenant_id == tenant_id,
                    LoanLedgerEntry.employee_id == employee_id,
                )
            )
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            raise NotFoundException(
                resource_type="LoanLedgerEntry",
                message="Loan ledger entry not found for this employee",
                code=ErrorCode.LOAN_LEDGER_NOT_FOUND,
            )
        return entry
