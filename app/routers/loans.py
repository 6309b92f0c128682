"""
Mshahara Payroll - Loan Ledger Router

Read-only views of employee loan ledgers and their repayment history.
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import require_tenant_access
from app.services.loan_ledger_service import LoanLedgerService
from app.schemas.payroll import LoanLedgerEntryResponse


router = APIRouter(
    prefix="/tenants/{tenant_id}",
    dependencies=[Depends(require_tenant_access)],
)


@router.get(
    "/loan-ledger",
    response_model=List[LoanLedgerEntryResponse],
    summary="List loan ledger entries",
)
async def list_loan_ledger(
    tenant_id: uuid.UUID = Path(...),
    db: AsyncSession = Depends(get_async_session),
):
    service = LoanLedgerService(db)
    entries = await service.list_entries(tenant_id)
    return [LoanLedgerEntryResponse.model_validate(entry) for entry in entries]


@router.get(
    "/loan-ledger/{employee_id}",
    response_model=LoanLedgerEntryResponse,
    summary="Get an employee's loan ledger entry",
)
async def get_loan_ledger_entry(
    tenant_id: uuid.UUID = Path(...),
    employee_id: uuid.UUID = Path(...),
    db: AsyncSession = Depends(get_async_session),
):
    service = LoanLedgerService(db)
    entry = await service.get_entry_for_tenant(tenant_id, employee_id)
    return LoanLedgerEntryResponse.model_validate(entry)
