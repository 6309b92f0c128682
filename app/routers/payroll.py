"""
Mshahara Payroll - Payroll Router

API endpoints for calculating, finalizing and reporting payroll runs.

Every route is tenant-scoped; the ownership gate runs once per request
as a router-level dependency.
"""

import uuid
from typing import Optional, List

from fastapi import APIRouter, Depends, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import get_current_caller_id, require_tenant_access
from app.models.payroll import PayrollStatus
from app.services.payroll_lifecycle_service import PayrollLifecycleService
from app.services.payroll_service import PayrollService
from app.schemas.payroll import (
    PayrollCalculateRequest,
    PayrollDetailResponse,
    PayrollRunListResponse,
    PayrollRunResponse,
    PayrollTrendResponse,
    StatutorySummaryResponse,
)


router = APIRouter(
    prefix="/tenants/{tenant_id}",
    dependencies=[Depends(require_tenant_access)],
)


# ===========================================
# CALCULATION
# ===========================================

@router.post(
    "/payroll-runs/calculate",
    response_model=PayrollRunResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Calculate payroll for a period",
    description="Creates a draft run for the period, replacing an existing draft. "
                "Fails with 409 when the period is already completed.",
)
async def calculate_payroll(
    request: PayrollCalculateRequest,
    tenant_id: uuid.UUID = Path(...),
    db: AsyncSession = Depends(get_async_session),
    caller_id: uuid.UUID = Depends(get_current_caller_id),
):
    """Calculate payroll for all active employees."""
    service = PayrollService(db)
    run = await service.calculate_payroll(
        tenant_id=tenant_id,
        month=request.month,
        year=request.year,
        caller_id=caller_id,
        as_of_date=request.as_of_date,
    )
    return PayrollRunResponse.model_validate(run)


# ===========================================
# RUN QUERIES
# ===========================================

@router.get(
    "/payroll-runs",
    response_model=PayrollRunListResponse,
    summary="List payroll runs",
)
async def list_payroll_runs(
    tenant_id: uuid.UUID = Path(...),
    status_filter: Optional[PayrollStatus] = Query(None, alias="status"),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncSession = Depends(get_async_session),
):
    """List payroll runs, newest period first."""
    service = PayrollService(db)
    runs = await service.list_runs(tenant_id, status=status_filter, year=year)
    return PayrollRunListResponse(
        items=[PayrollRunResponse.model_validate(run) for run in runs],
        total=len(runs),
    )


@router.get(
    "/payroll-runs/trend",
    response_model=PayrollTrendResponse,
    summary="Monthly payroll trend",
)
async def get_payroll_trend(
    tenant_id: uuid.UUID = Path(...),
    year: int = Query(..., ge=2000, le=2100),
    db: AsyncSession = Depends(get_async_session),
):
    """Monthly totals of completed runs for a year."""
    service = PayrollService(db)
    return await service.get_payroll_trend(tenant_id, year)


@router.get(
    "/payroll-runs/{run_id}",
    response_model=PayrollRunResponse,
    summary="Get payroll run",
)
async def get_payroll_run(
    tenant_id: uuid.UUID = Path(...),
    run_id: uuid.UUID = Path(...),
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    run = await service.get_run(tenant_id, run_id)
    return PayrollRunResponse.model_validate(run)


@router.get(
    "/payroll-runs/{run_id}/details",
    response_model=List[PayrollDetailResponse],
    summary="Get payroll run details",
)
async def get_payroll_run_details(
    tenant_id: uuid.UUID = Path(...),
    run_id: uuid.UUID = Path(...),
    db: AsyncSession = Depends(get_async_session),
):
    """Per-employee details of a run."""
    service = PayrollService(db)
    details = await service.get_run_details(tenant_id, run_id)
    return [PayrollDetailResponse.model_validate(detail) for detail in details]


@router.get(
    "/payroll-runs/{run_id}/details/{employee_id}",
    response_model=PayrollDetailResponse,
    summary="Get employee payslip data",
)
async def get_employee_payroll_detail(
    tenant_id: uuid.UUID = Path(...),
    run_id: uuid.UUID = Path(...),
    employee_id: uuid.UUID = Path(...),
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    detail = await service.get_employee_detail(tenant_id, run_id, employee_id)
    return PayrollDetailResponse.model_validate(detail)


@router.get(
    "/payroll-runs/{run_id}/statutory-summary",
    response_model=StatutorySummaryResponse,
    summary="Get statutory summary",
    description="Per-scheme totals and contributor counts used by statutory filings.",
)
async def get_statutory_summary(
    tenant_id: uuid.UUID = Path(...),
    run_id: uuid.UUID = Path(...),
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.get_statutory_summary(tenant_id, run_id)


# ===========================================
# LIFECYCLE
# ===========================================

@router.post(
    "/payroll-runs/{run_id}/complete",
    response_model=PayrollRunResponse,
    summary="Complete payroll run",
    description="Finalizes a draft run: applies loan deductions, deactivates the one-time "
                "deductions it applied and marks the run completed.",
)
async def complete_payroll_run(
    tenant_id: uuid.UUID = Path(...),
    run_id: uuid.UUID = Path(...),
    db: AsyncSession = Depends(get_async_session),
    caller_id: uuid.UUID = Depends(get_current_caller_id),
):
    """Complete a draft payroll run."""
    service = PayrollLifecycleService(db)
    run = await service.complete(tenant_id, run_id, caller_id=caller_id)
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/payroll-runs/{run_id}/cancel",
    response_model=PayrollRunResponse,
    summary="Cancel payroll run",
)
async def cancel_payroll_run(
    tenant_id: uuid.UUID = Path(...),
    run_id: uuid.UUID = Path(...),
    db: AsyncSession = Depends(get_async_session),
    caller_id: uuid.UUID = Depends(get_current_caller_id),
):
    """Cancel a draft payroll run."""
    service = PayrollLifecycleService(db)
    run = await service.cancel(tenant_id, run_id, caller_id=caller_id)
    return PayrollRunResponse.model_validate(run)
