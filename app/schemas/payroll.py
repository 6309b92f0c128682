"""
Mshahara Payroll - Payroll Schemas

Pydantic schemas for payroll requests and responses.
Monetary amounts are Decimals serialized as strings.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.employee import PaymentMethod
from app.models.loan import LoanStatus
from app.models.payroll import PayrollStatus


# ===========================================
# PAYROLL RUN SCHEMAS
# ===========================================

class PayrollCalculateRequest(BaseModel):
    """Calculate payroll for a period."""
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    as_of_date: Optional[date] = Field(
        None,
        description="Date used to select allowances and deductions; defaults to today",
    )


class PayrollRunResponse(BaseModel):
    """Payroll run with run-level totals."""
    id: UUID
    tenant_id: UUID
    run_number: str
    revision: int
    period_month: int
    period_year: int
    payroll_date: date
    rate_set_version: str
    status: PayrollStatus
    employee_count: int
    total_gross_pay: Decimal
    total_statutory_deductions: Decimal
    total_paye: Decimal
    total_deductions: Decimal
    total_net_pay: Decimal
    calculated_by_id: Optional[UUID] = None
    completed_by_id: Optional[UUID] = None
    completed_at: Optional[datetime] = None
    cancelled_by_id: Optional[UUID] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PayrollRunListResponse(BaseModel):
    """List of payroll runs."""
    items: List[PayrollRunResponse]
    total: int


# ===========================================
# PAYROLL DETAIL SCHEMAS
# ===========================================

class PayLineItem(BaseModel):
    """Resolved allowance or deduction snapshot."""
    assignment_id: UUID
    name: str
    amount: Decimal
    calculation_type: str
    value: Decimal
    scope: str
    is_cash: bool = True
    is_taxable: bool = True
    is_one_time: bool = False


class PayrollDetailResponse(BaseModel):
    """One employee's computed pay within a run."""
    id: UUID
    payroll_run_id: UUID
    employee_id: UUID
    employee_number: str
    employee_name: str
    department_id: Optional[UUID] = None

    # Earnings
    basic_salary: Decimal
    total_allowances: Decimal
    total_non_cash_benefits: Decimal
    gross_pay: Decimal
    taxable_income: Decimal

    # Statutory
    paye_tax: Decimal
    pension_tier1: Decimal
    pension_tier2: Decimal
    pension_deduction: Decimal
    health_levy_deduction: Decimal
    housing_levy_deduction: Decimal
    loan_deduction: Decimal
    total_statutory_deductions: Decimal

    # Totals
    total_custom_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal

    # Payment route
    payment_method: PaymentMethod
    bank_name: Optional[str] = None
    bank_code: Optional[str] = None
    branch_name: Optional[str] = None
    account_number: Optional[str] = None
    phone_number: Optional[str] = None

    allowance_items: List[PayLineItem] = []
    deduction_items: List[PayLineItem] = []
    loan_deduction_applied: bool

    class Config:
        from_attributes = True


# ===========================================
# REPORTING SCHEMAS
# ===========================================

class SchemeTotal(BaseModel):
    """Total and contributor count for one statutory scheme."""
    code: str
    name: str
    total_amount: Decimal
    employee_count: int


class StatutorySummaryResponse(BaseModel):
    """Per-scheme statutory totals for a run."""
    run_id: UUID
    run_number: str
    period_month: int
    period_year: int
    status: PayrollStatus
    rate_set_version: str
    employee_count: int
    total_gross_pay: Decimal
    schemes: List[SchemeTotal]


class PayrollTrendPoint(BaseModel):
    month: int
    run_number: Optional[str] = None
    employee_count: int
    total_gross_pay: Decimal
    total_deductions: Decimal
    total_net_pay: Decimal


class PayrollTrendResponse(BaseModel):
    """Monthly totals of completed runs for one year."""
    year: int
    points: List[PayrollTrendPoint]
    total_gross_pay: Decimal
    total_net_pay: Decimal


# ===========================================
# LOAN LEDGER SCHEMAS
# ===========================================

class LoanRepaymentResponse(BaseModel):
    """Balance reduction applied by a completed run."""
    id: UUID
    payroll_run_id: UUID
    payroll_detail_id: UUID
    amount: Decimal
    balance_after: Decimal
    applied_at: datetime

    class Config:
        from_attributes = True


class LoanLedgerEntryResponse(BaseModel):
    """Employee loan ledger entry with repayment history."""
    id: UUID
    employee_id: UUID
    account_number: str
    initial_balance: Decimal
    current_balance: Decimal
    monthly_deduction: Decimal
    status: LoanStatus
    repayments: List[LoanRepaymentResponse] = []

    class Config:
        from_attributes = True
