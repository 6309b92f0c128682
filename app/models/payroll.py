"""
Mshahara Payroll - Payroll Models

A PayrollRun is one computation for a tenant and a (month, year) period.
A PayrollDetail holds one employee's computed pay within a run.

Run lifecycle:
    DRAFT -> COMPLETED (terminal, applies loan ledger and one-time deduction effects)
    DRAFT -> CANCELLED (terminal, no side effects)

A new calculation against a DRAFT replaces it; at most one non-cancelled
run exists per (tenant, month, year), enforced by a partial unique index.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String,
    Enum as SQLEnum, JSON, UniqueConstraint, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, GUID
from app.models.employee import PaymentMethod


# ===========================================
# ENUMS
# ===========================================

class PayrollStatus(str, Enum):
    """Payroll run status."""
    DRAFT = "Draft"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


def _money_column(**kwargs) -> Mapped[Decimal]:
    return mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
        **kwargs,
    )


# ===========================================
# PAYROLL RUN
# ===========================================

class PayrollRun(BaseModel):
    """
    Payroll run for one tenant and pay period.

    Totals are written once by the calculation that creates the run and
    are never edited afterwards; a recalculation creates a new run.
    """

    __tablename__ = "payroll_runs"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Run identification
    run_number: Mapped[str] = mapped_column(
        String(50), nullable=False,
        comment="Human-readable run number e.g. PAY-2025-03-002",
    )
    sequence: Mapped[int] = mapped_column(
        Integer, nullable=False,
        comment="Per-period sequence used in run_number",
    )
    revision: Mapped[int] = mapped_column(
        Integer, default=1, nullable=False,
        comment="Incremented each time a draft for the period is replaced",
    )

    # Pay period
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    payroll_date: Mapped[date] = mapped_column(
        Date, nullable=False,
        comment="Calculation date; the as-of date for variable pay",
    )
    rate_set_version: Mapped[str] = mapped_column(
        String(20), nullable=False,
        comment="Effective date of the statutory rate set applied",
    )

    # Status
    status: Mapped[PayrollStatus] = mapped_column(
        SQLEnum(PayrollStatus, name="payroll_status"),
        default=PayrollStatus.DRAFT,
        nullable=False,
    )

    # Summary (calculated)
    employee_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_gross_pay: Mapped[Decimal] = _money_column()
    total_statutory_deductions: Mapped[Decimal] = _money_column()
    total_paye: Mapped[Decimal] = _money_column()
    total_deductions: Mapped[Decimal] = _money_column()
    total_net_pay: Mapped[Decimal] = _money_column()

    # Workflow
    calculated_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)
    completed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    cancelled_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    # Relationships
    details: Mapped[List["PayrollDetail"]] = relationship(
        "PayrollDetail",
        back_populates="payroll_run",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint('tenant_id', 'run_number', name='uq_payroll_run_tenant_number'),
        Index(
            "uq_payroll_runs_open_period",
            "tenant_id", "period_month", "period_year",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
    )

    @property
    def period_label(self) -> str:
        return f"{self.period_year}-{self.period_month:02d}"

    def __repr__(self) -> str:
        return f"<PayrollRun(id={self.id}, number={self.run_number}, status={self.status})>"


# ===========================================
# PAYROLL DETAIL
# ===========================================

class PayrollDetail(BaseModel):
    """
    One employee's computed pay within a payroll run.

    Deduction columns hold an explicit zero for schemes the employee
    is not enrolled in.
    """

    __tablename__ = "payroll_details"

    payroll_run_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("payroll_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("employees.id"),
        nullable=False,
        index=True,
    )

    # Employee snapshot
    employee_number: Mapped[str] = mapped_column(String(50), nullable=False)
    employee_name: Mapped[str] = mapped_column(String(300), nullable=False)
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)

    # Earnings
    basic_salary: Mapped[Decimal] = _money_column()
    total_allowances: Mapped[Decimal] = _money_column(comment="Cash allowances")
    total_non_cash_benefits: Mapped[Decimal] = _money_column()
    gross_pay: Mapped[Decimal] = _money_column()
    taxable_income: Mapped[Decimal] = _money_column(
        comment="Gross less pension, levies, loan and custom deductions; negative when deductions exceed pay"
    )

    # Statutory deductions
    paye_tax: Mapped[Decimal] = _money_column()
    pension_tier1: Mapped[Decimal] = _money_column()
    pension_tier2: Mapped[Decimal] = _money_column()
    pension_deduction: Mapped[Decimal] = _money_column()
    health_levy_deduction: Mapped[Decimal] = _money_column()
    housing_levy_deduction: Mapped[Decimal] = _money_column()
    loan_deduction: Mapped[Decimal] = _money_column()
    total_statutory_deductions: Mapped[Decimal] = _money_column()

    # Custom deductions and totals
    total_custom_deductions: Mapped[Decimal] = _money_column()
    total_deductions: Mapped[Decimal] = _money_column()
    net_pay: Mapped[Decimal] = _money_column()

    # Payment route
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(PaymentMethod, name="payment_method"),
        default=PaymentMethod.CASH,
        nullable=False,
    )
    bank_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bank_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    branch_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    account_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Resolved line items for reporting
    allowance_items: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    deduction_items: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)

    # Completion bookkeeping for the loan ledger effect
    loan_deduction_applied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    loan_deduction_applied_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    payroll_run: Mapped["PayrollRun"] = relationship("PayrollRun", back_populates="details")

    __table_args__ = (
        UniqueConstraint('payroll_run_id', 'employee_id', name='uq_payroll_detail_run_employee'),
    )

    def __repr__(self) -> str:
        return f"<PayrollDetail(run={self.payroll_run_id}, employee={self.employee_id}, net={self.net_pay})>"
