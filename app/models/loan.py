"""
Mshahara Payroll - Loan Ledger Models

Per-employee student loan (HELB) ledger with a fixed monthly deduction.
The balance is reduced only when a payroll run is completed; every
reduction is recorded as a LoanRepayment keyed by the payroll detail
that produced it, so a retried completion cannot apply it twice.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    DateTime, ForeignKey, Numeric, String,
    Enum as SQLEnum, func
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, GUID


class LoanStatus(str, Enum):
    """Loan ledger status."""
    ACTIVE = "Active"
    CLEARED = "Cleared"


class LoanLedgerEntry(BaseModel):
    """Running loan balance for one employee."""

    __tablename__ = "loan_ledger_entries"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    account_number: Mapped[str] = mapped_column(
        String(50), nullable=False,
        comment="Lender account number",
    )
    initial_balance: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    current_balance: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    monthly_deduction: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    status: Mapped[LoanStatus] = mapped_column(
        SQLEnum(LoanStatus, name="loan_status"),
        default=LoanStatus.ACTIVE,
        nullable=False,
    )

    repayments: Mapped[List["LoanRepayment"]] = relationship(
        "LoanRepayment",
        back_populates="ledger_entry",
        order_by="LoanRepayment.applied_at",
    )

    def __repr__(self) -> str:
        return f"<LoanLedgerEntry(employee_id={self.employee_id}, balance={self.current_balance})>"


class LoanRepayment(BaseModel):
    """Balance reduction applied when a payroll run completed."""

    __tablename__ = "loan_repayments"

    ledger_entry_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("loan_ledger_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payroll_run_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("payroll_runs.id"),
        nullable=False,
        index=True,
    )
    payroll_detail_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("payroll_details.id"),
        nullable=False,
        unique=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    ledger_entry: Mapped["LoanLedgerEntry"] = relationship(
        "LoanLedgerEntry",
        back_populates="repayments",
    )
