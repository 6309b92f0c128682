"""
Mshahara Payroll - Variable Pay Component Models

Allowance and deduction assignments targeted at either one employee
or a whole department. Each assignment carries a computation mode
(fixed amount or percentage of base salary), an active flag and a
validity window expressed either as dates or as (month, year) pairs.
"""

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean, Date, ForeignKey, Integer, Numeric, String,
    Enum as SQLEnum, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, GUID


class CalculationType(str, Enum):
    """How an assignment's value is turned into money."""
    FIXED = "Fixed"
    PERCENTAGE = "Percentage"


class AssignmentMixin:
    """Columns shared by allowance and deduction assignments."""

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Target scope: exactly one of these is set
    employee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID,
        ForeignKey("departments.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    calculation_type: Mapped[CalculationType] = mapped_column(
        SQLEnum(CalculationType, name="calculation_type"),
        default=CalculationType.FIXED,
        nullable=False,
    )
    value: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        comment="Fixed amount, or percentage of base salary",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Validity window as dates
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Validity window as (month, year) pairs
    start_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    start_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    end_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    end_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


# ===========================================
# ALLOWANCES
# ===========================================

class AllowanceType(BaseModel):
    """Named allowance category (e.g. House, Commuter, Company Car)."""

    __tablename__ = "allowance_types"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_cash: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False,
        comment="False for benefits in kind",
    )
    is_taxable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Allowance(BaseModel, AssignmentMixin):
    """Allowance assigned to an employee or a department."""

    __tablename__ = "allowances"

    allowance_type_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("allowance_types.id", ondelete="CASCADE"),
        nullable=False,
    )

    allowance_type: Mapped["AllowanceType"] = relationship("AllowanceType", lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "(employee_id IS NULL) <> (department_id IS NULL)",
            name="allowance_single_target",
        ),
    )


# ===========================================
# DEDUCTIONS
# ===========================================

class DeductionType(BaseModel):
    """Named custom deduction category (e.g. Sacco, Welfare, Salary Advance)."""

    __tablename__ = "deduction_types"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)


class Deduction(BaseModel, AssignmentMixin):
    """Custom deduction assigned to an employee or a department."""

    __tablename__ = "deductions"

    deduction_type_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("deduction_types.id", ondelete="CASCADE"),
        nullable=False,
    )
    is_one_time: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
        comment="Deactivated after the first completed run that applies it",
    )

    deduction_type: Mapped["DeductionType"] = relationship("DeductionType", lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "(employee_id IS NULL) <> (department_id IS NULL)",
            name="deduction_single_target",
        ),
    )
