"""
Mshahara Payroll - Employee Models

Employee directory records read by the payroll engine:
- Department (scope for department-level allowances and deductions)
- Employee (salary, status and statutory opt-in flags)
- EmployeeBankDetail (payment route for net pay)

Statutory opt-in flags:
1. pays_paye - Income tax (PAYE)
2. pays_pension - Tiered pension contribution (NSSF)
3. pays_health_levy - Health insurance levy (SHIF)
4. pays_housing_levy - Affordable housing levy
5. pays_loan_deduction - Student loan repayment (HELB)
"""

import uuid
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import (
    Boolean, ForeignKey, Numeric, String,
    Enum as SQLEnum, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, GUID

if TYPE_CHECKING:
    from app.models.tenant import Tenant


# ===========================================
# ENUMS
# ===========================================

class EmployeeStatus(str, Enum):
    """Employment status."""
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    TERMINATED = "Terminated"


class PaymentMethod(str, Enum):
    """How net pay reaches the employee."""
    BANK = "Bank"
    MOBILE_MONEY = "Mobile Money"
    CASH = "Cash"


# ===========================================
# DEPARTMENT
# ===========================================

class Department(BaseModel):
    """Organizational unit within a tenant."""

    __tablename__ = "departments"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="departments")
    employees: Mapped[List["Employee"]] = relationship(
        "Employee",
        back_populates="department",
    )

    __table_args__ = (
        UniqueConstraint('tenant_id', 'name', name='uq_department_tenant_name'),
    )


# ===========================================
# EMPLOYEE
# ===========================================

class Employee(BaseModel):
    """
    Employee record consumed by the payroll engine.

    The engine never writes to this table; it reads salary, status,
    department affiliation and the statutory opt-in flags.
    """

    __tablename__ = "employees"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID,
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Identification
    employee_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Internal staff number",
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    other_names: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    kra_pin: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    nssf_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    shif_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    # Compensation
    salary: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        comment="Monthly base salary",
    )
    employee_status: Mapped[EmployeeStatus] = mapped_column(
        SQLEnum(EmployeeStatus, name="employee_status"),
        default=EmployeeStatus.ACTIVE,
        nullable=False,
    )

    # Statutory opt-in flags
    pays_paye: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    pays_pension: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    pays_health_levy: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    pays_housing_levy: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    pays_loan_deduction: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="employees")
    department: Mapped[Optional["Department"]] = relationship(
        "Department",
        back_populates="employees",
    )
    bank_detail: Mapped[Optional["EmployeeBankDetail"]] = relationship(
        "EmployeeBankDetail",
        back_populates="employee",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint('tenant_id', 'employee_number', name='uq_employee_tenant_number'),
    )

    @property
    def full_name(self) -> str:
        """Get employee's full name."""
        parts = [self.first_name]
        if self.other_names:
            parts.append(self.other_names)
        parts.append(self.last_name)
        return " ".join(parts)

    def __repr__(self) -> str:
        return f"<Employee(id={self.id}, employee_number={self.employee_number}, name={self.full_name})>"


# ===========================================
# EMPLOYEE BANK DETAIL
# ===========================================

class EmployeeBankDetail(BaseModel):
    """Payment route for an employee's net pay."""

    __tablename__ = "employee_bank_details"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(PaymentMethod, name="payment_method"),
        default=PaymentMethod.CASH,
        nullable=False,
    )
    bank_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bank_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    branch_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    account_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True,
        comment="Mobile money wallet number",
    )

    employee: Mapped["Employee"] = relationship("Employee", back_populates="bank_detail")
