"""
Mshahara Payroll - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin, GUID
from app.models.tenant import Tenant
from app.models.employee import (
    Department,
    Employee,
    EmployeeBankDetail,
    EmployeeStatus,
    PaymentMethod,
)
from app.models.pay_components import (
    Allowance,
    AllowanceType,
    CalculationType,
    Deduction,
    DeductionType,
)
from app.models.loan import LoanLedgerEntry, LoanRepayment, LoanStatus
from app.models.payroll import PayrollDetail, PayrollRun, PayrollStatus
from app.models.audit import AuditAction, AuditLog

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "GUID",
    # Tenant
    "Tenant",
    # Employees
    "Department",
    "Employee",
    "EmployeeBankDetail",
    "EmployeeStatus",
    "PaymentMethod",
    # Variable pay
    "Allowance",
    "AllowanceType",
    "CalculationType",
    "Deduction",
    "DeductionType",
    # Loan ledger
    "LoanLedgerEntry",
    "LoanRepayment",
    "LoanStatus",
    # Payroll
    "PayrollDetail",
    "PayrollRun",
    "PayrollStatus",
    # Audit
    "AuditAction",
    "AuditLog",
]
