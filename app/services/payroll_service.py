"""
Mshahara Payroll - Payroll Service

Payroll calculation orchestrator and run reporting for Kenyan payroll.

Kenyan Statutory Requirements:
1. PAYE (Pay As You Earn)
   - Monthly bands 10% / 25% / 30% / 32.5% / 35%
   - Personal relief KES 2,400 per month
   - Charged on gross pay less pension, levies, loan and custom deductions

2. NSSF Pension
   - 6% of base salary, Tier I up to the lower earnings limit,
     Tier II between the lower and upper limits

3. SHIF Health Levy
   - 2.75% of gross pay

4. Affordable Housing Levy
   - 1.5% of gross pay

5. HELB Loan
   - Fixed monthly deduction from the loan ledger, capped at the balance

Each scheme is gated by the employee's opt-in flag; an opted-out scheme
is recorded as an explicit zero.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditAction
from app.models.employee import Employee, PaymentMethod
from app.models.payroll import PayrollDetail, PayrollRun, PayrollStatus
from app.services.audit_service import AuditService
from app.services.employee_directory_service import EmployeeDirectory
from app.services.loan_ledger_service import LoanLedgerService
from app.services.payroll_run_store import PayrollRunStore
from app.services.tax_calculators import (
    PensionContribution,
    StatutoryRateSet,
    ensure_valid_base,
    get_rate_set,
    round_money,
)
from app.services.tax_calculators.common import ZERO
from app.services.variable_pay_service import ResolvedVariablePay, VariablePayResolver
from app.utils.error_handling import (
    ConcurrentCalculationException,
    NoActiveEmployeesException,
    NotFoundException,
    PayrollAlreadyFinalizedException,
    PayrollRunNotFoundException,
    validate_period,
)
from app.utils.retry import run_with_store_retry

logger = logging.getLogger(__name__)


# Statutory schemes reported in the statutory summary, keyed by detail column
STATUTORY_SCHEMES = (
    ("paye", "PAYE", "paye_tax"),
    ("pension_tier1", "NSSF Tier I", "pension_tier1"),
    ("pension_tier2", "NSSF Tier II", "pension_tier2"),
    ("pension_total", "NSSF Total", "pension_deduction"),
    ("health_levy", "SHIF Health Levy", "health_levy_deduction"),
    ("housing_levy", "Affordable Housing Levy", "housing_levy_deduction"),
    ("loan", "HELB Loan", "loan_deduction"),
)


# ===========================================
# PER-EMPLOYEE COMPUTATION
# ===========================================

@dataclass
class EmployeePayrollResult:
    """Computed pay for one employee, ready to persist as a PayrollDetail."""
    employee_id: uuid.UUID
    employee_number: str
    employee_name: str
    department_id: Optional[uuid.UUID]
    basic_salary: Decimal
    total_allowances: Decimal
    total_non_cash_benefits: Decimal
    gross_pay: Decimal
    taxable_income: Decimal
    paye_tax: Decimal
    pension: PensionContribution
    health_levy_deduction: Decimal
    housing_levy_deduction: Decimal
    loan_deduction: Decimal
    total_statutory_deductions: Decimal
    total_custom_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    payment_route: Dict[str, Any] = field(default_factory=dict)
    allowance_items: List[Dict[str, Any]] = field(default_factory=list)
    deduction_items: List[Dict[str, Any]] = field(default_factory=list)

    def to_detail(self) -> PayrollDetail:
        return PayrollDetail(
            employee_id=self.employee_id,
            employee_number=self.employee_number,
            employee_name=self.employee_name,
            department_id=self.department_id,
            basic_salary=self.basic_salary,
            total_allowances=self.total_allowances,
            total_non_cash_benefits=self.total_non_cash_benefits,
            gross_pay=self.gross_pay,
            taxable_income=self.taxable_income,
            paye_tax=self.paye_tax,
            pension_tier1=self.pension.tier1,
            pension_tier2=self.pension.tier2,
            pension_deduction=self.pension.total,
            health_levy_deduction=self.health_levy_deduction,
            housing_levy_deduction=self.housing_levy_deduction,
            loan_deduction=self.loan_deduction,
            total_statutory_deductions=self.total_statutory_deductions,
            total_custom_deductions=self.total_custom_deductions,
            total_deductions=self.total_deductions,
            net_pay=self.net_pay,
            allowance_items=self.allowance_items,
            deduction_items=self.deduction_items,
            loan_deduction_applied=False,
            **self.payment_route,
        )


def resolve_payment_route(employee: Employee) -> Dict[str, Any]:
    """Payment method and identifiers; Cash when no bank detail is on file."""
    route: Dict[str, Any] = {
        "payment_method": PaymentMethod.CASH,
        "bank_name": None,
        "bank_code": None,
        "branch_name": None,
        "account_number": None,
        "phone_number": None,
    }
    bank_detail = employee.bank_detail
    if bank_detail is None:
        return route

    method = bank_detail.payment_method or PaymentMethod.CASH
    route["payment_method"] = method
    if method == PaymentMethod.BANK:
        route.update(
            bank_name=bank_detail.bank_name,
            bank_code=bank_detail.bank_code,
            branch_name=bank_detail.branch_name,
            account_number=bank_detail.account_number,
        )
    elif method == PaymentMethod.MOBILE_MONEY:
        route["phone_number"] = bank_detail.phone_number
    return route


def compute_employee_payroll(
    employee: Employee,
    variable_pay: ResolvedVariablePay,
    loan_deduction: Decimal,
    rate_set: StatutoryRateSet,
) -> EmployeePayrollResult:
    """
    Compute one employee's pay from resolved inputs. No I/O.

    gross      = base + cash allowances
    taxable    = gross - pension - health - housing - loan - custom
                 (stored as computed; PAYE is charged on max(taxable, 0))
    statutory  = pension + health + housing + loan + PAYE
    net        = gross + non-cash benefits - statutory - custom
    """
    base_salary = round_money(ensure_valid_base(employee.salary, "salary"))

    cash_allowances = round_money(variable_pay.total_cash_allowances)
    non_cash_benefits = round_money(variable_pay.total_non_cash_benefits)
    custom_deductions = round_money(variable_pay.total_custom_deductions)
    gross_pay = base_salary + cash_allowances

    if employee.pays_pension:
        pension = rate_set.pension_calculator().calculate(base_salary)
    else:
        pension = PensionContribution(tier1=ZERO, tier2=ZERO)

    health_levy = (
        rate_set.health_levy_calculator().calculate(gross_pay)
        if employee.pays_health_levy else ZERO
    )
    housing_levy = (
        rate_set.housing_levy_calculator().calculate(gross_pay)
        if employee.pays_housing_levy else ZERO
    )
    loan = round_money(loan_deduction) if employee.pays_loan_deduction else ZERO

    taxable_income = gross_pay - pension.total - health_levy - housing_levy - loan - custom_deductions

    paye = (
        rate_set.paye_calculator().calculate_paye(max(taxable_income, ZERO))
        if employee.pays_paye else ZERO
    )

    statutory = pension.total + health_levy + housing_levy + loan + paye
    total_deductions = statutory + custom_deductions
    net_pay = gross_pay + non_cash_benefits - total_deductions

    return EmployeePayrollResult(
        employee_id=employee.id,
        employee_number=employee.employee_number,
        employee_name=employee.full_name,
        department_id=employee.department_id,
        basic_salary=base_salary,
        total_allowances=cash_allowances,
        total_non_cash_benefits=non_cash_benefits,
        gross_pay=round_money(gross_pay),
        taxable_income=round_money(taxable_income),
        paye_tax=paye,
        pension=pension,
        health_levy_deduction=health_levy,
        housing_levy_deduction=housing_levy,
        loan_deduction=loan,
        total_statutory_deductions=round_money(statutory),
        total_custom_deductions=custom_deductions,
        total_deductions=round_money(total_deductions),
        net_pay=round_money(net_pay),
        payment_route=resolve_payment_route(employee),
        allowance_items=[item.to_dict() for item in variable_pay.allowances],
        deduction_items=[item.to_dict() for item in variable_pay.deductions],
    )


def format_run_number(year: int, month: int, sequence: int) -> str:
    return f"PAY-{year}-{month:02d}-{sequence:03d}"


class PayrollService:
    """
    Payroll service for calculating payroll runs and reporting on them.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.runs = PayrollRunStore(db)
        self.employees = EmployeeDirectory(db)
        self.resolver = VariablePayResolver(db)
        self.loans = LoanLedgerService(db)
        self.audit = AuditService(db)

    # ===========================================
    # CALCULATION
    # ===========================================

    async def calculate_payroll(
        self,
        tenant_id: uuid.UUID,
        month: int,
        year: int,
        caller_id: Optional[uuid.UUID] = None,
        as_of_date: Optional[date] = None,
    ) -> PayrollRun:
        """
        Calculate payroll for a tenant and period, producing a Draft run.

        An existing Draft for the period is replaced in the same
        transaction; a Completed run is never touched. Any per-employee
        failure rolls back the whole calculation.
        """
        month, year = validate_period(month, year)
        rate_set = get_rate_set(year, month)
        as_of = as_of_date or date.today()
        period = f"{year}-{month:02d}"

        async def attempt() -> PayrollRun:
            return await self._calculate_once(tenant_id, month, year, rate_set, as_of, caller_id)

        def on_conflict(error: IntegrityError) -> ConcurrentCalculationException:
            return ConcurrentCalculationException(period, original_error=error)

        run = await run_with_store_retry(
            self.db,
            attempt,
            description=f"Payroll calculation for {period}",
            on_integrity_error=on_conflict,
        )
        await self.db.refresh(run)
        return run

    async def _calculate_once(
        self,
        tenant_id: uuid.UUID,
        month: int,
        year: int,
        rate_set: StatutoryRateSet,
        as_of: date,
        caller_id: Optional[uuid.UUID],
    ) -> PayrollRun:
        await self.runs.lock_period(tenant_id, month, year)

        existing = await self.runs.find_run(tenant_id, month, year, for_update=True)
        if existing is not None and existing.status == PayrollStatus.COMPLETED:
            raise PayrollAlreadyFinalizedException(existing.id, period=existing.period_label)

        employees = await self.employees.list_active_employees(tenant_id)
        if not employees:
            raise NoActiveEmployeesException(tenant_id)

        sequence = await self.runs.next_sequence(tenant_id, month, year)
        revision = existing.revision + 1 if existing is not None else 1

        results: List[EmployeePayrollResult] = []
        for employee in employees:
            variable_pay = await self.resolver.resolve(
                tenant_id=tenant_id,
                employee_id=employee.id,
                department_id=employee.department_id,
                base_salary=employee.salary,
                as_of=as_of,
            )
            loan_deduction = await self.loans.get_monthly_deduction(
                employee.id, employee.pays_loan_deduction,
            )
            results.append(compute_employee_payroll(employee, variable_pay, loan_deduction, rate_set))

        replaced_run_id = None
        if existing is not None:
            replaced_run_id = existing.id
            await self.runs.delete_run(existing)

        run = PayrollRun(
            tenant_id=tenant_id,
            run_number=format_run_number(year, month, sequence),
            sequence=sequence,
            revision=revision,
            period_month=month,
            period_year=year,
            payroll_date=as_of,
            rate_set_version=rate_set.version,
            status=PayrollStatus.DRAFT,
            calculated_by_id=caller_id,
            employee_count=len(results),
            total_gross_pay=sum((r.gross_pay for r in results), ZERO),
            total_statutory_deductions=sum((r.total_statutory_deductions for r in results), ZERO),
            total_paye=sum((r.paye_tax for r in results), ZERO),
            total_deductions=sum((r.total_deductions for r in results), ZERO),
            total_net_pay=sum((r.net_pay for r in results), ZERO),
            details=[r.to_detail() for r in results],
        )
        await self.runs.add_run(run)

        await self.audit.log_action(
            tenant_id=tenant_id,
            entity_type="payroll_run",
            entity_id=str(run.id),
            action=AuditAction.RECALCULATE if replaced_run_id else AuditAction.CALCULATE,
            user_id=caller_id,
            new_values={
                "run_number": run.run_number,
                "period": run.period_label,
                "revision": revision,
                "rate_set_version": run.rate_set_version,
                "employee_count": run.employee_count,
                "total_net_pay": str(run.total_net_pay),
                "replaced_run_id": str(replaced_run_id) if replaced_run_id else None,
            },
        )
        await self.db.commit()

        if replaced_run_id:
            logger.info(f"Replaced draft payroll run {replaced_run_id} with {run.run_number} (revision {revision})")
        else:
            logger.info(f"Created payroll run {run.run_number} for {len(results)} employees")
        return run

    # ===========================================
    # QUERIES
    # ===========================================

    async def list_runs(
        self,
        tenant_id: uuid.UUID,
        status: Optional[PayrollStatus] = None,
        year: Optional[int] = None,
    ) -> List[PayrollRun]:
        return await self.runs.list_runs(tenant_id, status=status, year=year)

    async def get_run(self, tenant_id: uuid.UUID, run_id: uuid.UUID) -> PayrollRun:
        run = await self.runs.get_run(tenant_id, run_id)
        if run is None:
            raise PayrollRunNotFoundException(run_id)
        return run

    async def get_run_details(self, tenant_id: uuid.UUID, run_id: uuid.UUID) -> List[PayrollDetail]:
        run = await self.get_run(tenant_id, run_id)
        return await self.runs.list_details(run.id)

    async def get_employee_detail(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> PayrollDetail:
        """One employee's payslip data within a run."""
        run = await self.get_run(tenant_id, run_id)
        detail = await self.runs.get_detail(run.id, employee_id)
        if detail is None:
            raise NotFoundException(
                resource_type="PayrollDetail",
                message="Employee is not part of this payroll run",
            )
        return detail

    async def get_statutory_summary(self, tenant_id: uuid.UUID, run_id: uuid.UUID) -> Dict[str, Any]:
        """
        Per-scheme totals and contributor counts for statutory filings.

        An employee counts as a contributor to a scheme when their amount
        for it is positive.
        """
        run = await self.get_run(tenant_id, run_id)
        details = await self.runs.list_details(run.id)

        schemes = []
        for code, name, column in STATUTORY_SCHEMES:
            amounts = [Decimal(getattr(detail, column)) for detail in details]
            schemes.append({
                "code": code,
                "name": name,
                "total_amount": sum(amounts, ZERO),
                "employee_count": sum(1 for amount in amounts if amount > 0),
            })

        return {
            "run_id": run.id,
            "run_number": run.run_number,
            "period_month": run.period_month,
            "period_year": run.period_year,
            "status": run.status,
            "rate_set_version": run.rate_set_version,
            "employee_count": len(details),
            "total_gross_pay": sum((Decimal(d.gross_pay) for d in details), ZERO),
            "schemes": schemes,
        }

    async def get_payroll_trend(self, tenant_id: uuid.UUID, year: int) -> Dict[str, Any]:
        """Monthly gross, deductions and net from Completed runs; zero for other months."""
        runs = await self.runs.list_completed_runs_for_year(tenant_id, year)
        by_month = {run.period_month: run for run in runs}

        points = []
        for month in range(1, 13):
            run = by_month.get(month)
            points.append({
                "month": month,
                "run_number": run.run_number if run else None,
                "employee_count": run.employee_count if run else 0,
                "total_gross_pay": Decimal(run.total_gross_pay) if run else ZERO,
                "total_deductions": Decimal(run.total_deductions) if run else ZERO,
                "total_net_pay": Decimal(run.total_net_pay) if run else ZERO,
            })

        return {
            "year": year,
            "points": points,
            "total_gross_pay": sum((p["total_gross_pay"] for p in points), ZERO),
            "total_net_pay": sum((p["total_net_pay"] for p in points), ZERO),
        }
