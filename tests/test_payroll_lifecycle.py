"""
Mshahara Payroll - Payroll Run Lifecycle Tests

Completion side effects, cancellation, and the terminal states.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.config import settings
from app.models import (
    AuditAction,
    AuditLog,
    LoanRepayment,
    LoanStatus,
    PayrollStatus,
)
from app.services.loan_ledger_service import LoanLedgerService
from app.services.payroll_lifecycle_service import PayrollLifecycleService
from app.services.payroll_run_store import PayrollRunStore
from app.services.payroll_service import PayrollService
from app.utils.error_handling import (
    ErrorCode,
    InvalidStateException,
    PayrollAlreadyFinalizedException,
    PayrollRunNotFoundException,
    StaleLoanDeductionException,
    TransientStoreException,
)


MONTH, YEAR = 3, 2025
AS_OF = date(2025, 3, 31)


async def _calculate(db_session, tenant_id, month=MONTH, year=YEAR):
    return await PayrollService(db_session).calculate_payroll(
        tenant_id, month, year, as_of_date=date(year, month, 28),
    )


async def _repayment_count(db_session):
    return (await db_session.execute(select(func.count(LoanRepayment.id)))).scalar()


class TestComplete:

    @pytest.mark.asyncio
    async def test_complete_applies_loan_once(self, db_session, test_tenant, make_employee, make_loan, owner_id):
        employee = await make_employee(salary="50000", pays_loan_deduction=True)
        entry = await make_loan(employee, balance="10000", monthly="3000")
        run = await _calculate(db_session, test_tenant.id)

        completed = await PayrollLifecycleService(db_session).complete(
            test_tenant.id, run.id, caller_id=owner_id,
        )

        assert completed.status == PayrollStatus.COMPLETED
        assert completed.completed_by_id == owner_id
        assert completed.completed_at is not None
        await db_session.refresh(entry)
        assert entry.current_balance == Decimal("7000.00")
        assert await _repayment_count(db_session) == 1

        detail = await PayrollService(db_session).get_employee_detail(test_tenant.id, run.id, employee.id)
        assert detail.loan_deduction_applied is True
        assert detail.loan_deduction_applied_at is not None

    @pytest.mark.asyncio
    async def test_second_completion_is_conflict(self, db_session, test_tenant, make_employee, make_loan):
        tenant_id = test_tenant.id
        employee = await make_employee(salary="50000", pays_loan_deduction=True)
        await make_loan(employee, balance="10000", monthly="3000")
        employee_id = employee.id
        run = await _calculate(db_session, tenant_id)
        run_id = run.id
        service = PayrollLifecycleService(db_session)
        await service.complete(tenant_id, run_id)

        with pytest.raises(PayrollAlreadyFinalizedException) as exc_info:
            await service.complete(tenant_id, run_id)

        assert exc_info.value.status_code == 409
        entry = await LoanLedgerService(db_session).get_entry(employee_id)
        assert entry.current_balance == Decimal("7000.00")
        assert await _repayment_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_loan_cleared_when_final_instalment_applied(
        self, db_session, test_tenant, make_employee, make_loan,
    ):
        employee = await make_employee(salary="50000", pays_loan_deduction=True)
        entry = await make_loan(employee, balance="1800", monthly="3000")
        run = await _calculate(db_session, test_tenant.id)

        await PayrollLifecycleService(db_session).complete(test_tenant.id, run.id)

        await db_session.refresh(entry)
        assert entry.current_balance == Decimal("0.00")
        assert entry.status == LoanStatus.CLEARED

        next_run = await _calculate(db_session, test_tenant.id, month=4)
        detail = await PayrollService(db_session).get_employee_detail(test_tenant.id, next_run.id, employee.id)
        assert detail.loan_deduction == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_one_time_deductions_deactivated(
        self, db_session, test_tenant, test_employee, make_deduction,
    ):
        advance = await make_deduction("5000", employee=test_employee, name="Salary Advance", is_one_time=True)
        sacco = await make_deduction("1000", employee=test_employee, name="Sacco")
        run = await _calculate(db_session, test_tenant.id)

        await PayrollLifecycleService(db_session).complete(test_tenant.id, run.id)

        await db_session.refresh(advance)
        await db_session.refresh(sacco)
        assert advance.is_active is False
        assert sacco.is_active is True

        next_run = await _calculate(db_session, test_tenant.id, month=4)
        detail = await PayrollService(db_session).get_employee_detail(
            test_tenant.id, next_run.id, test_employee.id,
        )
        assert detail.total_custom_deductions == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_unconsumed_one_time_deduction_stays_active(
        self, db_session, test_tenant, test_employee, make_deduction,
    ):
        june_advance = await make_deduction(
            "5000", employee=test_employee, name="Salary Advance",
            is_one_time=True, start_date=date(2025, 6, 1),
        )
        run = await _calculate(db_session, test_tenant.id)
        detail = await PayrollService(db_session).get_employee_detail(
            test_tenant.id, run.id, test_employee.id,
        )
        assert detail.deduction_items == []

        await PayrollLifecycleService(db_session).complete(test_tenant.id, run.id)

        await db_session.refresh(june_advance)
        assert june_advance.is_active is True

        june_run = await _calculate(db_session, test_tenant.id, month=6)
        june_detail = await PayrollService(db_session).get_employee_detail(
            test_tenant.id, june_run.id, test_employee.id,
        )
        assert june_detail.total_custom_deductions == Decimal("5000.00")

    @pytest.mark.asyncio
    async def test_overlapping_drafts_cannot_over_collect_loan(
        self, db_session, test_tenant, make_employee, make_loan,
    ):
        tenant_id = test_tenant.id
        employee = await make_employee(salary="50000", pays_loan_deduction=True)
        employee_id = employee.id
        await make_loan(employee, balance="1000", monthly="800")
        march = await _calculate(db_session, tenant_id)
        april = await _calculate(db_session, tenant_id, month=4)
        march_id, april_id = march.id, april.id
        service = PayrollLifecycleService(db_session)

        await service.complete(tenant_id, march_id)

        with pytest.raises(StaleLoanDeductionException) as exc_info:
            await service.complete(tenant_id, april_id)

        assert exc_info.value.status_code == 409
        assert exc_info.value.code == ErrorCode.STALE_LOAN_DEDUCTION
        april = await PayrollService(db_session).get_run(tenant_id, april_id)
        assert april.status == PayrollStatus.DRAFT
        entry = await LoanLedgerService(db_session).get_entry(employee_id)
        assert entry.current_balance == Decimal("200.00")
        assert await _repayment_count(db_session) == 1

        april = await _calculate(db_session, tenant_id, month=4)
        await service.complete(tenant_id, april.id)

        entry = await LoanLedgerService(db_session).get_entry(employee_id)
        await db_session.refresh(entry)
        assert entry.current_balance == Decimal("0.00")
        assert entry.status == LoanStatus.CLEARED
        amounts = (await db_session.execute(select(LoanRepayment.amount))).scalars().all()
        assert sum(amounts) == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_completed_run_blocks_recalculation(self, db_session, test_tenant, test_employee):
        tenant_id = test_tenant.id
        run = await _calculate(db_session, tenant_id)
        await PayrollLifecycleService(db_session).complete(tenant_id, run.id)

        with pytest.raises(PayrollAlreadyFinalizedException):
            await _calculate(db_session, tenant_id)

    @pytest.mark.asyncio
    async def test_complete_audited(self, db_session, test_tenant, test_employee, owner_id):
        run = await _calculate(db_session, test_tenant.id)

        await PayrollLifecycleService(db_session).complete(test_tenant.id, run.id, caller_id=owner_id)

        actions = (await db_session.execute(
            select(AuditLog.action).where(AuditLog.target_entity_id == str(run.id))
        )).scalars().all()
        assert AuditAction.COMPLETE in actions

    @pytest.mark.asyncio
    async def test_unknown_run_not_found(self, db_session, test_tenant):
        with pytest.raises(PayrollRunNotFoundException):
            await PayrollLifecycleService(db_session).complete(test_tenant.id, uuid4())

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_complete(self, db_session, test_tenant, test_employee):
        run = await _calculate(db_session, test_tenant.id)

        with pytest.raises(PayrollRunNotFoundException):
            await PayrollLifecycleService(db_session).complete(uuid4(), run.id)

    @pytest.mark.asyncio
    async def test_transient_failure_leaves_draft(self, db_session, test_tenant, test_employee, monkeypatch):
        tenant_id = test_tenant.id
        run = await _calculate(db_session, tenant_id)
        run_id = run.id
        monkeypatch.setattr(settings, "store_retry_backoff_seconds", 0)

        async def failing_list_details(self, run_id):
            raise OperationalError("SELECT payroll_details", {}, Exception("connection reset"))

        monkeypatch.setattr(PayrollRunStore, "list_details", failing_list_details)

        with pytest.raises(TransientStoreException) as exc_info:
            await PayrollLifecycleService(db_session).complete(tenant_id, run_id)

        assert exc_info.value.code == ErrorCode.TRANSIENT_STORE_ERROR
        monkeypatch.undo()
        stored = await PayrollRunStore(db_session).get_run(tenant_id, run_id)
        assert stored.status == PayrollStatus.DRAFT


class TestCancel:

    @pytest.mark.asyncio
    async def test_cancel_leaves_details_and_ledger(
        self, db_session, test_tenant, make_employee, make_loan, owner_id,
    ):
        employee = await make_employee(salary="50000", pays_loan_deduction=True)
        entry = await make_loan(employee, balance="10000", monthly="3000")
        run = await _calculate(db_session, test_tenant.id)

        cancelled = await PayrollLifecycleService(db_session).cancel(
            test_tenant.id, run.id, caller_id=owner_id,
        )

        assert cancelled.status == PayrollStatus.CANCELLED
        assert cancelled.cancelled_by_id == owner_id
        assert cancelled.cancelled_at is not None
        details = await PayrollService(db_session).get_run_details(test_tenant.id, run.id)
        assert len(details) == 1
        assert details[0].loan_deduction_applied is False
        await db_session.refresh(entry)
        assert entry.current_balance == Decimal("10000.00")
        assert await _repayment_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_cancel_completed_run_rejected(self, db_session, test_tenant, test_employee):
        tenant_id = test_tenant.id
        run = await _calculate(db_session, tenant_id)
        run_id = run.id
        service = PayrollLifecycleService(db_session)
        await service.complete(tenant_id, run_id)

        with pytest.raises(InvalidStateException) as exc_info:
            await service.cancel(tenant_id, run_id)

        assert exc_info.value.code == ErrorCode.INVALID_STATE
        assert exc_info.value.details["current_state"] == PayrollStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_complete_cancelled_run_rejected(self, db_session, test_tenant, test_employee):
        tenant_id = test_tenant.id
        run = await _calculate(db_session, tenant_id)
        run_id = run.id
        service = PayrollLifecycleService(db_session)
        await service.cancel(tenant_id, run_id)

        with pytest.raises(InvalidStateException):
            await service.complete(tenant_id, run_id)
        with pytest.raises(InvalidStateException):
            await service.cancel(tenant_id, run_id)

    @pytest.mark.asyncio
    async def test_period_reopens_after_cancel(self, db_session, test_tenant, test_employee):
        tenant_id = test_tenant.id
        first = await _calculate(db_session, tenant_id)
        await PayrollLifecycleService(db_session).cancel(tenant_id, first.id)

        second = await _calculate(db_session, tenant_id)

        assert second.status == PayrollStatus.DRAFT
        assert second.run_number == "PAY-2025-03-002"
        runs = await PayrollService(db_session).list_runs(tenant_id)
        assert [run.status for run in runs] == [PayrollStatus.DRAFT, PayrollStatus.CANCELLED]


class TestReporting:

    @pytest.mark.asyncio
    async def test_statutory_summary(self, db_session, test_tenant, make_employee, make_loan):
        await make_employee(salary="50000")
        await make_employee(salary="50000", pays_paye=False)
        borrower = await make_employee(salary="100000", pays_loan_deduction=True)
        await make_loan(borrower, balance="20000", monthly="2500")
        run = await _calculate(db_session, test_tenant.id)

        summary = await PayrollService(db_session).get_statutory_summary(test_tenant.id, run.id)
        schemes = {scheme["code"]: scheme for scheme in summary["schemes"]}

        assert summary["employee_count"] == 3
        assert summary["rate_set_version"] == "2025-02-01"
        assert summary["total_gross_pay"] == Decimal("200000.00")
        assert schemes["paye"]["employee_count"] == 2
        assert schemes["paye"]["total_amount"] == run.total_paye
        assert schemes["pension_tier1"]["total_amount"] == Decimal("1440.00")
        # 50,000 earners pay 2,520 Tier II; 100,000 is capped at 3,840
        assert schemes["pension_tier2"]["total_amount"] == Decimal("8880.00")
        assert schemes["pension_total"]["total_amount"] == Decimal("10320.00")
        assert schemes["health_levy"]["total_amount"] == Decimal("5500.00")
        assert schemes["housing_levy"]["total_amount"] == Decimal("3000.00")
        assert schemes["loan"]["total_amount"] == Decimal("2500.00")
        assert schemes["loan"]["employee_count"] == 1

    @pytest.mark.asyncio
    async def test_trend_uses_completed_runs_only(self, db_session, test_tenant, test_employee):
        tenant_id = test_tenant.id
        lifecycle = PayrollLifecycleService(db_session)
        january = await _calculate(db_session, tenant_id, month=1)
        await lifecycle.complete(tenant_id, january.id)
        february = await _calculate(db_session, tenant_id, month=2)
        await lifecycle.complete(tenant_id, february.id)
        await _calculate(db_session, tenant_id, month=3)

        trend = await PayrollService(db_session).get_payroll_trend(tenant_id, 2025)

        assert trend["year"] == 2025
        assert len(trend["points"]) == 12
        assert [p["month"] for p in trend["points"]] == list(range(1, 13))
        assert trend["points"][0]["run_number"] == "PAY-2025-01-001"
        assert trend["points"][1]["total_gross_pay"] == Decimal("50000.00")
        assert trend["points"][2]["employee_count"] == 0
        assert trend["points"][2]["total_net_pay"] == Decimal("0.00")
        assert trend["total_gross_pay"] == Decimal("100000.00")
        assert trend["total_net_pay"] == january.total_net_pay + february.total_net_pay
