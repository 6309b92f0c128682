"""
Mshahara Payroll - Payroll API Tests

HTTP surface: authentication, the tenant ownership gate, and the
calculate / report / complete / cancel flow.
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from httpx import AsyncClient

from app.models import Tenant
from app.utils.security import create_access_token


CALCULATE_BODY = {"month": 3, "year": 2025, "as_of_date": "2025-03-31"}


def _runs_url(tenant_id) -> str:
    return f"/api/v1/tenants/{tenant_id}/payroll-runs"


async def _calculate(client: AsyncClient, tenant_id, headers, body=None):
    return await client.post(f"{_runs_url(tenant_id)}/calculate", json=body or CALCULATE_BODY, headers=headers)


class TestHealthEndpoints:

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_api_info(self, client: AsyncClient):
        response = await client.get("/api")

        assert response.status_code == 200
        assert response.json()["currency"] == "KES"


class TestAccessControl:

    @pytest.mark.asyncio
    async def test_missing_token_is_unauthorized(self, client: AsyncClient, test_tenant):
        response = await client.get(_runs_url(test_tenant.id))

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_invalid_token_is_unauthorized(self, client: AsyncClient, test_tenant):
        response = await client.get(
            _runs_url(test_tenant.id), headers={"Authorization": "Bearer not-a-token"},
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_non_owner_is_forbidden(self, client: AsyncClient, test_tenant, test_employee):
        token = create_access_token({"sub": str(uuid4())})

        response = await _calculate(client, test_tenant.id, {"Authorization": f"Bearer {token}"})

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_unknown_tenant_is_forbidden(self, client: AsyncClient, auth_headers):
        response = await client.get(_runs_url(uuid4()), headers=auth_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_inactive_tenant_is_forbidden(self, client: AsyncClient, db_session, test_tenant, auth_headers):
        test_tenant.is_active = False
        await db_session.commit()

        response = await client.get(_runs_url(test_tenant.id), headers=auth_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_cookie_token_accepted(self, client: AsyncClient, test_tenant, owner_id):
        token = create_access_token({"sub": str(owner_id)})

        response = await client.get(_runs_url(test_tenant.id), headers={"Cookie": f"access_token={token}"})

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_other_tenants_run_not_visible(
        self, client: AsyncClient, db_session, test_tenant, test_employee, auth_headers, owner_id,
    ):
        other = Tenant(id=uuid4(), name="Rift Valley Growers", owner_id=owner_id, is_active=True)
        db_session.add(other)
        await db_session.commit()
        run_id = (await _calculate(client, test_tenant.id, auth_headers)).json()["id"]

        response = await client.get(f"{_runs_url(other.id)}/{run_id}", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "PAYROLL_RUN_NOT_FOUND"


class TestCalculateEndpoint:

    @pytest.mark.asyncio
    async def test_calculate_creates_draft(self, client: AsyncClient, test_tenant, test_employee, auth_headers):
        response = await _calculate(client, test_tenant.id, auth_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "Draft"
        assert data["run_number"] == "PAY-2025-03-001"
        assert data["rate_set_version"] == "2025-02-01"
        assert data["employee_count"] == 1
        assert Decimal(data["total_gross_pay"]) == Decimal("50000")
        assert Decimal(data["total_paye"]) == Decimal("5845.85")
        assert Decimal(data["total_net_pay"]) == Decimal("39029.15")

    @pytest.mark.asyncio
    async def test_recalculate_replaces_draft(self, client: AsyncClient, test_tenant, test_employee, auth_headers):
        first = (await _calculate(client, test_tenant.id, auth_headers)).json()

        response = await _calculate(client, test_tenant.id, auth_headers)

        assert response.status_code == 201
        assert response.json()["revision"] == 2
        listing = (await client.get(_runs_url(test_tenant.id), headers=auth_headers)).json()
        assert listing["total"] == 1
        assert listing["items"][0]["id"] != first["id"]

    @pytest.mark.asyncio
    async def test_invalid_month_rejected(self, client: AsyncClient, test_tenant, auth_headers):
        response = await _calculate(client, test_tenant.id, auth_headers, {"month": 13, "year": 2025})

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_period_without_rate_set_rejected(self, client: AsyncClient, test_tenant, test_employee, auth_headers):
        response = await _calculate(client, test_tenant.id, auth_headers, {"month": 1, "year": 2020})

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_PERIOD"

    @pytest.mark.asyncio
    async def test_no_active_employees(self, client: AsyncClient, test_tenant, auth_headers):
        response = await _calculate(client, test_tenant.id, auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NO_ACTIVE_EMPLOYEES"


class TestRunQueries:

    @pytest.mark.asyncio
    async def test_list_filters(self, client: AsyncClient, test_tenant, test_employee, auth_headers):
        await _calculate(client, test_tenant.id, auth_headers)

        drafts = await client.get(_runs_url(test_tenant.id), params={"status": "Draft"}, headers=auth_headers)
        completed = await client.get(_runs_url(test_tenant.id), params={"status": "Completed"}, headers=auth_headers)
        other_year = await client.get(_runs_url(test_tenant.id), params={"year": 2024}, headers=auth_headers)

        assert drafts.json()["total"] == 1
        assert completed.json()["total"] == 0
        assert other_year.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_run_details_and_payslip(
        self, client: AsyncClient, test_tenant, test_employee, auth_headers,
    ):
        run_id = (await _calculate(client, test_tenant.id, auth_headers)).json()["id"]

        details = await client.get(f"{_runs_url(test_tenant.id)}/{run_id}/details", headers=auth_headers)
        payslip = await client.get(
            f"{_runs_url(test_tenant.id)}/{run_id}/details/{test_employee.id}", headers=auth_headers,
        )

        assert details.status_code == 200
        assert len(details.json()) == 1
        assert payslip.status_code == 200
        data = payslip.json()
        assert data["employee_number"] == test_employee.employee_number
        assert data["payment_method"] == "Cash"
        assert Decimal(data["pension_tier1"]) == Decimal("480")
        assert Decimal(data["pension_tier2"]) == Decimal("2520")
        assert Decimal(data["health_levy_deduction"]) == Decimal("1375")
        assert Decimal(data["housing_levy_deduction"]) == Decimal("750")
        assert Decimal(data["net_pay"]) == Decimal("39029.15")

    @pytest.mark.asyncio
    async def test_payslip_for_employee_outside_run(self, client: AsyncClient, test_tenant, test_employee, auth_headers):
        run_id = (await _calculate(client, test_tenant.id, auth_headers)).json()["id"]

        response = await client.get(
            f"{_runs_url(test_tenant.id)}/{run_id}/details/{uuid4()}", headers=auth_headers,
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_run(self, client: AsyncClient, test_tenant, auth_headers):
        response = await client.get(f"{_runs_url(test_tenant.id)}/{uuid4()}", headers=auth_headers)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_statutory_summary(self, client: AsyncClient, test_tenant, test_employee, auth_headers):
        run_id = (await _calculate(client, test_tenant.id, auth_headers)).json()["id"]

        response = await client.get(
            f"{_runs_url(test_tenant.id)}/{run_id}/statutory-summary", headers=auth_headers,
        )

        assert response.status_code == 200
        schemes = {scheme["code"]: scheme for scheme in response.json()["schemes"]}
        assert Decimal(schemes["paye"]["total_amount"]) == Decimal("5845.85")
        assert schemes["loan"]["employee_count"] == 0

    @pytest.mark.asyncio
    async def test_trend(self, client: AsyncClient, test_tenant, test_employee, auth_headers):
        run_id = (await _calculate(client, test_tenant.id, auth_headers)).json()["id"]
        await client.post(f"{_runs_url(test_tenant.id)}/{run_id}/complete", headers=auth_headers)

        response = await client.get(f"{_runs_url(test_tenant.id)}/trend", params={"year": 2025}, headers=auth_headers)

        assert response.status_code == 200
        points = response.json()["points"]
        assert len(points) == 12
        assert points[2]["run_number"] == "PAY-2025-03-001"
        assert Decimal(points[2]["total_net_pay"]) == Decimal("39029.15")

    @pytest.mark.asyncio
    async def test_trend_requires_year(self, client: AsyncClient, test_tenant, auth_headers):
        response = await client.get(f"{_runs_url(test_tenant.id)}/trend", headers=auth_headers)

        assert response.status_code == 422


class TestLifecycleEndpoints:

    @pytest.mark.asyncio
    async def test_complete_then_conflict(
        self, client: AsyncClient, test_tenant, make_employee, make_loan, auth_headers,
    ):
        employee = await make_employee(salary="50000", pays_loan_deduction=True)
        await make_loan(employee, balance="10000", monthly="3000")
        tenant_id, employee_id = test_tenant.id, employee.id
        run_id = (await _calculate(client, tenant_id, auth_headers)).json()["id"]

        first = await client.post(f"{_runs_url(tenant_id)}/{run_id}/complete", headers=auth_headers)
        second = await client.post(f"{_runs_url(tenant_id)}/{run_id}/complete", headers=auth_headers)
        recalculate = await _calculate(client, tenant_id, auth_headers)

        assert first.status_code == 200
        assert first.json()["status"] == "Completed"
        assert second.status_code == 409
        assert second.json()["detail"]["code"] == "PAYROLL_ALREADY_FINALIZED"
        assert recalculate.status_code == 409

        ledger = await client.get(
            f"/api/v1/tenants/{tenant_id}/loan-ledger/{employee_id}", headers=auth_headers,
        )
        assert ledger.status_code == 200
        assert Decimal(ledger.json()["current_balance"]) == Decimal("7000")
        assert len(ledger.json()["repayments"]) == 1

    @pytest.mark.asyncio
    async def test_cancel_then_invalid_state(self, client: AsyncClient, test_tenant, test_employee, auth_headers):
        run_id = (await _calculate(client, test_tenant.id, auth_headers)).json()["id"]

        cancelled = await client.post(f"{_runs_url(test_tenant.id)}/{run_id}/cancel", headers=auth_headers)
        complete = await client.post(f"{_runs_url(test_tenant.id)}/{run_id}/complete", headers=auth_headers)

        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "Cancelled"
        assert complete.status_code == 409
        assert complete.json()["detail"]["code"] == "INVALID_STATE"


class TestLoanLedgerEndpoints:

    @pytest.mark.asyncio
    async def test_list_ledger(self, client: AsyncClient, test_tenant, test_employee, make_loan, auth_headers):
        await make_loan(test_employee, balance="45000", monthly="1500")

        response = await client.get(f"/api/v1/tenants/{test_tenant.id}/loan-ledger", headers=auth_headers)

        assert response.status_code == 200
        entries = response.json()
        assert len(entries) == 1
        assert entries[0]["status"] == "Active"
        assert entries[0]["repayments"] == []

    @pytest.mark.asyncio
    async def test_missing_ledger_entry(self, client: AsyncClient, test_tenant, test_employee, auth_headers):
        response = await client.get(
            f"/api/v1/tenants/{test_tenant.id}/loan-ledger/{test_employee.id}", headers=auth_headers,
        )

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "LOAN_LEDGER_NOT_FOUND"
