"""
Mshahara Payroll - Test Configuration

Pytest fixtures and configuration.

Tests run against an in-memory SQLite database; the schema is created
and dropped around every test.
"""

from decimal import Decimal
from typing import AsyncGenerator, Dict
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_async_session
from app.models import (
    Allowance,
    AllowanceType,
    CalculationType,
    Deduction,
    DeductionType,
    Department,
    Employee,
    EmployeeBankDetail,
    EmployeeStatus,
    LoanLedgerEntry,
    PaymentMethod,
    Tenant,
)
from app.utils.security import create_access_token
from main import app


TEST_DATABASE_URL = "sqlite+aiosqlite://"

# Single shared connection so every session sees the same in-memory database
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest.fixture
def owner_id():
    return uuid4()


@pytest_asyncio.fixture
async def test_tenant(db_session: AsyncSession, owner_id) -> Tenant:
    """Create a test tenant owned by ``owner_id``."""
    tenant = Tenant(
        id=uuid4(),
        name="Savannah Logistics Ltd",
        kra_pin="P051234567A",
        owner_id=owner_id,
        is_active=True,
    )
    db_session.add(tenant)
    await db_session.commit()
    await db_session.refresh(tenant)
    return tenant


@pytest_asyncio.fixture
async def test_department(db_session: AsyncSession, test_tenant: Tenant) -> Department:
    department = Department(id=uuid4(), tenant_id=test_tenant.id, name="Operations")
    db_session.add(department)
    await db_session.commit()
    return department


@pytest.fixture
def make_employee(db_session: AsyncSession, test_tenant: Tenant):
    """Factory for employees of the test tenant."""
    counter = {"n": 0}

    async def _make(
        salary: str = "50000.00",
        department: Department = None,
        status: EmployeeStatus = EmployeeStatus.ACTIVE,
        bank_detail: EmployeeBankDetail = None,
        **flags,
    ) -> Employee:
        counter["n"] += 1
        employee = Employee(
            id=uuid4(),
            tenant_id=test_tenant.id,
            department_id=department.id if department else None,
            employee_number=f"EMP{counter['n']:03d}",
            first_name="Wanjiku",
            last_name=f"Kamau{counter['n']}",
            salary=Decimal(salary),
            employee_status=status,
            bank_detail=bank_detail,
            **flags,
        )
        db_session.add(employee)
        await db_session.commit()
        return employee

    return _make


@pytest_asyncio.fixture
async def test_employee(make_employee, test_department: Department) -> Employee:
    """Active employee on KES 50,000 in the Operations department."""
    return await make_employee(salary="50000.00", department=test_department)


@pytest.fixture
def make_allowance(db_session: AsyncSession, test_tenant: Tenant):
    """Factory for allowance assignments; creates the allowance type too."""

    async def _make(
        value: str,
        employee: Employee = None,
        department: Department = None,
        calculation_type: CalculationType = CalculationType.FIXED,
        name: str = "House Allowance",
        is_cash: bool = True,
        **window,
    ) -> Allowance:
        allowance_type = AllowanceType(
            id=uuid4(), tenant_id=test_tenant.id, name=name, is_cash=is_cash,
        )
        allowance = Allowance(
            id=uuid4(),
            tenant_id=test_tenant.id,
            employee_id=employee.id if employee else None,
            department_id=department.id if department else None,
            calculation_type=calculation_type,
            value=Decimal(value),
            allowance_type=allowance_type,
            **window,
        )
        db_session.add_all([allowance_type, allowance])
        await db_session.commit()
        return allowance

    return _make


@pytest.fixture
def make_deduction(db_session: AsyncSession, test_tenant: Tenant):
    """Factory for custom deduction assignments; creates the deduction type too."""

    async def _make(
        value: str,
        employee: Employee = None,
        department: Department = None,
        calculation_type: CalculationType = CalculationType.FIXED,
        name: str = "Sacco Contribution",
        is_one_time: bool = False,
        **window,
    ) -> Deduction:
        deduction_type = DeductionType(id=uuid4(), tenant_id=test_tenant.id, name=name)
        deduction = Deduction(
            id=uuid4(),
            tenant_id=test_tenant.id,
            employee_id=employee.id if employee else None,
            department_id=department.id if department else None,
            calculation_type=calculation_type,
            value=Decimal(value),
            is_one_time=is_one_time,
            deduction_type=deduction_type,
            **window,
        )
        db_session.add_all([deduction_type, deduction])
        await db_session.commit()
        return deduction

    return _make


@pytest.fixture
def make_loan(db_session: AsyncSession, test_tenant: Tenant):
    """Factory for loan ledger entries."""

    async def _make(employee: Employee, balance: str, monthly: str) -> LoanLedgerEntry:
        entry = LoanLedgerEntry(
            id=uuid4(),
            tenant_id=test_tenant.id,
            employee_id=employee.id,
            account_number=f"HELB-{employee.employee_number}",
            initial_balance=Decimal(balance),
            current_balance=Decimal(balance),
            monthly_deduction=Decimal(monthly),
        )
        db_session.add(entry)
        await db_session.commit()
        return entry

    return _make


@pytest.fixture
def mobile_money_route() -> EmployeeBankDetail:
    return EmployeeBankDetail(
        id=uuid4(),
        payment_method=PaymentMethod.MOBILE_MONEY,
        phone_number="254712345678",
    )


@pytest.fixture
def auth_headers(owner_id) -> Dict[str, str]:
    """Bearer token for the tenant owner."""
    token = create_access_token({"sub": str(owner_id)})
    return {"Authorization": f"Bearer {token}"}
