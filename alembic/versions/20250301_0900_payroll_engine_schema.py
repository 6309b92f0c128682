"""Payroll engine schema - tenants, employees, variable pay, loan ledger, payroll runs

Revision ID: 20250301_0900_payroll_engine_schema
Revises:
Create Date: 2025-03-01 09:00:00.000000

Tables:
- tenants, departments, employees, employee_bank_details
- allowance_types, allowances, deduction_types, deductions
- loan_ledger_entries, loan_repayments
- payroll_runs, payroll_details
- audit_logs

At most one non-cancelled payroll run per (tenant, month, year) is
enforced by the partial unique index uq_payroll_runs_open_period.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '20250301_0900_payroll_engine_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# Shared by allowances and deductions; created once in upgrade()
calculation_type = postgresql.ENUM('FIXED', 'PERCENTAGE', name='calculation_type', create_type=False)


def _uuid(name: str, *args, **kwargs) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), *args, **kwargs)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _money(name: str) -> sa.Column:
    return sa.Column(name, sa.Numeric(precision=18, scale=2), nullable=False, server_default='0')


def _assignment_columns():
    return [
        _uuid('tenant_id', sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, index=True),
        _uuid('employee_id', sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=True, index=True),
        _uuid('department_id', sa.ForeignKey('departments.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('calculation_type', calculation_type, nullable=False),
        sa.Column('value', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('start_month', sa.Integer(), nullable=True),
        sa.Column('start_year', sa.Integer(), nullable=True),
        sa.Column('end_month', sa.Integer(), nullable=True),
        sa.Column('end_year', sa.Integer(), nullable=True),
    ]


def upgrade() -> None:
    # =====================================================
    # TENANTS AND EMPLOYEES
    # =====================================================
    op.create_table(
        'tenants',
        _uuid('id', primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('kra_pin', sa.String(20), nullable=True),
        _uuid('owner_id', nullable=False, index=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
    )

    op.create_table(
        'departments',
        _uuid('id', primary_key=True),
        _uuid('tenant_id', sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(100), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', 'name', name='uq_department_tenant_name'),
    )

    op.create_table(
        'employees',
        _uuid('id', primary_key=True),
        _uuid('tenant_id', sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, index=True),
        _uuid('department_id', sa.ForeignKey('departments.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('employee_number', sa.String(50), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('other_names', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('kra_pin', sa.String(20), nullable=True),
        sa.Column('nssf_number', sa.String(30), nullable=True),
        sa.Column('shif_number', sa.String(30), nullable=True),
        sa.Column('salary', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column(
            'employee_status',
            sa.Enum('ACTIVE', 'INACTIVE', 'TERMINATED', name='employee_status'),
            nullable=False,
            server_default='ACTIVE',
        ),
        sa.Column('pays_paye', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('pays_pension', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('pays_health_levy', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('pays_housing_levy', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('pays_loan_deduction', sa.Boolean(), nullable=False, server_default='false'),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', 'employee_number', name='uq_employee_tenant_number'),
    )

    # Shared by employee_bank_details and payroll_details
    payment_method = postgresql.ENUM('BANK', 'MOBILE_MONEY', 'CASH', name='payment_method', create_type=False)
    payment_method.create(op.get_bind(), checkfirst=True)

    op.create_table(
        'employee_bank_details',
        _uuid('id', primary_key=True),
        _uuid('employee_id', sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('payment_method', payment_method, nullable=False, server_default='CASH'),
        sa.Column('bank_name', sa.String(100), nullable=True),
        sa.Column('bank_code', sa.String(20), nullable=True),
        sa.Column('branch_name', sa.String(100), nullable=True),
        sa.Column('account_number', sa.String(30), nullable=True),
        sa.Column('phone_number', sa.String(20), nullable=True),
        *_timestamps(),
    )

    # =====================================================
    # VARIABLE PAY
    # =====================================================
    calculation_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        'allowance_types',
        _uuid('id', primary_key=True),
        _uuid('tenant_id', sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('is_cash', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_taxable', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
    )

    op.create_table(
        'allowances',
        _uuid('id', primary_key=True),
        *_assignment_columns(),
        _uuid('allowance_type_id', sa.ForeignKey('allowance_types.id', ondelete='CASCADE'), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            '(employee_id IS NULL) <> (department_id IS NULL)',
            name='ck_allowances_allowance_single_target',
        ),
    )

    op.create_table(
        'deduction_types',
        _uuid('id', primary_key=True),
        _uuid('tenant_id', sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(100), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'deductions',
        _uuid('id', primary_key=True),
        *_assignment_columns(),
        _uuid('deduction_type_id', sa.ForeignKey('deduction_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('is_one_time', sa.Boolean(), nullable=False, server_default='false'),
        *_timestamps(),
        sa.CheckConstraint(
            '(employee_id IS NULL) <> (department_id IS NULL)',
            name='ck_deductions_deduction_single_target',
        ),
    )

    # =====================================================
    # PAYROLL RUNS
    # =====================================================
    op.create_table(
        'payroll_runs',
        _uuid('id', primary_key=True),
        _uuid('tenant_id', sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('run_number', sa.String(50), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('revision', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('period_month', sa.Integer(), nullable=False),
        sa.Column('period_year', sa.Integer(), nullable=False),
        sa.Column('payroll_date', sa.Date(), nullable=False),
        sa.Column('rate_set_version', sa.String(20), nullable=False),
        sa.Column(
            'status',
            sa.Enum('DRAFT', 'COMPLETED', 'CANCELLED', name='payroll_status'),
            nullable=False,
            server_default='DRAFT',
        ),
        sa.Column('employee_count', sa.Integer(), nullable=False, server_default='0'),
        _money('total_gross_pay'),
        _money('total_statutory_deductions'),
        _money('total_paye'),
        _money('total_deductions'),
        _money('total_net_pay'),
        _uuid('calculated_by_id', nullable=True),
        _uuid('completed_by_id', nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        _uuid('cancelled_by_id', nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', 'run_number', name='uq_payroll_run_tenant_number'),
    )
    op.create_index(
        'uq_payroll_runs_open_period',
        'payroll_runs',
        ['tenant_id', 'period_month', 'period_year'],
        unique=True,
        postgresql_where=sa.text("status <> 'CANCELLED'"),
    )

    op.create_table(
        'payroll_details',
        _uuid('id', primary_key=True),
        _uuid('payroll_run_id', sa.ForeignKey('payroll_runs.id', ondelete='CASCADE'), nullable=False, index=True),
        _uuid('employee_id', sa.ForeignKey('employees.id'), nullable=False, index=True),
        sa.Column('employee_number', sa.String(50), nullable=False),
        sa.Column('employee_name', sa.String(300), nullable=False),
        _uuid('department_id', nullable=True),
        _money('basic_salary'),
        _money('total_allowances'),
        _money('total_non_cash_benefits'),
        _money('gross_pay'),
        _money('taxable_income'),
        _money('paye_tax'),
        _money('pension_tier1'),
        _money('pension_tier2'),
        _money('pension_deduction'),
        _money('health_levy_deduction'),
        _money('housing_levy_deduction'),
        _money('loan_deduction'),
        _money('total_statutory_deductions'),
        _money('total_custom_deductions'),
        _money('total_deductions'),
        _money('net_pay'),
        sa.Column('payment_method', payment_method, nullable=False, server_default='CASH'),
        sa.Column('bank_name', sa.String(100), nullable=True),
        sa.Column('bank_code', sa.String(20), nullable=True),
        sa.Column('branch_name', sa.String(100), nullable=True),
        sa.Column('account_number', sa.String(30), nullable=True),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.Column('allowance_items', sa.JSON(), nullable=False),
        sa.Column('deduction_items', sa.JSON(), nullable=False),
        sa.Column('loan_deduction_applied', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('loan_deduction_applied_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('payroll_run_id', 'employee_id', name='uq_payroll_detail_run_employee'),
    )

    # =====================================================
    # LOAN LEDGER
    # =====================================================
    op.create_table(
        'loan_ledger_entries',
        _uuid('id', primary_key=True),
        _uuid('tenant_id', sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, index=True),
        _uuid('employee_id', sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('account_number', sa.String(50), nullable=False),
        sa.Column('initial_balance', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('current_balance', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('monthly_deduction', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column(
            'status',
            sa.Enum('ACTIVE', 'CLEARED', name='loan_status'),
            nullable=False,
            server_default='ACTIVE',
        ),
        *_timestamps(),
    )

    op.create_table(
        'loan_repayments',
        _uuid('id', primary_key=True),
        _uuid('ledger_entry_id', sa.ForeignKey('loan_ledger_entries.id', ondelete='CASCADE'), nullable=False, index=True),
        _uuid('payroll_run_id', sa.ForeignKey('payroll_runs.id'), nullable=False, index=True),
        _uuid('payroll_detail_id', sa.ForeignKey('payroll_details.id'), nullable=False, unique=True),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('balance_after', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('applied_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        *_timestamps(),
    )

    # =====================================================
    # AUDIT
    # =====================================================
    op.create_table(
        'audit_logs',
        _uuid('id', primary_key=True),
        _uuid('tenant_id', nullable=False, index=True),
        sa.Column('target_entity_type', sa.String(50), nullable=False),
        sa.Column('target_entity_id', sa.String(50), nullable=False, index=True),
        sa.Column(
            'action',
            sa.Enum('CALCULATE', 'RECALCULATE', 'COMPLETE', 'CANCEL', name='audit_action'),
            nullable=False,
        ),
        _uuid('user_id', nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('loan_repayments')
    op.drop_table('loan_ledger_entries')
    op.drop_table('payroll_details')
    op.drop_index('uq_payroll_runs_open_period', table_name='payroll_runs')
    op.drop_table('payroll_runs')
    op.drop_table('deductions')
    op.drop_table('deduction_types')
    op.drop_table('allowances')
    op.drop_table('allowance_types')
    op.drop_table('employee_bank_details')
    op.drop_table('employees')
    op.drop_table('departments')
    op.drop_table('tenants')

    # Drop ENUMs
    sa.Enum(name='audit_action').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='loan_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='payroll_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='calculation_type').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='payment_method').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='employee_status').drop(op.get_bind(), checkfirst=True)
