"""
Mshahara Payroll - Routers Package

FastAPI route handlers.

Routers:
- payroll: Payroll run calculation, lifecycle and reporting views
- loans: Loan ledger lookups
"""
