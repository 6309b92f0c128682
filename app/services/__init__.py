"""
Mshahara Payroll - Services Package

Business logic services.
"""
