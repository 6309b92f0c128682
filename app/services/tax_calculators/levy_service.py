"""
Mshahara Payroll - Flat-Rate Levy Calculator

Health insurance levy (SHIF) and affordable housing levy, both charged
as a flat percentage of gross pay and rounded half-up to the whole
shilling so per-employee amounts reconcile with the authority's filings.
"""

from decimal import Decimal

from app.services.tax_calculators.common import ensure_valid_base, round_to_unit


class LevyCalculator:
    """rate x gross pay, rounded half-up to the currency unit."""

    def __init__(self, name: str, rate: Decimal):
        if rate < 0:
            raise ValueError(f"{name} rate must not be negative")
        self.name = name
        self.rate = rate

    def calculate(self, gross_pay: Decimal) -> Decimal:
        gross = ensure_valid_base(gross_pay, "gross_pay")
        return round_to_unit(gross * self.rate / 100)

    def __repr__(self) -> str:
        return f"<LevyCalculator(name={self.name}, rate={self.rate}%)>"
