"""
Mshahara Payroll - Pension Contribution Calculator

Tiered pension contribution (NSSF) on base salary.

- Tier I:  rate x min(base, lower limit)
- Tier II: rate x min(max(base - lower limit, 0), upper limit - lower limit)

The tiers are reported separately because statutory returns list them
separately. Total contribution is capped at rate x upper limit.
"""

from dataclasses import dataclass
from decimal import Decimal

from app.services.tax_calculators.common import ensure_valid_base, round_money


@dataclass(frozen=True)
class PensionContribution:
    """Employee pension contribution split by tier."""
    tier1: Decimal
    tier2: Decimal

    @property
    def total(self) -> Decimal:
        return self.tier1 + self.tier2


class PensionCalculator:
    """Tiered pension calculator with configurable limits and rate."""

    def __init__(self, rate: Decimal, lower_limit: Decimal, upper_limit: Decimal):
        if lower_limit < 0 or upper_limit < lower_limit:
            raise ValueError("Pension limits must satisfy 0 <= lower <= upper")
        if rate < 0:
            raise ValueError("Pension rate must not be negative")
        self.rate = rate
        self.lower_limit = lower_limit
        self.upper_limit = upper_limit

    @property
    def maximum_contribution(self) -> Decimal:
        return round_money(self.upper_limit * self.rate / 100)

    def calculate(self, base_salary: Decimal) -> PensionContribution:
        base = ensure_valid_base(base_salary, "base_salary")
        factor = self.rate / 100

        tier1 = round_money(min(base, self.lower_limit) * factor)
        tier2_base = min(max(base - self.lower_limit, Decimal("0")), self.upper_limit - self.lower_limit)
        tier2 = round_money(tier2_base * factor)

        return PensionContribution(tier1=tier1, tier2=tier2)
