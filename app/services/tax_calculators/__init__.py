"""
Mshahara Payroll - Statutory Calculators Package

Pure statutory deduction calculators for Kenyan payroll.

Modules:
- paye_service: progressive monthly PAYE with personal relief
- pension_service: tiered NSSF pension contribution
- levy_service: flat-rate health (SHIF) and housing levies
- rate_tables: versioned statutory constants keyed by effective date
"""

from decimal import Decimal
from typing import Optional

from app.services.tax_calculators.common import round_money, round_to_unit, ensure_valid_base
from app.services.tax_calculators.paye_service import (
    PAYECalculator,
    PAYETaxBand,
    KENYA_MONTHLY_PAYE_BANDS,
    MONTHLY_PERSONAL_RELIEF,
)
from app.services.tax_calculators.pension_service import PensionCalculator, PensionContribution
from app.services.tax_calculators.levy_service import LevyCalculator
from app.services.tax_calculators.rate_tables import (
    StatutoryRateSet,
    KENYA_RATE_SETS,
    get_rate_set,
)


def _latest_rate_set(rate_set: Optional[StatutoryRateSet]) -> StatutoryRateSet:
    return rate_set or KENYA_RATE_SETS[-1]


# ===========================================
# CONVENIENCE FUNCTIONS
# ===========================================

def calculate_paye(taxable_income: Decimal, rate_set: Optional[StatutoryRateSet] = None) -> Decimal:
    """
    Calculate monthly PAYE on taxable income.

    Uses the monthly bands 10% / 25% / 30% / 32.5% / 35% and deducts the
    KES 2,400 personal relief. Never negative.
    """
    return _latest_rate_set(rate_set).paye_calculator().calculate_paye(taxable_income)


def calculate_pension(base_salary: Decimal, rate_set: Optional[StatutoryRateSet] = None) -> PensionContribution:
    """Calculate the tiered pension contribution on base salary."""
    return _latest_rate_set(rate_set).pension_calculator().calculate(base_salary)


def calculate_health_levy(gross_pay: Decimal, rate_set: Optional[StatutoryRateSet] = None) -> Decimal:
    """Health levy: 2.75% of gross pay, whole shillings."""
    return _latest_rate_set(rate_set).health_levy_calculator().calculate(gross_pay)


def calculate_housing_levy(gross_pay: Decimal, rate_set: Optional[StatutoryRateSet] = None) -> Decimal:
    """Housing levy: 1.5% of gross pay, whole shillings."""
    return _latest_rate_set(rate_set).housing_levy_calculator().calculate(gross_pay)


__all__ = [
    # Calculators
    "PAYECalculator",
    "PAYETaxBand",
    "PensionCalculator",
    "PensionContribution",
    "LevyCalculator",
    # Rate tables
    "StatutoryRateSet",
    "KENYA_RATE_SETS",
    "KENYA_MONTHLY_PAYE_BANDS",
    "MONTHLY_PERSONAL_RELIEF",
    "get_rate_set",
    # Helpers
    "round_money",
    "round_to_unit",
    "ensure_valid_base",
    # Convenience functions
    "calculate_paye",
    "calculate_pension",
    "calculate_health_levy",
    "calculate_housing_levy",
]
