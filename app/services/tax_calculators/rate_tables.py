"""
Mshahara Payroll - Statutory Rate Tables

Versioned statutory constants keyed by the date they take effect.
The payroll engine picks the latest set effective on the first day of
the pay period. Adding a new law change means appending a rate set.

Versions:
- 2024-02-01: NSSF Tier I 7,000 / Tier II 36,000 (phase 2)
- 2025-02-01: NSSF Tier I 8,000 / Tier II 72,000 (phase 3)
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence, Tuple

from app.services.tax_calculators.levy_service import LevyCalculator
from app.services.tax_calculators.paye_service import (
    KENYA_MONTHLY_PAYE_BANDS,
    MONTHLY_PERSONAL_RELIEF,
    PAYECalculator,
    PAYETaxBand,
)
from app.services.tax_calculators.pension_service import PensionCalculator
from app.utils.error_handling import ValidationException, ErrorCode


@dataclass(frozen=True)
class StatutoryRateSet:
    """All statutory constants valid from one effective date."""
    effective_from: date
    paye_bands: Tuple[PAYETaxBand, ...]
    personal_relief: Decimal
    pension_rate: Decimal
    pension_lower_limit: Decimal
    pension_upper_limit: Decimal
    health_levy_rate: Decimal
    housing_levy_rate: Decimal
    description: str = field(default="", compare=False)

    @property
    def version(self) -> str:
        return self.effective_from.isoformat()

    def paye_calculator(self) -> PAYECalculator:
        return PAYECalculator(self.paye_bands, self.personal_relief)

    def pension_calculator(self) -> PensionCalculator:
        return PensionCalculator(
            rate=self.pension_rate,
            lower_limit=self.pension_lower_limit,
            upper_limit=self.pension_upper_limit,
        )

    def health_levy_calculator(self) -> LevyCalculator:
        return LevyCalculator("Health levy", self.health_levy_rate)

    def housing_levy_calculator(self) -> LevyCalculator:
        return LevyCalculator("Housing levy", self.housing_levy_rate)


KENYA_RATE_SETS: Tuple[StatutoryRateSet, ...] = (
    StatutoryRateSet(
        effective_from=date(2024, 2, 1),
        paye_bands=KENYA_MONTHLY_PAYE_BANDS,
        personal_relief=MONTHLY_PERSONAL_RELIEF,
        pension_rate=Decimal("6"),
        pension_lower_limit=Decimal("7000"),
        pension_upper_limit=Decimal("36000"),
        health_levy_rate=Decimal("2.75"),
        housing_levy_rate=Decimal("1.5"),
        description="NSSF Act phase 2",
    ),
    StatutoryRateSet(
        effective_from=date(2025, 2, 1),
        paye_bands=KENYA_MONTHLY_PAYE_BANDS,
        personal_relief=MONTHLY_PERSONAL_RELIEF,
        pension_rate=Decimal("6"),
        pension_lower_limit=Decimal("8000"),
        pension_upper_limit=Decimal("72000"),
        health_levy_rate=Decimal("2.75"),
        housing_levy_rate=Decimal("1.5"),
        description="NSSF Act phase 3",
    ),
)


def get_rate_set(
    year: int,
    month: int,
    rate_sets: Optional[Sequence[StatutoryRateSet]] = None,
) -> StatutoryRateSet:
    """Return the latest rate set effective on the first day of the period."""
    period_start = date(year, month, 1)
    candidates = [
        rate_set for rate_set in (rate_sets or KENYA_RATE_SETS)
        if rate_set.effective_from <= period_start
    ]
    if not candidates:
        raise ValidationException(
            f"No statutory rates are configured for {year}-{month:02d}",
            field="period",
            code=ErrorCode.INVALID_PERIOD,
        )
    return max(candidates, key=lambda rate_set: rate_set.effective_from)
