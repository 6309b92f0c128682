"""
Mshahara Payroll - PAYE Calculator Service

Progressive monthly income tax (PAYE) for Kenya.

Monthly PAYE Tax Bands:
- KES 0 - 24,000: 10%
- KES 24,001 - 32,333: 25%
- KES 32,334 - 500,000: 30%
- KES 500,001 - 800,000: 32.5%
- Above KES 800,000: 35%

Relief:
- Personal relief: KES 2,400 per month, deducted from the computed tax
- Tax cannot be negative
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass

from app.services.tax_calculators.common import ZERO, ensure_valid_base, round_money


@dataclass(frozen=True)
class PAYETaxBand:
    """Tax band definition."""
    lower: Decimal
    upper: Optional[Decimal]
    rate: Decimal

    def calculate_tax(self, taxable_income: Decimal) -> Decimal:
        """Calculate tax for this band."""
        if taxable_income <= self.lower:
            return Decimal("0")

        if self.upper is None:
            # Top band (no upper limit)
            taxable_in_band = taxable_income - self.lower
        else:
            taxable_in_band = min(taxable_income, self.upper) - self.lower

        if taxable_in_band <= 0:
            return Decimal("0")

        return taxable_in_band * (self.rate / 100)


# Kenya monthly PAYE bands
KENYA_MONTHLY_PAYE_BANDS = (
    PAYETaxBand(Decimal("0"), Decimal("24000"), Decimal("10")),
    PAYETaxBand(Decimal("24000"), Decimal("32333"), Decimal("25")),
    PAYETaxBand(Decimal("32333"), Decimal("500000"), Decimal("30")),
    PAYETaxBand(Decimal("500000"), Decimal("800000"), Decimal("32.5")),
    PAYETaxBand(Decimal("800000"), None, Decimal("35")),
)

MONTHLY_PERSONAL_RELIEF = Decimal("2400")


class PAYECalculator:
    """
    Progressive PAYE calculator.

    Bands and relief are data; a law change is a new band table, not new code.
    """

    def __init__(
        self,
        tax_bands: Optional[Sequence[PAYETaxBand]] = None,
        personal_relief: Decimal = MONTHLY_PERSONAL_RELIEF,
    ):
        self.tax_bands = tuple(tax_bands or KENYA_MONTHLY_PAYE_BANDS)
        self.personal_relief = personal_relief
        self._validate_bands()

    def _validate_bands(self) -> None:
        previous_upper = Decimal("0")
        for index, band in enumerate(self.tax_bands):
            if band.lower != previous_upper:
                raise ValueError(f"Tax band {index} does not start where the previous band ends")
            if band.upper is None and index != len(self.tax_bands) - 1:
                raise ValueError("Only the last tax band may be open-ended")
            previous_upper = band.upper if band.upper is not None else previous_upper

    def calculate_tax(self, taxable_income: Decimal) -> Tuple[Decimal, List[Dict[str, Any]]]:
        """
        Calculate gross tax (before relief) using the progressive bands.

        Returns:
            Tuple of (total_tax, band_breakdown)
        """
        taxable_income = ensure_valid_base(taxable_income, "taxable_income")
        total_tax = Decimal("0")
        band_breakdown = []

        for band in self.tax_bands:
            tax_in_band = band.calculate_tax(taxable_income)

            if tax_in_band > 0:
                band_breakdown.append({
                    "range": f"KES {band.lower:,.0f} - {'above' if band.upper is None else f'KES {band.upper:,.0f}'}",
                    "rate": f"{band.rate}%",
                    "tax_amount": float(round_money(tax_in_band)),
                })

            total_tax += tax_in_band

        return total_tax, band_breakdown

    def calculate_paye(self, taxable_income: Decimal) -> Decimal:
        """Monthly PAYE after personal relief, floored at zero."""
        gross_tax, _ = self.calculate_tax(taxable_income)
        return max(ZERO, round_money(gross_tax - self.personal_relief))

    def calculate_paye_breakdown(self, taxable_income: Decimal) -> Dict[str, Any]:
        """
        Complete PAYE calculation with band breakdown.

        Returns:
            Dict with taxable income, tax before relief, relief applied and PAYE
        """
        gross_tax, band_breakdown = self.calculate_tax(taxable_income)
        paye = max(ZERO, round_money(gross_tax - self.personal_relief))
        return {
            "taxable_income": float(round_money(ensure_valid_base(taxable_income))),
            "tax_before_relief": float(round_money(gross_tax)),
            "personal_relief": float(self.personal_relief),
            "relief_applied": float(min(round_money(gross_tax), self.personal_relief)),
            "paye": float(paye),
            "tax_bands": band_breakdown,
        }
