"""Savings calculation engine.

Pure function from a W-2 employee count to the total tax reduction and its
employer/employee split. The result carries a snapshot of the inputs and
rates so a stored report stays reproducible after the rates change.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from app.core.config import CalculationRates


@dataclass(frozen=True)
class SavingsCalculation:
    """Structured calculation output.

    Attributes:
        total: Total tax reduction (employer_share + employee_share).
        employer_share: Employer net savings.
        employee_share: Employee reduction.
        inputs: Count, tax year and the three rates used.
        explanation: Deterministic text rendering of the same figures.
    """

    total: Decimal
    employer_share: Decimal
    employee_share: Decimal
    inputs: dict[str, Any]
    explanation: str


def format_usd(amount: Decimal | int) -> str:
    """Format an amount as US dollars, e.g. ``$67,120.00``."""
    value = Decimal(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def calculate_savings(
    w2_count: int,
    rates: CalculationRates,
    *,
    tax_year: int | None = None,
) -> SavingsCalculation:
    """Calculate tax savings from a W-2 count.

    Args:
        w2_count: Number of W-2 employees (positive integer, validated by
            the caller).
        rates: Per-W-2 multipliers.
        tax_year: Year recorded in the snapshot. Defaults to the current
            calendar year.

    Returns:
        SavingsCalculation for the count.
    """
    year = tax_year if tax_year is not None else date.today().year
    total = w2_count * rates.rate_total
    employer = w2_count * rates.rate_er
    employee = w2_count * rates.rate_ee

    explanation = (
        f"Based on {w2_count} W-2 employees (Tax Year {year}):\n"
        f"Total Tax Reduction: {format_usd(total)} = "
        f"Employer Net Savings: {format_usd(employer)} + "
        f"Employee Reduction: {format_usd(employee)}\n"
        f"Per W-2: Total {format_usd(rates.rate_total)} = "
        f"ER {format_usd(rates.rate_er)} + EE {format_usd(rates.rate_ee)}"
    )

    return SavingsCalculation(
        total=total,
        employer_share=employer,
        employee_share=employee,
        inputs={
            "w2_count": w2_count,
            "tax_year": year,
            # Strings keep the snapshot JSON-serializable without float drift
            "rate_total": str(rates.rate_total),
            "rate_er": str(rates.rate_er),
            "rate_ee": str(rates.rate_ee),
        },
        explanation=explanation,
    )
