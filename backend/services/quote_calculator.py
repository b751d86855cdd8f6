"""
Quote Calculator
Turns a word count, a language selection and a project type into an itemized price.

Pricing rules:
- Line cost = words x rate (cents/word) x multiplier / 100, rounded to 2 decimals PER LINE.
- Subtotal = sum of the rounded line costs.
- PM fee = pm_fee_percent of subtotal, capped at 500.00.
- Total = subtotal + PM fee.
- Only PURE projects get the configured multiplier; FUSION is always 1.0.

This module is pure: no database access, no clock, no randomness.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Dict, Any

from models import Quote, BreakdownItem, ProjectType, RateTable
from services.errors import InvalidInput

DEFAULT_RATE_CENTS = 25
PM_FEE_CAP = Decimal("500.00")
CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Round to 2 decimals, half up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def effective_multiplier(project_type: ProjectType, rate_table: RateTable) -> float:
    if ProjectType(project_type) == ProjectType.PURE:
        return rate_table.project_type_multiplier
    return 1.0


def normalize_languages(languages: Iterable[str]) -> List[str]:
    """Strip names, drop blanks and repeats; first occurrence keeps its position."""
    seen = []
    for language in languages or []:
        name = (language or "").strip()
        if name and name not in seen:
            seen.append(name)
    return seen


def compute_quote(
    unit_count: int,
    languages: Iterable[str],
    project_type: ProjectType,
    rate_table: RateTable,
) -> Quote:
    """
    Compute an itemized quote.
    Raises InvalidInput for an empty language selection or a negative word count.
    """
    selected = normalize_languages(languages)
    if not selected:
        raise InvalidInput("No languages selected")
    if unit_count is None or unit_count < 0:
        raise InvalidInput("Word count must be zero or more")

    try:
        project_type = ProjectType(project_type)
    except ValueError:
        raise InvalidInput(f"Invalid project type: {project_type}")

    multiplier = effective_multiplier(project_type, rate_table)
    multiplier_dec = Decimal(str(multiplier))
    units = Decimal(int(unit_count))

    breakdown = []
    for language in selected:
        rate = rate_table.rates.get(language, DEFAULT_RATE_CENTS)
        cost = to_money(units * Decimal(rate) * multiplier_dec / 100)
        breakdown.append(BreakdownItem(language=language, rate_cents=rate, cost=cost))

    subtotal = sum((item.cost for item in breakdown), Decimal("0.00"))
    pm_fee = min(to_money(subtotal * Decimal(str(rate_table.pm_fee_percent)) / 100), PM_FEE_CAP)

    return Quote(
        unit_count=int(unit_count),
        project_type=project_type,
        multiplier_applied=multiplier,
        breakdown=breakdown,
        subtotal=subtotal,
        pm_fee_percent=rate_table.pm_fee_percent,
        pm_fee=pm_fee,
        total=subtotal + pm_fee,
    )


def quote_to_document(quote: Quote) -> Dict[str, Any]:
    """Quote fields as stored on a project. Money is kept as 2-decimal strings."""
    return {
        "unit_count": quote.unit_count,
        "project_type": quote.project_type.value,
        "multiplier_applied": quote.multiplier_applied,
        "breakdown": [
            {"language": item.language, "rate_cents": item.rate_cents, "cost": str(item.cost)}
            for item in quote.breakdown
        ],
        "subtotal": str(quote.subtotal),
        "pm_fee_percent": quote.pm_fee_percent,
        "pm_fee": str(quote.pm_fee),
        "total": str(quote.total),
    }


def breakdown_subtotal(breakdown: List[Dict[str, Any]]) -> Decimal:
    """Re-sum a stored breakdown; equals the stored subtotal."""
    return sum((to_money(item["cost"]) for item in breakdown), Decimal("0.00"))
