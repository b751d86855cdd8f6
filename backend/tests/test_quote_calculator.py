"""
Golden tests for quote pricing: per-line rounding, PM fee cap, Fusion vs Pure multiplier.
"""
import pytest
from decimal import Decimal

from models import RateTable, ProjectType
from services.errors import InvalidInput
from services.quote_calculator import (
    compute_quote, quote_to_document, breakdown_subtotal, normalize_languages, to_money,
    DEFAULT_RATE_CENTS, PM_FEE_CAP,
)


def test_english_fusion_thousand_words_is_250(rate_table):
    quote = compute_quote(1000, ["English"], ProjectType.FUSION, rate_table)
    assert quote.breakdown[0].cost == Decimal("250.00")
    assert quote.subtotal == Decimal("250.00")
    assert quote.pm_fee == Decimal("2.50")
    assert quote.total == Decimal("252.50")


def test_fusion_ignores_configured_multiplier(rate_table):
    quote = compute_quote(1000, ["English"], ProjectType.FUSION, rate_table)
    assert quote.multiplier_applied == 1.0


def test_pure_applies_configured_multiplier(rate_table):
    quote = compute_quote(1000, ["English"], ProjectType.PURE, rate_table)
    assert quote.multiplier_applied == 1.3
    assert quote.breakdown[0].cost == Decimal("325.00")


def test_pm_fee_is_one_percent_below_cap():
    table = RateTable(rates={"English": 100}, pm_fee_percent=1.0)
    # 10,000 words x 100 cents = 10,000.00
    quote = compute_quote(10000, ["English"], ProjectType.FUSION, table)
    assert quote.subtotal == Decimal("10000.00")
    assert quote.pm_fee == Decimal("100.00")


def test_pm_fee_capped_at_500():
    table = RateTable(rates={"English": 100}, pm_fee_percent=1.0)
    # 100,000.00 subtotal would be a 1,000.00 fee uncapped
    quote = compute_quote(100000, ["English"], ProjectType.FUSION, table)
    assert quote.subtotal == Decimal("100000.00")
    assert quote.pm_fee == PM_FEE_CAP
    assert quote.total == Decimal("100500.00")


def test_rounding_is_per_line_half_up():
    table = RateTable(rates={"A": 33, "B": 33}, project_type_multiplier=1.3, pm_fee_percent=0)
    # 15 x 33 x 1.3 / 100 = 6.435 -> 6.44 per line, not 12.87 on the sum
    quote = compute_quote(15, ["A", "B"], ProjectType.PURE, table)
    assert [item.cost for item in quote.breakdown] == [Decimal("6.44"), Decimal("6.44")]
    assert quote.subtotal == Decimal("12.88")


def test_subtotal_equals_sum_of_lines(rate_table):
    quote = compute_quote(1234, ["English", "Spanish", "Arabic", "French"], ProjectType.PURE, rate_table)
    assert quote.subtotal == sum(item.cost for item in quote.breakdown)
    assert quote.total == quote.subtotal + quote.pm_fee


def test_stored_breakdown_resums_to_stored_subtotal(rate_table):
    doc = quote_to_document(compute_quote(777, ["Spanish", "Arabic"], ProjectType.PURE, rate_table))
    assert str(breakdown_subtotal(doc["breakdown"])) == doc["subtotal"]


def test_unknown_language_uses_default_rate(rate_table):
    quote = compute_quote(100, ["Klingon"], ProjectType.FUSION, rate_table)
    assert quote.breakdown[0].rate_cents == DEFAULT_RATE_CENTS
    assert quote.breakdown[0].cost == Decimal("25.00")


def test_one_line_per_language_in_order(rate_table):
    quote = compute_quote(10, ["Spanish", "English", "Arabic"], ProjectType.FUSION, rate_table)
    assert [item.language for item in quote.breakdown] == ["Spanish", "English", "Arabic"]


def test_zero_words_prices_to_zero(rate_table):
    quote = compute_quote(0, ["English"], ProjectType.FUSION, rate_table)
    assert quote.total == Decimal("0.00")


def test_empty_language_selection_rejected(rate_table):
    with pytest.raises(InvalidInput):
        compute_quote(100, [], ProjectType.FUSION, rate_table)
    with pytest.raises(InvalidInput):
        compute_quote(100, ["  ", ""], ProjectType.FUSION, rate_table)


def test_negative_word_count_rejected(rate_table):
    with pytest.raises(InvalidInput):
        compute_quote(-1, ["English"], ProjectType.FUSION, rate_table)


def test_invalid_project_type_rejected(rate_table):
    with pytest.raises(InvalidInput):
        compute_quote(100, ["English"], "HYBRID", rate_table)


def test_deterministic(rate_table):
    first = compute_quote(4321, ["Arabic", "French"], ProjectType.PURE, rate_table)
    second = compute_quote(4321, ["Arabic", "French"], ProjectType.PURE, rate_table)
    assert quote_to_document(first) == quote_to_document(second)


def test_normalize_languages_drops_blanks_and_repeats():
    assert normalize_languages([" English", "Spanish", "English ", ""]) == ["English", "Spanish"]


def test_money_strings_have_two_decimals(rate_table):
    doc = quote_to_document(compute_quote(1000, ["English"], ProjectType.FUSION, rate_table))
    assert doc["subtotal"] == "250.00"
    assert doc["pm_fee"] == "2.50"
    assert doc["total"] == "252.50"
    assert doc["breakdown"][0] == {"language": "English", "rate_cents": 25, "cost": "250.00"}


def test_to_money_half_up():
    assert to_money("0.005") == Decimal("0.01")
    assert to_money("2.345") == Decimal("2.35")
