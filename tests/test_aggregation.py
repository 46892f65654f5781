"""Tests for currency normalization and aggregation."""

import pytest
from datetime import date
from decimal import Decimal

from expense_tracker.aggregation import AggregationEngine, CurrencyNormalizer, aggregate
from expense_tracker.aggregation.engine import display_category
from expense_tracker.config import AppSettings

from tests.conftest import make_record


class TestCurrencyNormalizer:
    """Tests for the static rate table."""

    def test_reference_currency_unchanged(self):
        assert CurrencyNormalizer().normalize(100, "USD") == Decimal("100")

    def test_known_rate_applied(self):
        assert CurrencyNormalizer().normalize(100, "EUR") == Decimal("109")

    def test_unknown_code_falls_back_to_one(self):
        """Test that unknown codes never fail."""
        normalizer = CurrencyNormalizer()
        assert normalizer.normalize(100, "XXX") == Decimal("100")
        assert not normalizer.knows("XXX")

    def test_codes_are_case_insensitive(self):
        normalizer = CurrencyNormalizer()
        assert normalizer.normalize(100, "eur") == Decimal("109")
        assert normalizer.knows(" gbp ")

    def test_float_amounts_use_their_decimal_text(self):
        assert CurrencyNormalizer().normalize(0.1, "USD") == Decimal("0.1")

    def test_injected_table(self):
        """Test that two normalizers with different tables coexist."""
        custom = CurrencyNormalizer({"usd": Decimal("1"), "chf": Decimal("1.1")})
        assert custom.normalize(10, "CHF") == Decimal("11.0")
        assert CurrencyNormalizer().normalize(10, "CHF") == Decimal("10")

    def test_rates_are_read_only(self):
        normalizer = CurrencyNormalizer()
        with pytest.raises(TypeError):
            normalizer.rates["USD"] = Decimal("2")

    def test_from_settings(self):
        settings = AppSettings(currency_rates={"usd": Decimal("1"), "inr": Decimal("0.012")})
        normalizer = CurrencyNormalizer.from_settings(settings)
        assert normalizer.normalize(1000, "INR") == Decimal("12.000")
        assert normalizer.reference == "USD"


class TestAggregate:
    """Tests for totals and the per-category breakdown."""

    def test_empty_input(self):
        summary = aggregate([], CurrencyNormalizer())
        assert summary.total == Decimal("0")
        assert summary.breakdown == []
        assert summary.record_count == 0

    def test_mixed_currency_example(self):
        """Test 50 USD + 20 EUR of food."""
        records = [
            make_record(day=date(2024, 1, 10), amount="50", currency="USD"),
            make_record(day=date(2024, 1, 5), amount="20", currency="EUR"),
        ]
        summary = aggregate(records, CurrencyNormalizer())

        assert summary.total == Decimal("71.8")
        assert len(summary.breakdown) == 1
        entry = summary.breakdown[0]
        assert entry.category == "Food"
        assert entry.normalized_sum == Decimal("71.8")
        assert entry.percentage_of_total == Decimal("100")

    def test_sums_equal_total_and_sorted(self):
        """Test that entries add up and are ordered largest first."""
        records = [
            make_record(amount="10", category="food"),
            make_record(amount="30", category="transportation", currency="GBP"),
            make_record(amount="5", category="other", currency="JPY"),
            make_record(amount="12", category="business", currency="CAD"),
            make_record(amount="40", category="food", currency="EUR"),
        ]
        summary = aggregate(records, CurrencyNormalizer())

        assert sum(e.normalized_sum for e in summary.breakdown) == summary.total
        sums = [e.normalized_sum for e in summary.breakdown]
        assert sums == sorted(sums, reverse=True)
        assert summary.record_count == 5
        assert abs(sum(e.percentage_of_total for e in summary.breakdown) - 100) < Decimal("0.0001")

    def test_labels_capitalized_and_merged(self):
        """Test that "food" and "Food" share one entry."""
        records = [
            make_record(amount="10", category="food"),
            make_record(amount="5", category="Food"),
        ]
        summary = aggregate(records, CurrencyNormalizer())
        assert [e.category for e in summary.breakdown] == ["Food"]
        assert summary.breakdown[0].normalized_sum == Decimal("15")

    def test_ties_keep_first_seen_order(self):
        records = [
            make_record(amount="10", category="travel"),
            make_record(amount="10", category="food"),
            make_record(amount="20", category="other"),
        ]
        summary = aggregate(records, CurrencyNormalizer())
        assert [e.category for e in summary.breakdown] == ["Other", "Travel", "Food"]

    def test_zero_total_percentages(self):
        summary = aggregate([make_record(amount="0")], CurrencyNormalizer())
        assert summary.total == Decimal("0")
        assert summary.breakdown[0].percentage_of_total == Decimal("0")

    def test_engine_total(self):
        engine = AggregationEngine(CurrencyNormalizer())
        records = [make_record(amount="100", currency="EUR"), make_record(amount="1")]
        assert engine.total(records) == Decimal("110")

    def test_display_category(self):
        assert display_category("food") == "Food"
        assert display_category("") == ""
        assert display_category("eXtra") == "EXtra"
