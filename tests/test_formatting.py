"""Tests for budget and currency formatting."""
import pytest
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from naybourhood.formatting import format_budget, format_compact_currency, score_bg_color, score_color


class TestCompactCurrency:

    @pytest.mark.parametrize("value,expected", [
        (500, "£500"),
        (999, "£999"),
        (1000, "£1K"),
        (500000, "£500K"),
        (1000000, "£1M"),
        (1500000, "£1.5M"),
        (2000000.0, "£2M"),
    ])
    def test_examples(self, value, expected):
        assert format_compact_currency(value) == expected


class TestFormatBudget:

    def test_full_range(self):
        assert format_budget("£500,000 - £1,000,000") == "£500K - £1M"

    def test_unit_suffixes(self):
        assert format_budget("500k - 1.2m") == "£500K - £1.2M"

    def test_global_million_unit(self):
        assert format_budget("£1 - £2 million") == "£1M - £2M"

    def test_trailing_plus_kept(self):
        assert format_budget("£2M+") == "£2M+"

    def test_en_dash_range(self):
        assert format_budget("£400,000–£500,000") == "£400K - £500K"

    def test_empty_is_not_specified(self):
        assert format_budget("") == "Not specified"
        assert format_budget(None) == "Not specified"

    def test_text_without_numbers_unchanged(self):
        assert format_budget("Flexible") == "Flexible"


class TestScoreColors:

    @pytest.mark.parametrize("score,color", [(85, "green"), (60, "amber"), (45, "orange"), (10, "red")])
    def test_bands(self, score, color):
        assert score_color(score) == f"text-{color}-500"
        assert score_bg_color(score) == f"bg-{color}-500/10"
