"""
Display formatting for budgets, currency amounts and scores.
"""

import math
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

Number = Union[int, float]

_STRIP_RE = re.compile(r"[£$,]")
_DASH_RE = re.compile(r"[\u2013\u2014]")
_SPACE_RE = re.compile(r"\s+")
_PLUS_RE = re.compile(r"\+\s*$")
_MILLION_WORD_RE = re.compile(r"\b(million|mn)\b")
_MILLION_SUFFIX_RE = re.compile(r"\b\d+(?:\.\d+)?\s*m\b")
_THOUSAND_WORD_RE = re.compile(r"\b(thousand)\b")
_THOUSAND_SUFFIX_RE = re.compile(r"\b\d+(?:\.\d+)?\s*k\b")
_AMOUNT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(m|million|mn|k|thousand)?")

MILLION_UNITS = ("m", "mn", "million")
THOUSAND_UNITS = ("k", "thousand")


def _fixed(value: Number, places: int) -> str:
    """Fixed-point rendering with half-up rounding."""
    quantum = Decimal(1).scaleb(-places)
    return str(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def format_compact_currency(value: Number) -> str:
    """Format an amount in pounds: 500000 -> '£500K', 1500000 -> '£1.5M'."""
    if value >= 1_000_000:
        millions = value / 1_000_000
        return f"£{_fixed(millions, 0 if millions % 1 == 0 else 1)}M"
    if value >= 1000:
        return f"£{_fixed(value / 1000, 0)}K"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"£{value}"


def format_budget(budget: Optional[str]) -> str:
    """Compact a free-text budget: '£500,000 - £1,000,000' -> '£500K - £1M'.

    Units may follow each number ('500k - 1.2m') or apply to the whole range
    ('£1 - £2 million'). A trailing '+' is kept for single values. Text with no
    numbers is returned unchanged.
    """
    if not budget:
        return "Not specified"

    raw = budget.strip()
    has_plus = _PLUS_RE.search(raw) is not None

    normalised = _STRIP_RE.sub("", raw)
    normalised = _DASH_RE.sub("-", normalised)
    normalised = _SPACE_RE.sub(" ", normalised).lower()

    global_million = bool(_MILLION_WORD_RE.search(normalised) or _MILLION_SUFFIX_RE.search(normalised))
    global_thousand = bool(_THOUSAND_WORD_RE.search(normalised) or _THOUSAND_SUFFIX_RE.search(normalised))

    values = []
    for number, unit in _AMOUNT_RE.findall(normalised):
        amount = float(number)
        if not math.isfinite(amount):
            continue
        if unit in MILLION_UNITS:
            amount *= 1_000_000
        elif unit in THOUSAND_UNITS:
            amount *= 1000
        elif global_million and amount < 1000:
            amount *= 1_000_000
        elif global_thousand and amount < 1000:
            amount *= 1000
        values.append(amount)

    if not values:
        return budget

    formatted = [format_compact_currency(math.floor(amount + 0.5)) for amount in values]

    if len(formatted) >= 2:
        return f"{formatted[0]} - {formatted[1]}"
    return f"{formatted[0]}+" if has_plus else formatted[0]


def score_band(score: Number) -> str:
    """Colour band for a 0-100 score."""
    if score >= 80:
        return "green"
    if score >= 60:
        return "amber"
    if score >= 40:
        return "orange"
    return "red"


def score_color(score: Number) -> str:
    return f"text-{score_band(score)}-500"


def score_bg_color(score: Number) -> str:
    return f"bg-{score_band(score)}-500/10"
