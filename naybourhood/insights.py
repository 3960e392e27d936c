"""
Short dashboard insights derived from master-agent replies.
"""

import re
from dataclasses import dataclass
from enum import Enum

MAX_INSIGHTS = 3
MAX_INSIGHT_LENGTH = 80

CONTEXT_PROMPTS = {
    "leads": (
        "Analyse the lead data and provide exactly 3 brief insights (max 15 words each): "
        "1) Most urgent action needed, 2) A key pattern or risk, 3) Quick win opportunity."
    ),
    "campaigns": (
        "Analyse the campaign data and provide exactly 3 brief insights (max 15 words each): "
        "1) Biggest budget issue, 2) Best performing element, 3) Quick optimisation."
    ),
    "analytics": (
        "Provide exactly 3 brief strategic insights (max 15 words each): "
        "1) Key trend, 2) Area needing attention, 3) Top opportunity."
    ),
}

# Context sample sizes sent with an insight request
CONTEXT_LEAD_LIMIT = 10
CONTEXT_CAMPAIGN_LIMIT = 8

_SPLIT_RE = re.compile(r"(?:\d+[.)]\s*|\n[-•]\s*|\n\n)")


class InsightType(Enum):
    ACTION = "action"
    WARNING = "warning"
    OPPORTUNITY = "opportunity"
    SUCCESS = "success"


# Checked in order; the first bucket with a matching keyword wins
INSIGHT_KEYWORDS = [
    (InsightType.ACTION, ("urgent", "contact", "call")),
    (InsightType.WARNING, ("risk", "pause", "underperform")),
    (InsightType.SUCCESS, ("excellent", "strong", "performing well")),
]


@dataclass
class Insight:
    type: InsightType
    text: str

    def to_dict(self) -> dict:
        return {"type": self.type.value, "text": self.text}


def classify_insight(text: str) -> InsightType:
    lower = text.lower()
    for insight_type, keywords in INSIGHT_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return insight_type
    return InsightType.OPPORTUNITY


def parse_insights(text: str) -> list[Insight]:
    """Split a numbered or bulleted reply into at most three typed insights."""
    parts = [part for part in _SPLIT_RE.split(text or "") if part.strip()]
    return [
        Insight(type=classify_insight(part), text=part.strip()[:MAX_INSIGHT_LENGTH])
        for part in parts[:MAX_INSIGHTS]
    ]
