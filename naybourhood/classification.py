"""
Lead classification from the dual Quality/Intent scores.

Rules are evaluated top to bottom and the first match wins; anything that
matches no rule is cold.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional


class LeadClassification(Enum):
    HOT = "hot"
    STAR = "star"
    LIGHTNING = "lightning"
    VERIFIED = "verified"
    WARNING = "warning"
    DORMANT = "dormant"
    COLD = "cold"


@dataclass(frozen=True)
class ScoreBand:
    """Half-open score interval [minimum, below)."""
    minimum: float = 0
    below: float = 101

    def contains(self, score: float) -> bool:
        return self.minimum <= score < self.below


@dataclass(frozen=True)
class ClassificationRule:
    classification: LeadClassification
    intent: ScoreBand
    quality: ScoreBand

    def matches(self, intent_score: float, quality_score: float) -> bool:
        return self.intent.contains(intent_score) and self.quality.contains(quality_score)


CLASSIFICATION_RULES = [
    ClassificationRule(LeadClassification.HOT, intent=ScoreBand(80), quality=ScoreBand(80)),
    ClassificationRule(LeadClassification.STAR, intent=ScoreBand(60), quality=ScoreBand(80)),
    ClassificationRule(LeadClassification.LIGHTNING, intent=ScoreBand(80), quality=ScoreBand(50)),
    ClassificationRule(LeadClassification.VERIFIED, intent=ScoreBand(60), quality=ScoreBand(60)),
    ClassificationRule(LeadClassification.WARNING, intent=ScoreBand(60), quality=ScoreBand(below=50)),
    ClassificationRule(LeadClassification.DORMANT, intent=ScoreBand(below=50), quality=ScoreBand(50)),
]


@dataclass(frozen=True)
class ClassificationConfig:
    """Display metadata and response SLA for a classification."""
    value: LeadClassification
    label: str
    icon: str
    color: str
    bg_color: str
    sla: str

    def to_dict(self) -> dict:
        return {
            "value": self.value.value,
            "label": self.label,
            "icon": self.icon,
            "color": self.color,
            "bgColor": self.bg_color,
            "sla": self.sla,
        }


LEAD_CLASSIFICATIONS = [
    ClassificationConfig(LeadClassification.HOT, "Hot Lead", "🔥", "text-red-500", "bg-red-500/10", "1 hour"),
    ClassificationConfig(LeadClassification.STAR, "Star Quality", "⭐", "text-yellow-500", "bg-yellow-500/10", "4 hours"),
    ClassificationConfig(LeadClassification.LIGHTNING, "High Intent", "⚡", "text-blue-500", "bg-blue-500/10", "2 hours"),
    ClassificationConfig(LeadClassification.VERIFIED, "Verified", "✓", "text-green-500", "bg-green-500/10", "24 hours"),
    ClassificationConfig(LeadClassification.DORMANT, "Dormant", "💤", "text-gray-500", "bg-gray-500/10", "1 week"),
    ClassificationConfig(LeadClassification.WARNING, "Warning", "⚠️", "text-orange-500", "bg-orange-500/10", "24 hours"),
    ClassificationConfig(LeadClassification.COLD, "Cold", "❌", "text-slate-400", "bg-slate-500/10", "Auto"),
]

CLASSIFICATION_PRIORITY = {
    LeadClassification.HOT: 1,
    LeadClassification.STAR: 2,
    LeadClassification.LIGHTNING: 3,
    LeadClassification.VERIFIED: 4,
    LeadClassification.WARNING: 5,
    LeadClassification.DORMANT: 6,
    LeadClassification.COLD: 7,
}


def _check_score(name: str, score: float) -> None:
    if score is None or not 0 <= score <= 100:
        raise ValueError(f"{name} must be between 0 and 100, got {score!r}")


def classify_lead(intent_score: float, quality_score: float) -> LeadClassification:
    """Classify a lead from its intent and quality scores (both 0-100)."""
    _check_score("intent_score", intent_score)
    _check_score("quality_score", quality_score)

    for rule in CLASSIFICATION_RULES:
        if rule.matches(intent_score, quality_score):
            return rule.classification
    return LeadClassification.COLD


def to_classification(value: Any) -> Optional[LeadClassification]:
    """Parse a stored classification; unknown values give None."""
    if isinstance(value, LeadClassification):
        return value
    try:
        return LeadClassification(str(value).strip().lower())
    except ValueError:
        return None


def get_classification_config(classification: Any) -> ClassificationConfig:
    """Display config for a classification, cold when unknown."""
    value = to_classification(classification)
    for config in LEAD_CLASSIFICATIONS:
        if config.value == value:
            return config
    return LEAD_CLASSIFICATIONS[-1]


def get_combined_score(intent_score: float, quality_score: float) -> float:
    return (intent_score + quality_score) / 2


def get_classification_priority(classification: Any) -> int:
    value = to_classification(classification) or LeadClassification.COLD
    return CLASSIFICATION_PRIORITY[value]


def _lead_value(lead: Any, *names: str) -> Any:
    for name in names:
        if isinstance(lead, dict):
            if lead.get(name) is not None:
                return lead[name]
        elif getattr(lead, name, None) is not None:
            return getattr(lead, name)
    return None


def lead_classification(lead: Any) -> LeadClassification:
    """Stored classification if present, otherwise computed from the scores."""
    stored = to_classification(_lead_value(lead, "classification"))
    if stored is not None:
        return stored
    intent = _lead_value(lead, "intent_score", "intentScore")
    quality = _lead_value(lead, "quality_score", "qualityScore")
    if intent is None or quality is None:
        return LeadClassification.COLD
    return classify_lead(float(intent), float(quality))


def sort_leads_by_priority(leads: Iterable[Any]) -> list:
    """Sort leads (dicts or objects) hottest first; ties keep their order."""
    return sorted(leads, key=lambda lead: CLASSIFICATION_PRIORITY[lead_classification(lead)])
