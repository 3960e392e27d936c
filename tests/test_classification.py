"""Tests for dual-score lead classification."""
import pytest
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from naybourhood.classification import (
    LeadClassification,
    classify_lead,
    get_classification_config,
    get_classification_priority,
    get_combined_score,
    lead_classification,
    sort_leads_by_priority,
)


class TestClassifyLead:
    """Rules are checked top to bottom; the first match wins."""

    def test_every_score_pair_has_a_classification(self):
        for intent in range(101):
            for quality in range(101):
                assert isinstance(classify_lead(intent, quality), LeadClassification)

    @pytest.mark.parametrize("intent,quality,expected", [
        (80, 80, LeadClassification.HOT),
        (79, 80, LeadClassification.STAR),
        (80, 79, LeadClassification.LIGHTNING),
        (60, 80, LeadClassification.STAR),
        (59, 80, LeadClassification.COLD),
        (80, 50, LeadClassification.LIGHTNING),
        (80, 49, LeadClassification.WARNING),
        (60, 60, LeadClassification.VERIFIED),
        (59, 60, LeadClassification.COLD),
        (60, 59, LeadClassification.COLD),
        (60, 49, LeadClassification.WARNING),
        (49, 50, LeadClassification.DORMANT),
        (50, 50, LeadClassification.COLD),
        (49, 49, LeadClassification.COLD),
        (0, 0, LeadClassification.COLD),
        (100, 100, LeadClassification.HOT),
    ])
    def test_thresholds(self, intent, quality, expected):
        assert classify_lead(intent, quality) == expected

    @pytest.mark.parametrize("intent,quality", [(-1, 50), (50, 101), (None, 50)])
    def test_out_of_range_scores_raise(self, intent, quality):
        with pytest.raises(ValueError):
            classify_lead(intent, quality)


class TestClassificationHelpers:

    def test_config_lookup(self):
        config = get_classification_config("hot")
        assert config.label == "Hot Lead"
        assert config.sla == "1 hour"

    def test_unknown_config_is_cold(self):
        assert get_classification_config("mystery").value == LeadClassification.COLD

    def test_combined_score(self):
        assert get_combined_score(80, 60) == 70

    def test_priority_order(self):
        assert get_classification_priority("hot") == 1
        assert get_classification_priority("cold") == 7
        assert get_classification_priority(None) == 7

    def test_stored_classification_wins(self):
        lead = {"classification": "star", "intent_score": 10, "quality_score": 10}
        assert lead_classification(lead) == LeadClassification.STAR

    def test_computed_from_camel_case_scores(self):
        assert lead_classification({"intentScore": 85, "qualityScore": 90}) == LeadClassification.HOT

    def test_missing_scores_are_cold(self):
        assert lead_classification({"name": "No scores"}) == LeadClassification.COLD

    def test_sort_hottest_first(self):
        leads = [
            {"name": "cold", "intentScore": 10, "qualityScore": 10},
            {"name": "hot", "intentScore": 90, "qualityScore": 90},
            {"name": "verified", "intentScore": 65, "qualityScore": 65},
        ]
        assert [lead["name"] for lead in sort_leads_by_priority(leads)] == ["hot", "verified", "cold"]
