"""Tests for subscription tiers and tier gating."""
import pytest
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from naybourhood.tiers import (
    UNLIMITED,
    SubscriptionTier,
    can_access_feature,
    can_view_buyer,
    contacts_remaining,
    get_tier_config,
    get_upgrade_path,
    is_first_refusal,
    plan_for_tier,
    tier_for_plan,
    to_tier,
)


class TestTierConfig:
    """Static tier table."""

    def test_monthly_contacts_per_tier(self):
        assert get_tier_config("access").monthly_contacts == 30
        assert get_tier_config("growth").monthly_contacts == 100
        assert get_tier_config("enterprise").monthly_contacts == UNLIMITED

    def test_buyer_score_windows(self):
        access = get_tier_config(SubscriptionTier.ACCESS)
        assert (access.min_buyer_score, access.max_buyer_score) == (50, 69)
        growth = get_tier_config(SubscriptionTier.GROWTH)
        assert (growth.min_buyer_score, growth.max_buyer_score) == (50, None)
        enterprise = get_tier_config(SubscriptionTier.ENTERPRISE)
        assert (enterprise.min_buyer_score, enterprise.max_buyer_score) == (0, None)

    def test_only_enterprise_has_first_refusal(self):
        assert get_tier_config("enterprise").first_refusal_buyers is True
        assert get_tier_config("growth").first_refusal_buyers is False
        assert get_tier_config("access").first_refusal_buyers is False

    def test_to_dict_uses_tier_value(self):
        data = get_tier_config("growth").to_dict()
        assert data["tier"] == "growth"
        assert data["price"] == 2249

    def test_unknown_tier_raises(self):
        with pytest.raises(ValueError):
            to_tier("platinum")

    def test_to_tier_normalises_case(self):
        assert to_tier(" Growth ") == SubscriptionTier.GROWTH


class TestFeatureAccess:
    """Tier rank comparisons."""

    @pytest.mark.parametrize("current,required,expected", [
        ("access", "access", True),
        ("access", "growth", False),
        ("access", "enterprise", False),
        ("growth", "access", True),
        ("growth", "growth", True),
        ("growth", "enterprise", False),
        ("enterprise", "access", True),
        ("enterprise", "growth", True),
        ("enterprise", "enterprise", True),
    ])
    def test_can_access_feature(self, current, required, expected):
        assert can_access_feature(current, required) is expected

    def test_upgrade_path(self):
        assert get_upgrade_path("access") == SubscriptionTier.GROWTH
        assert get_upgrade_path("growth") == SubscriptionTier.ENTERPRISE
        assert get_upgrade_path("enterprise") is None


class TestContactsRemaining:

    def test_counts_down(self):
        assert contacts_remaining(30, 12) == 18

    def test_never_negative(self):
        assert contacts_remaining(30, 45) == 0

    def test_unlimited_stays_unlimited(self):
        assert contacts_remaining(UNLIMITED, 10_000) == UNLIMITED


class TestBuyerVisibility:
    """Score windows decide which buyers a tier sees."""

    @pytest.mark.parametrize("score,expected", [(49, False), (50, True), (69, True), (70, False)])
    def test_access_window(self, score, expected):
        assert can_view_buyer("access", score) is expected

    @pytest.mark.parametrize("score,expected", [(49, False), (50, True), (100, True)])
    def test_growth_window(self, score, expected):
        assert can_view_buyer("growth", score) is expected

    def test_enterprise_sees_everything(self):
        assert can_view_buyer("enterprise", 0) is True
        assert can_view_buyer("enterprise", None) is True

    def test_unscored_buyers_hidden_below_enterprise(self):
        assert can_view_buyer("growth", None) is False

    def test_first_refusal_threshold(self):
        assert is_first_refusal("enterprise", 80) is True
        assert is_first_refusal("enterprise", 79) is False
        assert is_first_refusal("growth", 95) is False


class TestPlanNames:
    """Billing stores access under the legacy 'starter' plan."""

    def test_plan_for_tier(self):
        assert plan_for_tier("access") == "starter"
        assert plan_for_tier("growth") == "growth"
        assert plan_for_tier("enterprise") == "enterprise"

    def test_tier_for_plan(self):
        assert tier_for_plan("starter") == SubscriptionTier.ACCESS
        assert tier_for_plan("access") == SubscriptionTier.ACCESS
        assert tier_for_plan("Enterprise") == SubscriptionTier.ENTERPRISE

    def test_unknown_plan(self):
        assert tier_for_plan("legacy-gold") is None
        assert tier_for_plan(None) is None
