"""
Subscription tier table and tier gating.

The table is static; everything that depends on a customer's plan reads it
through get_tier_config() and compares tiers by rank.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional, Union

UNLIMITED = "unlimited"
FIRST_REFUSAL_THRESHOLD = 80


class SubscriptionTier(Enum):
    """Subscription tiers, cheapest first."""
    ACCESS = "access"
    GROWTH = "growth"
    ENTERPRISE = "enterprise"


TIER_ORDER = [SubscriptionTier.ACCESS, SubscriptionTier.GROWTH, SubscriptionTier.ENTERPRISE]

TierLike = Union[SubscriptionTier, str]
Quota = Union[int, str]


@dataclass(frozen=True)
class SubscriptionTierConfig:
    """Pricing, quotas and feature flags for one tier."""
    tier: SubscriptionTier
    name: str
    price: int
    price_display: str
    is_popular: bool
    description: str

    monthly_contacts: Quota
    monthly_contacts_display: str
    buyer_database_access: str
    buyer_database_description: str
    min_buyer_score: int
    max_buyer_score: Optional[int]

    ai_insights_level: str   # basic, enhanced, full
    ai_insights_count: str
    ai_insights_description: str
    campaigns: str           # locked, done-for-you, full-service
    campaigns_description: str
    score_breakdown: str     # basic, full, full-ai
    score_breakdown_description: str
    support: str             # email, priority, dedicated
    support_description: str

    first_refusal_buyers: bool = False
    quality_intent_scoring: bool = False
    weekly_email_digest: bool = False
    predictive_analytics: bool = False
    automated_follow_ups: bool = False
    custom_insight_requests: bool = False
    daily_insight_refresh: bool = False

    @property
    def unlimited_contacts(self) -> bool:
        return self.monthly_contacts == UNLIMITED

    def to_dict(self) -> dict:
        data = asdict(self)
        data["tier"] = self.tier.value
        return data


FEATURE_FLAGS = (
    "first_refusal_buyers",
    "quality_intent_scoring",
    "weekly_email_digest",
    "predictive_analytics",
    "automated_follow_ups",
    "custom_insight_requests",
    "daily_insight_refresh",
)


SUBSCRIPTION_TIERS: dict[SubscriptionTier, SubscriptionTierConfig] = {
    SubscriptionTier.ACCESS: SubscriptionTierConfig(
        tier=SubscriptionTier.ACCESS,
        name="Access",
        price=999,
        price_display="£999",
        is_popular=False,
        description="Get started with essential buyer access and insights",
        monthly_contacts=30,
        monthly_contacts_display="30",
        buyer_database_access="Score 50-69",
        buyer_database_description="Access to qualified buyers with scores 50-69",
        min_buyer_score=50,
        max_buyer_score=69,
        ai_insights_level="basic",
        ai_insights_count="2-3 per week",
        ai_insights_description="Basic actionable insights delivered weekly",
        campaigns="locked",
        campaigns_description="Campaign features not included",
        score_breakdown="basic",
        score_breakdown_description="Basic lead score overview",
        support="email",
        support_description="Email support within 24 hours",
    ),
    SubscriptionTier.GROWTH: SubscriptionTierConfig(
        tier=SubscriptionTier.GROWTH,
        name="Growth",
        price=2249,
        price_display="£2,249",
        is_popular=True,
        description="Scale your pipeline with enhanced AI and done-for-you campaigns",
        monthly_contacts=100,
        monthly_contacts_display="100",
        buyer_database_access="Score 50+",
        buyer_database_description="Access to all qualified buyers scoring 50+",
        min_buyer_score=50,
        max_buyer_score=None,
        ai_insights_level="enhanced",
        ai_insights_count="5-7 visible",
        ai_insights_description="Enhanced insights with campaign recommendations",
        campaigns="done-for-you",
        campaigns_description="Done-for-you campaign management",
        score_breakdown="full",
        score_breakdown_description="Full lead score breakdown",
        support="priority",
        support_description="Priority support with faster response times",
        weekly_email_digest=True,
    ),
    SubscriptionTier.ENTERPRISE: SubscriptionTierConfig(
        tier=SubscriptionTier.ENTERPRISE,
        name="Enterprise",
        price=3999,
        price_display="£3,999",
        is_popular=False,
        description="Full-service platform with predictive AI and exclusive buyer access",
        monthly_contacts=UNLIMITED,
        monthly_contacts_display="Unlimited",
        buyer_database_access=f"All + First Refusal ({FIRST_REFUSAL_THRESHOLD}+)",
        buyer_database_description=f"Exclusive first refusal on high-intent buyers ({FIRST_REFUSAL_THRESHOLD}+)",
        min_buyer_score=0,
        max_buyer_score=None,
        ai_insights_level="full",
        ai_insights_count="Unlimited, daily",
        ai_insights_description="Full predictive analytics with AI-drafted follow-ups",
        campaigns="full-service",
        campaigns_description="Full-service campaign management",
        score_breakdown="full-ai",
        score_breakdown_description="Full breakdown with AI explanations",
        support="dedicated",
        support_description="Dedicated Account Manager",
        first_refusal_buyers=True,
        quality_intent_scoring=True,
        weekly_email_digest=True,
        predictive_analytics=True,
        automated_follow_ups=True,
        custom_insight_requests=True,
        daily_insight_refresh=True,
    ),
}

# Billing stores the access tier under its legacy plan name
PLAN_TYPE_BY_TIER = {
    SubscriptionTier.ACCESS: "starter",
    SubscriptionTier.GROWTH: "growth",
    SubscriptionTier.ENTERPRISE: "enterprise",
}


def to_tier(tier: TierLike) -> SubscriptionTier:
    """Coerce a tier or its string value. Unknown values raise ValueError."""
    if isinstance(tier, SubscriptionTier):
        return tier
    return SubscriptionTier(str(tier).strip().lower())


def tier_rank(tier: TierLike) -> int:
    return TIER_ORDER.index(to_tier(tier))


def get_tier_config(tier: TierLike) -> SubscriptionTierConfig:
    return SUBSCRIPTION_TIERS[to_tier(tier)]


def can_access_feature(current_tier: TierLike, required_tier: TierLike) -> bool:
    """True when the current tier ranks at or above the required tier."""
    return tier_rank(current_tier) >= tier_rank(required_tier)


def get_upgrade_path(current_tier: TierLike) -> Optional[SubscriptionTier]:
    """Next tier up, or None for the top tier."""
    rank = tier_rank(current_tier)
    if rank + 1 < len(TIER_ORDER):
        return TIER_ORDER[rank + 1]
    return None


def contacts_remaining(quota: Quota, used: int) -> Quota:
    """Contacts left this month; never negative."""
    if quota == UNLIMITED:
        return UNLIMITED
    return max(0, int(quota) - max(0, used))


def can_view_buyer(tier: TierLike, score: Optional[float]) -> bool:
    """Whether a buyer with this score falls inside the tier's database window."""
    config = get_tier_config(tier)
    if score is None:
        return config.min_buyer_score == 0
    if score < config.min_buyer_score:
        return False
    if config.max_buyer_score is not None and score > config.max_buyer_score:
        return False
    return True


def is_first_refusal(tier: TierLike, score: Optional[float]) -> bool:
    config = get_tier_config(tier)
    return config.first_refusal_buyers and score is not None and score >= FIRST_REFUSAL_THRESHOLD


def plan_for_tier(tier: TierLike) -> str:
    return PLAN_TYPE_BY_TIER[to_tier(tier)]


def tier_for_plan(plan: Optional[str]) -> Optional[SubscriptionTier]:
    """Map a stored plan name back to a tier; unknown plans give None."""
    if not plan:
        return None
    plan = plan.strip().lower()
    for tier, plan_type in PLAN_TYPE_BY_TIER.items():
        if plan in (plan_type, tier.value):
            return tier
    return None
