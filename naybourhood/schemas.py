"""
Response shapes expected from the hosted models.

Each AI function validates the parsed model output against one of these
before returning it, so callers only ever see a known shape.
"""

from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, RootModel, field_validator, model_validator


def _round_score(value: Any) -> Any:
    if isinstance(value, float):
        return int(round(value))
    return value


Score = Annotated[int, BeforeValidator(_round_score), Field(ge=0, le=100)]


class ApiModel(BaseModel):
    """Base for camelCase payloads."""
    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------- lead-scoring ----------

class LeadScoreBreakdown(BaseModel):
    timeline: int = 0
    cash_or_mortgage: int = 0
    reason_for_purchase: int = 0
    budget: int = 0
    contact_preference: int = 0
    linkedin_or_website: int = 0


class LeadScoreResult(ApiModel):
    status: Literal["scored", "flagged"]
    score: Score = 0
    priority: Optional[int] = Field(default=None, ge=1, le=4)
    priority_label: str = ""
    score_breakdown: Optional[LeadScoreBreakdown] = None
    modifiers_applied: list[str] = Field(default_factory=list)
    recommended_action: str = ""
    next_steps: list[str] = Field(default_factory=list)
    risk_flags: list[str] = Field(default_factory=list)
    reason: Optional[str] = None

    @model_validator(mode="after")
    def scored_results_have_priority(self) -> "LeadScoreResult":
        if self.status == "scored" and self.priority is None:
            raise ValueError("scored results must include a priority")
        return self

    def to_payload(self) -> dict:
        payload = self.model_dump(exclude_none=True)
        # Flagged leads carry an explicit null priority
        payload.setdefault("priority", None)
        return payload


# ---------- analyze-data ----------

class AnalysisIssue(ApiModel):
    title: str
    description: str = ""
    impact: str = "Low Impact"
    recommendation: Optional[str] = None


class AnalysisOpportunity(ApiModel):
    title: str
    description: str = ""
    potential: str = ""
    action: Optional[str] = None


class LeadDistribution(ApiModel):
    hot: int = 0
    quality: int = 0
    valid: int = 0
    at_risk: int = Field(default=0, alias="atRisk")
    disqualified: int = 0


class NextAction(ApiModel):
    action: str
    priority: str = "medium"
    expected_outcome: Optional[str] = Field(default=None, alias="expectedOutcome")

    @field_validator("priority", mode="before")
    @classmethod
    def lower_priority(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class KeyMetrics(ApiModel):
    total_spend: Optional[float] = Field(default=None, alias="totalSpend")
    total_leads: Optional[int] = Field(default=None, alias="totalLeads")
    avg_cpl: Optional[float] = Field(default=None, alias="avgCPL")
    best_performer: Optional[str] = Field(default=None, alias="bestPerformer")
    worst_performer: Optional[str] = Field(default=None, alias="worstPerformer")


class DeepInsight(ApiModel):
    category: str
    insight: str
    severity: str = "info"


class DataAnalysis(ApiModel):
    issues: list[AnalysisIssue] = Field(default_factory=list)
    opportunities: list[AnalysisOpportunity] = Field(default_factory=list)
    lead_distribution: LeadDistribution = Field(default_factory=LeadDistribution, alias="leadDistribution")
    savings_identified: float = Field(default=0, alias="savingsIdentified")
    next_actions: list[NextAction] = Field(default_factory=list, alias="nextActions")
    summary: str
    key_metrics: Optional[KeyMetrics] = Field(default=None, alias="keyMetrics")
    deep_insights: list[DeepInsight] = Field(default_factory=list, alias="deepInsights")


class ChatLead(ApiModel):
    name: str = "Unknown"
    email: Optional[str] = None
    phone: Optional[str] = None
    score: Optional[float] = None

    @field_validator("name", mode="before")
    @classmethod
    def default_name(cls, v: Any) -> Any:
        return v or "Unknown"

    @field_validator("email", "phone", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if v in ("", None):
            return None
        return str(v)

    @field_validator("score", mode="before")
    @classmethod
    def zero_score_to_none(cls, v: Any) -> Any:
        return v or None

    def to_payload(self) -> dict:
        return self.model_dump()


class ChatReply(ApiModel):
    message: str
    leads: list[ChatLead]


# ---------- recommend-cities ----------

class CityRecommendation(ApiModel):
    city_code: str = Field(alias="cityCode")
    city_name: str = Field(alias="cityName")
    country_code: str = Field(alias="countryCode")
    reason: str
    priority: Literal["high", "medium", "low"]


class CityRecommendations(ApiModel):
    recommendations: list[CityRecommendation] = Field(min_length=1)


# ---------- ai-lead-analysis ----------

class LeadAnalysisScore(ApiModel):
    quality_score: Score = Field(alias="qualityScore")
    intent_score: Score = Field(alias="intentScore")
    quality_breakdown: dict[str, float] = Field(default_factory=dict, alias="qualityBreakdown")
    intent_breakdown: dict[str, float] = Field(default_factory=dict, alias="intentBreakdown")
    classification: Optional[str] = None
    reasoning: str = ""


class SpamCheck(ApiModel):
    is_spam: bool = Field(alias="isSpam")
    confidence: float = Field(ge=0, le=100)
    indicators: list[str] = Field(default_factory=list)
    recommendation: Literal["approve", "review", "reject"]


class QualityAnalysis(ApiModel):
    overall_quality: Literal["excellent", "good", "average", "poor"] = Field(alias="overallQuality")
    buyer_readiness: Literal["ready_to_buy", "actively_looking", "just_browsing", "not_ready"] = Field(
        alias="buyerReadiness"
    )
    financial_capability: Literal["verified", "likely", "uncertain", "unlikely"] = Field(alias="financialCapability")
    match_score: float = Field(alias="matchScore")
    concerns: list[str] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    recommended_actions: list[str] = Field(default_factory=list, alias="recommendedActions")


class BulkLeadScore(ApiModel):
    lead_id: str = Field(alias="leadId")
    quality_score: Score = Field(alias="qualityScore")
    intent_score: Score = Field(alias="intentScore")
    classification: Optional[str] = None

    @field_validator("lead_id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v


class BulkLeadScores(RootModel[list[BulkLeadScore]]):
    pass


# ---------- campaign-analysis ----------

class CampaignMetrics(BaseModel):
    total_spend: float = 0
    total_leads: int = 0
    cpl: float = 0
    cpl_rating: Optional[Literal["excellent", "good", "acceptable", "poor"]] = None
    ctr: Optional[float] = None
    ctr_rating: Optional[Literal["good", "needs_improvement"]] = None
    click_to_lead_rate: Optional[float] = None
    cost_per_qualified_lead: Optional[float] = None


class CampaignRecommendation(BaseModel):
    priority: int = Field(default=1, ge=1)
    type: str = ""
    action: str
    rationale: str = ""
    expected_impact: str = ""


class CampaignWarning(BaseModel):
    severity: Literal["high", "medium"] = "medium"
    issue: str
    action: str = ""

    @field_validator("severity", mode="before")
    @classmethod
    def lower_severity(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class CampaignAnalysis(BaseModel):
    summary: str
    campaign_health: Literal["excellent", "good", "needs_attention", "poor"]
    metrics: CampaignMetrics = Field(default_factory=CampaignMetrics)
    platform_breakdown: list[dict[str, Any]] = Field(default_factory=list)
    lead_quality_summary: dict[str, Any] = Field(default_factory=dict)
    top_performing_elements: list[dict[str, Any]] = Field(default_factory=list)
    underperforming_elements: list[dict[str, Any]] = Field(default_factory=list)
    recommendations: list[CampaignRecommendation] = Field(default_factory=list)
    budget_recommendation: Optional[dict[str, Any]] = None
    warnings: list[CampaignWarning] = Field(default_factory=list)
    excluded_data: Optional[dict[str, Any]] = None

    def to_payload(self) -> dict:
        return self.model_dump(exclude_none=True)


# ---------- ai-campaign-intelligence ----------

class ImportedCampaign(ApiModel):
    name: str = "Unnamed Campaign"
    client: str = "Unknown Client"
    client_type: Literal["developer", "agent", "broker"] = Field(default="developer", alias="clientType")
    status: Literal["live", "paused", "draft", "completed"] = "live"
    budget: float = 0
    spent: float = 0
    leads: int = 0
    cpl: Optional[float] = None
    start_date: Optional[str] = Field(default=None, alias="startDate")

    @field_validator("name", "client", mode="before")
    @classmethod
    def blank_to_default(cls, v: Any, info) -> Any:
        if v in ("", None):
            return cls.model_fields[info.field_name].default
        return v

    @field_validator("client_type", "status", mode="before")
    @classmethod
    def lower_choice(cls, v: Any, info) -> Any:
        if v in ("", None):
            return cls.model_fields[info.field_name].default
        return v.lower() if isinstance(v, str) else v

    @field_validator("budget", "spent", "leads", mode="before")
    @classmethod
    def number_or_zero(cls, v: Any, info) -> Any:
        if v in ("", None):
            return 0
        if isinstance(v, str):
            v = v.replace("£", "").replace(",", "").strip()
        try:
            number = float(v)
        except (TypeError, ValueError):
            return 0
        return int(number) if info.field_name == "leads" else number

    @model_validator(mode="after")
    def derive_cpl(self) -> "ImportedCampaign":
        if not self.cpl:
            self.cpl = round(self.spent / self.leads, 2) if self.leads > 0 else 0
        return self


class CampaignImport(ApiModel):
    success: bool = True
    campaigns: list[ImportedCampaign] = Field(default_factory=list)
    summary: str = ""
    insights: list[str] = Field(default_factory=list)
    records_found: Optional[int] = Field(default=None, alias="recordsFound")


class IntelligenceRecommendation(ApiModel):
    priority: Literal["high", "medium", "low"] = "medium"
    category: str = ""
    title: str
    description: str = ""
    expected_impact: str = Field(default="", alias="expectedImpact")
    action: str = ""

    @field_validator("priority", mode="before")
    @classmethod
    def lower_priority(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class BudgetSuggestion(ApiModel):
    current: float = 0
    recommended: float = 0
    reasoning: str = ""


class CampaignRecommendations(ApiModel):
    overall_health: Literal["excellent", "good", "needs_attention", "critical"] = Field(alias="overallHealth")
    recommendations: list[IntelligenceRecommendation] = Field(default_factory=list)
    budget_suggestion: Optional[BudgetSuggestion] = Field(default=None, alias="budgetSuggestion")
    audience_insights: list[str] = Field(default_factory=list, alias="audienceInsights")
    creative_insights: list[str] = Field(default_factory=list, alias="creativeInsights")


Rating = Literal["excellent", "good", "average", "poor"]


class PerformanceRatings(ApiModel):
    lead_quality: Rating = Field(alias="leadQuality")
    cost_efficiency: Rating = Field(alias="costEfficiency")
    engagement: Rating


class PerformanceSummary(ApiModel):
    summary: str
    whats_working: list[str] = Field(default_factory=list, alias="whatsWorking")
    needs_attention: list[str] = Field(default_factory=list, alias="needsAttention")
    key_metrics: Optional[PerformanceRatings] = Field(default=None, alias="keyMetrics")
    next_steps: list[str] = Field(default_factory=list, alias="nextSteps")


class AttributionInsight(ApiModel):
    finding: str
    meta_reported: str = Field(default="", alias="metaReported")
    actual_performance: str = Field(default="", alias="actualPerformance")
    recommendation: str = ""
    budget_impact: str = Field(default="", alias="budgetImpact")


class AttributionAnalysis(ApiModel):
    insights: list[AttributionInsight] = Field(default_factory=list)
    device_breakdown: dict[str, dict[str, float]] = Field(default_factory=dict, alias="deviceBreakdown")
    creative_performance: list[dict[str, Any]] = Field(default_factory=list, alias="creativePerformance")
    actionable_recommendations: list[str] = Field(default_factory=list, alias="actionableRecommendations")


# ---------- optimize-budget ----------

class RegionAllocation(ApiModel):
    region: str
    percentage: float = Field(ge=0, le=100)
    reason: str = ""


class BudgetOptimization(ApiModel):
    recommended_budget: float = Field(ge=0, alias="recommendedBudget")
    recommended_daily_cap: float = Field(ge=0, alias="recommendedDailyCap")
    budget_reasoning: str = Field(alias="budgetReasoning")
    expected_cpl_min: float = Field(ge=0, alias="expectedCPLMin")
    expected_cpl_max: float = Field(ge=0, alias="expectedCPLMax")
    region_allocations: list[RegionAllocation] = Field(default_factory=list, alias="regionAllocations")
    optimization_tips: list[str] = Field(default_factory=list, alias="optimizationTips")
    confidence: float = Field(ge=0, le=100)

    @model_validator(mode="after")
    def cpl_range_ordered(self) -> "BudgetOptimization":
        if self.expected_cpl_min > self.expected_cpl_max:
            raise ValueError("expectedCPLMin must not exceed expectedCPLMax")
        return self
