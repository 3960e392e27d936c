"""
Campaign analysis, campaign intelligence and budget optimisation.

campaign-analysis benchmarks one Meta campaign with Claude.
ai-campaign-intelligence runs one of several gateway prompts (or parses an
uploaded campaign export), and optimize-budget forces a tool call.
"""

import json
import logging
import time
from typing import Callable, Optional

from pydantic import BaseModel

from .errors import RequestValidationError
from .llm import ClaudeClient, GatewayClient
from .parsing import parse_model_output, validate_response
from .schemas import (
    AttributionAnalysis,
    BudgetOptimization,
    CampaignAnalysis,
    CampaignImport,
    CampaignRecommendations,
    PerformanceSummary,
)

logger = logging.getLogger(__name__)

ANALYSIS_SYSTEM_PROMPT = """You are Naybourhood's property marketing analyst. Analyse Meta ad campaigns for property buyer lead generation.

CPL BENCHMARKS:
- Excellent: Under £20
- Good: £20-35
- Acceptable: £35-50
- Poor: Above £50

PLATFORM BENCHMARKS:
- Facebook target CPL: Under £30
- Instagram target CPL: Under £40
- Messenger: Low volume, retargeting only
- Audience Network: ALWAYS EXCLUDE - all leads are spam/fake

ENGAGEMENT BENCHMARKS:
- CTR target: Above 1% (below 0.5% = creative/targeting problem)
- Click-to-Lead Rate target: Above 2%
- Landing Page View Rate: Above 50% of clicks

RETURN JSON ONLY (no markdown, no explanation):
{
  "summary": "2-3 sentence executive summary",
  "campaign_health": "excellent" | "good" | "needs_attention" | "poor",
  "metrics": {
    "total_spend": number,
    "total_leads": number,
    "cpl": number,
    "cpl_rating": "excellent" | "good" | "acceptable" | "poor",
    "ctr": number,
    "ctr_rating": "good" | "needs_improvement",
    "click_to_lead_rate": number,
    "cost_per_qualified_lead": number
  },
  "platform_breakdown": [
    {"platform": string, "spend": number, "leads": number, "cpl": number,
     "performance": "above_benchmark" | "at_benchmark" | "below_benchmark"}
  ],
  "lead_quality_summary": {
    "total_leads": number, "qualified_leads": number, "qualified_rate": number,
    "hot_leads": number, "warm_leads": number, "cold_leads": number
  },
  "top_performing_elements": [
    {"element": "ad_set" | "creative" | "audience" | "placement", "name": string, "cpl": number, "why_working": string}
  ],
  "underperforming_elements": [
    {"element": string, "name": string, "cpl": number, "issue": string, "recommendation": string}
  ],
  "recommendations": [
    {"priority": number, "type": "targeting" | "creative" | "budget" | "landing_page" | "placement",
     "action": string, "rationale": string, "expected_impact": string}
  ],
  "budget_recommendation": {"current_daily": number, "recommended_daily": number, "reasoning": string},
  "warnings": [{"severity": "high" | "medium", "issue": string, "action": string}],
  "excluded_data": {
    "audience_network_leads": number,
    "audience_network_spend": number,
    "reason": "Historically spam/fake leads - excluded from all calculations"
  }
}

IMPORTANT RULES:
- Always exclude Audience Network from all calculations
- Compare every CPL against benchmarks
- Flag CTR below 0.5% as a creative/targeting problem
- Recommend budget shifts from poor performers to excellent performers
- Be specific with recommendations - name exact actions to take"""

IMPORT_SYSTEM_PROMPT = """You are a campaign data extraction expert. Parse the provided file content and extract campaign information.

Identify columns for: campaign name, client, status, budget, spent, leads, CPL, start date.

IMPORTANT: Return ONLY valid JSON in exactly this format:
{
  "success": true,
  "campaigns": [
    {
      "name": "Campaign Name",
      "client": "Client Company Name",
      "clientType": "developer" | "agent" | "broker",
      "status": "live" | "paused" | "draft" | "completed",
      "budget": 5000,
      "spent": 3200,
      "leads": 87,
      "cpl": 36.78,
      "startDate": "2024-01-15"
    }
  ],
  "summary": "Extracted X campaigns from the file",
  "insights": ["Key insight 1", "Key insight 2"],
  "recordsFound": 5
}

Guidelines:
- Budget and spent should be numbers (no currency symbols)
- CPL (Cost Per Lead) = spent / leads if not provided
- Status defaults to "live" if not specified
- ClientType should be inferred from client name or context
- Dates should be in YYYY-MM-DD format"""

RECOMMENDATIONS_PROMPT = """You are a Meta advertising expert for property marketing. Analyze campaign data and provide actionable recommendations.

Respond with valid JSON only:
{
  "overallHealth": "excellent" | "good" | "needs_attention" | "critical",
  "recommendations": [
    {
      "priority": "high" | "medium" | "low",
      "category": "budget" | "targeting" | "creative" | "timing" | "audience",
      "title": "string",
      "description": "string",
      "expectedImpact": "string",
      "action": "string"
    }
  ],
  "budgetSuggestion": {"current": number, "recommended": number, "reasoning": "string"},
  "audienceInsights": string[],
  "creativeInsights": string[]
}"""

PERFORMANCE_PROMPT = """You are a campaign analyst. Provide a plain-language performance summary.

Respond with valid JSON only:
{
  "summary": "string (2-3 sentences)",
  "whatsWorking": string[],
  "needsAttention": string[],
  "keyMetrics": {
    "leadQuality": "excellent" | "good" | "average" | "poor",
    "costEfficiency": "excellent" | "good" | "average" | "poor",
    "engagement": "excellent" | "good" | "average" | "poor"
  },
  "nextSteps": string[]
}"""

ATTRIBUTION_PROMPT = """You are an attribution analyst. Compare Meta-reported metrics vs actual performance and identify discrepancies.

Respond with valid JSON only:
{
  "insights": [
    {
      "finding": "string",
      "metaReported": "string",
      "actualPerformance": "string",
      "recommendation": "string",
      "budgetImpact": "string"
    }
  ],
  "deviceBreakdown": {
    "mobile": {"leads": number, "conversionRate": number},
    "desktop": {"leads": number, "conversionRate": number}
  },
  "creativePerformance": [{"creativeId": "string", "leads": number, "dealRate": number}],
  "actionableRecommendations": string[]
}"""

BUDGET_JSON_PROMPT = """You are a budget optimization expert for property marketing campaigns.

Respond with valid JSON only:
{
  "recommendedBudget": number,
  "recommendedDailyCap": number,
  "budgetReasoning": "string",
  "expectedCPLMin": number,
  "expectedCPLMax": number,
  "regionAllocations": [{"region": "string", "percentage": number, "reason": "string"}],
  "optimizationTips": string[],
  "confidence": number
}"""

BUDGET_SYSTEM_PROMPT = """You are a Meta Ads budget optimization expert specializing in real estate and financial services marketing.
Analyze the campaign parameters and provide data-driven budget recommendations to maximize ROI.
Consider market dynamics, competition levels, and typical CPL/CPA for the target regions.
All budgets should be in British Pounds (£)."""

BUDGET_TOOL_NAME = "optimize_budget"
BUDGET_TOOL_PARAMETERS = {
    "type": "object",
    "properties": {
        "recommendedBudget": {"type": "number", "description": "Recommended total budget in GBP"},
        "recommendedDailyCap": {"type": "number", "description": "Recommended daily spending cap in GBP"},
        "budgetReasoning": {"type": "string", "description": "Explanation for the budget recommendation (2-3 sentences)"},
        "expectedCPLMin": {"type": "number", "description": "Expected minimum cost per lead in GBP"},
        "expectedCPLMax": {"type": "number", "description": "Expected maximum cost per lead in GBP"},
        "regionAllocations": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "region": {"type": "string"},
                    "percentage": {"type": "number"},
                    "reason": {"type": "string"},
                },
                "required": ["region", "percentage", "reason"],
            },
        },
        "optimizationTips": {
            "type": "array",
            "items": {"type": "string"},
            "description": "3-5 actionable optimization tips",
        },
        "confidence": {"type": "number", "description": "Confidence score 0-100"},
    },
    "required": [
        "recommendedBudget", "recommendedDailyCap", "budgetReasoning",
        "expectedCPLMin", "expectedCPLMax", "optimizationTips", "confidence",
    ],
    "additionalProperties": False,
}

USER_TYPE_LABELS = {
    "developer": "Property Developer",
    "agent": "Estate Agent",
    "broker": "Mortgage Broker",
}

# action -> (system prompt, response model, which request fields go in the prompt)
INTELLIGENCE_ACTIONS: dict[str, tuple[str, type, tuple[str, ...]]] = {
    "recommendations": (RECOMMENDATIONS_PROMPT, CampaignRecommendations, ("campaign", "metrics")),
    "performance_summary": (PERFORMANCE_PROMPT, PerformanceSummary, ("campaign", "metrics")),
    "attribution_analysis": (ATTRIBUTION_PROMPT, AttributionAnalysis, ("campaigns", "metrics")),
    "budget_optimization": (BUDGET_JSON_PROMPT, BudgetOptimization, ("campaign",)),
}


def _dump(value) -> str:
    return json.dumps(value, indent=2, default=str)


def budget_context(payload: dict) -> str:
    user_type = payload.get("userType")
    if user_type == "broker":
        return f"Mortgage product: {payload.get('product') or 'General'}"
    if user_type == "agent":
        return (
            f"Property: {payload.get('propertyDetails') or 'General'}, "
            f"Focus: {payload.get('focusSegment') or 'General'}"
        )
    return f"Development: {payload.get('developmentName') or 'General'}"


def _names(value) -> Optional[str]:
    if isinstance(value, list) and value:
        return ", ".join(str(v) for v in value)
    return None


class CampaignAnalyst:
    """AI analysis of Meta campaign performance."""

    def __init__(
        self,
        claude: ClaudeClient,
        gateway: GatewayClient,
        clock: Callable[[], float] = time.time,
    ):
        self.claude = claude
        self.gateway = gateway
        self._clock = clock

    def analyze(self, campaign) -> dict:
        """Benchmark one campaign; returns the validated campaign-analysis payload."""
        if not campaign:
            raise RequestValidationError("Campaign data is required")

        user_prompt = f"Analyse this campaign data and return JSON only:\n\n{_dump(campaign)}"
        raw_response = self.claude.complete(ANALYSIS_SYSTEM_PROMPT, user_prompt, max_tokens=4096)
        analysis = parse_model_output(raw_response, CampaignAnalysis)
        logger.info(f"Campaign analysed: health {analysis.campaign_health}, CPL {analysis.metrics.cpl}")
        return analysis.to_payload()

    def intelligence(self, body: dict) -> dict:
        """Dispatch an ai-campaign-intelligence request."""
        if body.get("type") == "bulk_analysis" or body.get("action") == "parse_campaigns":
            return self.import_campaigns(body.get("fileContent"), body.get("fileName"), body.get("fileType"))

        action = body.get("action")
        if action not in INTELLIGENCE_ACTIONS:
            raise RequestValidationError(f"Unknown action: {action}")

        system_prompt, model, fields = INTELLIGENCE_ACTIONS[action]
        subject = {name: body.get(name) for name in fields}
        if not any(subject.values()):
            raise RequestValidationError(f"{' or '.join(fields)} is required for {action}")

        user_prompt = f"Run {action.replace('_', ' ')} for this data and respond with JSON only:\n\n{_dump(subject)}"
        logger.info(f"Campaign intelligence: {action}")
        result: BaseModel = parse_model_output(self.gateway.complete(system_prompt, user_prompt), model)
        return result.to_payload()

    def import_campaigns(self, file_content: Optional[str], file_name: Optional[str], file_type: Optional[str]) -> dict:
        """Extract campaign rows from an uploaded export with the gateway model."""
        if not file_content or not str(file_content).strip():
            raise RequestValidationError("fileContent is required")

        user_prompt = (
            f"Parse this {(file_type or 'file').upper()} content and extract all campaign data:\n\n"
            f"File name: {file_name or 'upload'}\n"
            f"Content:\n{file_content}"
        )
        result = parse_model_output(self.gateway.complete(IMPORT_SYSTEM_PROMPT, user_prompt), CampaignImport)

        stamp = int(self._clock() * 1000)
        payload = result.to_payload()
        payload["campaigns"] = [
            {"id": f"imported_{stamp}_{index}", **campaign}
            for index, campaign in enumerate(payload["campaigns"])
        ]
        logger.info(f"Imported {len(payload['campaigns'])} campaigns from {file_name}")
        return payload

    def optimize_budget(self, payload: dict) -> dict:
        """Budget, daily cap, CPL range and regional split through a forced tool call."""
        payload = payload or {}
        if not payload.get("objective"):
            raise RequestValidationError("objective is required")

        user_type = payload.get("userType")
        current_budget = payload.get("currentBudget")
        user_prompt = "\n".join([
            "Optimize budget for this campaign:",
            f"- User Type: {USER_TYPE_LABELS.get(user_type, USER_TYPE_LABELS['developer'])}",
            f"- {budget_context(payload)}",
            f"- Objective: {payload['objective']}",
            f"- Current Budget: £{current_budget if current_budget else 'Not set'}",
            f"- Target Countries: {_names(payload.get('targetCountries')) or 'Not set'}",
            f"- Target Cities: {_names(payload.get('targetCities')) or 'All cities'}",
            "",
            "Provide:",
            "1. Recommended total budget with reasoning",
            "2. Recommended daily cap",
            "3. Budget allocation suggestions by region/market",
            "4. Expected CPL range",
            "5. Optimization tips specific to this campaign type",
        ])

        arguments = self.gateway.call_tool(
            BUDGET_SYSTEM_PROMPT,
            user_prompt,
            name=BUDGET_TOOL_NAME,
            description="Return budget optimization recommendations",
            parameters=BUDGET_TOOL_PARAMETERS,
        )
        result = validate_response(arguments, BudgetOptimization)
        logger.info(
            f"Budget optimised: £{result.recommended_budget:.0f} total, "
            f"£{result.recommended_daily_cap:.0f}/day"
        )
        return result.to_payload()
