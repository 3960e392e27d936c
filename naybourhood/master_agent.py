"""
Master agent: free-form questions about leads, campaigns and metrics, answered by Claude.
Also produces the three short dashboard insights shown beside each data view.
"""

import json
import logging
from typing import Optional

from .errors import RequestValidationError
from .insights import (
    CONTEXT_CAMPAIGN_LIMIT,
    CONTEXT_LEAD_LIMIT,
    CONTEXT_PROMPTS,
    Insight,
    parse_insights,
)
from .llm import ClaudeClient

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are Naybourhood's Master AI Agent, the central intelligence for property marketing and sales acceleration. You analyse data, score leads, optimise campaigns and give strategic recommendations across the platform.

## YOUR ROLE
You serve property developers, estate agents and the Naybourhood team. Your job is to:
1. Make sense of complex data quickly
2. Surface what matters most right now
3. Recommend specific actions (not vague observations)
4. Help close more property sales faster

## ACTION FRAMEWORK
AUTOMATIC (you do these): score leads (Quality and Intent), classify leads, flag timewasters and risk leads, analyse campaign performance, generate reports, calculate benchmarks.

RECOMMEND (a human approves): contacting a lead (give a message draft, channel and timing), pausing an underperforming ad (say which and why), shifting budget between campaigns (give amounts and reasoning), booking a viewing (suggest slots and preparation notes).

For every recommendation give the action, why now, the expected outcome and any risks.

## LEAD SCORING MODEL
Lead Quality Score (0-100):
- Financial qualification (0-35): budget within 10% of price +20, budget 20%+ under -10, cash +15, mortgage +10, proof of funds +10
- Property match (0-25): bedroom match +15, preferred development +5, area match +5
- Buyer credentials (0-25): LinkedIn/company verified +10, UK mortgage broker +5, UK solicitor +5, previous UK buyer +5
- Operational fit (0-15): UK source of funds +5, UK/EMEA country +5, investment purpose +5
- Penalties: missing budget -10, no property interest -15, no LinkedIn -5, 2+ no-shows -10

Intent Score (0-100):
- Timeline (0-40): 0-3 months +25, 3-6 months +15, 6-9 months +5, not sure -10, viewing booked +15, actively buying +10
- Form completion (0-20): 90%+ +20, 70-89% +10, 50-69% +5
- Responsiveness (0-40): WhatsApp <24h +15, 24-48h +10, 48h+ +5, no response 7d+ -10, opened links +10, last contact <7d +10, 14-21d -10, 21d+ -15

## CLASSIFICATIONS AND SLAs
| Classification | Quality | Intent | SLA | Strategy |
|---|---|---|---|---|
| Hot Lead | 80+ | 80+ | 1 hour | Immediate contact |
| High Quality, Medium Intent | 80+ | 60-79 | 4 hours | Strong follow-up, build urgency |
| Medium Quality, High Intent | 60-79 | 80+ | 2 hours | Qualify further |
| Warm Lead | 60-79 | 60-79 | 24 hours | Regular nurture |
| High Quality, Low Intent | 80+ | <60 | 1 week | Long-term nurture |
| Low Quality, High Intent | <60 | 80+ | 24 hours | Qualify immediately, potential timewaster |
| Cold Lead | <60 | <60 | Auto | Automated nurture only |

## CAMPAIGN BENCHMARKS
CPL ratings: excellent under £20, good £20-35, acceptable £35-50, poor above £50.
Platform targets: Facebook under £30 CPL, Instagram under £40 CPL. Always exclude Audience Network (its leads are spam).
Engagement: CTR above 1% (below 0.5% is a problem), click-to-lead rate above 2%.

## RESPONSE STYLE
Be direct and specific. Lead with the insight, then the data. Always give actionable next steps, benchmark everything, flag urgent items first and make clear recommendations.

## RULES
1. Always exclude Audience Network from calculations
2. Flag Low Quality, High Intent leads as potential timewasters
3. Never recommend contacting Cold leads manually, automation only
4. When recommending budget changes, specify exact amounts
5. When recommending contact, draft the message
6. Prioritise revenue impact over vanity metrics
7. Be honest about data gaps and say what you cannot see"""

# Preset questions offered by the dashboard
QUICK_QUERIES = {
    "daily_briefing": (
        "Give me today's daily briefing: urgent leads to contact, campaign alerts, "
        "pipeline summary, and top 3 priorities."
    ),
    "pipeline_forecast": (
        "Provide a pipeline forecast: predicted conversions, estimated revenue by timeframe, "
        "pipeline gaps, and recommended lead generation targets."
    ),
    "market_insights": (
        "What are the key market insights? Identify trends in buyer behaviour, geographic "
        "demand patterns, and development performance comparisons."
    ),
    "budget_recommendations": (
        "Analyse spend efficiency and recommend specific budget shifts between campaigns "
        "with exact amounts and reasoning."
    ),
}


def build_user_message(query: str, context: Optional[dict]) -> str:
    """Append the lead, campaign and metric context to the question."""
    message = query
    if not context:
        return message
    if context.get("leads"):
        message += f"\n\nLEAD DATA:\n{json.dumps(context['leads'], indent=2, default=str)}"
    if context.get("campaigns"):
        message += f"\n\nCAMPAIGN DATA:\n{json.dumps(context['campaigns'], indent=2, default=str)}"
    if context.get("metrics"):
        message += f"\n\nMETRICS:\n{json.dumps(context['metrics'], indent=2, default=str)}"
    return message


class MasterAgent:
    """Answers platform questions with the agent model."""

    def __init__(self, claude: ClaudeClient):
        self.claude = claude

    @property
    def model(self) -> str:
        return self.claude.config.agent_model

    def query(self, query: Optional[str], context: Optional[dict] = None) -> dict:
        if not query:
            raise RequestValidationError("Query is required")

        logger.info(f"Master agent query: {query[:100]}")
        response = self.claude.complete(
            SYSTEM_PROMPT,
            build_user_message(query, context),
            model=self.model,
            max_tokens=self.claude.config.analysis_max_tokens,
        )
        return {"response": response, "model": self.model}

    def quick_query(self, name: str, context: Optional[dict] = None) -> dict:
        if name not in QUICK_QUERIES:
            raise RequestValidationError(f"Unknown query '{name}'. Use: {', '.join(QUICK_QUERIES)}")
        return self.query(QUICK_QUERIES[name], context)

    def insights(
        self,
        context: str,
        leads: Optional[list] = None,
        campaigns: Optional[list] = None,
    ) -> list[Insight]:
        """Three short typed insights for a dashboard view; empty without data."""
        if context not in CONTEXT_PROMPTS:
            raise RequestValidationError(f"Invalid context. Use: {', '.join(CONTEXT_PROMPTS)}")
        if not leads and not campaigns:
            return []

        result = self.query(
            CONTEXT_PROMPTS[context],
            {
                "leads": (leads or [])[:CONTEXT_LEAD_LIMIT],
                "campaigns": (campaigns or [])[:CONTEXT_CAMPAIGN_LIMIT],
            },
        )
        return parse_insights(result["response"])
