"""
Gateway-backed lead analysis: dual scoring, spam detection, quality review
and bulk scoring. Classifications are always recomputed from the scores.
"""

import json
import logging
from typing import Optional

from .classification import classify_lead
from .errors import RequestValidationError
from .llm import GatewayClient
from .parsing import extract_json, validate_response
from .schemas import BulkLeadScore, BulkLeadScores, LeadAnalysisScore, QualityAnalysis, SpamCheck

logger = logging.getLogger(__name__)

SCORE_PROMPT = """You are a lead scoring expert. Analyze the lead and provide Quality Score (0-100) and Intent Score (0-100).

Quality Score factors: financial fit, property match, credentials verification, operational readiness.
Intent Score factors: purchase timeline urgency, form completion depth, engagement frequency.

Respond with valid JSON only:
{
  "qualityScore": number,
  "intentScore": number,
  "qualityBreakdown": { "financialFit": number, "propertyMatch": number, "credentials": number, "readiness": number },
  "intentBreakdown": { "timeline": number, "formCompletion": number, "engagement": number },
  "classification": "hot" | "star" | "lightning" | "verified" | "warning" | "dormant" | "cold",
  "reasoning": "string"
}"""

SPAM_PROMPT = """You are a spam detection expert. Analyze the lead for spam indicators.

Check for: fake emails, disposable domains, bot patterns, suspicious phone numbers, generic names, inconsistent data.

Respond with valid JSON only:
{
  "isSpam": boolean,
  "confidence": number,
  "indicators": string[],
  "recommendation": "approve" | "review" | "reject"
}"""

QUALITY_PROMPT = """You are a lead quality analyst. Provide detailed analysis of lead quality and buyer readiness.

Respond with valid JSON only:
{
  "overallQuality": "excellent" | "good" | "average" | "poor",
  "buyerReadiness": "ready_to_buy" | "actively_looking" | "just_browsing" | "not_ready",
  "financialCapability": "verified" | "likely" | "uncertain" | "unlikely",
  "matchScore": number,
  "concerns": string[],
  "strengths": string[],
  "recommendedActions": string[]
}"""

BULK_PROMPT = """You are a lead scoring expert. Score multiple leads efficiently.

Respond with valid JSON array:
[{ "leadId": string, "qualityScore": number, "intentScore": number, "classification": string }]"""

ACTIONS = ("score", "spam_detection", "quality_analysis", "bulk_scoring")


def _dump(value) -> str:
    return json.dumps(value, default=str)


class LeadAnalyzer:
    """Runs one ai-lead-analysis action against the gateway."""

    def __init__(self, gateway: GatewayClient):
        self.gateway = gateway

    def run(self, action: Optional[str], lead: Optional[dict] = None, leads: Optional[list] = None):
        if action not in ACTIONS:
            raise RequestValidationError(f"Unknown action: {action}")

        if action == "bulk_scoring":
            if not leads:
                raise RequestValidationError("leads are required for bulk_scoring")
            return [score.to_payload() for score in self.bulk_score(leads)]

        if not lead:
            raise RequestValidationError(f"lead is required for {action}")
        if action == "score":
            return self.score(lead).to_payload()
        if action == "spam_detection":
            return self.check_spam(lead).to_payload()
        return self.analyze_quality(lead).to_payload()

    def _ask(self, system: str, user: str, model: Optional[str] = None):
        content = self.gateway.complete(system, user, model=model or self.gateway.config.analysis_model)
        return extract_json(content)

    def score(self, lead: dict) -> LeadAnalysisScore:
        data = self._ask(SCORE_PROMPT, f"Score this lead: {_dump(lead)}")
        result = validate_response(data, LeadAnalysisScore)
        classification = classify_lead(result.intent_score, result.quality_score).value
        if result.classification and result.classification != classification:
            logger.info(f"Model classified lead as {result.classification}, scores give {classification}")
        return result.model_copy(update={"classification": classification})

    def check_spam(self, lead: dict) -> SpamCheck:
        data = self._ask(SPAM_PROMPT, f"Check this lead for spam: {_dump(lead)}")
        return validate_response(data, SpamCheck)

    def analyze_quality(self, lead: dict) -> QualityAnalysis:
        data = self._ask(QUALITY_PROMPT, f"Analyze this lead: {_dump(lead)}")
        return validate_response(data, QualityAnalysis)

    def bulk_score(self, leads: list) -> list[BulkLeadScore]:
        data = self._ask(BULK_PROMPT, f"Score these leads: {_dump(leads)}", model=self.gateway.config.model)
        if isinstance(data, dict) and isinstance(data.get("leads"), list):
            data = data["leads"]

        scores = validate_response(data, BulkLeadScores).root
        logger.info(f"Bulk scored {len(scores)} of {len(leads)} leads")
        return [
            s.model_copy(update={"classification": classify_lead(s.intent_score, s.quality_score).value})
            for s in scores
        ]
