"""
Lead scoring engine.
Scores one lead out of 100 with Claude, flags likely spam, and assigns a P1-P4 priority.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from .audit_log import AuditLogger
from .errors import RequestValidationError
from .llm import ClaudeClient
from .parsing import parse_model_output
from .schemas import LeadScoreResult

logger = logging.getLogger(__name__)

# Lower bound of each priority band, best first
PRIORITY_BANDS = [(70, 1), (50, 2), (30, 3), (0, 4)]

PRIORITY_LABELS = {
    1: "P1 - Immediate call, book viewing",
    2: "P2 - Call within 24 hours",
    3: "P3 - Email nurture",
    4: "P4 - Long-term nurture",
}


def priority_for_score(score: float) -> int:
    for minimum, priority in PRIORITY_BANDS:
        if score >= minimum:
            return priority
    return 4


SYSTEM_PROMPT = """You are the lead scoring engine for Naybourhood, a property buyer intelligence platform.

## YOUR TASK
Analyse the lead data and return a score out of 100.

## STEP 1: SPAM/FRAUD CHECK
Flag lead for review if ANY of these are true:
- Name contains 4+ consecutive consonants with no vowels (gibberish pattern like "bdfgh", "xzqwrt")
- Name has repeated words (e.g., "Khan Khan", "Test Test")
- Name contains numbers or special characters (@, #, $, %)
- Name contains keywords: "test", "fake", "asdf", "qwerty"
- Budget >= £2,000,000 AND cash_or_mortgage = "Cash" AND country IN [Nigeria, Kenya, Ghana, India]
- Budget >= £10,000,000 AND country IN [Nigeria, Kenya, Ghana, India, Unknown]
- Country = "Unknown" or blank or missing

If flagged, return:
{
  "status": "flagged",
  "reason": "[specific reason]",
  "score": 0,
  "priority": null,
  "priority_label": "Review Required",
  "recommended_action": "Manual review required before contact"
}

## STEP 2: INITIAL SCORE (max 100)

Timeline to purchase (max 30):
- Within 28 days = 30
- 1-3 months = 24
- 3-6 months = 18
- 6-12 months = 10
- 12+ months = 5

Cash or Mortgage (max 20):
- Cash = 20
- Mortgage = 15

Reason for purchase (max 20):
- Primary residence = 20
- Investment = 18
- For child = 15
- Holiday home = 8

Budget range (max 15):
- £500K - £1M = 15
- £400K - £500K = 12
- £1M - £2M = 12
- £2M - £3M = 10
- £3M - £5M = 8
- £5M+ = 5

Preferred contact method (max 10):
- WhatsApp = 10
- Call = 10
- Email = 5

LinkedIn or Company website (max 5):
- Provided = 5
- Not provided = 0

## STEP 3: ENGAGEMENT MODIFIERS
If engagement data exists, apply these to the initial score.

Positive:
- WhatsApp reply (substantive) = +10
- WhatsApp reply (brief) = +5
- Email opened 3+ times = +10
- Email opened 1-2 times = +5
- Brochure downloaded = +5
- Viewing requested = +15
- Return visit to site = +5
- Named specific unit or plot = +10
- Verified AIP (Agreement in Principle) = +15
- Proof of funds submitted = +15
- No chain (FTB/Investor/Renter) = +10
- Chain but SSTC = +5
- UK resident confirmed = +10
- Senior professional confirmed (via LinkedIn) = +10

Negative:
- No response after 7 days = -5
- No response after 14 days = -10
- No response after 30 days = -15
- Said "not interested" = -30
- Said "just browsing" = -10
- Chain not sold = -5
- Budget mismatch confirmed on call = -10

Final Score = Initial Score + Modifiers, capped between 0 and 100.

## STEP 4: PRIORITY
- 70-100 = Priority 1 (P1)
- 50-69 = Priority 2 (P2)
- 30-49 = Priority 3 (P3)
- 0-29 = Priority 4 (P4)

## STEP 5: RECOMMENDED ACTION
- P1: Immediate call focus, book viewing
- P2: Call within 24 hours, qualify further
- P3: Email nurture, build relationship
- P4: Long-term nurture, low priority

## OUTPUT FORMAT
Return a JSON object with this exact structure:

{
  "status": "scored",
  "score": [0-100],
  "priority": [1-4],
  "priority_label": "[P1/P2/P3/P4] - [Action timeframe]",
  "score_breakdown": {
    "timeline": [points],
    "cash_or_mortgage": [points],
    "reason_for_purchase": [points],
    "budget": [points],
    "contact_preference": [points],
    "linkedin_or_website": [points]
  },
  "modifiers_applied": ["[modifier name]: [+/- points]"],
  "recommended_action": "[Specific action based on lead profile]",
  "next_steps": ["[Step 1]", "[Step 2]", "[Step 3]"],
  "risk_flags": ["[Any concerns identified]"]
}

IMPORTANT: Return ONLY the JSON object, no additional text or markdown formatting."""


ANALYSIS_SYSTEM_PROMPT = """You are an expert property sales analyst for a luxury real estate platform. Analyse buyer leads and provide actionable insights.

Based on the lead data provided, write a concise 2-3 sentence analysis that covers:
1. Key buyer profile observations (profession hints from email, location significance, buying capacity)
2. Interest level based on engagement metrics and timeline
3. Specific property recommendations or approach strategy

Be specific and actionable. Reference actual data points from the lead. Use British English spelling (optimise, analyse, behaviour).

Write a cohesive paragraph, not bullet points. Be professional but conversational."""


def _yes_no(value) -> str:
    return "Yes" if value else "No"


def analysis_prompt(lead: dict) -> str:
    return "\n".join([
        "Analyse this property buyer lead:",
        "",
        f"Name: {lead.get('name')}",
        f"Email: {lead.get('email')}",
        f"Phone: {lead.get('phone') or 'Not provided'}",
        f"Country: {lead.get('country') or 'United Kingdom'}",
        f"Budget: {lead.get('budget') or 'Not specified'}",
        f"Bedrooms: {lead.get('bedrooms') or 'Not specified'}",
        f"Payment Method: {lead.get('paymentMethod') or 'Undecided'}",
        f"Purchase Timeline: {lead.get('purchaseTimeline') or 'Not specified'}",
        f"Purchase Purpose: {lead.get('purpose') or 'Not specified'}",
        f"Buyer Status: {lead.get('buyerStatus') or 'Not specified'}",
        "",
        f"Quality Score: {lead.get('qualityScore')}/100",
        f"Intent Score: {lead.get('intentScore')}/100",
        "",
        "Behavioural Data:",
        f"- Brochure Views: {lead.get('brochureViews') or 0}",
        f"- WhatsApp Clicks: {lead.get('whatsappClicks') or 0}",
        f"- Email Opens: {lead.get('emailOpens') or 0}",
        f"- Time on Site: {lead.get('timeOnSite') or 0} minutes",
        "",
        "Verification Status:",
        f"- Mortgage AIP: {_yes_no(lead.get('mortgageAIP'))}",
        f"- Has Lawyer: {_yes_no(lead.get('hasLawyer'))}",
        f"- UK Resident: {_yes_no(lead.get('ukResident'))}",
        f"- KYC/AML Completed: {_yes_no(lead.get('kycAmlCompleted'))}",
        f"- Proof of Funds: {_yes_no(lead.get('proofOfFunds'))}",
        "",
        f"Campaign/Property Interest: {lead.get('campaignName') or lead.get('propertyInterest') or 'Not specified'}",
        f"Source: {lead.get('source') or 'Direct'}",
        f"Notes: {lead.get('notes') or 'None'}",
    ])

class LeadScorer:
    """Claude-backed scorer for the lead-scoring function."""

    def __init__(self, claude: ClaudeClient, audit: Optional[AuditLogger] = None):
        self.claude = claude
        self.audit = audit

    def score_lead(self, lead: Optional[dict]) -> LeadScoreResult:
        """Score a lead; parse failures raise ResponseParseError with the raw reply."""
        if not lead:
            raise RequestValidationError("Lead data is required")

        logger.info(f"Scoring lead: {lead.get('name') or lead.get('email')}")
        user_prompt = f"Score this lead:\n\n{json.dumps(lead, indent=2, default=str)}"

        raw_response = self.claude.complete(SYSTEM_PROMPT, user_prompt)
        result = self._check_priority(parse_model_output(raw_response, LeadScoreResult))

        logger.info(
            f"Lead scored: {lead.get('name') or lead.get('email')} - "
            f"{result.status}, score {result.score}, priority {result.priority}"
        )
        if self.audit is not None:
            self.audit.log_lead_score(lead, result.to_payload())
        return result

    def _check_priority(self, result: LeadScoreResult) -> LeadScoreResult:
        """Keep the priority consistent with the score bands."""
        if result.status != "scored":
            return result

        expected = priority_for_score(result.score)
        if result.priority == expected:
            return result

        logger.warning(
            f"Model gave priority {result.priority} for score {result.score}, using {expected}"
        )
        return result.model_copy(update={
            "priority": expected,
            "priority_label": PRIORITY_LABELS[expected],
        })

    def analyze_lead(self, lead: Optional[dict], now: Optional[datetime] = None) -> dict:
        """Short written read of a lead for the sales team."""
        if not lead:
            raise RequestValidationError("Lead data is required")

        logger.info(f"Analysing lead: {lead.get('name')}")
        insights = self.claude.complete(
            ANALYSIS_SYSTEM_PROMPT, analysis_prompt(lead), max_tokens=500
        ).strip()
        return {
            "insights": insights,
            "analyzedAt": (now or datetime.now(timezone.utc)).isoformat(),
        }
