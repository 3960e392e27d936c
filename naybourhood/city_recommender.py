"""
Target city recommendations for a new Meta campaign.
"""

import logging

from .errors import RequestValidationError
from .llm import GatewayClient
from .parsing import validate_response
from .schemas import CityRecommendations

logger = logging.getLogger(__name__)

USER_TYPES = {
    "developer": "property developer",
    "agent": "estate agent",
    "broker": "mortgage broker",
}

SYSTEM_PROMPT = """You are a marketing expert specializing in real estate and financial services targeting.
Based on the campaign details, recommend the best cities to target for maximum lead quality and conversion rates.
Consider wealth demographics, buyer intent signals, and market dynamics for each city.
Always provide reasoning for each recommendation."""

TOOL_NAME = "recommend_cities"
TOOL_DESCRIPTION = "Return city recommendations with reasoning"
TOOL_PARAMETERS = {
    "type": "object",
    "properties": {
        "recommendations": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "cityCode": {"type": "string", "description": "City code in snake_case (e.g., london, dubai, lagos)"},
                    "cityName": {"type": "string", "description": "Display name of the city"},
                    "countryCode": {"type": "string", "description": "ISO country code (e.g., GB, AE, NG)"},
                    "reason": {"type": "string", "description": "Why this city is recommended (1 sentence)"},
                    "priority": {"type": "string", "enum": ["high", "medium", "low"]},
                },
                "required": ["cityCode", "cityName", "countryCode", "reason", "priority"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["recommendations"],
    "additionalProperties": False,
}


def _required(payload: dict, name: str, user_type: str) -> str:
    value = payload.get(name)
    if not isinstance(value, str) or not value.strip():
        raise RequestValidationError(f"{name} is required for {user_type} campaigns")
    return value.strip()


def campaign_context(payload: dict) -> str:
    """Describe the campaign from the user-type specific fields."""
    user_type = payload.get("userType")
    if user_type not in USER_TYPES:
        raise RequestValidationError(
            f"Invalid userType '{user_type}'. Use: {', '.join(USER_TYPES)}"
        )

    if user_type == "broker":
        return f"Mortgage product: {_required(payload, 'product', user_type)}"
    if user_type == "agent":
        details = _required(payload, "propertyDetails", user_type)
        focus = payload.get("focusSegment") or "Not specified"
        return f"Property: {details}, Focus: {focus}"
    return f"Development: {_required(payload, 'developmentName', user_type)}"


def target_countries(payload: dict) -> list[str]:
    countries = payload.get("targetCountries")
    if not isinstance(countries, list) or not countries:
        raise RequestValidationError("targetCountries must be a non-empty list")
    if not all(isinstance(c, str) and c.strip() for c in countries):
        raise RequestValidationError("targetCountries must contain country names")
    return [c.strip() for c in countries]


class CityRecommender:
    """Asks the gateway model for 5-7 target cities through a forced tool call."""

    def __init__(self, gateway: GatewayClient):
        self.gateway = gateway

    def recommend(self, payload: dict) -> dict:
        payload = payload or {}
        context = campaign_context(payload)
        countries = target_countries(payload)
        user_type = payload["userType"]

        user_prompt = (
            f"For a {USER_TYPES[user_type]} campaign:\n"
            f"{context}\n"
            f"Target countries: {', '.join(countries)}\n\n"
            "Recommend 5-7 cities with the highest potential for quality leads. "
            "For each city, explain WHY it's a good target in 1 sentence."
        )

        logger.info(f"Recommending cities for {user_type} campaign in {', '.join(countries)}")
        arguments = self.gateway.call_tool(
            SYSTEM_PROMPT,
            user_prompt,
            name=TOOL_NAME,
            description=TOOL_DESCRIPTION,
            parameters=TOOL_PARAMETERS,
        )
        result = validate_response(arguments, CityRecommendations)
        return {"recommendations": [r.to_payload() for r in result.recommendations]}
