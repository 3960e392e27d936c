"""
Clients for the hosted models.

ClaudeClient talks to Anthropic directly; GatewayClient talks to the
OpenAI-compatible model gateway. Both map provider failures onto the
AIServiceError family so the HTTP layer can answer 429/402/500.
"""

import json
import logging
from typing import Optional

import anthropic
from openai import OpenAI
import openai

from .config import ClaudeConfig, GatewayConfig
from .errors import (
    AIPaymentRequiredError,
    AIRateLimitError,
    AIServiceError,
    ConfigurationError,
    ResponseParseError,
)

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Rate limits exceeded, please try again later."
PAYMENT_REQUIRED_MESSAGE = "Payment required, please add funds to your workspace."


def _status_error(provider: str, status_code: int, body: str) -> AIServiceError:
    logger.error(f"{provider} error: {status_code} {body[:500]}")
    if status_code == 429:
        return AIRateLimitError(RATE_LIMIT_MESSAGE)
    if status_code == 402:
        return AIPaymentRequiredError(PAYMENT_REQUIRED_MESSAGE)
    return AIServiceError(f"{provider} error: {status_code}", details=body[:1000] or None)


class ClaudeClient:
    """Anthropic Messages API wrapper."""

    def __init__(self, config: ClaudeConfig):
        self.config = config
        self._client: Optional[anthropic.Anthropic] = None

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key)

    @property
    def client(self) -> anthropic.Anthropic:
        """Lazy-load Anthropic client."""
        if self._client is None:
            if not self.config.api_key:
                raise ConfigurationError("ANTHROPIC_API_KEY is not configured")
            self._client = anthropic.Anthropic(
                api_key=self.config.api_key,
                max_retries=self.config.max_retries,
            )
        return self._client

    def complete(
        self,
        system: str,
        user: str,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Send one system + user turn and return the text reply."""
        model = model or self.config.model
        try:
            message = self.client.messages.create(
                model=model,
                max_tokens=max_tokens or self.config.max_tokens,
                system=system,
                messages=[{"role": "user", "content": user}],
            )
        except anthropic.APIStatusError as e:
            raise _status_error("Claude API", e.status_code, str(e)) from e
        except anthropic.APIConnectionError as e:
            logger.error(f"Could not reach Claude API: {e}")
            raise AIServiceError("Could not reach Claude API") from e

        text = "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )
        if not text:
            raise AIServiceError("No response from AI")
        return text


class GatewayClient:
    """Chat-completions client for the OpenAI-compatible model gateway."""

    def __init__(self, config: GatewayConfig):
        self.config = config
        self._client: Optional[OpenAI] = None

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key)

    @property
    def client(self) -> OpenAI:
        """Lazy-load gateway client."""
        if self._client is None:
            if not self.config.api_key:
                raise ConfigurationError("LOVABLE_API_KEY is not configured")
            self._client = OpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                max_retries=self.config.max_retries,
            )
        return self._client

    def _create(self, **kwargs):
        try:
            return self.client.chat.completions.create(**kwargs)
        except openai.APIStatusError as e:
            raise _status_error("AI gateway", e.status_code, str(e)) from e
        except openai.APIConnectionError as e:
            logger.error(f"Could not reach AI gateway: {e}")
            raise AIServiceError("Could not reach AI gateway") from e

    def complete(self, system: str, user: str, model: Optional[str] = None) -> str:
        response = self._create(
            model=model or self.config.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        )
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise AIServiceError("No response from AI")
        return content

    def call_tool(
        self,
        system: str,
        user: str,
        name: str,
        description: str,
        parameters: dict,
        model: Optional[str] = None,
    ) -> dict:
        """Force a single function call and return its decoded arguments."""
        response = self._create(
            model=model or self.config.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            tools=[{
                "type": "function",
                "function": {"name": name, "description": description, "parameters": parameters},
            }],
            tool_choice={"type": "function", "function": {"name": name}},
        )

        message = response.choices[0].message if response.choices else None
        tool_calls = getattr(message, "tool_calls", None) or []
        if not tool_calls or not tool_calls[0].function.arguments:
            raise AIServiceError(f"Model did not call {name}")

        arguments = tool_calls[0].function.arguments
        try:
            return json.loads(arguments)
        except json.JSONDecodeError as e:
            raise ResponseParseError(f"Invalid {name} arguments: {e.msg}", raw_response=arguments) from e
