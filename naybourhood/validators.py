"""Credential format checks used by configuration validation."""
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse


@dataclass
class ValidationResult:
    """Result of a credential format check."""
    valid: bool
    message: str
    details: Optional[dict] = None


def validate_airtable_key(api_key: str) -> ValidationResult:
    """Validate Airtable personal access token format.

    Args:
        api_key: Airtable personal access token (pat_...)

    Returns:
        ValidationResult with status and message
    """
    if not api_key or not api_key.strip():
        return ValidationResult(
            valid=False,
            message="API key is required. Get yours at airtable.com/create/tokens"
        )

    if not (api_key.startswith("pat_") or api_key.startswith("key")):
        return ValidationResult(
            valid=False,
            message="Invalid key format. Airtable keys start with 'pat_' or 'key'"
        )

    return ValidationResult(
        valid=True,
        message="API key format looks valid. Connection will be tested on first run."
    )


def validate_anthropic_key(api_key: str) -> ValidationResult:
    """Validate Anthropic (Claude) API key format.

    Args:
        api_key: Anthropic API key (sk-ant-...)

    Returns:
        ValidationResult with status and message
    """
    if not api_key or not api_key.strip():
        return ValidationResult(
            valid=False,
            message="API key is required. Get yours at console.anthropic.com"
        )

    if not api_key.startswith("sk-ant-"):
        return ValidationResult(
            valid=False,
            message="Invalid key format. Anthropic keys start with 'sk-ant-'"
        )

    return ValidationResult(valid=True, message="API key format is valid.")


def validate_stripe_key(api_key: str) -> ValidationResult:
    """Validate a Stripe secret or restricted key."""
    if not api_key or not api_key.strip():
        return ValidationResult(valid=False, message="Stripe secret key is required.")

    if not api_key.startswith(("sk_live_", "sk_test_", "rk_live_", "rk_test_")):
        return ValidationResult(
            valid=False,
            message="Invalid key format. Stripe secret keys start with 'sk_live_' or 'sk_test_'"
        )

    return ValidationResult(
        valid=True,
        message="Stripe key format is valid.",
        details={"live": "_live_" in api_key},
    )


def validate_stripe_webhook_secret(secret: str) -> ValidationResult:
    if not secret or not secret.startswith("whsec_"):
        return ValidationResult(
            valid=False,
            message="Invalid webhook secret. Stripe signing secrets start with 'whsec_'"
        )
    return ValidationResult(valid=True, message="Webhook secret format is valid.")


def validate_resend_key(api_key: str) -> ValidationResult:
    if not api_key or not api_key.startswith("re_"):
        return ValidationResult(
            valid=False,
            message="Invalid key format. Resend keys start with 're_'"
        )
    return ValidationResult(valid=True, message="Resend key format is valid.")


def validate_supabase_url(url: str) -> ValidationResult:
    """Validate the Supabase project URL.

    Hosted projects must use https; plain http is only accepted for a local stack.
    """
    if not url or not url.strip():
        return ValidationResult(valid=False, message="Supabase URL is required.")

    parsed = urlparse(url)
    if not parsed.netloc:
        return ValidationResult(valid=False, message=f"'{url}' is not a valid URL.")

    local = parsed.hostname in ("localhost", "127.0.0.1")
    if parsed.scheme != "https" and not (local and parsed.scheme == "http"):
        return ValidationResult(
            valid=False,
            message="Supabase URL must use https (http is only allowed for localhost)"
        )

    return ValidationResult(valid=True, message="Supabase URL looks valid.")
