"""
Configuration management for the Naybourhood services.
Loads settings from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .validators import (
    validate_airtable_key,
    validate_anthropic_key,
    validate_resend_key,
    validate_stripe_key,
    validate_stripe_webhook_secret,
    validate_supabase_url,
)


@dataclass
class AirtableConfig:
    """Airtable API configuration."""
    api_key: str = ""
    base_id: str = ""
    buyers_table: str = "Buyers"
    campaigns_table: str = "Campaign_Data"
    audit_log_table: str = "Audit_Logs"

    @classmethod
    def from_env(cls) -> "AirtableConfig":
        return cls(
            api_key=os.getenv("AIRTABLE_API_KEY", ""),
            base_id=os.getenv("AIRTABLE_BASE_ID", ""),
            buyers_table=os.getenv("AIRTABLE_BUYERS_TABLE", "Buyers"),
            campaigns_table=os.getenv("AIRTABLE_CAMPAIGNS_TABLE", "Campaign_Data"),
            audit_log_table=os.getenv("AIRTABLE_AUDIT_LOG_TABLE", "Audit_Logs"),
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.base_id)


@dataclass
class ClaudeConfig:
    """Anthropic Claude configuration for scoring, analysis and the master agent."""
    api_key: str = ""
    model: str = "claude-sonnet-4-20250514"
    agent_model: str = "claude-opus-4-1-20250805"
    max_tokens: int = 2048
    analysis_max_tokens: int = 4096
    max_retries: int = 0

    @classmethod
    def from_env(cls) -> "ClaudeConfig":
        return cls(
            api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            model=os.getenv("CLAUDE_MODEL", "claude-sonnet-4-20250514"),
            agent_model=os.getenv("MASTER_AGENT_MODEL", "claude-opus-4-1-20250805"),
            max_tokens=int(os.getenv("CLAUDE_MAX_TOKENS", "2048")),
            analysis_max_tokens=int(os.getenv("CLAUDE_ANALYSIS_MAX_TOKENS", "4096")),
            max_retries=int(os.getenv("CLAUDE_MAX_RETRIES", "0")),
        )


@dataclass
class GatewayConfig:
    """OpenAI-compatible model gateway configuration."""
    api_key: str = ""
    base_url: str = "https://ai.gateway.lovable.dev/v1"
    model: str = "google/gemini-2.5-flash"
    analysis_model: str = "openai/gpt-5"
    max_retries: int = 0

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        return cls(
            api_key=os.getenv("LOVABLE_API_KEY", ""),
            base_url=os.getenv("AI_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1"),
            model=os.getenv("AI_GATEWAY_MODEL", "google/gemini-2.5-flash"),
            analysis_model=os.getenv("AI_GATEWAY_ANALYSIS_MODEL", "openai/gpt-5"),
            max_retries=int(os.getenv("AI_GATEWAY_MAX_RETRIES", "0")),
        )


@dataclass
class SupabaseConfig:
    """Supabase project configuration (PostgREST and auth)."""
    url: str = ""
    service_role_key: str = ""
    anon_key: str = ""

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        return cls(
            url=os.getenv("SUPABASE_URL", "").rstrip("/"),
            service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
            anon_key=os.getenv("SUPABASE_ANON_KEY", ""),
        )

    @property
    def api_key(self) -> str:
        return self.service_role_key or self.anon_key

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key)


@dataclass
class StripeConfig:
    """Stripe billing configuration."""
    secret_key: str = ""
    webhook_secret: str = ""
    price_ids: dict = field(default_factory=dict)  # tier value -> Stripe price id

    @classmethod
    def from_env(cls) -> "StripeConfig":
        price_ids = {}
        for tier in ("access", "growth", "enterprise"):
            price_id = os.getenv(f"STRIPE_PRICE_{tier.upper()}", "")
            if price_id:
                price_ids[tier] = price_id

        return cls(
            secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
            webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
            price_ids=price_ids,
        )


@dataclass
class EmailConfig:
    """Transactional email configuration (Resend)."""
    resend_api_key: str = ""
    from_email: str = "Naybourhood <notifications@naybourhood.ai>"

    @classmethod
    def from_env(cls) -> "EmailConfig":
        return cls(
            resend_api_key=os.getenv("RESEND_API_KEY", ""),
            from_email=os.getenv("NOTIFICATION_FROM_EMAIL", "Naybourhood <notifications@naybourhood.ai>"),
        )


@dataclass
class PollingConfig:
    """Cache and refresh intervals for the Airtable feeds (seconds)."""
    buyers_stale_seconds: float = 60
    buyers_refetch_seconds: Optional[float] = 120
    campaigns_stale_seconds: float = 300
    campaigns_refetch_seconds: Optional[float] = None  # None = no background refresh

    @classmethod
    def from_env(cls) -> "PollingConfig":
        return cls(
            buyers_stale_seconds=float(os.getenv("BUYERS_STALE_SECONDS", "60")),
            buyers_refetch_seconds=_optional_float(os.getenv("BUYERS_REFETCH_SECONDS", "120")),
            campaigns_stale_seconds=float(os.getenv("CAMPAIGNS_STALE_SECONDS", "300")),
            campaigns_refetch_seconds=_optional_float(os.getenv("CAMPAIGNS_REFETCH_SECONDS", "")),
        )


def _optional_float(value: str) -> Optional[float]:
    if not value or float(value) <= 0:
        return None
    return float(value)


@dataclass
class AppConfig:
    """Main application configuration."""
    airtable: AirtableConfig
    claude: ClaudeConfig
    gateway: GatewayConfig
    supabase: SupabaseConfig
    stripe: StripeConfig
    email: EmailConfig
    polling: PollingConfig

    # Application settings
    site_url: str = "http://localhost:5173"
    log_dir: str = "/var/log/naybourhood"
    state_file: str = "naybourhood_state.json"
    server_host: str = "127.0.0.1"
    server_port: int = 8080
    debug_mode: bool = False
    default_tier: str = "growth"
    account_cache_size: int = 256
    tracking_webhook_secret: str = ""

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls(
            airtable=AirtableConfig.from_env(),
            claude=ClaudeConfig.from_env(),
            gateway=GatewayConfig.from_env(),
            supabase=SupabaseConfig.from_env(),
            stripe=StripeConfig.from_env(),
            email=EmailConfig.from_env(),
            polling=PollingConfig.from_env(),
            site_url=os.getenv("SITE_URL", "http://localhost:5173").rstrip("/"),
            log_dir=os.getenv("LOG_DIR", "/var/log/naybourhood"),
            state_file=os.getenv("STATE_FILE", "naybourhood_state.json"),
            server_host=os.getenv("SERVER_HOST", "127.0.0.1"),
            server_port=int(os.getenv("SERVER_PORT", "8080")),
            debug_mode=os.getenv("DEBUG_MODE", "false").lower() == "true",
            default_tier=os.getenv("DEFAULT_TIER", "growth").lower(),
            account_cache_size=int(os.getenv("ACCOUNT_CACHE_SIZE", "256")),
            tracking_webhook_secret=os.getenv("TRACKING_WEBHOOK_SECRET", ""),
        )

    @property
    def store_backend(self) -> str:
        return "supabase" if self.supabase.configured else "memory"

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.anthropic_configured:
            errors.append("ANTHROPIC_API_KEY is required for lead scoring and analysis")
        if not self.airtable.api_key:
            errors.append("AIRTABLE_API_KEY is required")
        if not self.airtable.base_id:
            errors.append("AIRTABLE_BASE_ID is required")

        checks = [
            ("AIRTABLE_API_KEY", self.airtable.api_key, validate_airtable_key),
            ("ANTHROPIC_API_KEY", self.claude.api_key, validate_anthropic_key),
            ("SUPABASE_URL", self.supabase.url, validate_supabase_url),
            ("STRIPE_SECRET_KEY", self.stripe.secret_key, validate_stripe_key),
            ("STRIPE_WEBHOOK_SECRET", self.stripe.webhook_secret, validate_stripe_webhook_secret),
            ("RESEND_API_KEY", self.email.resend_api_key, validate_resend_key),
        ]
        for name, value, validator in checks:
            if not value:
                continue
            result = validator(value)
            if not result.valid:
                errors.append(f"{name}: {result.message}")

        if self.default_tier not in ("access", "growth", "enterprise"):
            errors.append(f"DEFAULT_TIER must be access, growth or enterprise (got '{self.default_tier}')")
        if self.account_cache_size < 1:
            errors.append("ACCOUNT_CACHE_SIZE must be at least 1")

        return errors

    @property
    def anthropic_configured(self) -> bool:
        return bool(self.claude.api_key)


def load_config() -> AppConfig:
    """Load configuration from environment variables."""
    # Try to load .env file if it exists
    env_file = Path(__file__).parent.parent / ".env"
    if env_file.exists():
        with open(env_file) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    os.environ.setdefault(key.strip(), value.strip().strip('"\''))

    return AppConfig.from_env()
