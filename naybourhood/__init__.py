"""
Naybourhood - buyer intelligence for property developers, estate agents and mortgage brokers.

Serves tier-gated Airtable buyer data, buyer assignments and conversations,
Stripe subscriptions and the AI scoring and analysis functions.
"""

__version__ = "1.0.0"

from .config import (
    AppConfig,
    AirtableConfig,
    ClaudeConfig,
    GatewayConfig,
    SupabaseConfig,
    StripeConfig,
    EmailConfig,
    PollingConfig,
    load_config,
)
from .classification import LeadClassification, classify_lead
from .tiers import SubscriptionTier, get_tier_config
from .records import Buyer, Campaign
from .store import DataStore, MemoryStore, SupabaseStore
from .subscription import AccountContext, SubscriptionState
from .assignments import AssignmentService
from .messaging import MessagingService

__all__ = [
    # Config
    "AppConfig",
    "AirtableConfig",
    "ClaudeConfig",
    "GatewayConfig",
    "SupabaseConfig",
    "StripeConfig",
    "EmailConfig",
    "PollingConfig",
    "load_config",
    # Domain
    "LeadClassification",
    "classify_lead",
    "SubscriptionTier",
    "get_tier_config",
    "Buyer",
    "Campaign",
    # Services
    "DataStore",
    "MemoryStore",
    "SupabaseStore",
    "AccountContext",
    "SubscriptionState",
    "AssignmentService",
    "MessagingService",
]
