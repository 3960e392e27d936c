"""
Main composition module for Naybourhood.
Builds every component from the configuration and runs the HTTP server.
"""

import logging
import signal
import sys
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Optional

from .airtable_client import AirtableClient
from .airtable_proxy import AirtableProxy
from .assignments import AssignmentService
from .audit_log import AuditLogger
from .billing import BillingClient, StripeWebhookHandler
from .campaign_intelligence import CampaignAnalyst
from .city_recommender import CityRecommender
from .config import AppConfig, load_config
from .data_analysis import DataAnalyzer
from .events import ChangeFeed
from .feeds import BuyerFeed, CampaignFeed
from .introductions import IntroductionService
from .lead_analysis import LeadAnalyzer
from .lead_scoring import LeadScorer
from .llm import ClaudeClient, GatewayClient
from .master_agent import MasterAgent
from .messaging import MessagingService
from .notifications import Notifier
from .server import create_app, run_server
from .store import DataStore, MemoryStore, SupabaseStore
from .subscription import AccountContext, SubscriptionState
from .supabase_client import SupabaseAuth, SupabaseRestClient
from .tracking import EventTracker
from .workspace import JsonFileStateRepository, Workspace, workspace_path

logger = logging.getLogger(__name__)


def build_store(config: AppConfig, feed: ChangeFeed) -> DataStore:
    if config.store_backend == "supabase":
        return SupabaseStore(SupabaseRestClient(config.supabase), feed)
    logger.warning("Supabase not configured, keeping assignments, contacts and messages in memory")
    return MemoryStore(feed)


class Application:
    """Owns every long-lived component; the HTTP layer only reads from it."""

    def __init__(self, config: AppConfig, store: Optional[DataStore] = None):
        self.config = config
        self.feed = ChangeFeed()
        self.store = store or build_store(config, self.feed)
        if self.store.feed is None:
            self.store.feed = self.feed

        self.airtable = AirtableClient(config.airtable)
        self.buyers = BuyerFeed(self.airtable, config.airtable, config.polling)
        self.campaigns = CampaignFeed(self.airtable, config.airtable, config.polling)
        self.airtable_proxy = AirtableProxy(self.airtable)

        self.notifier = Notifier(config.email, site_url=config.site_url)
        self.audit = AuditLogger(config.airtable)
        self.auth = SupabaseAuth(config.supabase)

        self.assignments = AssignmentService(self.store, self.buyers, self.notifier, self.audit)
        self.messaging = MessagingService(self.store, self.buyers, self.notifier)

        self.claude = ClaudeClient(config.claude)
        self.gateway = GatewayClient(config.gateway)
        self.lead_scorer = LeadScorer(self.claude, self.audit)
        self.master_agent = MasterAgent(self.claude)
        self.data_analyzer = DataAnalyzer(self.claude)
        self.city_recommender = CityRecommender(self.gateway)
        self.lead_analyzer = LeadAnalyzer(self.gateway)
        self.campaign_analyst = CampaignAnalyst(self.claude, self.gateway)
        self.introductions = IntroductionService(self.notifier)
        self.tracker = EventTracker()

        self.billing = BillingClient(config.stripe, config.site_url)
        self.webhook_handler = StripeWebhookHandler(self.billing, self.store)

        # Least recently used first; the oldest entries are dropped past account_cache_size
        self._subscriptions: OrderedDict[tuple, SubscriptionState] = OrderedDict()
        self._subscriptions_lock = threading.Lock()
        self._workspaces: OrderedDict[str, Workspace] = OrderedDict()
        self._workspaces_lock = threading.Lock()

    def subscription_for(self, account: AccountContext) -> SubscriptionState:
        """The account's SubscriptionState, created and loaded on first use."""
        key = (account.user_id, account.company_key)
        evicted = []
        with self._subscriptions_lock:
            state = self._subscriptions.get(key)
            if state is not None:
                self._subscriptions.move_to_end(key)
                return state
            state = SubscriptionState(
                self.store,
                account,
                billing=self.billing,
                feed=self.feed,
                default_tier=self.config.default_tier,
            )
            self._subscriptions[key] = state
            while len(self._subscriptions) > self.config.account_cache_size:
                evicted.append(self._subscriptions.popitem(last=False)[1])
        for old in evicted:
            logger.debug(f"Dropping cached subscription for {old.account.company_key}")
            old.close()
        return state.load()

    def workspace_for(self, account: AccountContext) -> Workspace:
        """The company's workspace, read from its own state file on first use."""
        key = account.company_key
        with self._workspaces_lock:
            workspace = self._workspaces.get(key)
            if workspace is not None:
                self._workspaces.move_to_end(key)
                return workspace
            workspace = Workspace(JsonFileStateRepository(workspace_path(self.config.state_file, key)))
            self._workspaces[key] = workspace
            while len(self._workspaces) > self.config.account_cache_size:
                self._workspaces.popitem(last=False)
        return workspace

    def test_connections(self) -> dict[str, Optional[bool]]:
        """Test all API connections."""
        results = {}

        logger.info("Testing Airtable connection...")
        results["airtable"] = self.airtable.test_connection(self.config.airtable.buyers_table)

        if self.config.store_backend == "supabase":
            logger.info("Testing Supabase connection...")
            results["supabase"] = self.store.client.test_connection()
        else:
            logger.info("Supabase: SKIPPED (in-memory store)")
            results["supabase"] = None

        results["claude"] = self.claude.configured
        results["gateway"] = self.gateway.configured or None
        results["stripe"] = self.billing.configured or None
        results["email"] = self.notifier.enabled or None
        return results

    def start_polling(self) -> None:
        self.buyers.query.start()
        self.campaigns.query.start()

    def stop(self) -> None:
        """Stop background polling and detach subscription listeners."""
        logger.info("Stopping Naybourhood services...")
        self.buyers.query.stop()
        self.campaigns.query.stop()
        with self._subscriptions_lock:
            for state in self._subscriptions.values():
                state.close()
            self._subscriptions.clear()


def setup_logging(log_dir: str, debug: bool = False) -> None:
    """Configure logging."""
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    log_level = logging.DEBUG if debug else logging.INFO

    # File handler
    file_handler = logging.FileHandler(
        log_path / "naybourhood.log",
        encoding='utf-8'
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    ))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    for name in ("urllib3", "httpx", "anthropic", "openai", "stripe", "werkzeug"):
        logging.getLogger(name).setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    config = load_config()
    setup_logging(config.log_dir, config.debug_mode)

    logger.info("=" * 60)
    logger.info("Naybourhood Starting")
    logger.info("=" * 60)

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        sys.exit(1)

    application = Application(config)

    logger.info("Testing API connections...")
    for service, success in application.test_connections().items():
        status = "SKIPPED" if success is None else ("OK" if success else "FAILED")
        logger.info(f"  {service}: {status}")

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}")
        application.stop()
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    application.start_polling()
    try:
        run_server(create_app(application), config.server_host, config.server_port, config.debug_mode)
    finally:
        application.stop()

    logger.info("Naybourhood Stopped")


if __name__ == "__main__":
    main()
