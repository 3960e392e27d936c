"""
Per-account subscription state: current tier, contact quota and billing links.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

from .errors import BillingError, ConfigurationError, NaybourhoodError
from .events import ChangeEvent, ChangeFeed
from .store import DataStore, SubscriptionRecord, Tables
from .tiers import (
    UNLIMITED,
    SubscriptionTier,
    TierLike,
    can_access_feature,
    contacts_remaining,
    get_tier_config,
    get_upgrade_path,
    tier_for_plan,
    to_tier,
)

if TYPE_CHECKING:
    from .billing import BillingClient

logger = logging.getLogger(__name__)


def start_of_month(now: Optional[datetime] = None) -> datetime:
    """First instant of the current calendar month in UTC."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return datetime(now.year, now.month, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class AccountContext:
    """The signed-in user and the company they act for."""
    user_id: str
    company_id: Optional[str] = None
    email: Optional[str] = None

    @property
    def company_key(self) -> str:
        # Accounts without a company hold their subscription under the user id
        return self.company_id or self.user_id


class SubscriptionState:
    """Tier and usage for one account, refreshed from the store on change."""

    def __init__(
        self,
        store: DataStore,
        account: AccountContext,
        billing: Optional["BillingClient"] = None,
        feed: Optional[ChangeFeed] = None,
        default_tier: TierLike = SubscriptionTier.GROWTH,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.account = account
        self.billing = billing
        self.default_tier = to_tier(default_tier)
        self._clock = clock

        self._lock = threading.Lock()
        self._tier = self.default_tier
        self._override: Optional[SubscriptionTier] = None
        self._record: Optional[SubscriptionRecord] = None
        self._contacts_used = 0
        self.loading = False
        self.error: Optional[str] = None

        self._unsubscribers = []
        if feed is not None:
            self._unsubscribers = [
                feed.subscribe(Tables.SUBSCRIPTIONS, self._on_subscription_change),
                feed.subscribe(Tables.CONTACTS, self._on_contact_change),
            ]

    def load(self) -> "SubscriptionState":
        """Read the subscription record and this month's contact count."""
        self.loading = True
        try:
            record = self.store.get_subscription(self.account.company_key)
            used = self.store.count_contacts(
                user_id=self.account.user_id, since=start_of_month(self._clock())
            )
        except NaybourhoodError as e:
            logger.error(f"Failed to load subscription for {self.account.company_key}: {e}")
            self.error = str(e)
        else:
            with self._lock:
                self._record = record
                self._tier = self._tier_from_record(record)
                self._contacts_used = used
            self.error = None
            logger.debug(
                f"Subscription for {self.account.company_key}: {self._tier.value}, {used} contacts this month"
            )
        finally:
            self.loading = False
        return self

    def _tier_from_record(self, record: Optional[SubscriptionRecord]) -> SubscriptionTier:
        if record is None or record.status == "cancelled":
            return self.default_tier
        tier = tier_for_plan(record.plan)
        if tier is None:
            logger.warning(f"Unknown plan '{record.plan}' for {record.company_id}, using {self.default_tier.value}")
            return self.default_tier
        return tier

    def _on_subscription_change(self, event: ChangeEvent) -> None:
        if event.row.get("company_id") == self.account.company_key:
            self.load()

    def _on_contact_change(self, event: ChangeEvent) -> None:
        if event.row.get("user_id") == self.account.user_id:
            self.load()

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    @property
    def tier(self) -> SubscriptionTier:
        with self._lock:
            return self._override or self._tier

    @property
    def record(self) -> Optional[SubscriptionRecord]:
        with self._lock:
            return self._record

    @property
    def tier_config(self):
        return get_tier_config(self.tier)

    @property
    def contacts_used(self) -> int:
        with self._lock:
            return self._contacts_used

    @property
    def contacts_remaining(self):
        return contacts_remaining(self.tier_config.monthly_contacts, self.contacts_used)

    @property
    def upgrade_path(self) -> Optional[SubscriptionTier]:
        return get_upgrade_path(self.tier)

    def can_access(self, required_tier: TierLike) -> bool:
        return can_access_feature(self.tier, required_tier)

    def set_tier(self, tier: Optional[TierLike]) -> None:
        """Override the tier manually; None returns to the stored tier."""
        with self._lock:
            self._override = to_tier(tier) if tier is not None else None

    def set_contacts_used(self, count: int) -> None:
        with self._lock:
            self._contacts_used = max(0, count)

    def initiate_checkout(self, tier: TierLike) -> str:
        """Start a Stripe checkout for the tier and return its URL."""
        if self.billing is None:
            raise ConfigurationError("Billing is not configured")
        return self.billing.create_checkout_session(
            tier,
            user_id=self.account.user_id,
            company_id=self.account.company_id,
            email=self.account.email,
        )

    def open_customer_portal(self) -> str:
        if self.billing is None:
            raise ConfigurationError("Billing is not configured")
        record = self.record
        if record is None or not record.stripe_customer_id:
            raise BillingError("No billing account found for this company")
        return self.billing.create_portal_session(record.stripe_customer_id)

    def snapshot(self) -> dict:
        config = self.tier_config
        record = self.record
        upgrade = self.upgrade_path
        return {
            "tier": self.tier.value,
            "tierConfig": config.to_dict(),
            "contactsUsed": self.contacts_used,
            "contactsRemaining": self.contacts_remaining,
            "monthlyContacts": config.monthly_contacts,
            "unlimitedContacts": config.monthly_contacts == UNLIMITED,
            "upgradePath": upgrade.value if upgrade else None,
            "subscription": {
                "plan": record.plan,
                "status": record.status,
                "billingCycleStart": record.billing_cycle_start,
                "billingCycleEnd": record.billing_cycle_end,
                "autoRenew": record.auto_renew,
                "hasBillingAccount": bool(record.stripe_customer_id),
            } if record else None,
            "loading": self.loading,
            "error": self.error,
        }
