"""
Stripe billing: hosted checkout, customer portal and the subscription webhook.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import stripe

from .config import StripeConfig
from .errors import BillingError, ConfigurationError, WebhookVerificationError
from .store import DataStore, SubscriptionRecord
from .tiers import TierLike, plan_for_tier, to_tier

logger = logging.getLogger(__name__)

# Stripe subscription status -> stored status
STATUS_MAP = {
    "active": "active",
    "past_due": "past_due",
    "canceled": "cancelled",
}


def map_subscription_status(status: Optional[str]) -> str:
    return STATUS_MAP.get(status or "", "active")


def _as_dict(obj: Any) -> dict:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


def _epoch_date(value: Optional[int]) -> Optional[str]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).date().isoformat()


def billing_period(subscription: dict) -> tuple[Optional[str], Optional[str]]:
    """(start, end) dates of the current period.

    Newer API versions carry the period on the subscription items instead of
    the subscription itself.
    """
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")
    if not (start and end):
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            start = start or items[0].get("current_period_start")
            end = end or items[0].get("current_period_end")
    return _epoch_date(start), _epoch_date(end)


class BillingClient:
    """Creates Stripe checkout and portal sessions for Naybourhood plans."""

    def __init__(self, config: StripeConfig, site_url: str):
        self.config = config
        self.site_url = site_url.rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self.config.secret_key)

    def _require_key(self) -> str:
        if not self.config.secret_key:
            raise ConfigurationError("STRIPE_SECRET_KEY is not set")
        return self.config.secret_key

    def price_for(self, tier: TierLike) -> str:
        tier = to_tier(tier)
        price_id = self.config.price_ids.get(tier.value)
        if not price_id:
            raise BillingError(f"No Stripe price configured for the {tier.value} tier")
        return price_id

    def create_checkout_session(
        self,
        tier: TierLike,
        user_id: str,
        company_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> str:
        """Create a subscription checkout and return its hosted URL."""
        api_key = self._require_key()
        tier = to_tier(tier)
        metadata = {"user_id": user_id, "plan_type": tier.value}
        if company_id:
            metadata["company_id"] = company_id

        params = {
            "mode": "subscription",
            "line_items": [{"price": self.price_for(tier), "quantity": 1}],
            "client_reference_id": user_id,
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
            "success_url": f"{self.site_url}/subscription?success=true",
            "cancel_url": f"{self.site_url}/subscription?cancelled=true",
        }
        if email:
            params["customer_email"] = email

        try:
            session = stripe.checkout.Session.create(api_key=api_key, **params)
        except stripe.StripeError as e:
            logger.error(f"Checkout failed for {user_id} ({tier.value}): {e}")
            raise BillingError("Could not start checkout", details=str(e)) from e

        logger.info(f"Created checkout session {session.id} for {user_id} ({tier.value})")
        return session.url

    def create_portal_session(self, customer_id: str) -> str:
        api_key = self._require_key()
        try:
            session = stripe.billing_portal.Session.create(
                api_key=api_key,
                customer=customer_id,
                return_url=f"{self.site_url}/subscription",
            )
        except stripe.StripeError as e:
            logger.error(f"Portal session failed for {customer_id}: {e}")
            raise BillingError("Could not open the billing portal", details=str(e)) from e
        return session.url

    def retrieve_subscription(self, subscription_id: str) -> dict:
        try:
            subscription = stripe.Subscription.retrieve(subscription_id, api_key=self._require_key())
        except stripe.StripeError as e:
            logger.error(f"Could not retrieve subscription {subscription_id}: {e}")
            raise BillingError("Could not retrieve subscription", details=str(e)) from e
        return _as_dict(subscription)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict:
        """Verify the stripe-signature header and return the event as a dict."""
        if not self.config.webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not set")
        if not signature:
            raise WebhookVerificationError("No stripe signature provided")

        try:
            stripe.Webhook.construct_event(payload, signature, self.config.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Rejected webhook: {e}")
            raise WebhookVerificationError("Invalid signature") from e
        except ValueError as e:
            raise WebhookVerificationError("Invalid payload") from e

        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        return json.loads(payload)


class StripeWebhookHandler:
    """Applies Stripe subscription events to the subscriptions table."""

    def __init__(self, billing: BillingClient, store: DataStore):
        self.billing = billing
        self.store = store

    def handle(self, payload: bytes, signature: Optional[str]) -> dict:
        event = self.billing.construct_event(payload, signature)
        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}
        logger.info(f"Stripe event verified: {event_type} ({event.get('id')})")

        if event_type == "checkout.session.completed":
            self._checkout_completed(obj)
        elif event_type == "customer.subscription.updated":
            self._subscription_updated(obj)
        elif event_type == "customer.subscription.deleted":
            self._subscription_deleted(obj)
        elif event_type == "invoice.payment_failed":
            self._payment_failed(obj)
        else:
            logger.info(f"Unhandled Stripe event type: {event_type}")

        return {"received": True}

    def _checkout_completed(self, session: dict) -> None:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("user_id")
        if not user_id:
            logger.warning(f"Checkout {session.get('id')} has no user_id in metadata, skipping")
            return

        subscription_id = session.get("subscription")
        if not subscription_id:
            logger.info(f"Checkout {session.get('id')} has no subscription, skipping")
            return

        subscription = self.billing.retrieve_subscription(subscription_id)
        start, end = billing_period(subscription)
        plan_type = metadata.get("plan_type") or "access"
        try:
            plan = plan_for_tier(plan_type)
        except ValueError:
            logger.warning(f"Unknown plan_type '{plan_type}' in checkout metadata, using starter")
            plan = plan_for_tier("access")

        record = self.store.upsert_subscription(SubscriptionRecord(
            company_id=metadata.get("company_id") or user_id,
            plan=plan,
            status="active",
            stripe_customer_id=session.get("customer"),
            stripe_subscription_id=subscription_id,
            billing_cycle_start=start,
            billing_cycle_end=end,
            auto_renew=True,
        ))
        logger.info(f"Subscription {subscription_id} active on {plan} for {record.company_id}")

    def _subscription_updated(self, subscription: dict) -> None:
        status = map_subscription_status(subscription.get("status"))
        start, end = billing_period(subscription)
        values = {"status": status}
        if start:
            values["billing_cycle_start"] = start
        if end:
            values["billing_cycle_end"] = end

        updated = self.store.update_subscription_by_stripe_id(subscription["id"], values)
        logger.info(f"Subscription {subscription['id']} status {status} ({len(updated)} rows)")

    def _subscription_deleted(self, subscription: dict) -> None:
        updated = self.store.update_subscription_by_stripe_id(
            subscription["id"], {"status": "cancelled", "auto_renew": False}
        )
        logger.info(f"Subscription {subscription['id']} cancelled ({len(updated)} rows)")

    def _payment_failed(self, invoice: dict) -> None:
        subscription_id = invoice.get("subscription")
        if not subscription_id:
            # Newer API versions nest the subscription under parent
            details = (invoice.get("parent") or {}).get("subscription_details") or {}
            subscription_id = details.get("subscription")
        if not subscription_id:
            logger.info(f"Invoice {invoice.get('id')} has no subscription, skipping")
            return

        updated = self.store.update_subscription_by_stripe_id(subscription_id, {"status": "past_due"})
        logger.info(f"Subscription {subscription_id} marked past_due ({len(updated)} rows)")
