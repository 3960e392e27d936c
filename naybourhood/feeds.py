"""
Buyer and campaign feeds: polled Airtable tables exposed as typed records.
"""

import logging
from typing import Optional

from .airtable_client import AirtableClient
from .config import AirtableConfig, PollingConfig
from .polling import PollingQuery
from .records import Buyer, Campaign, normalize_records, unique_callers, unique_statuses
from .tiers import TierLike, can_view_buyer, is_first_refusal

logger = logging.getLogger(__name__)

BUYERS_PAGE_SIZE = 100
CAMPAIGNS_MAX_RECORDS = 1000


class BuyerFeed:
    """Polled view of the Buyers table, highest score first."""

    def __init__(self, client: AirtableClient, airtable: AirtableConfig, polling: PollingConfig):
        self.client = client
        self.table = airtable.buyers_table
        self.query: PollingQuery[list[dict]] = PollingQuery(
            "airtable-buyers-data",
            self._fetch,
            stale_seconds=polling.buyers_stale_seconds,
            refetch_interval_seconds=polling.buyers_refetch_seconds,
        )
        self.mapping_errors: list = []

    def _fetch(self) -> list[dict]:
        return self.client.list_all(
            self.table,
            page_size=BUYERS_PAGE_SIZE,
            sort=[{"field": "Score", "direction": "desc"}],
        )

    def buyers(self) -> list[Buyer]:
        buyers, errors = normalize_records(self.query.get(), Buyer.from_airtable_record)
        self.mapping_errors = errors
        if errors:
            logger.warning(f"{len(errors)} buyer records could not be mapped")
        return buyers

    def visible_buyers(self, tier: TierLike) -> list[Buyer]:
        """Buyers inside the tier's score window."""
        return [buyer for buyer in self.buyers() if can_view_buyer(tier, buyer.score)]

    def first_refusal_buyers(self, tier: TierLike) -> list[Buyer]:
        return [buyer for buyer in self.buyers() if is_first_refusal(tier, buyer.score)]

    def get_buyer(self, record_id: str) -> Optional[Buyer]:
        for buyer in self.buyers():
            if buyer.id == record_id:
                return buyer
        return None

    def filters(self) -> dict:
        buyers = self.buyers()
        return {"statuses": unique_statuses(buyers), "callers": unique_callers(buyers)}

    def update_buyer(self, record_id: str, fields: dict) -> dict:
        """Write fields to a buyer and invalidate the cached list."""
        result = self.client.update_record(self.table, record_id, fields)
        self.query.invalidate()
        return result


class CampaignFeed:
    """Campaign_Data rows, cached without interval refresh by default."""

    def __init__(self, client: AirtableClient, airtable: AirtableConfig, polling: PollingConfig):
        self.client = client
        self.table = airtable.campaigns_table
        self.query: PollingQuery[list[dict]] = PollingQuery(
            "airtable-campaign-data",
            self._fetch,
            stale_seconds=polling.campaigns_stale_seconds,
            refetch_interval_seconds=polling.campaigns_refetch_seconds,
        )

    def _fetch(self) -> list[dict]:
        return self.client.list_all(self.table, max_records=CAMPAIGNS_MAX_RECORDS)

    def campaigns(self) -> list[Campaign]:
        campaigns, errors = normalize_records(self.query.get(), Campaign.from_airtable_record)
        if errors:
            logger.warning(f"{len(errors)} campaign records could not be mapped")
        return campaigns

    def campaign_rows(self) -> list[dict]:
        return [campaign.to_raw_format() for campaign in self.campaigns()]
