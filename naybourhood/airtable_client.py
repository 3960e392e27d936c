"""
Airtable API client for the Naybourhood services.
Handles paginated reads and record writes against the Naybourhood base.
"""

import logging
from typing import Optional, Union
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import AirtableConfig
from .errors import AirtableError, ConfigurationError

logger = logging.getLogger(__name__)

API_ROOT = "https://api.airtable.com/v0"


class AirtableTables:
    """Table names in the Naybourhood base."""
    BUYERS = "Buyers"
    CAMPAIGN_DATA = "Campaign_Data"
    CAMPAIGNS = "Campaigns"
    DEVELOPMENTS = "Developments"
    LEAD_INTERACTIONS = "Lead_Interactions"
    SUBSCRIPTIONS = "Subscriptions"
    AUDIT_LOGS = "Audit_Logs"


# Older clients still ask for these names
TABLE_ALIASES = {
    "Campaign_Date": AirtableTables.CAMPAIGN_DATA,
}


def resolve_table(table: str) -> str:
    return TABLE_ALIASES.get(table, table)


def sort_params(sort: Optional[list[dict]]) -> dict:
    """Encode [{'field': ..., 'direction': ...}] as Airtable's sort[i][...] params."""
    params = {}
    for i, sort_field in enumerate(sort or []):
        params[f"sort[{i}][field]"] = sort_field["field"]
        params[f"sort[{i}][direction]"] = sort_field.get("direction", "asc")
    return params


class AirtableClient:
    """Client for interacting with Airtable API."""

    def __init__(self, config: AirtableConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.base_url = f"{API_ROOT}/{config.base_id}"

        # Set up session with retry logic
        if session is None:
            session = requests.Session()
            retries = Retry(
                total=3,
                backoff_factor=1,
                status_forcelist=[429, 500, 502, 503, 504],
            )
            session.mount("https://", HTTPAdapter(max_retries=retries))
        self.session = session

    @property
    def configured(self) -> bool:
        return self.config.configured

    def _headers(self) -> dict:
        """Get request headers with authentication."""
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def _table_url(self, table: str, record_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/{quote(resolve_table(table), safe='')}"
        if record_id:
            url = f"{url}/{quote(record_id, safe='')}"
        return url

    def _request(self, method: str, url: str, params=None, json: Optional[dict] = None) -> dict:
        if not self.configured:
            raise ConfigurationError("Airtable credentials not configured")

        logger.debug(f"Airtable {method} request to: {url}")
        response = self.session.request(
            method,
            url,
            headers=self._headers(),
            params=params,
            json=json,
            timeout=30,
        )

        try:
            data = response.json()
        except ValueError:
            data = {"raw": response.text}

        if not response.ok:
            logger.error(f"Airtable API error {response.status_code}: {data}")
            raise AirtableError("Airtable API error", details=data, status_code=response.status_code)
        return data

    def list_records(
        self,
        table: str,
        filter_by_formula: Optional[str] = None,
        sort: Optional[list[dict]] = None,
        max_records: Optional[int] = None,
        page_size: Optional[int] = None,
        offset: Optional[str] = None,
        view: Optional[str] = None,
    ) -> dict:
        """Fetch one page; the response carries 'offset' when more pages exist."""
        params = {}
        if filter_by_formula:
            params["filterByFormula"] = filter_by_formula
        if max_records:
            params["maxRecords"] = max_records
        if page_size:
            params["pageSize"] = page_size
        if offset:
            params["offset"] = offset
        if view:
            params["view"] = view
        params.update(sort_params(sort))

        return self._request("GET", self._table_url(table), params=params)

    def list_all(self, table: str, **options) -> list[dict]:
        """Fetch every page of a table and concatenate the records."""
        options.pop("offset", None)
        records = []
        offset = None
        pages = 0

        while True:
            try:
                page = self.list_records(table, offset=offset, **options)
            except requests.RequestException as e:
                logger.error(f"Error fetching {table} from Airtable: {e}")
                raise

            records.extend(page.get("records", []))
            pages += 1

            offset = page.get("offset")
            if not offset:
                break

        logger.info(f"Retrieved {len(records)} records from {table} ({pages} pages)")
        return records

    def get_record(self, table: str, record_id: str) -> dict:
        return self._request("GET", self._table_url(table, record_id))

    def create_records(self, table: str, data: Union[dict, list[dict]]) -> dict:
        """Create one record or a batch (Airtable accepts up to 10 per call)."""
        rows = data if isinstance(data, list) else [data]
        payload = {"records": [{"fields": fields} for fields in rows]}
        return self._request("POST", self._table_url(table), json=payload)

    def update_record(self, table: str, record_id: str, fields: dict) -> dict:
        result = self._request("PATCH", self._table_url(table, record_id), json={"fields": fields})
        logger.info(f"Updated {table} record {record_id}: {', '.join(fields)}")
        return result

    def delete_records(self, table: str, record_id: Union[str, list[str]]) -> dict:
        if isinstance(record_id, list):
            params = [("records[]", rid) for rid in record_id]
            return self._request("DELETE", self._table_url(table), params=params)
        return self._request("DELETE", self._table_url(table, record_id))

    def test_connection(self, table: str = AirtableTables.BUYERS) -> bool:
        """Test the Airtable connection."""
        try:
            self.list_records(table, max_records=1)
        except (requests.RequestException, AirtableError, ConfigurationError) as e:
            logger.error(f"Airtable connection test failed: {e}")
            return False
        logger.info("Airtable connection test successful")
        return True
