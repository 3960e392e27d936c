"""
Request handling for the airtable-api function.
Validates the action envelope and forwards it to Airtable unchanged.
"""

import logging
from typing import Any

from .airtable_client import AirtableClient
from .errors import ConfigurationError, RequestValidationError

logger = logging.getLogger(__name__)

VALID_ACTIONS = ("list", "get", "create", "update", "delete")


class AirtableProxy:
    """Executes {action, table, ...} requests against the Airtable base."""

    def __init__(self, client: AirtableClient):
        self.client = client

    def handle(self, body: dict) -> Any:
        """Run one request and return Airtable's response body."""
        if not self.client.configured:
            raise ConfigurationError("Airtable credentials not configured")

        action = body.get("action")
        table = body.get("table")
        record_id = body.get("recordId")
        data = body.get("data")

        if not table:
            raise RequestValidationError("Table name is required")

        logger.info(f"Airtable proxy: {action} on {table}")

        if action == "list":
            return self.client.list_records(
                table,
                filter_by_formula=body.get("filterByFormula"),
                sort=body.get("sort"),
                max_records=body.get("maxRecords"),
                page_size=body.get("pageSize"),
                offset=body.get("offset"),
                view=body.get("view"),
            )

        if action == "get":
            if not record_id:
                raise RequestValidationError("Record ID is required for get action")
            return self.client.get_record(table, record_id)

        if action == "create":
            if not data:
                raise RequestValidationError("Data is required for create action")
            return self.client.create_records(table, data)

        if action == "update":
            if not record_id or not data:
                raise RequestValidationError("Record ID and data are required for update action")
            return self.client.update_record(table, record_id, data)

        if action == "delete":
            if not record_id:
                raise RequestValidationError("Record ID is required for delete action")
            return self.client.delete_records(table, record_id)

        raise RequestValidationError(f"Invalid action. Use: {', '.join(VALID_ACTIONS)}")
