"""
Audit log module.
Records scoring decisions and assignment changes in the Airtable Audit_Logs table.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import requests
from pyairtable import Api

from .config import AirtableConfig

logger = logging.getLogger(__name__)


class AuditLogger:
    """Writes audit entries to the Audit_Logs table."""

    def __init__(self, config: AirtableConfig):
        self.config = config
        self._api: Optional[Api] = None
        self._table = None

    @property
    def api(self) -> Api:
        """Lazy-load Airtable API client."""
        if self._api is None:
            self._api = Api(self.config.api_key)
        return self._api

    @property
    def table(self):
        """Get the Audit_Logs table."""
        if self._table is None:
            if not (self.config.configured and self.config.audit_log_table):
                logger.warning("Audit log table not configured")
                return None
            self._table = self.api.table(self.config.base_id, self.config.audit_log_table)
        return self._table

    def log(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        old_values: Optional[dict] = None,
        new_values: Optional[dict] = None,
        user_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Write one audit entry.

        Returns the record ID if successful, None otherwise.
        """
        if not self.table:
            return None

        record = {
            "Action": action,
            "Entity Type": entity_type,
            "Entity ID": entity_id,
            "Timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if old_values is not None:
            record["Old Values"] = _to_json(old_values)
        if new_values is not None:
            record["New Values"] = _to_json(new_values)
        if user_id:
            record["User ID"] = user_id

        try:
            created = self.table.create(record)
        except requests.RequestException as e:
            logger.error(f"Failed to write audit entry {action} for {entity_type} {entity_id}: {e}")
            return None

        record_id = created.get("id")
        logger.debug(f"Audit: {action} {entity_type} {entity_id} (Record: {record_id})")
        return record_id

    def log_lead_score(self, lead: dict, result: dict) -> Optional[str]:
        """Record a lead-scoring decision."""
        entity_id = str(lead.get("id") or lead.get("email") or lead.get("name") or "unknown")
        return self.log(
            action="lead_scored",
            entity_type="lead",
            entity_id=entity_id,
            new_values={
                "status": result.get("status"),
                "score": result.get("score"),
                "priority": result.get("priority"),
                "priority_label": result.get("priority_label"),
                "risk_flags": result.get("risk_flags", []),
            },
        )

    def log_assignment(
        self,
        action: str,
        assignment_id: str,
        user_id: Optional[str],
        old_status: Optional[str] = None,
        new_status: Optional[str] = None,
    ) -> Optional[str]:
        return self.log(
            action=action,
            entity_type="buyer_assignment",
            entity_id=assignment_id,
            old_values={"status": old_status} if old_status else None,
            new_values={"status": new_status} if new_status else None,
            user_id=user_id,
        )

    def recent(self, limit: int = 20) -> list[dict]:
        """Most recent audit entries, newest first."""
        if not self.table:
            return []

        try:
            records = self.table.all(sort=["-Timestamp"], max_records=limit)
        except requests.RequestException as e:
            logger.error(f"Failed to read audit log: {e}")
            return []
        return [r["fields"] for r in records]


def _to_json(values: Any) -> str:
    return json.dumps(values, default=str, sort_keys=True)
