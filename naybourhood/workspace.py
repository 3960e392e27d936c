"""
Workspace state for uploaded campaign and lead spreadsheets.

Each company has its own workspace. The rows, file names and insight
results survive restarts in a JSON file per company, keyed like the
dashboard's saved state (naybourhood_*). Changes stay in memory until
save() is called.
"""

import csv
import hashlib
import io
import json
import logging
import os
import re
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .errors import RequestValidationError

logger = logging.getLogger(__name__)

KINDS = ("campaign", "lead")

_SAFE_KEY_RE = re.compile(r"[A-Za-z0-9_-]{1,64}")

STATE_KEYS = {
    "campaign_data": "naybourhood_campaign_data",
    "lead_data": "naybourhood_lead_data",
    "campaign_file_name": "naybourhood_campaign_file_name",
    "lead_file_name": "naybourhood_lead_file_name",
    "insights": "naybourhood_insights",
}


@dataclass
class WorkspaceState:
    """Uploaded rows, their file names and the insights generated for them."""
    campaign_data: list = field(default_factory=list)
    lead_data: list = field(default_factory=list)
    campaign_file_name: str = ""
    lead_file_name: str = ""
    insights: dict = field(default_factory=dict)  # kind -> insight payload

    def to_dict(self) -> dict:
        return {key: getattr(self, name) for name, key in STATE_KEYS.items()}

    @classmethod
    def from_dict(cls, data: dict) -> "WorkspaceState":
        state = cls()
        for name, key in STATE_KEYS.items():
            if key in data and data[key] is not None:
                setattr(state, name, data[key])
        return state

    def to_payload(self) -> dict:
        return {
            "campaignData": self.campaign_data,
            "leadData": self.lead_data,
            "campaignFileName": self.campaign_file_name,
            "leadFileName": self.lead_file_name,
            "insights": self.insights,
        }


class JsonFileStateRepository:
    """Loads and saves WorkspaceState as a single JSON document."""

    def __init__(self, path):
        self.path = Path(path)

    def load(self) -> WorkspaceState:
        """Read the saved state.

        Returns:
            The saved WorkspaceState, or an empty one when the file is
            missing or unreadable.
        """
        if not self.path.exists():
            return WorkspaceState()

        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read workspace state {self.path}: {e}")
            return WorkspaceState()

        if not isinstance(data, dict):
            logger.error(f"Workspace state {self.path} is not a JSON object, ignoring it")
            return WorkspaceState()
        return WorkspaceState.from_dict(data)

    def save(self, state: WorkspaceState) -> None:
        """Write the state atomically: a temp file in the same directory, then a rename."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(state.to_dict(), f, indent=2, default=str)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


def workspace_path(state_file, company_key: str) -> Path:
    """State file for one company, next to the configured state file."""
    base = Path(state_file)
    if _SAFE_KEY_RE.fullmatch(company_key):
        slug = company_key
    else:
        slug = hashlib.sha256(company_key.encode("utf-8")).hexdigest()[:32]
    return base.with_name(f"{base.stem}.{slug}{base.suffix or '.json'}")


def parse_csv(content: str) -> list[dict]:
    """Rows of a CSV export as dicts keyed by the header row."""
    if content.startswith("\ufeff"):
        content = content[1:]
    reader = csv.DictReader(io.StringIO(content))
    if not reader.fieldnames:
        raise RequestValidationError("CSV file has no header row")

    rows = []
    for row in reader:
        cleaned = {
            (key or "").strip(): (value or "").strip() if isinstance(value, str) else value
            for key, value in row.items()
            if key
        }
        if any(cleaned.values()):
            rows.append(cleaned)
    return rows


def _check_kind(kind: str) -> str:
    if kind not in KINDS:
        raise RequestValidationError(f"Invalid data type '{kind}'. Use: {', '.join(KINDS)}")
    return kind


class Workspace:
    """In-memory workspace with explicit persistence through a repository."""

    def __init__(self, repository: Optional[JsonFileStateRepository] = None):
        self.repository = repository
        self._lock = threading.Lock()
        self.state = repository.load() if repository is not None else WorkspaceState()

    def import_csv(self, kind: str, file_name: str, content: str) -> int:
        """Replace the campaign or lead rows with a parsed CSV upload.

        Returns the number of rows imported. Insights for that data are dropped.
        """
        _check_kind(kind)
        rows = parse_csv(content or "")
        with self._lock:
            setattr(self.state, f"{kind}_data", rows)
            setattr(self.state, f"{kind}_file_name", file_name or "")
            self.state.insights.pop(kind, None)
        logger.info(f"Imported {len(rows)} {kind} rows from {file_name}")
        return len(rows)

    def set_insights(self, kind: str, insights: Optional[dict]) -> None:
        _check_kind(kind)
        with self._lock:
            if insights is None:
                self.state.insights.pop(kind, None)
            else:
                self.state.insights[kind] = insights

    def clear(self, kind: str) -> None:
        _check_kind(kind)
        with self._lock:
            setattr(self.state, f"{kind}_data", [])
            setattr(self.state, f"{kind}_file_name", "")
            self.state.insights.pop(kind, None)

    def snapshot(self) -> dict:
        with self._lock:
            return json.loads(json.dumps(self.state.to_payload(), default=str))

    def save(self) -> None:
        if self.repository is None:
            return
        with self._lock:
            self.repository.save(self.state)
        logger.debug(f"Workspace saved to {self.repository.path}")
