"""
Supabase client for the Naybourhood services.
Talks to PostgREST (tables and RPCs) and the auth API over requests.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import SupabaseConfig
from .errors import AuthError, ConfigurationError, StoreError

logger = logging.getLogger(__name__)

_CONTENT_RANGE_RE = re.compile(r"/(\d+)$")

# Postgres error codes returned in PostgREST error bodies
UNIQUE_VIOLATION = "23505"
CHECK_VIOLATION = "23514"


def eq(value: Any) -> str:
    return f"eq.{value}"


def gte(value: Any) -> str:
    return f"gte.{value}"


def in_list(values) -> str:
    return f"in.({','.join(str(v) for v in values)})"


def error_code(error: StoreError) -> Optional[str]:
    """Postgres error code carried by a StoreError, if any."""
    if isinstance(error.details, dict):
        return error.details.get("code")
    return None


def _build_session() -> requests.Session:
    session = requests.Session()
    retries = Retry(
        total=3,
        backoff_factor=1,
        status_forcelist=[429, 500, 502, 503, 504],
    )
    session.mount("https://", HTTPAdapter(max_retries=retries))
    return session


class SupabaseRestClient:
    """Thin PostgREST client: select, count, insert, upsert, update and rpc."""

    def __init__(self, config: SupabaseConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.rest_url = f"{config.url}/rest/v1"
        self.session = session or _build_session()

    def _headers(self, prefer: Optional[str] = None) -> dict:
        headers = {
            "apikey": self.config.api_key,
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        path: str,
        params=None,
        json: Any = None,
        prefer: Optional[str] = None,
        extra_headers: Optional[dict] = None,
    ) -> requests.Response:
        if not self.config.configured:
            raise ConfigurationError("Supabase credentials not configured")

        headers = self._headers(prefer)
        if extra_headers:
            headers.update(extra_headers)

        url = f"{self.rest_url}/{path}"
        logger.debug(f"Supabase {method} {path} {params or ''}")
        try:
            response = self.session.request(
                method, url, headers=headers, params=params, json=json, timeout=30
            )
        except requests.RequestException as e:
            logger.error(f"Supabase request to {path} failed: {e}")
            raise StoreError(f"Supabase request failed: {e}") from e

        if not response.ok:
            try:
                body = response.json()
            except ValueError:
                body = {"message": response.text}
            logger.error(f"Supabase error {response.status_code} on {path}: {body}")
            raise StoreError(
                body.get("message", "Supabase request failed") if isinstance(body, dict) else str(body),
                details=body,
            )
        return response

    def _json(self, method: str, path: str, **kwargs) -> Any:
        response = self._request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Supabase returned a non-JSON body on {path}: {response.text[:200]}")
            raise StoreError(f"Invalid response from Supabase on {path}") from e

    def select(
        self,
        table: str,
        filters: Optional[dict] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
        columns: str = "*",
    ) -> list[dict]:
        """Rows matching PostgREST filters, e.g. {'user_id': eq(uid)}."""
        params = {"select": columns}
        params.update(filters or {})
        if order:
            params["order"] = order
        if limit:
            params["limit"] = limit
        return self._json("GET", table, params=params)

    def count(self, table: str, filters: Optional[dict] = None) -> int:
        """Exact row count from the Content-Range header."""
        params = {"select": "id"}
        params.update(filters or {})
        response = self._request(
            "HEAD", table, params=params, prefer="count=exact", extra_headers={"Range": "0-0"}
        )
        match = _CONTENT_RANGE_RE.search(response.headers.get("Content-Range", ""))
        return int(match.group(1)) if match else 0

    def insert(self, table: str, row: dict) -> dict:
        rows = self._json("POST", table, json=row, prefer="return=representation")
        return rows[0] if rows else {}

    def upsert(self, table: str, row: dict, on_conflict: str) -> dict:
        rows = self._json(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json=row,
            prefer="resolution=merge-duplicates,return=representation",
        )
        return rows[0] if rows else {}

    def update(self, table: str, filters: dict, values: dict) -> list[dict]:
        """PATCH every row matching filters; returns the updated rows."""
        return self._json("PATCH", table, params=filters, json=values, prefer="return=representation")

    def rpc(self, function: str, args: dict) -> Any:
        return self._json("POST", f"rpc/{function}", json=args)

    def test_connection(self) -> bool:
        try:
            self.select("subscriptions", limit=1)
        except (StoreError, ConfigurationError) as e:
            logger.error(f"Supabase connection test failed: {e}")
            return False
        logger.info("Supabase connection test successful")
        return True


@dataclass
class AuthUser:
    id: str
    email: Optional[str] = None
    company_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {"id": self.id, "email": self.email, "companyId": self.company_id}


class SupabaseAuth:
    """Resolves bearer tokens to users through the Supabase auth API."""

    def __init__(self, config: SupabaseConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or _build_session()

    def get_user(self, token: Optional[str]) -> AuthUser:
        if not token:
            raise AuthError("Missing authorization token")
        if not self.config.configured:
            raise ConfigurationError("Supabase credentials not configured")

        try:
            response = self.session.get(
                f"{self.config.url}/auth/v1/user",
                headers={
                    "apikey": self.config.anon_key or self.config.api_key,
                    "Authorization": f"Bearer {token}",
                },
                timeout=15,
            )
        except requests.RequestException as e:
            logger.error(f"Supabase auth request failed: {e}")
            raise AuthError("Could not verify authorization token") from e

        if response.status_code != 200:
            logger.warning(f"Rejected token (status {response.status_code})")
            raise AuthError("Invalid or expired token")

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Supabase auth returned a non-JSON body: {response.text[:200]}")
            raise AuthError("Could not verify authorization token") from e
        metadata = {**(data.get("app_metadata") or {}), **(data.get("user_metadata") or {})}
        return AuthUser(
            id=data["id"],
            email=data.get("email"),
            company_id=metadata.get("company_id"),
        )
