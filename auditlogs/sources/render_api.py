"""Render API client: cursor-paginated workspace and organization audit logs."""

from __future__ import annotations

import logging
from typing import Optional

import requests

from auditlogs.errors import SourceFetchError
from auditlogs.models import AuditLogEntry, LogCategory

logger = logging.getLogger("auditlogs.render")

DEFAULT_BASE_URL = "https://api.render.com/v1"


class RenderClient:
    """Thin wrapper around a requests.Session holding the bearer token."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
        })

    def close(self) -> None:
        self._session.close()

    def get_audit_logs(self, endpoint: str, cursor: str, limit: int) -> list[AuditLogEntry]:
        """Fetch one page of entries strictly after ``cursor`` ("" = start)."""
        params = {
            "direction": "forward",
            "limit": str(limit),
            "cursor": cursor,
        }
        try:
            resp = self._session.get(
                f"{self._base}{endpoint}", params=params, timeout=self._timeout
            )
        except requests.RequestException as exc:
            raise SourceFetchError(f"error making request: {exc}") from exc

        if resp.status_code != 200:
            raise SourceFetchError(
                f"API request failed with status: {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise SourceFetchError(f"error parsing JSON response: {exc}") from exc
        if not isinstance(data, list):
            raise SourceFetchError("error parsing JSON response: expected a list")

        try:
            return [AuditLogEntry.from_api(item) for item in data]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise SourceFetchError(f"error parsing audit log entry: {exc}") from exc


class AuditLogService:
    """Binds a client to one log category so callers only pass the identity."""

    def __init__(self, client: RenderClient, category: LogCategory) -> None:
        self._client = client
        self.category = category

    def get(self, identity: str, cursor: str, limit: int) -> list[AuditLogEntry]:
        return self._client.get_audit_logs(self.category.endpoint(identity), cursor, limit)
