"""
Hosted record store client.

Talks to a PostgREST-style REST endpoint exposing the game_sessions and
behavioral_metrics tables (the hosted data store the web front end uses).

Usage:
    store = RestRecordStore(base_url, api_key)
    row = store.create_session(record.to_row())
    rows = store.query_sessions("actor-1", "memoria-colorida", "active")
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from neuroplay.engine.errors import SessionNotFoundError, StoreError


class RestRecordStore:
    """RecordStore over HTTP. Each call is one request; no client-side caching."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        sessions_table: str = "game_sessions",
        metrics_table: str = "behavioral_metrics",
        client: httpx.Client | None = None,
    ):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"

        self.sessions_table = sessions_table
        self.metrics_table = metrics_table
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
        )
        if client is not None:
            self._client.headers.update(headers)

    @classmethod
    def from_settings(cls, settings: Any) -> "RestRecordStore":
        if not settings.has_rest_configured():
            raise StoreError("REST store selected but rest_url is not configured")
        cfg = settings.get_rest_config()
        return cls(
            base_url=cfg["base_url"],
            api_key=cfg["api_key"],
            timeout=cfg["timeout"],
            sessions_table=cfg["sessions_table"],
            metrics_table=cfg["metrics_table"],
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "RestRecordStore":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Sessions
    # =========================================================================

    def create_session(self, row: dict[str, Any]) -> dict[str, Any]:
        rows = self._request(
            "POST",
            f"/{self.sessions_table}",
            json=row,
            headers={"Prefer": "return=representation"},
        )
        return rows[0] if rows else dict(row)

    def update_session(self, session_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        body = {k: v for k, v in fields.items() if k != "id"}
        rows = self._request(
            "PATCH",
            f"/{self.sessions_table}",
            params={"id": f"eq.{session_id}"},
            json=body,
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return rows[0]

    def get_session(self, session_id: str) -> dict[str, Any] | None:
        rows = self._request(
            "GET",
            f"/{self.sessions_table}",
            params={"id": f"eq.{session_id}", "limit": "1"},
        )
        return rows[0] if rows else None

    def query_sessions(
        self,
        actor_id: str | None,
        game_id: str | None = None,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        params = {
            "actor_id": "is.null" if actor_id is None else f"eq.{actor_id}",
            "order": "last_checkpoint_at.desc",
        }
        if game_id is not None:
            params["game_id"] = f"eq.{game_id}"
        if status is not None:
            params["status"] = f"eq.{status}"
        return self._request("GET", f"/{self.sessions_table}", params=params) or []

    # =========================================================================
    # Metrics
    # =========================================================================

    def append_metric(self, row: dict[str, Any]) -> None:
        self._request(
            "POST",
            f"/{self.metrics_table}",
            json=row,
            headers={"Prefer": "return=minimal"},
        )

    # =========================================================================
    # Transport
    # =========================================================================

    def _request(self, method: str, url: str, **kwargs: Any) -> list[dict[str, Any]]:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"{method} {url} -> {e.response.status_code}: {e.response.text[:200]}")
            raise StoreError(f"{method} {url} failed with {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error(f"Connection error during {method} {url}: {e}")
            raise StoreError(f"{method} {url} failed: {e}") from e

        if not response.content:
            return []
        data = response.json()
        if isinstance(data, dict):
            return [data]
        return list(data)
