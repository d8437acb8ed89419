"""
In-memory record store.

Used for trial play and tests. Rows are deep-copied on the way in and out so
callers never share mutable state with the store.
"""

from __future__ import annotations

import copy
from typing import Any

from neuroplay.engine.errors import SessionNotFoundError, StoreError


class InMemoryRecordStore:
    """Dict-backed RecordStore."""

    def __init__(self) -> None:
        self.sessions: dict[str, dict[str, Any]] = {}
        self.metrics: list[dict[str, Any]] = []
        self.write_count = 0

    def create_session(self, row: dict[str, Any]) -> dict[str, Any]:
        session_id = str(row["id"])
        if session_id in self.sessions:
            raise StoreError(f"Session {session_id} already exists")
        self.sessions[session_id] = copy.deepcopy(row)
        self.write_count += 1
        return copy.deepcopy(row)

    def update_session(self, session_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        if session_id not in self.sessions:
            raise SessionNotFoundError(f"Session {session_id} not found")
        self.sessions[session_id].update(copy.deepcopy(fields))
        self.write_count += 1
        return copy.deepcopy(self.sessions[session_id])

    def get_session(self, session_id: str) -> dict[str, Any] | None:
        row = self.sessions.get(session_id)
        return copy.deepcopy(row) if row is not None else None

    def query_sessions(
        self,
        actor_id: str | None,
        game_id: str | None = None,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        rows = []
        for row in self.sessions.values():
            if row.get("actor_id") != actor_id:
                continue
            if game_id is not None and row.get("game_id") != game_id:
                continue
            if status is not None and row.get("status") != status:
                continue
            rows.append(copy.deepcopy(row))
        return rows

    def append_metric(self, row: dict[str, Any]) -> None:
        self.metrics.append(copy.deepcopy(row))
