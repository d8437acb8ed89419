"""
Record store interface.

The engine needs only create-row, update-row-by-id, get-by-id and
query-rows-by(actor, game, status) for sessions, plus append-only metric rows.
No multi-row transactions; per-row last-write-wins.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class RecordStore(Protocol):
    def create_session(self, row: dict[str, Any]) -> dict[str, Any]:
        """Insert a session row and return it as stored."""
        ...

    def update_session(self, session_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Overwrite the given fields of a session row and return the row."""
        ...

    def get_session(self, session_id: str) -> dict[str, Any] | None:
        ...

    def query_sessions(
        self,
        actor_id: str | None,
        game_id: str | None = None,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        ...

    def append_metric(self, row: dict[str, Any]) -> None:
        ...
