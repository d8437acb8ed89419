"""
Session recovery.

Finds active sessions an actor left behind (crash, closed tab, lost
connection) and turns their persisted rows back into EngineState.

- find_unfinished: active rows for (actor, game), newest checkpoint first,
  skipping rows checkpointed within the grace window (still live elsewhere)
  and rows older than the expiry window
- resume: rehydrate the newest candidate, keeping its id
- discard: mark a candidate abandoned
- expire_stale: abandon every active row past the expiry window
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from loguru import logger

from neuroplay.engine.clock import Clock
from neuroplay.engine.errors import SessionClosedError, SessionNotFoundError
from neuroplay.engine.models import EngineState, SessionRecord, SessionStatus
from neuroplay.store.base import RecordStore


def rehydrate(record: SessionRecord) -> EngineState:
    """
    Rebuild EngineState from a session row.

    level and score come from the top-level columns; every other counter from
    performance_snapshot. Unknown snapshot keys are ignored and missing ones
    fall back to defaults, so rows written by older builds still load.
    """
    snapshot = record.performance_snapshot or {}
    values: dict[str, Any] = {}
    for key in EngineState.snapshot_fields():
        if key not in snapshot:
            continue
        if snapshot[key] is None and key != "lives":
            continue
        values[key] = snapshot[key]

    state = EngineState(level=max(1, int(record.level)), score=max(0, int(record.score)), **values)
    state.max_level = max(state.max_level, state.level)
    return state


class RecoveryLocator:
    """Lookup and disposal of unfinished sessions for one actor."""

    def __init__(
        self,
        store: RecordStore,
        clock: Clock,
        grace_seconds: float = 5.0,
        expiry_hours: float = 24,
    ):
        self.store = store
        self.clock = clock
        self.grace = timedelta(seconds=grace_seconds)
        self.expiry = timedelta(hours=expiry_hours)

    @classmethod
    def from_settings(cls, store: RecordStore, clock: Clock, settings: Any) -> "RecoveryLocator":
        return cls(
            store=store,
            clock=clock,
            grace_seconds=settings.recovery_grace_seconds,
            expiry_hours=settings.session_expiry_hours,
        )

    def find_unfinished(self, actor_id: str | None, game_id: str | None = None) -> list[SessionRecord]:
        """Resumable sessions, newest checkpoint first."""
        if actor_id is None:
            return []

        rows = self.store.query_sessions(actor_id, game_id, SessionStatus.ACTIVE.value)
        now = self.clock.utcnow()
        candidates = []
        for row in rows:
            record = SessionRecord.from_row(row)
            seen = record.last_checkpoint_at or record.started_at
            if seen is None:
                continue
            age = now - seen
            if age < self.grace:
                logger.debug(f"Session {record.id} checkpointed {age.total_seconds():.1f}s ago, treating as live")
                continue
            if age > self.expiry:
                continue
            candidates.append(record)

        candidates.sort(key=lambda r: r.last_checkpoint_at or r.started_at, reverse=True)
        return candidates

    def load(self, session_id: str, actor_id: str | None = None) -> SessionRecord:
        """Fetch an active session. With actor_id, rows owned by anyone else are not found."""
        row = self.store.get_session(session_id)
        if row is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        record = SessionRecord.from_row(row)
        if actor_id is not None and record.actor_id != actor_id:
            raise SessionNotFoundError(f"Session {session_id} not found for {actor_id}")
        if not record.is_active:
            raise SessionClosedError(f"Session {session_id} is {record.status.value}")
        return record

    def resume(self, session_id: str, actor_id: str | None = None) -> EngineState:
        """Load an active session and rehydrate its state."""
        state = rehydrate(self.load(session_id, actor_id))
        logger.info(f"Recovered session {session_id}: level={state.level} score={state.score} round={state.round_number}")
        return state

    def discard(self, session_id: str, actor_id: str | None = None) -> None:
        """Mark an unfinished session abandoned."""
        record = self.load(session_id, actor_id)
        now = self.clock.utcnow().isoformat()
        self.store.update_session(
            record.id,
            {"status": SessionStatus.ABANDONED.value, "ended_at": now, "last_checkpoint_at": now},
        )
        logger.info(f"Discarded session {session_id}")

    def expire_stale(self, actor_id: str, game_id: str | None = None) -> int:
        """Abandon active rows whose last checkpoint is past the expiry window."""
        rows = self.store.query_sessions(actor_id, game_id, SessionStatus.ACTIVE.value)
        now = self.clock.utcnow()
        expired = 0
        for row in rows:
            record = SessionRecord.from_row(row)
            seen = record.last_checkpoint_at or record.started_at
            if seen is None or now - seen <= self.expiry:
                continue
            self.store.update_session(
                record.id,
                {"status": SessionStatus.ABANDONED.value, "ended_at": now.isoformat()},
            )
            expired += 1

        if expired:
            logger.info(f"Expired {expired} stale session(s) for actor {actor_id}")
        return expired
