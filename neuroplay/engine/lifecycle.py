"""
Session Lifecycle Manager.

Owns one session record from start to completion or abandonment:

    none -> active -> {completed | abandoned}

Checkpoint policy:
- Merges partial progress into the in-memory record.
- Identical input never causes a second write.
- Routine checkpoints are rate-limited to checkpoint_interval_seconds; the
  first checkpoint after opening and every significant event (round
  completion) write immediately.
- Only one checkpoint is ever pending per session: a newer request supersedes
  the pending one, and writes happen one at a time.
- flush_pending() is the unload/navigation hook: one immediate write
  regardless of the rate limit.
- Write failures are logged and retried on a later tick. They never reach the
  player. A failed start, on the other hand, is fatal.

Without an actor (test/ephemeral mode) the state machine is identical but no
store calls are made.
"""

from __future__ import annotations

import copy
from typing import Any
from uuid import uuid4

from loguru import logger

from neuroplay.engine.clock import Clock
from neuroplay.engine.errors import (
    CheckpointWriteFailure,
    ConflictError,
    SessionClosedError,
    StartWriteFailure,
)
from neuroplay.engine.models import BehavioralMetric, SessionRecord, SessionStatus
from neuroplay.store.base import RecordStore

MAX_METRIC_BACKLOG = 500


class SessionLifecycleManager:
    """Start / checkpoint / complete / abandon for a single session id."""

    def __init__(
        self,
        store: RecordStore | None,
        clock: Clock,
        actor_id: str | None,
        checkpoint_interval_seconds: float = 10.0,
    ):
        self.store = store
        self.clock = clock
        self.actor_id = actor_id
        self.checkpoint_interval_ms = int(checkpoint_interval_seconds * 1000)

        self.record: SessionRecord | None = None
        self._persisted: dict[str, Any] | None = None
        self._dirty = False
        self._last_write_ms: int | None = None
        self._metric_backlog: list[dict[str, Any]] = []

        self.write_count = 0
        self.failed_writes = 0
        self.last_failure: CheckpointWriteFailure | None = None

    @classmethod
    def from_settings(
        cls,
        store: RecordStore | None,
        clock: Clock,
        actor_id: str | None,
        settings: Any,
    ) -> "SessionLifecycleManager":
        return cls(
            store=store,
            clock=clock,
            actor_id=actor_id,
            checkpoint_interval_seconds=settings.checkpoint_interval_seconds,
        )

    # =========================================================================
    # State
    # =========================================================================

    @property
    def ephemeral(self) -> bool:
        return self.actor_id is None or self.store is None

    @property
    def session_id(self) -> str | None:
        return self.record.id if self.record else None

    @property
    def status(self) -> SessionStatus | None:
        return self.record.status if self.record else None

    @property
    def is_active(self) -> bool:
        return self.record is not None and self.record.is_active

    @property
    def has_pending_changes(self) -> bool:
        return self._dirty

    @property
    def pending_metrics(self) -> int:
        return len(self._metric_backlog)

    # =========================================================================
    # Opening
    # =========================================================================

    def start(
        self,
        game_id: str,
        initial_level: int = 1,
        extra_context: dict[str, Any] | None = None,
    ) -> str:
        """
        Create a new active session.

        Raises:
            ConflictError: An active session exists for this actor and game
            StartWriteFailure: The store could not create the row
        """
        if self.is_active:
            raise ConflictError(self.actor_id, game_id, [self.record.id])

        if not self.ephemeral:
            try:
                existing = self.store.query_sessions(self.actor_id, game_id, SessionStatus.ACTIVE.value)
            except Exception as e:
                logger.error(f"Could not check for active sessions of {game_id}: {e}")
                raise StartWriteFailure(game_id, e) from e
            if existing:
                raise ConflictError(self.actor_id, game_id, [str(r["id"]) for r in existing])

        now = self.clock.utcnow()
        record = SessionRecord(
            id=str(uuid4()),
            game_id=game_id,
            actor_id=self.actor_id,
            level=max(1, int(initial_level)),
            score=0,
            status=SessionStatus.ACTIVE,
            performance_snapshot={},
            context=dict(extra_context or {}),
            started_at=now,
            last_checkpoint_at=now,
        )

        if not self.ephemeral:
            try:
                self.store.create_session(record.to_row())
            except Exception as e:
                logger.error(f"Session start for {game_id} failed: {e}")
                raise StartWriteFailure(game_id, e) from e

        self._attach(record)
        logger.info(
            f"Session {record.id} started: game={game_id} level={record.level} "
            f"{'ephemeral' if self.ephemeral else f'actor={self.actor_id}'}"
        )
        return record.id

    def reopen(self, record: SessionRecord) -> str:
        """Re-attach to an existing active session (resume keeps the same id)."""
        if not record.is_active:
            raise SessionClosedError(f"Session {record.id} is {record.status.value}")
        if self.is_active and self.record.id != record.id:
            raise ConflictError(self.actor_id, record.game_id, [self.record.id])

        self._attach(copy.deepcopy(record))
        # Claim the session so other readers see it as live
        self._dirty = True
        self._write(self.clock.now_ms(), force=True)
        logger.info(f"Session {record.id} resumed at level={record.level} score={record.score}")
        return record.id

    def _attach(self, record: SessionRecord) -> None:
        self.record = record
        self._persisted = self._payload(record)
        self._dirty = False
        self._last_write_ms = None

    # =========================================================================
    # Checkpoints
    # =========================================================================

    def checkpoint(self, partial: dict[str, Any], significant: bool = False) -> bool:
        """
        Merge partial progress and write it when the policy allows.

        Args:
            partial: Any of 'level', 'score' and snapshot counters
            significant: Round completion and similar events write immediately

        Returns:
            False if the session no longer accepts checkpoints
        """
        if not self.is_active:
            logger.warning(
                f"Checkpoint rejected: session {self.session_id} is "
                f"{self.status.value if self.status else 'not open'}"
            )
            return False

        self._merge(partial)
        if self._payload(self.record) == self._persisted:
            # Nothing new since the last successful write
            self._dirty = False
            return True

        self._dirty = True
        now_ms = self.clock.now_ms()
        if significant or self._interval_elapsed(now_ms):
            self._write(now_ms)
        return True

    def tick(self) -> None:
        """Write a deferred checkpoint once the interval allows; retry backlog."""
        if not self.is_active:
            return
        now_ms = self.clock.now_ms()
        if self._dirty and self._interval_elapsed(now_ms):
            self._write(now_ms)
        if self._metric_backlog:
            self._drain_metrics()

    def flush_pending(self) -> bool:
        """Force one immediate write (page unload, navigation)."""
        if not self.is_active:
            return False
        if not self._dirty:
            return True
        return self._write(self.clock.now_ms(), force=True)

    def _interval_elapsed(self, now_ms: int) -> bool:
        if self._last_write_ms is None:
            return True
        return now_ms - self._last_write_ms >= self.checkpoint_interval_ms

    def _merge(self, partial: dict[str, Any]) -> None:
        record = self.record
        for key, value in (partial or {}).items():
            if key == "level":
                record.level = max(1, int(value))
            elif key == "score":
                record.score = max(0, int(value))
            else:
                record.performance_snapshot[key] = copy.deepcopy(value)

    @staticmethod
    def _payload(record: SessionRecord) -> dict[str, Any]:
        return {
            "level": record.level,
            "score": record.score,
            "performance_snapshot": copy.deepcopy(record.performance_snapshot),
        }

    def _write(self, now_ms: int, force: bool = False) -> bool:
        record = self.record
        payload = self._payload(record)
        if not force and payload == self._persisted:
            self._dirty = False
            return True

        record.last_checkpoint_at = self.clock.utcnow()
        self._last_write_ms = now_ms

        if self.ephemeral:
            self._persisted = payload
            self._dirty = False
            return True

        fields = {
            **payload,
            "last_checkpoint_at": record.last_checkpoint_at.isoformat(),
        }
        try:
            self.store.update_session(record.id, fields)
        except Exception as e:
            failure = CheckpointWriteFailure(record.id, e)
            self.failed_writes += 1
            self.last_failure = failure
            self._dirty = True
            logger.warning(f"{failure} (will retry)")
            return False

        self._persisted = payload
        self._dirty = False
        self.write_count += 1
        logger.debug(f"Checkpoint {record.id}: level={record.level} score={record.score}")
        return True

    # =========================================================================
    # Metrics
    # =========================================================================

    def emit_metric(self, metric: BehavioralMetric) -> None:
        """Append a metric row. Failures are queued and retried on tick()."""
        if self.ephemeral:
            return
        self._metric_backlog.append(metric.to_row())
        self._drain_metrics()

    def _drain_metrics(self) -> None:
        while self._metric_backlog:
            row = self._metric_backlog[0]
            try:
                self.store.append_metric(row)
            except Exception as e:
                logger.warning(f"Metric write failed, {len(self._metric_backlog)} queued: {e}")
                if len(self._metric_backlog) > MAX_METRIC_BACKLOG:
                    dropped = self._metric_backlog.pop(0)
                    logger.error(f"Metric backlog full, dropped {dropped['metric_type']}")
                return
            self._metric_backlog.pop(0)

    # =========================================================================
    # Finalizing
    # =========================================================================

    def complete(self, final_snapshot: dict[str, Any] | None = None) -> SessionRecord:
        """Mark the session completed with its final snapshot. Terminal."""
        if not self.is_active:
            raise SessionClosedError(f"Session {self.session_id} is not active")

        self._merge(final_snapshot or {})
        return self._finalize(SessionStatus.COMPLETED, include_snapshot=True)

    def abandon(self) -> SessionRecord | None:
        """Mark the session abandoned, keeping the last checkpointed snapshot."""
        if not self.is_active:
            return self.record
        if self._persisted is not None:
            # Unflushed progress is dropped; the row keeps what was checkpointed
            self.record.level = self._persisted["level"]
            self.record.score = self._persisted["score"]
            self.record.performance_snapshot = copy.deepcopy(self._persisted["performance_snapshot"])
        return self._finalize(SessionStatus.ABANDONED, include_snapshot=False)

    def _finalize(self, status: SessionStatus, include_snapshot: bool) -> SessionRecord:
        record = self.record
        now = self.clock.utcnow()
        record.status = status
        record.ended_at = now
        record.last_checkpoint_at = now
        self._last_write_ms = self.clock.now_ms()

        if not self.ephemeral:
            fields: dict[str, Any] = {
                "status": status.value,
                "ended_at": now.isoformat(),
                "last_checkpoint_at": now.isoformat(),
            }
            if include_snapshot:
                fields.update(self._payload(record))
            try:
                self.store.update_session(record.id, fields)
                self.write_count += 1
            except Exception as e:
                failure = CheckpointWriteFailure(record.id, e)
                self.failed_writes += 1
                self.last_failure = failure
                logger.error(f"Finalizing as {status.value} failed: {failure}")
            if self._metric_backlog:
                self._drain_metrics()

        self._persisted = self._payload(record)
        self._dirty = False
        logger.info(f"Session {record.id} {status.value}: level={record.level} score={record.score}")
        return record
