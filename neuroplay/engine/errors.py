"""
Error taxonomy for the session engine.

Engine-internal failures (generation, timer edge cases) are recovered locally.
Store-facing failures are retried for non-critical writes (checkpoints, metrics)
and surfaced for critical ones (starting a session).
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for session engine errors."""

    pass


class StoreError(EngineError):
    """Raised by a record store when a read or write fails."""

    pass


class GenerationFallback(EngineError):
    """No templates exist for a level bucket. Recovered by falling back a bucket."""

    def __init__(self, bucket: int, message: str | None = None):
        self.bucket = bucket
        super().__init__(message or f"No templates for level bucket {bucket}")


class ConflictError(EngineError):
    """An unresolved active session already exists for this actor and game."""

    def __init__(self, actor_id: str | None, game_id: str, session_ids: list[str]):
        self.actor_id = actor_id
        self.game_id = game_id
        self.session_ids = list(session_ids)
        super().__init__(
            f"Active session(s) {', '.join(self.session_ids)} for actor={actor_id} "
            f"game={game_id} must be resumed or discarded first"
        )


class CheckpointWriteFailure(EngineError):
    """A checkpoint write failed. Transient: retried on the next tick, never fatal."""

    def __init__(self, session_id: str, cause: Exception):
        self.session_id = session_id
        self.cause = cause
        super().__init__(f"Checkpoint for session {session_id} failed: {cause}")


class StartWriteFailure(EngineError):
    """Creating the session row failed. The caller must not proceed."""

    def __init__(self, game_id: str, cause: Exception):
        self.game_id = game_id
        self.cause = cause
        super().__init__(f"Could not start a session for {game_id}: {cause}")


class SessionNotFoundError(EngineError):
    """No session row exists for the given id."""

    pass


class SessionClosedError(EngineError):
    """The session is completed or abandoned and accepts no further writes."""

    pass


class UnknownGameError(EngineError):
    """No game profile is registered under the given id."""

    pass
