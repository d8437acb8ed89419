"""
Session engine data model.

- SessionRecord: the durable session row (level, score, status, snapshot)
- Challenge / ChallengeItem: one round's stimulus, never persisted standalone
- AttemptRecord: one discrete player action, ephemeral
- BehavioralMetric: append-only observation emitted for clinical analytics
- EngineState: in-memory counters needed to continue a session
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class SessionStatus(str, Enum):
    """Durable status of a session row."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class Phase(str, Enum):
    """Phases of the round state machine."""

    IDLE = "idle"
    SHOWING = "showing"
    INPUT = "input"
    FEEDBACK = "feedback"
    GAME_OVER = "game_over"
    # Session-level terminals
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in {Phase.GAME_OVER, Phase.COMPLETED, Phase.ABANDONED}


class GameDomain(str, Enum):
    """Kind of stimulus a game presents."""

    SEQUENCE = "sequence"  # ordered colours/positions (span games)
    PATTERN = "pattern"  # set of grid cells to select
    SYMBOLIC = "symbolic"  # words/syllables with multiple-choice answers


class MatchMode(str, Enum):
    """How player actions are compared against a challenge."""

    ORDERED = "ordered"  # each action vs items[current_step]
    SET = "set"  # each action vs membership in the full target
    CHOICE = "choice"  # one action vs the correct answer


def _parse_ts(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _format_ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# =============================================================================
# Rounds
# =============================================================================


@dataclass(frozen=True)
class ChallengeItem:
    """A single stimulus with its display index."""

    index: int
    value: Any


@dataclass(frozen=True)
class Challenge:
    """One round's stimulus plus the answers offered to the player."""

    items: tuple[ChallengeItem, ...]
    options: tuple[Any, ...]
    correct_answer: Any
    level: int
    domain: GameDomain
    match_mode: MatchMode
    template_bucket: int | None = None

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def values(self) -> tuple[Any, ...]:
        return tuple(item.value for item in self.items)

    @property
    def signature(self) -> tuple[Any, ...]:
        """Identity of this instance, used to avoid immediate repetition."""
        if self.match_mode is MatchMode.CHOICE:
            return (self.correct_answer,)
        if self.match_mode is MatchMode.SET:
            return tuple(sorted(self.values))
        return self.values

    @property
    def step_count(self) -> int:
        """Number of correct actions needed to finish the round."""
        if self.match_mode is MatchMode.CHOICE:
            return 1
        return self.item_count

    def to_context(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "sequence_length": self.item_count,
            "domain": self.domain.value,
            "match_mode": self.match_mode.value,
            "template_bucket": self.template_bucket,
        }


@dataclass(frozen=True)
class AttemptRecord:
    """One discrete player action (or an input-budget timeout)."""

    reaction_time_ms: int
    is_correct: bool
    expected: Any
    given: Any
    step: int = 0
    timed_out: bool = False
    round_number: int = 0
    level: int = 1


# =============================================================================
# Metrics
# =============================================================================


@dataclass(frozen=True)
class BehavioralMetric:
    """A normalized, timestamped observation. Write-once."""

    metric_type: str
    category: str
    value: float
    context_data: dict[str, Any]
    game_id: str
    timestamp: datetime
    session_id: str | None = None
    actor_id: str | None = None

    def to_row(self) -> dict[str, Any]:
        return {
            "metric_type": self.metric_type,
            "category": self.category,
            "value": float(self.value),
            "context_data": dict(self.context_data),
            "game_id": self.game_id,
            "session_id": self.session_id,
            "actor_id": self.actor_id,
            "timestamp": _format_ts(self.timestamp),
        }


# =============================================================================
# Sessions
# =============================================================================


@dataclass
class SessionRecord:
    """Durable session row."""

    id: str
    game_id: str
    actor_id: str | None
    level: int = 1
    score: int = 0
    status: SessionStatus = SessionStatus.ACTIVE
    performance_snapshot: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)
    started_at: datetime | None = None
    last_checkpoint_at: datetime | None = None
    ended_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    @property
    def is_ephemeral(self) -> bool:
        return self.actor_id is None

    def to_row(self) -> dict[str, Any]:
        """Flat dict row with ISO timestamps, shared by every store."""
        return {
            "id": self.id,
            "game_id": self.game_id,
            "actor_id": self.actor_id,
            "level": int(self.level),
            "score": int(self.score),
            "status": self.status.value,
            "performance_snapshot": dict(self.performance_snapshot),
            "context": dict(self.context),
            "started_at": _format_ts(self.started_at),
            "last_checkpoint_at": _format_ts(self.last_checkpoint_at),
            "ended_at": _format_ts(self.ended_at),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SessionRecord":
        return cls(
            id=str(row["id"]),
            game_id=row["game_id"],
            actor_id=row.get("actor_id"),
            level=max(1, int(row.get("level") or 1)),
            score=max(0, int(row.get("score") or 0)),
            status=SessionStatus(row.get("status") or SessionStatus.ACTIVE.value),
            performance_snapshot=dict(row.get("performance_snapshot") or {}),
            context=dict(row.get("context") or {}),
            started_at=_parse_ts(row.get("started_at")),
            last_checkpoint_at=_parse_ts(row.get("last_checkpoint_at")),
            ended_at=_parse_ts(row.get("ended_at")),
        )


@dataclass
class EngineState:
    """In-memory counters needed to continue a session exactly where it stopped."""

    level: int = 1
    score: int = 0
    round_number: int = 0
    lives: int | None = None
    moves: int = 0
    correct_moves: int = 0
    timeouts: int = 0
    consecutive_correct: int = 0
    consecutive_errors: int = 0
    max_level: int = 1
    longest_sequence: int = 0
    reaction_time_total_ms: int = 0
    reaction_time_count: int = 0
    rounds_correct: int = 0
    elapsed_ms: int = 0

    # Keys stored as top-level session columns rather than in the snapshot
    TOP_LEVEL_KEYS = ("level", "score")

    def add_score(self, delta: int) -> None:
        self.score = max(0, self.score + int(delta))

    def to_snapshot(self) -> dict[str, Any]:
        data = asdict(self)
        for key in self.TOP_LEVEL_KEYS:
            data.pop(key, None)
        return data

    @classmethod
    def snapshot_fields(cls) -> set[str]:
        return {name for name in cls.__dataclass_fields__ if name not in cls.TOP_LEVEL_KEYS}
