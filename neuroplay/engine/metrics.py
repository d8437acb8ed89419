"""
Metrics Aggregator.

Tracks running accuracy and reaction time for a session and emits one
BehavioralMetric per attempt, with enough context to reconstruct the attempt
without replaying the round.
"""

from __future__ import annotations

from typing import Any

from neuroplay.engine.clock import Clock
from neuroplay.engine.models import AttemptRecord, BehavioralMetric, EngineState


class MetricsAggregator:
    """Running performance counters for one session."""

    def __init__(
        self,
        game_id: str,
        category: str,
        clock: Clock,
        session_id: str | None = None,
        actor_id: str | None = None,
    ):
        self.game_id = game_id
        self.category = category
        self.clock = clock
        self.session_id = session_id
        self.actor_id = actor_id

        self.correct_responses = 0
        self.total_responses = 0
        self.timeouts = 0
        self.reaction_times: list[int] = []
        # Totals carried over from a resumed session
        self._restored_rt_total = 0
        self._restored_rt_count = 0

        self.span = 1
        self.longest_sequence = 0

    # =========================================================================
    # Derived values
    # =========================================================================

    @property
    def accuracy(self) -> float:
        """Fraction correct, 0.0 when nothing has been answered yet."""
        if self.total_responses == 0:
            return 0.0
        return self.correct_responses / self.total_responses

    @property
    def accuracy_percentage(self) -> float:
        return round(self.accuracy * 100, 1)

    @property
    def reaction_time_total_ms(self) -> int:
        return self._restored_rt_total + sum(self.reaction_times)

    @property
    def reaction_time_count(self) -> int:
        return self._restored_rt_count + len(self.reaction_times)

    @property
    def avg_reaction_time_ms(self) -> float:
        if self.reaction_time_count == 0:
            return 0.0
        return self.reaction_time_total_ms / self.reaction_time_count

    # =========================================================================
    # Recording
    # =========================================================================

    def observe_level(self, level: int) -> None:
        """Span is the high-water mark of level, not the current level."""
        self.span = max(self.span, int(level))

    def observe_round(self, is_correct: bool, sequence_length: int) -> None:
        if is_correct:
            self.longest_sequence = max(self.longest_sequence, int(sequence_length))

    def record_attempt(self, attempt: AttemptRecord, context: dict[str, Any] | None = None) -> BehavioralMetric:
        """Fold one attempt into the counters and build its metric."""
        self.total_responses += 1
        if attempt.is_correct:
            self.correct_responses += 1
        if attempt.timed_out:
            self.timeouts += 1
        else:
            self.reaction_times.append(int(attempt.reaction_time_ms))
        self.observe_level(attempt.level)

        if attempt.timed_out:
            metric_type = "response_timeout"
        elif attempt.is_correct:
            metric_type = "correct_response"
        else:
            metric_type = "incorrect_response"

        context_data = {
            **(context or {}),
            "level": attempt.level,
            "round": attempt.round_number,
            "step": attempt.step,
            "expected": _jsonable(attempt.expected),
            "given": _jsonable(attempt.given),
            "reaction_time_ms": attempt.reaction_time_ms,
            "timed_out": attempt.timed_out,
        }
        return self._metric(metric_type, 1.0 if attempt.is_correct else 0.0, context_data)

    def summary_metrics(self) -> list[BehavioralMetric]:
        """Session-level metrics emitted when the session completes."""
        base = {
            "total_responses": self.total_responses,
            "correct_responses": self.correct_responses,
            "timeouts": self.timeouts,
        }
        return [
            self._metric("session_accuracy", self.accuracy, base),
            self._metric("avg_reaction_time", self.avg_reaction_time_ms, {**base, "unit": "ms"}),
            self._metric(
                "memory_span",
                float(self.span),
                {**base, "longest_sequence": self.longest_sequence, "unit": "level"},
            ),
        ]

    def summary(self) -> dict[str, Any]:
        return {
            "accuracy_percentage": self.accuracy_percentage,
            "total_attempts": self.total_responses,
            "correct_attempts": self.correct_responses,
            "incorrect_attempts": self.total_responses - self.correct_responses,
            "avg_reaction_time_ms": round(self.avg_reaction_time_ms, 1),
            "span": self.span,
            "longest_sequence": self.longest_sequence,
        }

    def restore(self, state: EngineState) -> None:
        """Seed counters from a rehydrated session."""
        self.total_responses = state.moves
        self.correct_responses = state.correct_moves
        self.timeouts = state.timeouts
        self.span = max(1, state.max_level, state.level)
        self.longest_sequence = state.longest_sequence
        self._restored_rt_total = state.reaction_time_total_ms
        self._restored_rt_count = state.reaction_time_count
        self.reaction_times = []

    def _metric(self, metric_type: str, value: float, context_data: dict[str, Any]) -> BehavioralMetric:
        return BehavioralMetric(
            metric_type=metric_type,
            category=self.category,
            value=float(value),
            context_data=context_data,
            game_id=self.game_id,
            timestamp=self.clock.utcnow(),
            session_id=self.session_id,
            actor_id=self.actor_id,
        )


def _jsonable(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if isinstance(value, tuple):
        return list(value)
    return value
