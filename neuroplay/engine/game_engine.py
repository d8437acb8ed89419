"""
Game Engine.

Wires the session components around one explicit SessionContext:

    prepare()  -> RecoveryOffer (never auto-resumes)
    start_new() / resume() / discard()
    begin()    -> IDLE -> SHOWING
    submit() / tick()
    exit()     -> complete if the game is over, otherwise abandon
    on_unload()-> forced checkpoint, session stays resumable

Per round (at FEEDBACK entry): score, streaks, next level, metrics, termination
checks and a significant checkpoint, in that order.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from neuroplay.engine.clock import Clock, SystemClock
from neuroplay.engine.difficulty import AdaptiveDifficultyController, StreakTracker
from neuroplay.engine.errors import ConflictError, EngineError, SessionNotFoundError
from neuroplay.engine.generator import ChallengeGenerator
from neuroplay.engine.lifecycle import SessionLifecycleManager
from neuroplay.engine.metrics import MetricsAggregator
from neuroplay.engine.models import AttemptRecord, Challenge, EngineState, Phase, SessionRecord
from neuroplay.engine.phases import PhaseListener, PhaseStateMachine, RoundOutcome, RoundResult
from neuroplay.engine.profiles import GameProfile, get_profile
from neuroplay.engine.recovery import RecoveryLocator, rehydrate
from neuroplay.store.base import RecordStore


@dataclass
class RecoveryOffer:
    """Unfinished sessions the caller may resume or discard."""

    game_id: str
    candidates: list[SessionRecord] = field(default_factory=list)

    @property
    def has_candidates(self) -> bool:
        return bool(self.candidates)

    @property
    def latest(self) -> SessionRecord | None:
        return self.candidates[0] if self.candidates else None


@dataclass
class SessionContext:
    """Everything one running session needs. Created on start/resume, dropped on finish."""

    session_id: str
    lifecycle: SessionLifecycleManager
    state: EngineState
    metrics: MetricsAggregator
    streaks: StreakTracker
    machine: PhaseStateMachine
    origin_ms: int
    resumed: bool = False
    last_signature: tuple | None = None
    finish_reason: str | None = None


class GameEngine:
    """One parameterized engine for every mini-game profile."""

    def __init__(
        self,
        profile: GameProfile | str,
        store: RecordStore | None = None,
        clock: Clock | None = None,
        actor_id: str | None = None,
        settings: Any | None = None,
        rng: random.Random | None = None,
        adaptive: bool | None = None,
    ):
        if settings is None:
            from config import get_settings

            settings = get_settings()

        self.profile = get_profile(profile) if isinstance(profile, str) else profile
        self.store = store
        self.clock = clock or SystemClock()
        self.actor_id = actor_id
        self.settings = settings

        wanted = settings.adaptive_mode_default if adaptive is None else adaptive
        self.adaptive = bool(wanted and self.profile.adaptive)

        self.generator = ChallengeGenerator(rng)
        self.controller = AdaptiveDifficultyController.from_profile(self.profile)
        self.recovery = RecoveryLocator.from_settings(store, self.clock, settings) if store is not None else None

        self.context: SessionContext | None = None
        self.last_summary: dict[str, Any] | None = None
        self._listeners: list[PhaseListener] = []

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def game_id(self) -> str:
        return self.profile.game_id

    @property
    def session_id(self) -> str | None:
        return self.context.session_id if self.context else None

    @property
    def state(self) -> EngineState | None:
        return self.context.state if self.context else None

    @property
    def phase(self) -> Phase:
        return self.context.machine.phase if self.context else Phase.IDLE

    @property
    def challenge(self) -> Challenge | None:
        return self.context.machine.challenge if self.context else None

    def add_listener(self, listener: PhaseListener) -> None:
        self._listeners.append(listener)
        if self.context is not None:
            self.context.machine.add_listener(listener)

    # =========================================================================
    # Opening a session
    # =========================================================================

    def prepare(self) -> RecoveryOffer:
        """Look for resumable sessions. The caller decides what to do with them."""
        if self.recovery is None or self.actor_id is None:
            return RecoveryOffer(self.game_id)

        self.recovery.expire_stale(self.actor_id, self.game_id)
        candidates = self.recovery.find_unfinished(self.actor_id, self.game_id)
        if candidates:
            logger.info(f"{len(candidates)} unfinished {self.game_id} session(s) for {self.actor_id}")
        return RecoveryOffer(self.game_id, candidates)

    def start_new(self, initial_level: int = 1, extra_context: dict[str, Any] | None = None) -> str:
        """
        Open a fresh session.

        Raises:
            ConflictError: A session is already running, or the store holds an
                active one for this actor and game
            StartWriteFailure: The store could not create the session
        """
        self._require_closed()
        lifecycle = self._new_lifecycle()
        context = {"adaptive": self.adaptive, **(extra_context or {})}
        session_id = lifecycle.start(self.game_id, initial_level, context)

        level = lifecycle.record.level
        state = EngineState(level=level, lives=self.profile.lives, max_level=level)
        self._open(lifecycle, state, resumed=False)
        lifecycle.checkpoint(self._partial(self.context), significant=True)
        return session_id

    def resume(self, session_id: str) -> EngineState:
        """Re-open an unfinished session with its counters restored."""
        self._require_closed()
        if self.recovery is None:
            raise SessionNotFoundError(f"Session {session_id} not found (no store configured)")

        record = self.recovery.load(session_id, self._owner(session_id))
        if record.game_id != self.game_id:
            raise EngineError(f"Session {session_id} belongs to {record.game_id}, not {self.game_id}")

        state = rehydrate(record)
        if "lives" not in record.performance_snapshot:
            state.lives = self.profile.lives

        lifecycle = self._new_lifecycle()
        lifecycle.reopen(record)
        self._open(lifecycle, state, resumed=True)
        return state

    def discard(self, session_id: str) -> None:
        if self.recovery is None:
            raise SessionNotFoundError(f"Session {session_id} not found (no store configured)")
        self.recovery.discard(session_id, self._owner(session_id))

    def _owner(self, session_id: str) -> str:
        if self.actor_id is None:
            raise SessionNotFoundError(f"Session {session_id} not found (guest play has no sessions)")
        return self.actor_id

    def _require_closed(self) -> None:
        if self.context is not None:
            raise ConflictError(self.actor_id, self.game_id, [self.context.session_id])

    def _new_lifecycle(self) -> SessionLifecycleManager:
        return SessionLifecycleManager.from_settings(self.store, self.clock, self.actor_id, self.settings)

    def _open(self, lifecycle: SessionLifecycleManager, state: EngineState, resumed: bool) -> None:
        metrics = MetricsAggregator(
            game_id=self.game_id,
            category=self.profile.category,
            clock=self.clock,
            session_id=lifecycle.session_id,
            actor_id=self.actor_id,
        )
        metrics.restore(state)

        machine = PhaseStateMachine(
            profile=self.profile,
            clock=self.clock,
            on_round_result=self._on_round_result,
            on_attempt=self._on_attempt,
            status_provider=self._status,
        )
        for listener in self._listeners:
            machine.add_listener(listener)

        self.context = SessionContext(
            session_id=lifecycle.session_id,
            lifecycle=lifecycle,
            state=state,
            metrics=metrics,
            streaks=StreakTracker(state.consecutive_correct, state.consecutive_errors),
            machine=machine,
            origin_ms=self.clock.now_ms() - state.elapsed_ms,
            resumed=resumed,
        )
        self.last_summary = None

    # =========================================================================
    # Playing
    # =========================================================================

    def begin(self) -> Challenge | None:
        """Start the next round (IDLE -> SHOWING). Ignored outside IDLE."""
        ctx = self.context
        if ctx is None or ctx.machine.phase is not Phase.IDLE:
            return None

        challenge = self.generator.generate(ctx.state.level, self.profile)
        ctx.last_signature = challenge.signature
        ctx.machine.start(challenge, ctx.state.round_number + 1)
        return challenge

    def submit(self, value: Any) -> AttemptRecord | None:
        """Apply one player action. Returns None when the action is ignored."""
        ctx = self.context
        if ctx is None:
            return None
        attempt = ctx.machine.submit(value)
        self._after_transition()
        return attempt

    def tick(self) -> int:
        """Single timer entry point: phase deadlines, deferred checkpoints, time limit."""
        ctx = self.context
        if ctx is None:
            return 0
        fired = ctx.machine.tick()
        if self.context is ctx:
            ctx.state.elapsed_ms = self._elapsed(ctx)
            ctx.lifecycle.tick()
            self._after_transition()
        return fired

    def exit(self) -> dict[str, Any] | None:
        """Leave the game: complete when it is over, otherwise abandon."""
        ctx = self.context
        if ctx is None:
            return self.last_summary
        if ctx.machine.phase is Phase.GAME_OVER or ctx.finish_reason is not None:
            return self._finish(ctx)

        ctx.machine.cancel(Phase.ABANDONED)
        ctx.lifecycle.abandon()
        return self._teardown(ctx)

    def on_unload(self) -> bool:
        """Forced checkpoint; the session stays active for later recovery unless the game already ended."""
        ctx = self.context
        if ctx is None:
            return False
        if ctx.finish_reason is not None:
            self._finish(ctx)
            return True
        return ctx.lifecycle.flush_pending()

    # =========================================================================
    # Round handling
    # =========================================================================

    def _on_attempt(self, attempt: AttemptRecord, challenge: Challenge) -> None:
        ctx = self.context
        assert ctx is not None
        state = ctx.state

        metric = ctx.metrics.record_attempt(
            attempt,
            {
                **challenge.to_context(),
                "input_budget_ms": self.profile.input_budget_ms(challenge.item_count),
            },
        )
        ctx.lifecycle.emit_metric(metric)

        state.moves = ctx.metrics.total_responses
        state.correct_moves = ctx.metrics.correct_responses
        state.timeouts = ctx.metrics.timeouts
        state.reaction_time_total_ms = ctx.metrics.reaction_time_total_ms
        state.reaction_time_count = ctx.metrics.reaction_time_count
        ctx.lifecycle.checkpoint(self._partial(ctx))

    def _on_round_result(self, result: RoundResult) -> RoundOutcome:
        ctx = self.context
        assert ctx is not None
        state = ctx.state
        played_level = result.challenge.level

        state.round_number = result.round_number
        ctx.streaks.record(result.is_correct)
        state.consecutive_correct = ctx.streaks.consecutive_correct
        state.consecutive_errors = ctx.streaks.consecutive_errors

        if result.is_correct:
            state.add_score(self.profile.success_reward(played_level))
            state.rounds_correct += 1
            ctx.metrics.observe_round(True, result.challenge.item_count)
            state.longest_sequence = ctx.metrics.longest_sequence
        else:
            state.add_score(-self.profile.failure_penalty)
            if state.lives is not None:
                state.lives = max(0, state.lives - 1)

        state.level = self.controller.next_level(
            played_level,
            state.consecutive_correct,
            state.consecutive_errors,
            self.adaptive,
        )
        state.max_level = max(state.max_level, state.level)
        ctx.metrics.observe_level(state.level)
        state.elapsed_ms = self._elapsed(ctx)

        ctx.finish_reason = self._termination_reason(ctx, result, played_level)
        ctx.lifecycle.checkpoint(self._partial(ctx), significant=True)

        logger.debug(
            f"Round {result.round_number} {'ok' if result.is_correct else 'miss'}: "
            f"level {played_level}->{state.level} score={state.score} lives={state.lives}"
        )

        if ctx.finish_reason is not None:
            return RoundOutcome(next_challenge=None)

        next_challenge = self.generator.generate(state.level, self.profile, avoid=ctx.last_signature)
        ctx.last_signature = next_challenge.signature
        return RoundOutcome(next_challenge=next_challenge)

    def _termination_reason(self, ctx: SessionContext, result: RoundResult, played_level: int) -> str | None:
        state = ctx.state
        profile = self.profile
        if state.lives is not None and state.lives <= 0:
            return "out_of_lives"
        if profile.total_rounds is not None and state.round_number >= profile.total_rounds:
            return "rounds_complete"
        if profile.time_limit_ms is not None and state.elapsed_ms >= profile.time_limit_ms:
            return "time_limit"
        if profile.finish_at_max_level and result.is_correct and played_level >= profile.max_level:
            return "max_level"
        return None

    def _after_transition(self) -> None:
        ctx = self.context
        if ctx is None:
            return
        if ctx.machine.phase is Phase.GAME_OVER:
            self._finish(ctx)
            return

        limit = self.profile.time_limit_ms
        if limit is not None and not ctx.machine.phase.is_terminal and self._elapsed(ctx) >= limit:
            ctx.finish_reason = "time_limit"
            self._finish(ctx)

    # =========================================================================
    # Finishing
    # =========================================================================

    def _finish(self, ctx: SessionContext) -> dict[str, Any]:
        ctx.state.elapsed_ms = self._elapsed(ctx)
        for metric in ctx.metrics.summary_metrics():
            ctx.lifecycle.emit_metric(metric)
        final = self._partial(ctx)
        final["finish_reason"] = ctx.finish_reason or "game_over"
        ctx.lifecycle.complete(final)
        ctx.machine.cancel(Phase.COMPLETED)
        return self._teardown(ctx)

    def _teardown(self, ctx: SessionContext) -> dict[str, Any]:
        summary = {
            "session_id": ctx.session_id,
            "game_id": self.game_id,
            "status": ctx.lifecycle.status.value if ctx.lifecycle.status else None,
            "finish_reason": ctx.finish_reason,
            "level": ctx.state.level,
            "max_level": ctx.state.max_level,
            "score": ctx.state.score,
            "rounds": ctx.state.round_number,
            "rounds_correct": ctx.state.rounds_correct,
            "lives": ctx.state.lives,
            **ctx.metrics.summary(),
        }
        self.context = None
        self.last_summary = summary
        return summary

    # =========================================================================
    # Helpers
    # =========================================================================

    def _elapsed(self, ctx: SessionContext) -> int:
        return max(0, self.clock.now_ms() - ctx.origin_ms)

    def _partial(self, ctx: SessionContext) -> dict[str, Any]:
        state = ctx.state
        return {
            "level": state.level,
            "score": state.score,
            **state.to_snapshot(),
            "span": ctx.metrics.span,
            "accuracy": round(ctx.metrics.accuracy, 4),
        }

    def _status(self) -> dict[str, Any]:
        ctx = self.context
        if ctx is None:
            return {}
        return {
            "level": ctx.state.level,
            "score": ctx.state.score,
            "lives": ctx.state.lives,
            "round": ctx.state.round_number,
            "accuracy_percentage": ctx.metrics.accuracy_percentage,
        }
