"""
Phase State Machine.

Drives one round at a time through:

    IDLE -> SHOWING -> INPUT -> FEEDBACK -> (SHOWING | GAME_OVER)

Transitions are edge-triggered: either a timer deadline elapses (observed via
tick(), the single timer entry point) or the player acts (submit()). All time
is read from an injected Clock, so rounds can be driven without wall-clock waits.

Timing per round:
- SHOWING: each item is visible for show_duration_for(level), then hidden for
  pause_duration_for(level). The pause after the last item is the lead-in to
  INPUT. Player input is ignored.
- INPUT: budget = item_count * per_item_input_ms. Expiry is an incorrect
  attempt with timed_out=True.
- FEEDBACK: fixed feedback_duration_ms, no input. Round side effects run at
  entry through on_round_result, not at exit.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from neuroplay.engine.clock import Clock
from neuroplay.engine.models import AttemptRecord, Challenge, ChallengeItem, MatchMode, Phase
from neuroplay.engine.profiles import GameProfile


@dataclass(frozen=True)
class RoundResult:
    """Outcome of one round, delivered at FEEDBACK entry."""

    challenge: Challenge
    round_number: int
    is_correct: bool
    timed_out: bool
    attempts: tuple[AttemptRecord, ...]


@dataclass(frozen=True)
class RoundOutcome:
    """What the engine wants after a round. None means the game is over."""

    next_challenge: Challenge | None = None


@dataclass(frozen=True)
class PhaseEvent:
    """Notification sent to the presentation layer on every transition."""

    phase: Phase
    previous: Phase
    at_ms: int
    round_number: int
    challenge: Challenge | None = None
    visible_item: ChallengeItem | None = None
    attempt: AttemptRecord | None = None
    is_correct: bool | None = None
    status: dict[str, Any] = field(default_factory=dict)


PhaseListener = Callable[[PhaseEvent], None]
AttemptHandler = Callable[[AttemptRecord, Challenge], None]
RoundResultHandler = Callable[[RoundResult], RoundOutcome]


class PhaseStateMachine:
    """Timer-driven round runner for one session."""

    def __init__(
        self,
        profile: GameProfile,
        clock: Clock,
        on_round_result: RoundResultHandler,
        on_attempt: AttemptHandler | None = None,
        status_provider: Callable[[], dict[str, Any]] | None = None,
    ):
        self.profile = profile
        self.clock = clock
        self._on_round_result = on_round_result
        self._on_attempt = on_attempt
        self._status_provider = status_provider
        self._listeners: list[PhaseListener] = []

        self._phase = Phase.IDLE
        self._challenge: Challenge | None = None
        self._next_challenge: Challenge | None = None
        self._round_number = 0
        self._deadline_ms: int | None = None

        # SHOWING
        self._reveal_index = 0
        self._reveal_visible = False

        # INPUT
        self._step = 0
        self._selected: set[Any] = set()
        self._attempts: list[AttemptRecord] = []
        self._input_started_ms = 0
        self._last_action_ms = 0

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def challenge(self) -> Challenge | None:
        return self._challenge

    @property
    def round_number(self) -> int:
        return self._round_number

    @property
    def deadline_ms(self) -> int | None:
        return self._deadline_ms

    @property
    def current_step(self) -> int:
        return self._step

    @property
    def input_budget_ms(self) -> int:
        if self._challenge is None:
            return 0
        return self.profile.input_budget_ms(self._challenge.item_count)

    def time_remaining_ms(self) -> int:
        if self._deadline_ms is None:
            return 0
        return max(0, self._deadline_ms - self.clock.now_ms())

    def add_listener(self, listener: PhaseListener) -> None:
        self._listeners.append(listener)

    # =========================================================================
    # Entry points
    # =========================================================================

    def start(self, challenge: Challenge, round_number: int = 1) -> None:
        """IDLE -> SHOWING on an explicit start action."""
        if self._phase is not Phase.IDLE:
            logger.debug(f"start() ignored in phase {self._phase.value}")
            return
        self._round_number = max(1, int(round_number))
        self._begin_showing(challenge, self.clock.now_ms())

    def tick(self) -> int:
        """
        Fire every timer that has elapsed by now.

        Deadlines are chained from the previous deadline rather than from the
        moment tick() happens to be called, so a late tick catches up without
        stretching the schedule.

        Returns:
            Number of timer transitions processed
        """
        now = self.clock.now_ms()
        fired = 0
        while self._deadline_ms is not None and now >= self._deadline_ms:
            due = self._deadline_ms
            self._deadline_ms = None
            self._on_deadline(due)
            fired += 1
        return fired

    def submit(self, value: Any) -> AttemptRecord | None:
        """
        Apply one player action.

        Elapsed timers are processed first, so an action arriving after the
        input budget expired is ignored rather than scored.

        Returns:
            The AttemptRecord produced, or None if the action was ignored
        """
        self.tick()
        if self._phase is not Phase.INPUT or self._challenge is None:
            return None

        challenge = self._challenge
        now = self.clock.now_ms()
        reaction_ms = max(0, now - self._last_action_ms)

        if challenge.match_mode is MatchMode.SET:
            if value in self._selected:
                return None
            self._selected.add(value)
            is_correct = value in challenge.correct_answer
            expected: Any = challenge.correct_answer
            done = is_correct and self._selected >= set(challenge.correct_answer)
        elif challenge.match_mode is MatchMode.CHOICE:
            expected = challenge.correct_answer
            is_correct = value == expected
            done = is_correct
        else:
            expected = challenge.items[self._step].value
            is_correct = value == expected
            done = is_correct and self._step + 1 >= challenge.item_count

        self._last_action_ms = now
        attempt = self._record_attempt(
            reaction_ms=reaction_ms,
            is_correct=is_correct,
            expected=expected,
            given=value,
        )
        if is_correct:
            self._step += 1

        if not is_correct:
            self._enter_feedback(False, now, timed_out=False)
        elif done:
            self._enter_feedback(True, now, timed_out=False)
        return attempt

    def cancel(self, terminal: Phase = Phase.ABANDONED) -> None:
        """Cancel every pending timer and park in a session-level terminal phase."""
        self._deadline_ms = None
        self._next_challenge = None
        self._transition(terminal, self.clock.now_ms())

    # =========================================================================
    # Internals
    # =========================================================================

    def _on_deadline(self, at_ms: int) -> None:
        if self._phase is Phase.SHOWING:
            self._advance_reveal(at_ms)
        elif self._phase is Phase.INPUT:
            self._on_input_timeout(at_ms)
        elif self._phase is Phase.FEEDBACK:
            self._leave_feedback(at_ms)

    def _begin_showing(self, challenge: Challenge, at_ms: int) -> None:
        self._challenge = challenge
        self._reveal_index = 0
        self._reveal_visible = True
        self._step = 0
        self._selected = set()
        self._attempts = []
        self._deadline_ms = at_ms + self.profile.show_duration_for(challenge.level)
        self._transition(Phase.SHOWING, at_ms, visible_item=challenge.items[0] if challenge.items else None)

    def _advance_reveal(self, at_ms: int) -> None:
        challenge = self._challenge
        assert challenge is not None
        level = challenge.level

        if self._reveal_visible:
            # Hide the current item, then pause
            self._reveal_visible = False
            self._deadline_ms = at_ms + self.profile.pause_duration_for(level)
            self._notify(Phase.SHOWING, Phase.SHOWING, at_ms)
            return

        self._reveal_index += 1
        if self._reveal_index < challenge.item_count:
            self._reveal_visible = True
            self._deadline_ms = at_ms + self.profile.show_duration_for(level)
            self._notify(
                Phase.SHOWING,
                Phase.SHOWING,
                at_ms,
                visible_item=challenge.items[self._reveal_index],
            )
            return

        self._begin_input(at_ms)

    def _begin_input(self, at_ms: int) -> None:
        self._input_started_ms = at_ms
        self._last_action_ms = at_ms
        self._deadline_ms = at_ms + self.input_budget_ms
        self._transition(Phase.INPUT, at_ms)

    def _on_input_timeout(self, at_ms: int) -> None:
        challenge = self._challenge
        assert challenge is not None
        if challenge.match_mode is MatchMode.ORDERED:
            expected: Any = challenge.items[self._step].value
        else:
            expected = challenge.correct_answer
        self._record_attempt(
            reaction_ms=max(0, at_ms - self._last_action_ms),
            is_correct=False,
            expected=expected,
            given=None,
            timed_out=True,
        )
        logger.debug(f"Round {self._round_number}: input budget expired at step {self._step}")
        self._enter_feedback(False, at_ms, timed_out=True)

    def _record_attempt(
        self,
        reaction_ms: int,
        is_correct: bool,
        expected: Any,
        given: Any,
        timed_out: bool = False,
    ) -> AttemptRecord:
        challenge = self._challenge
        assert challenge is not None
        attempt = AttemptRecord(
            reaction_time_ms=int(reaction_ms),
            is_correct=is_correct,
            expected=expected,
            given=given,
            step=self._step,
            timed_out=timed_out,
            round_number=self._round_number,
            level=challenge.level,
        )
        self._attempts.append(attempt)
        if self._on_attempt is not None:
            self._on_attempt(attempt, challenge)
        return attempt

    def _enter_feedback(self, is_correct: bool, at_ms: int, timed_out: bool) -> None:
        challenge = self._challenge
        assert challenge is not None
        self._phase = Phase.FEEDBACK
        self._deadline_ms = at_ms + self.profile.feedback_duration_ms

        result = RoundResult(
            challenge=challenge,
            round_number=self._round_number,
            is_correct=is_correct,
            timed_out=timed_out,
            attempts=tuple(self._attempts),
        )
        outcome = self._on_round_result(result)
        self._next_challenge = outcome.next_challenge

        self._notify(
            Phase.FEEDBACK,
            Phase.INPUT,
            at_ms,
            attempt=self._attempts[-1] if self._attempts else None,
            is_correct=is_correct,
        )

    def _leave_feedback(self, at_ms: int) -> None:
        next_challenge = self._next_challenge
        self._next_challenge = None
        if next_challenge is None:
            self._transition(Phase.GAME_OVER, at_ms)
            return
        self._round_number += 1
        self._begin_showing(next_challenge, at_ms)

    def _transition(self, phase: Phase, at_ms: int, **extra: Any) -> None:
        previous = self._phase
        self._phase = phase
        self._notify(phase, previous, at_ms, **extra)

    def _notify(self, phase: Phase, previous: Phase, at_ms: int, **extra: Any) -> None:
        if not self._listeners:
            return
        status = self._status_provider() if self._status_provider else {}
        event = PhaseEvent(
            phase=phase,
            previous=previous,
            at_ms=at_ms,
            round_number=self._round_number,
            challenge=self._challenge,
            status=status,
            **extra,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:  # Presentation errors must not stall the round
                logger.warning(f"Phase listener failed on {phase.value}: {e}")
