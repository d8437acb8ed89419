"""
Unit tests for GameEngine: the full round loop against InMemoryRecordStore.

memoria-colorida at level 1 shows 4 items (750 ms + 400 ms pause each) and
gives 6000 ms to answer; success pays 10 x level, failure costs 5 points and
one of 3 lives.
"""

import random
from dataclasses import replace

import pytest

from neuroplay.engine.errors import ConflictError, SessionNotFoundError
from neuroplay.engine.game_engine import GameEngine
from neuroplay.engine.models import Phase
from neuroplay.engine.profiles import MEMORIA_COLORIDA


def make_engine(store, clock, settings, actor_id="actor-1", profile=MEMORIA_COLORIDA, seed=42):
    return GameEngine(
        profile,
        store=store,
        clock=clock,
        actor_id=actor_id,
        settings=settings,
        rng=random.Random(seed),
    )


def run_timers(engine, clock, phase):
    """Advance the clock through every deadline while the engine stays in `phase`."""
    while engine.context is not None and engine.phase is phase:
        clock.advance(engine.context.machine.time_remaining_ms())
        engine.tick()


def play_correct_round(engine, clock):
    run_timers(engine, clock, Phase.SHOWING)
    for value in engine.challenge.values:
        clock.advance(200)
        engine.submit(value)


def play_timeout_round(engine, clock):
    run_timers(engine, clock, Phase.SHOWING)
    run_timers(engine, clock, Phase.INPUT)
    run_timers(engine, clock, Phase.FEEDBACK)


@pytest.fixture
def engine(store, clock, settings):
    return make_engine(store, clock, settings)


class TestRoundLoop:
    def test_correct_round_at_level_one(self, engine, store, clock):
        session_id = engine.start_new()
        challenge = engine.begin()
        assert challenge.item_count == 4
        assert engine.phase is Phase.SHOWING

        play_correct_round(engine, clock)

        assert engine.phase is Phase.FEEDBACK
        assert engine.state.score == 10
        assert engine.state.consecutive_correct == 1
        assert engine.state.level == 2
        row = store.sessions[session_id]
        assert row["score"] == 10
        assert row["level"] == 2
        assert row["performance_snapshot"]["round_number"] == 1

        run_timers(engine, clock, Phase.FEEDBACK)
        assert engine.phase is Phase.SHOWING
        assert engine.context.machine.round_number == 2
        assert engine.challenge.item_count == 5

    def test_input_ignored_while_showing(self, engine, clock):
        engine.start_new()
        engine.begin()
        clock.advance(100)
        assert engine.submit("red") is None

    def test_timeout_costs_points_and_a_life(self, engine, clock):
        engine.start_new()
        engine.begin()
        run_timers(engine, clock, Phase.SHOWING)
        run_timers(engine, clock, Phase.INPUT)

        assert engine.phase is Phase.FEEDBACK
        assert engine.state.score == 0
        assert engine.state.lives == 2
        assert engine.state.consecutive_errors == 1

    def test_attempt_metrics_are_emitted(self, engine, store, clock):
        engine.start_new()
        engine.begin()
        play_correct_round(engine, clock)

        types = [m["metric_type"] for m in store.metrics]
        assert types == ["correct_response"] * 4
        assert store.metrics[0]["context_data"]["sequence_length"] == 4
        assert store.metrics[0]["context_data"]["input_budget_ms"] == 6000

    def test_incorrect_round_regenerates_different_instance(self, engine, clock):
        engine.start_new()
        first = engine.begin()
        run_timers(engine, clock, Phase.SHOWING)
        wrong = next(c for c in first.options if c != first.values[0])
        engine.submit(wrong)
        run_timers(engine, clock, Phase.FEEDBACK)

        assert engine.challenge.level == first.level
        assert engine.challenge.signature != first.signature


class TestScoring:
    def test_fixed_level_successes_accumulate(self, store, clock, settings):
        fixed = replace(MEMORIA_COLORIDA, game_id="fixed-colorida", adaptive=False, max_level=2)
        engine = make_engine(store, clock, settings, profile=fixed)
        engine.start_new(initial_level=2)
        engine.begin()

        for _ in range(3):
            play_correct_round(engine, clock)
            run_timers(engine, clock, Phase.FEEDBACK)

        assert engine.state.level == 2
        assert engine.state.score == 3 * 10 * 2

    def test_score_never_negative(self, engine, clock):
        engine.start_new()
        engine.begin()
        play_timeout_round(engine, clock)
        play_timeout_round(engine, clock)
        assert engine.state.score == 0


class TestTermination:
    def test_out_of_lives_completes_session(self, engine, store, clock):
        session_id = engine.start_new()
        engine.begin()
        for _ in range(3):
            play_timeout_round(engine, clock)

        assert engine.context is None
        assert engine.last_summary["status"] == "completed"
        assert engine.last_summary["finish_reason"] == "out_of_lives"
        row = store.sessions[session_id]
        assert row["status"] == "completed"
        assert row["performance_snapshot"]["finish_reason"] == "out_of_lives"
        summary_types = {m["metric_type"] for m in store.metrics}
        assert {"session_accuracy", "avg_reaction_time", "memory_span"} <= summary_types

    def test_time_limit_ends_mid_round(self, store, clock, settings):
        timed = replace(MEMORIA_COLORIDA, game_id="timed-colorida", time_limit_ms=3000)
        engine = make_engine(store, clock, settings, profile=timed)
        engine.start_new()
        engine.begin()

        clock.advance(3000)
        engine.tick()

        assert engine.context is None
        assert engine.last_summary["finish_reason"] == "time_limit"

    def test_exit_mid_round_abandons(self, engine, store, clock):
        session_id = engine.start_new()
        engine.begin()
        clock.advance(500)

        summary = engine.exit()

        assert summary["status"] == "abandoned"
        assert store.sessions[session_id]["status"] == "abandoned"
        assert engine.context is None
        assert engine.tick() == 0

    def test_exit_during_final_feedback_completes(self, engine, store, clock):
        session_id = engine.start_new()
        engine.begin()
        play_timeout_round(engine, clock)
        play_timeout_round(engine, clock)
        run_timers(engine, clock, Phase.SHOWING)
        run_timers(engine, clock, Phase.INPUT)
        assert engine.phase is Phase.FEEDBACK
        assert engine.state.lives == 0

        summary = engine.exit()

        assert summary["status"] == "completed"
        assert summary["finish_reason"] == "out_of_lives"
        assert store.sessions[session_id]["status"] == "completed"
        summary_types = {m["metric_type"] for m in store.metrics}
        assert "session_accuracy" in summary_types

    def test_unload_during_final_feedback_completes(self, engine, store, clock):
        session_id = engine.start_new()
        engine.begin()
        for _ in range(2):
            play_timeout_round(engine, clock)
        run_timers(engine, clock, Phase.SHOWING)
        run_timers(engine, clock, Phase.INPUT)

        assert engine.on_unload() is True
        assert engine.context is None
        assert store.sessions[session_id]["status"] == "completed"


class TestRecoveryFlow:
    def test_prepare_offers_but_never_resumes(self, store, clock, settings):
        crashed = make_engine(store, clock, settings)
        session_id = crashed.start_new()
        crashed.begin()
        play_correct_round(crashed, clock)
        clock.advance(60_000)

        engine = make_engine(store, clock, settings)
        offer = engine.prepare()

        assert offer.has_candidates
        assert offer.latest.id == session_id
        assert engine.context is None

    def test_resume_continues_where_it_stopped(self, store, clock, settings):
        crashed = make_engine(store, clock, settings)
        session_id = crashed.start_new()
        crashed.begin()
        play_correct_round(crashed, clock)
        clock.advance(60_000)

        engine = make_engine(store, clock, settings)
        state = engine.resume(engine.prepare().latest.id)

        assert engine.session_id == session_id
        assert (state.score, state.level, state.round_number, state.lives) == (10, 2, 1, 3)

        challenge = engine.begin()
        assert challenge.level == 2
        assert engine.context.machine.round_number == 2

    def test_resume_restores_timeout_count(self, store, clock, settings):
        crashed = make_engine(store, clock, settings)
        session_id = crashed.start_new()
        crashed.begin()
        play_timeout_round(crashed, clock)
        clock.advance(60_000)

        engine = make_engine(store, clock, settings)
        state = engine.resume(session_id)

        assert state.timeouts == 1
        assert engine.context.metrics.timeouts == 1

    def test_other_actor_cannot_resume_or_discard(self, store, clock, settings):
        session_id = make_engine(store, clock, settings, actor_id="alice").start_new()
        clock.advance(60_000)

        other = make_engine(store, clock, settings, actor_id="bob")
        with pytest.raises(SessionNotFoundError):
            other.resume(session_id)
        with pytest.raises(SessionNotFoundError):
            other.discard(session_id)
        with pytest.raises(SessionNotFoundError):
            make_engine(store, clock, settings, actor_id=None).resume(session_id)

        assert store.sessions[session_id]["status"] == "active"
        assert other.context is None

    def test_start_new_with_unresolved_session_conflicts(self, store, clock, settings):
        make_engine(store, clock, settings).start_new()
        with pytest.raises(ConflictError):
            make_engine(store, clock, settings).start_new()

    def test_discard_then_start_new(self, store, clock, settings):
        crashed = make_engine(store, clock, settings)
        old = crashed.start_new()
        clock.advance(60_000)

        engine = make_engine(store, clock, settings)
        engine.discard(engine.prepare().latest.id)
        new = engine.start_new()

        assert store.sessions[old]["status"] == "abandoned"
        assert new != old

    def test_on_unload_flushes_pending_progress(self, engine, store, clock):
        session_id = engine.start_new()
        first = engine.begin()
        run_timers(engine, clock, Phase.SHOWING)
        engine.submit(first.values[0])

        assert store.sessions[session_id]["performance_snapshot"]["moves"] == 0
        assert engine.on_unload() is True
        assert store.sessions[session_id]["performance_snapshot"]["moves"] == 1
        assert store.sessions[session_id]["status"] == "active"


class TestEphemeralMode:
    def test_guest_play_touches_no_store(self, store, clock, settings):
        engine = make_engine(store, clock, settings, actor_id=None)
        engine.start_new()
        engine.begin()
        play_correct_round(engine, clock)

        assert engine.state.score == 10
        assert store.sessions == {}
        assert store.metrics == []
        assert engine.prepare().has_candidates is False
