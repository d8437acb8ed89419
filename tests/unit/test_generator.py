"""
Unit tests for ChallengeGenerator and the built-in game profiles.

No store, no clock: generation is a pure function of level, profile and RNG.
"""

import random
from dataclasses import replace

import pytest

from neuroplay.engine.errors import UnknownGameError
from neuroplay.engine.generator import ChallengeGenerator
from neuroplay.engine.models import GameDomain, MatchMode
from neuroplay.engine.profiles import (
    COSMIC_SEQUENCE,
    CRYSTAL_PATTERN,
    MEMORIA_COLORIDA,
    MEMORY_SEQUENCE_BUILDER,
    SILABA_MAGICA,
    GameProfile,
    get_profile,
    list_profiles,
    register_profile,
)


class TestSequenceLength:
    @pytest.mark.parametrize("profile", list_profiles(), ids=lambda p: p.game_id)
    def test_non_decreasing_and_bounded(self, profile):
        lengths = [profile.sequence_length(level) for level in range(1, 40)]
        assert lengths == sorted(lengths)
        assert all(profile.min_length <= n <= profile.max_length for n in lengths)

    def test_memory_sequence_builder_curve(self):
        assert MEMORY_SEQUENCE_BUILDER.sequence_length(1) == 3
        assert MEMORY_SEQUENCE_BUILDER.sequence_length(5) == 7
        assert MEMORY_SEQUENCE_BUILDER.sequence_length(10) == 11
        assert MEMORY_SEQUENCE_BUILDER.sequence_length(20) == 12

    def test_cosmic_sequence_curve(self):
        assert COSMIC_SEQUENCE.sequence_length(1) == 3
        assert COSMIC_SEQUENCE.sequence_length(3) == 5
        assert COSMIC_SEQUENCE.sequence_length(5) == 8
        assert COSMIC_SEQUENCE.sequence_length(9) == 8

    def test_memoria_colorida_starts_at_four(self):
        assert MEMORIA_COLORIDA.sequence_length(1) == 4
        assert MEMORIA_COLORIDA.sequence_length(5) == 8

    def test_level_below_one_is_treated_as_one(self):
        assert MEMORIA_COLORIDA.sequence_length(0) == MEMORIA_COLORIDA.sequence_length(1)


class TestTiming:
    def test_show_duration_shrinks_with_level_and_is_floored(self):
        durations = [MEMORY_SEQUENCE_BUILDER.show_duration_for(level) for level in range(1, 30)]
        assert durations[0] == 960
        assert durations == sorted(durations, reverse=True)
        assert min(durations) == 600

    def test_pause_duration_floor(self):
        assert MEMORY_SEQUENCE_BUILDER.pause_duration_for(1) == 480
        assert MEMORY_SEQUENCE_BUILDER.pause_duration_for(50) == 300

    def test_input_budget_scales_with_items(self):
        assert MEMORIA_COLORIDA.input_budget_ms(4) == 6000


class TestSequenceChallenges:
    def test_items_drawn_from_palette(self, rng):
        generator = ChallengeGenerator(rng)
        challenge = generator.generate(3, MEMORIA_COLORIDA)

        assert challenge.item_count == MEMORIA_COLORIDA.sequence_length(3)
        assert set(challenge.values) <= set(MEMORIA_COLORIDA.palette)
        assert challenge.options == MEMORIA_COLORIDA.palette
        assert challenge.correct_answer == challenge.values
        assert challenge.match_mode is MatchMode.ORDERED
        assert [item.index for item in challenge.items] == list(range(challenge.item_count))

    def test_avoid_selects_a_different_instance(self):
        generator = ChallengeGenerator(random.Random(7))
        first = generator.generate(1, MEMORIA_COLORIDA)
        for _ in range(20):
            again = generator.generate(1, MEMORIA_COLORIDA, avoid=first.signature)
            assert again.signature != first.signature

    def test_avoid_with_single_possible_instance_does_not_raise(self, rng):
        mono = replace(MEMORIA_COLORIDA, game_id="mono", palette=("red",))
        generator = ChallengeGenerator(rng)
        first = generator.generate(1, mono)
        again = generator.generate(1, mono, avoid=first.signature)
        assert again.signature == first.signature


class TestPatternChallenges:
    def test_distinct_cells_matched_as_set(self, rng):
        generator = ChallengeGenerator(rng)
        challenge = generator.generate(4, CRYSTAL_PATTERN)

        assert challenge.domain is GameDomain.PATTERN
        assert challenge.match_mode is MatchMode.SET
        assert len(set(challenge.values)) == challenge.item_count
        assert challenge.correct_answer == frozenset(challenge.values)
        assert challenge.options == CRYSTAL_PATTERN.grid_cells

    def test_signature_ignores_order(self, rng):
        challenge = ChallengeGenerator(rng).generate(2, CRYSTAL_PATTERN)
        assert challenge.signature == tuple(sorted(challenge.values))


class TestSymbolicChallenges:
    @pytest.mark.parametrize("level", [1, 2, 3])
    def test_options_contain_answer_once_without_duplicates(self, level):
        generator = ChallengeGenerator(random.Random(level))
        for _ in range(25):
            challenge = generator.generate(level, SILABA_MAGICA)
            assert challenge.options.count(challenge.correct_answer) == 1
            assert len(set(challenge.options)) == len(challenge.options)
            assert len(challenge.options) == 1 + SILABA_MAGICA.distractor_count

    def test_items_are_syllables_of_the_word(self, rng):
        challenge = ChallengeGenerator(rng).generate(1, SILABA_MAGICA)
        words = dict(SILABA_MAGICA.templates[1])
        assert challenge.values == words[challenge.correct_answer]
        assert challenge.match_mode is MatchMode.CHOICE
        assert challenge.step_count == 1

    def test_missing_bucket_falls_back_to_nearest_lower(self, rng):
        challenge = ChallengeGenerator(rng).generate(7, SILABA_MAGICA)
        assert challenge.template_bucket == 3
        assert challenge.correct_answer in dict(SILABA_MAGICA.templates[3])

    def test_no_lower_bucket_uses_nearest_higher(self, rng):
        sparse = replace(SILABA_MAGICA, game_id="sparse", templates={2: SILABA_MAGICA.templates[2]})
        challenge = ChallengeGenerator(rng).generate(1, sparse)
        assert challenge.template_bucket == 2

    def test_avoid_repeats_word(self):
        generator = ChallengeGenerator(random.Random(3))
        first = generator.generate(1, SILABA_MAGICA)
        for _ in range(10):
            again = generator.generate(1, SILABA_MAGICA, avoid=first.signature)
            assert again.correct_answer != first.correct_answer


class TestProfileRegistry:
    def test_builtins_registered(self):
        ids = [p.game_id for p in list_profiles()]
        assert {
            "memory-sequence-builder",
            "cosmic-sequence",
            "memoria-colorida",
            "crystal-pattern",
            "silaba-magica",
        } <= set(ids)

    def test_unknown_game_raises(self):
        with pytest.raises(UnknownGameError):
            get_profile("does-not-exist")

    def test_symbolic_profile_without_templates_is_rejected(self):
        broken = GameProfile(game_id="broken", title="Broken", domain=GameDomain.SYMBOLIC)
        with pytest.raises(ValueError):
            register_profile(broken)

    def test_sequence_profile_without_palette_is_rejected(self):
        broken = GameProfile(game_id="broken-seq", title="Broken", domain=GameDomain.SEQUENCE)
        with pytest.raises(ValueError):
            broken.validate()
