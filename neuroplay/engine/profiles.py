"""
Game Profiles.

One parameterized engine runs every mini-game; a GameProfile carries what used
to differ between them: timing constants, scoring constants, the difficulty
curve and the stimulus set.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from neuroplay.engine.errors import UnknownGameError
from neuroplay.engine.models import GameDomain


@dataclass(frozen=True)
class GameProfile:
    """Per-game constants for the session engine."""

    game_id: str
    title: str
    domain: GameDomain
    category: str = "working_memory"

    # Difficulty curve
    base_length: int = 3
    length_per_level: float = 1.0
    min_length: int = 2
    max_length: int = 8
    max_level: int = 10
    adaptive: bool = True
    level_step: int = 1
    errors_before_level_down: int = 1

    # Timing (milliseconds)
    show_duration_ms: int = 800
    show_decrement_ms: int = 0
    min_show_duration_ms: int = 400
    pause_duration_ms: int = 400
    pause_decrement_ms: int = 0
    min_pause_duration_ms: int = 200
    per_item_input_ms: int = 1500
    feedback_duration_ms: int = 2000

    # Scoring
    base_reward: int = 10
    failure_penalty: int = 5

    # Termination
    lives: int | None = None
    total_rounds: int | None = None
    time_limit_ms: int | None = None
    finish_at_max_level: bool = False

    # Stimuli
    palette: tuple[str, ...] = ()
    grid_size: int = 4
    templates: dict[int, tuple[tuple[str, tuple[str, ...]], ...]] = field(default_factory=dict)
    bucket_size: int = 1
    distractor_count: int = 3

    def sequence_length(self, level: int) -> int:
        """Monotonic, bounded length: clamp(base + f(level), min, max)."""
        level = max(1, int(level))
        raw = self.base_length + math.floor(self.length_per_level * level)
        return max(self.min_length, min(self.max_length, raw))

    def show_duration_for(self, level: int) -> int:
        shrink = self.show_decrement_ms * max(1, int(level))
        return max(self.min_show_duration_ms, self.show_duration_ms - shrink)

    def pause_duration_for(self, level: int) -> int:
        shrink = self.pause_decrement_ms * max(1, int(level))
        return max(self.min_pause_duration_ms, self.pause_duration_ms - shrink)

    def input_budget_ms(self, item_count: int) -> int:
        return int(item_count) * self.per_item_input_ms

    def bucket_for(self, level: int) -> int:
        return 1 + (max(1, int(level)) - 1) // max(1, self.bucket_size)

    def success_reward(self, level: int) -> int:
        return self.base_reward * max(1, int(level))

    @property
    def grid_cells(self) -> tuple[int, ...]:
        return tuple(range(self.grid_size * self.grid_size))

    def validate(self) -> None:
        """Raise ValueError for a profile the engine cannot run."""
        if self.min_length < 1 or self.min_length > self.max_length:
            raise ValueError(f"{self.game_id}: invalid length bounds {self.min_length}..{self.max_length}")
        if self.max_level < 1:
            raise ValueError(f"{self.game_id}: max_level must be >= 1")
        if self.errors_before_level_down < 1:
            raise ValueError(f"{self.game_id}: errors_before_level_down must be >= 1")
        if self.per_item_input_ms <= 0 or self.feedback_duration_ms < 0:
            raise ValueError(f"{self.game_id}: timing constants must be positive")
        if self.domain is GameDomain.SEQUENCE and not self.palette:
            raise ValueError(f"{self.game_id}: sequence games need a palette")
        if self.domain is GameDomain.PATTERN and len(self.grid_cells) < self.max_length:
            raise ValueError(f"{self.game_id}: grid too small for max_length")
        if self.domain is GameDomain.SYMBOLIC and not any(self.templates.values()):
            raise ValueError(f"{self.game_id}: symbolic games need templates")

    def describe(self) -> dict[str, Any]:
        return {
            "game_id": self.game_id,
            "title": self.title,
            "domain": self.domain.value,
            "category": self.category,
            "max_level": self.max_level,
            "adaptive": self.adaptive,
            "lives": self.lives,
            "total_rounds": self.total_rounds,
        }


# =============================================================================
# Built-in profiles
# =============================================================================

COLOR_PALETTE = ("red", "blue", "green", "yellow", "purple", "orange")

SYLLABLE_WORDS: dict[int, tuple[tuple[str, tuple[str, ...]], ...]] = {
    1: (
        ("CASA", ("CA", "SA")),
        ("GATO", ("GA", "TO")),
        ("BOLA", ("BO", "LA")),
        ("DOCE", ("DO", "CE")),
    ),
    2: (
        ("ESCOLA", ("ES", "CO", "LA")),
        ("FAMÍLIA", ("FA", "MÍ", "LIA")),
        ("CRIANÇA", ("CRI", "AN", "ÇA")),
        ("LIVRO", ("LI", "VRO")),
    ),
    3: (
        ("BIBLIOTECA", ("BI", "BLI", "O", "TE", "CA")),
        ("AMIZADE", ("A", "MI", "ZA", "DE")),
        ("AVENTURA", ("A", "VEN", "TU", "RA")),
        ("NATUREZA", ("NA", "TU", "RE", "ZA")),
    ),
}

MEMORY_SEQUENCE_BUILDER = GameProfile(
    game_id="memory-sequence-builder",
    title="Sequência Mágica",
    domain=GameDomain.SEQUENCE,
    category="working_memory",
    base_length=3,
    length_per_level=0.8,
    min_length=3,
    max_length=12,
    max_level=20,
    show_duration_ms=1000,
    show_decrement_ms=40,
    min_show_duration_ms=600,
    pause_duration_ms=500,
    pause_decrement_ms=20,
    min_pause_duration_ms=300,
    feedback_duration_ms=2000,
    base_reward=10,
    failure_penalty=5,
    lives=3,
    total_rounds=8,
    palette=COLOR_PALETTE,
)

COSMIC_SEQUENCE = GameProfile(
    game_id="cosmic-sequence",
    title="Cosmic Sequence",
    domain=GameDomain.SEQUENCE,
    category="sequential_attention",
    base_length=2,
    length_per_level=1.2,
    min_length=3,
    max_length=8,
    max_level=20,
    show_duration_ms=1000,
    show_decrement_ms=40,
    min_show_duration_ms=750,
    pause_duration_ms=800,
    pause_decrement_ms=35,
    min_pause_duration_ms=550,
    feedback_duration_ms=1500,
    base_reward=50,
    failure_penalty=0,
    lives=1,
    palette=("green", "purple", "orange"),
)

MEMORIA_COLORIDA = GameProfile(
    game_id="memoria-colorida",
    title="Memória Colorida",
    domain=GameDomain.SEQUENCE,
    category="working_memory",
    base_length=3,
    length_per_level=1.0,
    min_length=3,
    max_length=8,
    max_level=10,
    errors_before_level_down=2,
    show_duration_ms=800,
    show_decrement_ms=50,
    min_show_duration_ms=400,
    pause_duration_ms=400,
    min_pause_duration_ms=200,
    feedback_duration_ms=1500,
    base_reward=10,
    failure_penalty=5,
    lives=3,
    palette=COLOR_PALETTE,
)

CRYSTAL_PATTERN = GameProfile(
    game_id="crystal-pattern",
    title="Crystal Pattern",
    domain=GameDomain.PATTERN,
    category="visuospatial_memory",
    base_length=2,
    length_per_level=1.0,
    min_length=3,
    max_length=10,
    max_level=15,
    show_duration_ms=700,
    show_decrement_ms=20,
    min_show_duration_ms=400,
    pause_duration_ms=300,
    min_pause_duration_ms=200,
    per_item_input_ms=2000,
    feedback_duration_ms=1500,
    base_reward=15,
    failure_penalty=5,
    lives=3,
    grid_size=4,
)

SILABA_MAGICA = GameProfile(
    game_id="silaba-magica",
    title="Sílaba Mágica",
    domain=GameDomain.SYMBOLIC,
    category="phonological_processing",
    min_length=1,
    max_length=6,
    max_level=10,
    show_duration_ms=900,
    min_show_duration_ms=900,
    pause_duration_ms=300,
    per_item_input_ms=3000,
    feedback_duration_ms=2000,
    base_reward=20,
    failure_penalty=0,
    total_rounds=20,
    templates=SYLLABLE_WORDS,
    bucket_size=1,
    distractor_count=3,
)


_PROFILES: dict[str, GameProfile] = {}


def register_profile(profile: GameProfile) -> GameProfile:
    """Validate and register a profile under its game id."""
    profile.validate()
    _PROFILES[profile.game_id] = profile
    return profile


def get_profile(game_id: str) -> GameProfile:
    try:
        return _PROFILES[game_id]
    except KeyError:
        raise UnknownGameError(f"Unknown game: {game_id}") from None


def list_profiles() -> list[GameProfile]:
    return sorted(_PROFILES.values(), key=lambda p: p.game_id)


for _profile in (MEMORY_SEQUENCE_BUILDER, COSMIC_SEQUENCE, MEMORIA_COLORIDA, CRYSTAL_PATTERN, SILABA_MAGICA):
    register_profile(_profile)
