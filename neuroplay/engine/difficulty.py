"""
Adaptive Difficulty Controller.

Consumes streak signals and emits the next level:
- Adaptive mode: two consecutive correct rounds jump +2, a single correct
  round +1; enough consecutive errors (per profile threshold) drop exactly 1.
- Fixed mode: +level_step per success, never decreases.
- Level is always within [1, max_level].
"""

from __future__ import annotations

from dataclasses import dataclass

from neuroplay.engine.profiles import GameProfile


@dataclass
class StreakTracker:
    """Consecutive-outcome counters. Each resets on the outcome that breaks it."""

    consecutive_correct: int = 0
    consecutive_errors: int = 0

    def record(self, is_correct: bool) -> None:
        if is_correct:
            self.consecutive_correct += 1
            self.consecutive_errors = 0
        else:
            self.consecutive_errors += 1
            self.consecutive_correct = 0

    def reset(self) -> None:
        self.consecutive_correct = 0
        self.consecutive_errors = 0


class AdaptiveDifficultyController:
    """Level policy bound to one game's limits."""

    def __init__(
        self,
        max_level: int = 10,
        level_step: int = 1,
        errors_before_level_down: int = 1,
    ):
        if errors_before_level_down < 1:
            raise ValueError("errors_before_level_down must be >= 1")
        self.max_level = max(1, int(max_level))
        self.level_step = max(1, int(level_step))
        self.errors_before_level_down = int(errors_before_level_down)

    @classmethod
    def from_profile(cls, profile: GameProfile) -> "AdaptiveDifficultyController":
        return cls(
            max_level=profile.max_level,
            level_step=profile.level_step,
            errors_before_level_down=profile.errors_before_level_down,
        )

    def next_level(
        self,
        current_level: int,
        consecutive_correct: int,
        consecutive_errors: int,
        adaptive_mode_enabled: bool,
    ) -> int:
        """
        Compute the level for the next round.

        Args:
            current_level: Level of the round just played
            consecutive_correct: Correct streak including that round
            consecutive_errors: Error streak including that round
            adaptive_mode_enabled: Whether the level may also go down

        Returns:
            Next level, clamped to [1, max_level]
        """
        level = max(1, int(current_level))

        if not adaptive_mode_enabled:
            if consecutive_correct > 0:
                level += self.level_step
            return self._clamp(level)

        if consecutive_correct >= 2:
            level += 2
        elif consecutive_correct == 1:
            level += 1
        elif consecutive_errors >= self.errors_before_level_down and level > 1:
            level -= 1

        return self._clamp(level)

    def _clamp(self, level: int) -> int:
        return max(1, min(self.max_level, level))
