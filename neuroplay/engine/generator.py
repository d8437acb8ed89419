"""
Challenge Generator.

Builds one round's stimulus from a difficulty level:
- sequence games: positions/colours drawn with replacement from the palette
- pattern games: distinct grid cells, matched as a set
- symbolic games: a template word split into syllables, with the word offered
  exactly once among distractor words

Generation never throws to the caller. Missing template buckets fall back to
the nearest lower bucket.
"""

from __future__ import annotations

import random

from loguru import logger

from neuroplay.engine.errors import GenerationFallback
from neuroplay.engine.models import Challenge, ChallengeItem, GameDomain, MatchMode
from neuroplay.engine.profiles import GameProfile

MAX_REROLLS = 12


class ChallengeGenerator:
    """Stateless apart from its random source."""

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def sequence_length(self, level: int, profile: GameProfile) -> int:
        return profile.sequence_length(level)

    def generate(
        self,
        level: int,
        profile: GameProfile,
        avoid: tuple | None = None,
    ) -> Challenge:
        """
        Generate a challenge for the given level.

        Args:
            level: Current difficulty level (>= 1)
            profile: Game profile supplying the stimulus set and curve
            avoid: Signature of the previous instance; a different instance is
                selected whenever the stimulus set allows one

        Returns:
            Challenge for one round
        """
        level = max(1, int(level))
        challenge = self._build(level, profile)
        if avoid is None:
            return challenge

        rerolls = 0
        while challenge.signature == tuple(avoid) and rerolls < MAX_REROLLS:
            challenge = self._build(level, profile, exclude=tuple(avoid))
            rerolls += 1
        if challenge.signature == tuple(avoid):
            logger.debug(f"{profile.game_id}: no alternative instance at level {level}")
        return challenge

    def _build(self, level: int, profile: GameProfile, exclude: tuple | None = None) -> Challenge:
        if profile.domain is GameDomain.SYMBOLIC:
            return self._symbolic(level, profile, exclude)
        if profile.domain is GameDomain.PATTERN:
            return self._pattern(level, profile)
        return self._sequence(level, profile)

    # =========================================================================
    # Domains
    # =========================================================================

    def _sequence(self, level: int, profile: GameProfile) -> Challenge:
        length = profile.sequence_length(level)
        values = [self.rng.choice(profile.palette) for _ in range(length)]
        items = tuple(ChallengeItem(index=i, value=v) for i, v in enumerate(values))
        return Challenge(
            items=items,
            options=tuple(profile.palette),
            correct_answer=tuple(values),
            level=level,
            domain=GameDomain.SEQUENCE,
            match_mode=MatchMode.ORDERED,
        )

    def _pattern(self, level: int, profile: GameProfile) -> Challenge:
        cells = profile.grid_cells
        length = min(profile.sequence_length(level), len(cells))
        chosen = self.rng.sample(cells, length)
        items = tuple(ChallengeItem(index=i, value=c) for i, c in enumerate(chosen))
        return Challenge(
            items=items,
            options=cells,
            correct_answer=frozenset(chosen),
            level=level,
            domain=GameDomain.PATTERN,
            match_mode=MatchMode.SET,
        )

    def _symbolic(self, level: int, profile: GameProfile, exclude: tuple | None) -> Challenge:
        bucket, templates = self.templates_for_level(level, profile)

        candidates = list(templates)
        if exclude and len(candidates) > 1:
            candidates = [t for t in candidates if (t[0],) != tuple(exclude)] or candidates
        word, syllables = self.rng.choice(candidates)

        options = [word, *self._distractors(word, profile)]
        self.rng.shuffle(options)

        items = tuple(ChallengeItem(index=i, value=s) for i, s in enumerate(syllables))
        return Challenge(
            items=items,
            options=tuple(options),
            correct_answer=word,
            level=level,
            domain=GameDomain.SYMBOLIC,
            match_mode=MatchMode.CHOICE,
            template_bucket=bucket,
        )

    def _distractors(self, word: str, profile: GameProfile) -> list[str]:
        """Distinct words from the complement set, never equal to the answer."""
        pool = sorted(
            {w for entries in profile.templates.values() for w, _ in entries if w != word}
        )
        count = min(profile.distractor_count, len(pool))
        return self.rng.sample(pool, count)

    # =========================================================================
    # Template buckets
    # =========================================================================

    def templates_for_level(self, level: int, profile: GameProfile) -> tuple[int, tuple]:
        """Resolve the template bucket for a level, falling back when empty."""
        wanted = profile.bucket_for(level)
        try:
            return wanted, self._bucket(wanted, profile)
        except GenerationFallback as exc:
            bucket = self._fallback_bucket(wanted, profile)
            logger.warning(f"{profile.game_id}: {exc}; using bucket {bucket}")
            return bucket, profile.templates[bucket]

    @staticmethod
    def _bucket(bucket: int, profile: GameProfile) -> tuple:
        templates = profile.templates.get(bucket)
        if not templates:
            raise GenerationFallback(bucket)
        return templates

    @staticmethod
    def _fallback_bucket(wanted: int, profile: GameProfile) -> int:
        available = sorted(b for b, entries in profile.templates.items() if entries)
        lower = [b for b in available if b < wanted]
        if lower:
            return lower[-1]
        # Nothing below: take the nearest higher bucket
        return available[0]
