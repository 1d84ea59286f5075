"""
questledger.engine.context — Calculation Inputs
================================================

Immutable envelopes handed to the reward pipeline.  The host application
builds them from its own quest/character tables and from the grading
step's output; nothing here touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from questledger.constants import (
    MAX_AI_SCORE,
    MIN_AI_SCORE,
    PERFECT_RATING,
    RATING_ATTRIBUTES,
)
from questledger.database.models import QuestType

__all__ = [
    "ActiveBoost",
    "CharacterContext",
    "GradingResult",
    "QuestContext",
    "Ratings",
    "clamp_score",
]


@dataclass(frozen=True, slots=True)
class QuestContext:
    """The quest being rewarded.

    ``token_multiplier`` is carried for the host's bookkeeping only; the
    formula does not read it.
    """

    id: int
    type: QuestType
    base_token_reward: int
    token_multiplier: float = 1.0


@dataclass(frozen=True, slots=True)
class CharacterContext:
    id: int
    user_id: int
    job_class_id: int | None = None


@dataclass(frozen=True, slots=True)
class Ratings:
    """Per-attribute ratings, each nominally 1-5.

    Out-of-range values are kept as-is; they just never count as perfect.
    Graders report them under the short keys ``agi/str/dex/vit/int``.
    """

    agility: int
    strength: int
    dexterity: int
    vitality: int
    intelligence: int

    def values(self) -> tuple[int, ...]:
        return (
            self.agility, self.strength, self.dexterity,
            self.vitality, self.intelligence,
        )

    def is_perfect(self) -> bool:
        return all(value == PERFECT_RATING for value in self.values())

    @classmethod
    def from_mapping(cls, raw: dict) -> Ratings:
        """Build from the grader's ``{"agi": .., "str": .., ...}`` payload."""
        agi, str_, dex, vit, int_ = (raw[key] for key in RATING_ATTRIBUTES)
        return cls(
            agility=agi, strength=str_, dexterity=dex,
            vitality=vit, intelligence=int_,
        )

    def to_mapping(self) -> dict[str, int]:
        return dict(zip(RATING_ATTRIBUTES, self.values(), strict=True))

    @classmethod
    def uniform(cls, value: int) -> Ratings:
        return cls(value, value, value, value, value)


def clamp_score(score: int | float) -> int | float:
    """Clamp a quality score into [0, 100]."""
    return max(MIN_AI_SCORE, min(MAX_AI_SCORE, score))


@dataclass(frozen=True, slots=True)
class GradingResult:
    """Output of the external grading step (trusted, but clamped on use)."""

    ai_score: int
    ratings: Ratings


@dataclass(frozen=True, slots=True)
class ActiveBoost:
    """A purchased, applied, unexpired token boost for one character."""

    purchase_id: int
    character_id: int
    multiplier: float
    expires_at: datetime
