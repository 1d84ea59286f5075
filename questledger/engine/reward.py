"""
questledger.engine.reward — Token Reward Calculation Pipeline
==============================================================

Pure calculation pipeline.  No DB I/O inside the engine: boost and event
multipliers, the first-quest-of-day flag and the walk-in streak are all
passed in by the caller (the ledger reads them under lock).

Pipeline stages (fixed order)::

    base → performance × boost × event → + perfect + first-of-day + streak + job class
         → floor once → RewardBreakdown
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field

from questledger.config import RewardTuning
from questledger.constants import (
    boost_label,
    event_label,
    first_quest_label,
    job_class_label,
    perfect_score_label,
    streak_bonus_for,
    streak_label,
)
from questledger.engine.context import (
    ActiveBoost,
    CharacterContext,
    QuestContext,
    Ratings,
    clamp_score,
)

logger = logging.getLogger(__name__)

__all__ = [
    "RewardBreakdown",
    "calculate_token_reward",
    "job_class_bonus",
    "performance_multiplier",
    "streak_bonus",
]

_DEFAULT_TUNING = RewardTuning()


# ---------------------------------------------------------------------------
# RewardBreakdown: output of the pipeline
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RewardBreakdown:
    """Full, auditable result of one reward calculation."""

    base_tokens: int
    performance_multiplier: float
    character_boost_multiplier: float
    event_multiplier: float
    bonus_tokens: int
    final_tokens: int
    applied_bonuses: list[str] = field(default_factory=list)

    @property
    def combined_multiplier(self) -> float:
        return (
            self.performance_multiplier
            * self.character_boost_multiplier
            * self.event_multiplier
        )

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Stage 1: Performance multiplier
# ---------------------------------------------------------------------------
def performance_multiplier(
    ai_score: int | float, tuning: RewardTuning = _DEFAULT_TUNING
) -> float:
    """Linear map of the clamped 0-100 score: 0 → 0.5x, 100 → 2.0x."""
    score = clamp_score(ai_score)
    return tuning.performance_floor + (score / 100) * tuning.performance_span


# ---------------------------------------------------------------------------
# Stage 2: Additive bonuses
# ---------------------------------------------------------------------------
def streak_bonus(current_streak: int, tuning: RewardTuning = _DEFAULT_TUNING) -> int:
    """Flat streak bonus for the streak the user walks in with."""
    return streak_bonus_for(current_streak, tuning.streak_tiers)


def job_class_bonus(
    quest: QuestContext, character: CharacterContext, base_tokens: int
) -> int:
    """Bonus for a quest suited to the character's job class.

    Quests carry no preferred-job-class metadata yet, so this is always 0.
    """
    return 0


# ---------------------------------------------------------------------------
# Full calculation pipeline
# ---------------------------------------------------------------------------
def calculate_token_reward(
    quest: QuestContext,
    character: CharacterContext,
    ai_score: int | float,
    ratings: Ratings,
    *,
    boost: ActiveBoost | None = None,
    event_multiplier: float = 1.0,
    is_first_quest_today: bool = False,
    current_streak: int = 0,
    tuning: RewardTuning = _DEFAULT_TUNING,
) -> RewardBreakdown:
    """Run the reward pipeline for one graded submission.

    This is a PURE function — deterministic in its arguments, no I/O.

    Parameters
    ----------
    quest : the quest being rewarded (``base_token_reward`` must be >= 0)
    character : the submitting character
    ai_score : grader quality score, clamped to [0, 100]
    ratings : per-attribute ratings; all five == 5 earns the perfect bonus
    boost : the character's active token boost, if any
    event_multiplier : highest active event multiplier for the quest type
    is_first_quest_today : no earlier completion by this user today
    current_streak : streak *before* this submission's transition
    tuning : formula constants
    """
    applied: list[str] = []

    # 1. Base
    base_tokens = quest.base_token_reward

    # 2. Multipliers
    perf_mult = performance_multiplier(ai_score, tuning)

    boost_mult = boost.multiplier if boost is not None else 1.0
    if boost_mult > 1:
        applied.append(boost_label(boost_mult))

    if event_multiplier > 1:
        applied.append(event_label(event_multiplier))

    # 3. Additive bonuses, in order
    bonus_tokens = 0

    if ratings.is_perfect():
        amount = math.floor(base_tokens * tuning.perfect_score_ratio)
        bonus_tokens += amount
        applied.append(perfect_score_label(tuning.perfect_score_ratio))

    if is_first_quest_today:
        amount = math.floor(base_tokens * tuning.first_quest_ratio)
        bonus_tokens += amount
        applied.append(first_quest_label(tuning.first_quest_ratio))

    streak_tokens = streak_bonus(current_streak, tuning)
    if streak_tokens > 0:
        bonus_tokens += streak_tokens
        applied.append(streak_label(streak_tokens))

    job_tokens = job_class_bonus(quest, character, base_tokens)
    if job_tokens > 0:
        bonus_tokens += job_tokens
        applied.append(job_class_label(job_tokens))

    # 4. Compose multiplicatively, add bonuses, floor exactly once
    final_tokens = math.floor(
        base_tokens * perf_mult * boost_mult * event_multiplier + bonus_tokens
    )

    logger.debug(
        "Reward quest=%s character=%s base=%d perf=%.3f boost=%.3f event=%.3f "
        "bonus=%d final=%d",
        quest.id, character.id, base_tokens, perf_mult, boost_mult,
        event_multiplier, bonus_tokens, final_tokens,
    )

    return RewardBreakdown(
        base_tokens=base_tokens,
        performance_multiplier=perf_mult,
        character_boost_multiplier=boost_mult,
        event_multiplier=event_multiplier,
        bonus_tokens=bonus_tokens,
        final_tokens=final_tokens,
        applied_bonuses=applied,
    )
