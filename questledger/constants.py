"""
questledger.constants — Shared Constants & Helpers
===================================================

Single source of truth for reward tuning defaults and the streak bonus
tier table.  Import from here instead of duplicating in the engine,
services, and tests.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Performance multiplier: linear map of the 0-100 quality score
# ---------------------------------------------------------------------------
PERFORMANCE_FLOOR = 0.5   # score 0   -> 0.5x
PERFORMANCE_SPAN = 1.5    # score 100 -> 0.5 + 1.5 = 2.0x

MIN_AI_SCORE = 0
MAX_AI_SCORE = 100

# ---------------------------------------------------------------------------
# Additive bonuses (fractions of base tokens)
# ---------------------------------------------------------------------------
PERFECT_SCORE_RATIO = 0.3
FIRST_QUEST_RATIO = 0.2
PERFECT_RATING = 5

RATING_ATTRIBUTES: tuple[str, ...] = ("agi", "str", "dex", "vit", "int")

# ---------------------------------------------------------------------------
# Streak bonus tiers: (minimum streak, bonus tokens), highest first
# ---------------------------------------------------------------------------
STREAK_BONUS_TIERS: tuple[tuple[int, int], ...] = (
    (30, 200),
    (14, 100),
    (7, 50),
    (3, 10),
)

# ---------------------------------------------------------------------------
# Ledger vocabulary
# ---------------------------------------------------------------------------
TOKEN_BOOST_ITEM_TYPE = "token_boost"
QUEST_COMPLETION_REFERENCE = "quest_completion"

DEFAULT_LEDGER_MAX_ATTEMPTS = 3
DEFAULT_TIMEZONE = "UTC"


# ---------------------------------------------------------------------------
# Tier lookup: THE single canonical implementation
# ---------------------------------------------------------------------------
def streak_bonus_for(
    current_streak: int,
    tiers: tuple[tuple[int, int], ...] = STREAK_BONUS_TIERS,
) -> int:
    """Bonus tokens earned by walking in with *current_streak* days.

    The amount is flat (not scaled by base tokens)::

        >=30 -> 200, >=14 -> 100, >=7 -> 50, >=3 -> 10, otherwise 0
    """
    for minimum, bonus in tiers:
        if current_streak >= minimum:
            return bonus
    return 0


# ---------------------------------------------------------------------------
# Applied-bonus labels (kept stable: they land in transaction history)
# ---------------------------------------------------------------------------
def boost_label(multiplier: float) -> str:
    return f"Character Boost x{multiplier:g}"


def event_label(multiplier: float) -> str:
    return f"Event Bonus x{multiplier:g}"


def perfect_score_label(ratio: float = PERFECT_SCORE_RATIO) -> str:
    return f"Perfect Score Bonus +{round(ratio * 100)}%"


def first_quest_label(ratio: float = FIRST_QUEST_RATIO) -> str:
    return f"First Quest Bonus +{round(ratio * 100)}%"


def streak_label(tokens: int) -> str:
    return f"Streak Bonus +{tokens} tokens"


def job_class_label(tokens: int) -> str:
    return f"Job Class Match +{tokens} tokens"
