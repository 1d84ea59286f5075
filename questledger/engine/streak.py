"""
questledger.engine.streak — Daily Completion Streak State Machine
==================================================================

Pure transition logic for the per-user ``quest_streaks`` row.  No DB I/O:
the ledger reads the row under lock, calls :func:`advance_streak`, and
writes the returned state back in the same transaction.

Transitions (``days`` = calendar days between last completion and today)::

    no record / no last date  → STARTED    streak 1, counters 1
    days == 0                 → SAME_DAY   counters +1
    days == 1                 → CONTINUED  streak +1, longest = max, counters +1
    days  > 1                 → RESET      streak 1, counters 1, longest kept

Days are counted on calendar boundaries, so 23:59 → 00:01 is one day.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, tzinfo

logger = logging.getLogger(__name__)

__all__ = [
    "StreakState",
    "StreakTransition",
    "advance_streak",
    "classify_transition",
    "days_between",
    "local_day",
]


class StreakTransition(enum.StrEnum):
    STARTED = "started"
    SAME_DAY = "same_day"
    CONTINUED = "continued"
    RESET = "reset"


@dataclass(frozen=True, slots=True)
class StreakState:
    """Snapshot of a ``quest_streaks`` row.

    Invariant: ``longest_streak >= current_streak``.
    """

    current_streak: int = 0
    longest_streak: int = 0
    last_completed_date: date | None = None
    weekly_quests: int = 0
    monthly_quests: int = 0


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------
def local_day(moment: datetime, tz: tzinfo) -> date:
    """Calendar date of *moment* in *tz*.

    Naive datetimes are taken to be wall-clock time in *tz* already.
    """
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(tz).date()


def days_between(earlier: date, later: date) -> int:
    """Whole calendar days from *earlier* to *later* (midnight to midnight)."""
    return (later - earlier).days


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
def classify_transition(state: StreakState | None, today: date) -> StreakTransition:
    if state is None or state.last_completed_date is None:
        return StreakTransition.STARTED

    diff = days_between(state.last_completed_date, today)
    if diff == 1:
        return StreakTransition.CONTINUED
    if diff > 1:
        return StreakTransition.RESET
    if diff < 0:
        # Last completion recorded "in the future" (clock skew); never rewind.
        logger.warning(
            "Streak last_completed_date %s is after today %s; treating as same day",
            state.last_completed_date, today,
        )
    return StreakTransition.SAME_DAY


def advance_streak(
    state: StreakState | None, today: date
) -> tuple[StreakState, StreakTransition]:
    """Apply one completed submission on *today* to *state*.

    Returns ``(new_state, transition)``.  *state* is not modified.
    """
    transition = classify_transition(state, today)

    if transition is StreakTransition.STARTED:
        longest = max(1, state.longest_streak) if state is not None else 1
        new_state = StreakState(
            current_streak=1,
            longest_streak=longest,
            last_completed_date=today,
            weekly_quests=1,
            monthly_quests=1,
        )
    elif transition is StreakTransition.SAME_DAY:
        new_state = replace(
            state,
            weekly_quests=state.weekly_quests + 1,
            monthly_quests=state.monthly_quests + 1,
        )
    elif transition is StreakTransition.CONTINUED:
        current = state.current_streak + 1
        new_state = StreakState(
            current_streak=current,
            longest_streak=max(state.longest_streak, current),
            last_completed_date=today,
            weekly_quests=state.weekly_quests + 1,
            monthly_quests=state.monthly_quests + 1,
        )
    else:
        new_state = StreakState(
            current_streak=1,
            longest_streak=max(state.longest_streak, 1),
            last_completed_date=today,
            weekly_quests=1,
            monthly_quests=1,
        )

    return new_state, transition
