"""
questledger.services.reward_service — Reward Submission Entry Point
====================================================================

:class:`RewardEngine` is the one entry point the quest-submission
workflow calls once a submission has been graded:

    1. Reject a negative base reward (never repaired).
    2. Look up the character's active boost and the best active event.
    3. Inside one ledger transaction, read the walk-in streak and the
       first-quest-of-day flag, run the pure calculator, and commit
       balance, journal entry and streak together.

A :class:`~questledger.errors.LedgerConflictError` re-runs steps 2-3 from
scratch, up to ``ledger_max_attempts`` times, so a retry never reuses a
breakdown computed from stale state.  Every other error propagates.

Collaborators are injected so tests can substitute fakes::

    engine = RewardEngine(boosts, events, ledger, clock=FixedClock(now))

:func:`build_reward_engine` wires the SQL implementations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import TYPE_CHECKING, Protocol

from questledger.config import QuestLedgerConfig
from questledger.database.engine import run_db
from questledger.database.models import TokenTransaction
from questledger.engine.context import CharacterContext, GradingResult, QuestContext
from questledger.engine.reward import RewardBreakdown, calculate_token_reward
from questledger.engine.streak import StreakState
from questledger.errors import InvalidRewardInputError, LedgerConflictError
from questledger.services.ledger_service import Ledger, LedgerSnapshot, SqlLedger
from questledger.services.lookup_service import (
    BoostLookup,
    EventLookup,
    SqlBoostLookup,
    SqlEventLookup,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Time source
# ---------------------------------------------------------------------------
class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time as an aware datetime in *tz*."""

    def __init__(self, tz: tzinfo) -> None:
        self._tz = tz

    def now(self) -> datetime:
        return datetime.now(self._tz)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SubmissionResult:
    breakdown: RewardBreakdown
    transaction: TokenTransaction
    streak: StreakState


# ---------------------------------------------------------------------------
# RewardEngine
# ---------------------------------------------------------------------------
class RewardEngine:
    """Turns a graded submission into a committed token reward."""

    def __init__(
        self,
        boosts: BoostLookup,
        events: EventLookup,
        ledger: Ledger,
        clock: Clock,
        config: QuestLedgerConfig | None = None,
    ) -> None:
        self._boosts = boosts
        self._events = events
        self._ledger = ledger
        self._clock = clock
        self._config = config or QuestLedgerConfig()

    @property
    def config(self) -> QuestLedgerConfig:
        return self._config

    def submit_reward(
        self,
        user_id: int,
        character_id: int,
        quest: QuestContext,
        grading: GradingResult,
    ) -> SubmissionResult:
        """Calculate and commit the reward for one graded submission.

        Raises
        ------
        InvalidRewardInputError
            ``quest.base_token_reward`` is negative.
        LedgerConflictError
            Still conflicting after ``ledger_max_attempts`` attempts.
        RewardEngineError
            Any other lookup or ledger failure, unchanged.
        """
        if quest.base_token_reward < 0:
            raise InvalidRewardInputError(
                f"Quest {quest.id} has negative base_token_reward "
                f"({quest.base_token_reward})"
            )

        character = CharacterContext(id=character_id, user_id=user_id)
        max_attempts = self._config.ledger_max_attempts

        attempt = 0
        while True:
            attempt += 1
            try:
                result = self._attempt(user_id, character, quest, grading)
            except LedgerConflictError as exc:
                if attempt >= max_attempts:
                    logger.warning(
                        "Ledger conflict for user %d quest %d; giving up after %d attempts",
                        user_id, quest.id, attempt,
                    )
                    raise
                logger.warning(
                    "Ledger conflict for user %d quest %d (attempt %d/%d): %s; retrying",
                    user_id, quest.id, attempt, max_attempts, exc,
                )
                continue

            logger.info(
                "Rewarded user %d character %d for quest %d: +%d tokens "
                "(balance %d, streak %d)",
                user_id, character_id, quest.id, result.breakdown.final_tokens,
                result.transaction.balance_after, result.streak.current_streak,
            )
            return result

    async def submit_reward_async(
        self,
        user_id: int,
        character_id: int,
        quest: QuestContext,
        grading: GradingResult,
    ) -> SubmissionResult:
        """:meth:`submit_reward` on a worker thread, for async hosts."""
        return await run_db(self.submit_reward, user_id, character_id, quest, grading)

    def _attempt(
        self,
        user_id: int,
        character: CharacterContext,
        quest: QuestContext,
        grading: GradingResult,
    ) -> SubmissionResult:
        now = self._clock.now()
        boost = self._boosts.active_boost(character.id, now)
        event_multiplier = self._events.event_multiplier(quest.type, now)
        tuning = self._config.reward

        def calculate(snapshot: LedgerSnapshot) -> RewardBreakdown:
            return calculate_token_reward(
                quest,
                character,
                grading.ai_score,
                grading.ratings,
                boost=boost,
                event_multiplier=event_multiplier,
                is_first_quest_today=snapshot.is_first_quest_today,
                current_streak=snapshot.current_streak,
                tuning=tuning,
            )

        commit = self._ledger.commit_reward(
            user_id, character.id, quest, grading.ai_score, now, calculate
        )
        return SubmissionResult(
            breakdown=commit.breakdown,
            transaction=commit.transaction,
            streak=commit.streak,
        )


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------
def build_reward_engine(
    engine: Engine, config: QuestLedgerConfig | None = None, clock: Clock | None = None
) -> RewardEngine:
    """A :class:`RewardEngine` backed by the SQL lookups and ledger."""
    config = config or QuestLedgerConfig()
    tz = config.tzinfo
    return RewardEngine(
        boosts=SqlBoostLookup(engine),
        events=SqlEventLookup(engine),
        ledger=SqlLedger(engine, tz),
        clock=clock or SystemClock(tz),
        config=config,
    )
