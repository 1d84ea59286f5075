"""
tests/test_reward_service.py — RewardEngine Integration Tests
==============================================================
Covers the submit_reward entry point: the end-to-end path over a real
SQLite ledger, retry-with-recompute on ledger conflicts, and error
propagation from lookups and the ledger.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from conftest import NOW, add_event, add_purchase, add_shop_item
from sqlalchemy.orm import Session

from questledger.config import QuestLedgerConfig
from questledger.database.models import (
    QuestCompletion,
    QuestStreak,
    QuestType,
    TokenTransaction,
)
from questledger.engine.context import GradingResult, QuestContext, Ratings
from questledger.engine.streak import StreakState, StreakTransition
from questledger.errors import (
    InvalidRewardInputError,
    LedgerConflictError,
    LedgerUnavailableError,
    LookupUnavailableError,
)
from questledger.services.ledger_service import (
    LedgerCommit,
    LedgerSnapshot,
    get_streak,
    get_token_summary,
)
from questledger.services.reward_service import RewardEngine, build_reward_engine

USER_ID = 1000
CHARACTER_ID = 7


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class FixedClock:
    def __init__(self, now):
        self.current = now

    def now(self):
        return self.current


class FlakyLedger:
    """Ledger fake that hands out scripted snapshots and conflicts first."""

    def __init__(self, snapshots: list[LedgerSnapshot], conflicts: int = 0):
        self.snapshots = snapshots
        self.conflicts = conflicts
        self.breakdowns = []

    def commit_reward(self, user_id, character_id, quest, ai_score, now, calculate):
        snapshot = self.snapshots[len(self.breakdowns)]
        breakdown = calculate(snapshot)
        self.breakdowns.append(breakdown)
        if len(self.breakdowns) <= self.conflicts:
            raise LedgerConflictError(f"race on attempt {len(self.breakdowns)}")

        after = snapshot.balance + breakdown.final_tokens
        return LedgerCommit(
            breakdown=breakdown,
            transaction=TokenTransaction(
                user_id=user_id,
                amount=breakdown.final_tokens,
                balance_before=snapshot.balance,
                balance_after=after,
            ),
            completion=QuestCompletion(),
            streak=StreakState(current_streak=snapshot.current_streak + 1),
            transition=StreakTransition.CONTINUED,
        )


def _snapshot(streak: int, balance: int = 0, first: bool = False) -> LedgerSnapshot:
    return LedgerSnapshot(
        user_id=USER_ID, balance=balance, current_streak=streak, is_first_quest_today=first
    )


@pytest.fixture
def quest():
    return QuestContext(id=3, type=QuestType.DAILY, base_token_reward=50)


@pytest.fixture
def grading():
    return GradingResult(ai_score=80, ratings=Ratings.uniform(4))


@pytest.fixture
def lookups():
    boosts = MagicMock()
    boosts.active_boost.return_value = None
    events = MagicMock()
    events.event_multiplier.return_value = 1.0
    return boosts, events


def _engine_with(ledger, lookups, attempts: int = 3) -> RewardEngine:
    boosts, events = lookups
    return RewardEngine(
        boosts,
        events,
        ledger,
        FixedClock(NOW),
        QuestLedgerConfig(ledger_max_attempts=attempts),
    )


# ---------------------------------------------------------------------------
# End to end over SQLite
# ---------------------------------------------------------------------------
class TestSubmitRewardEndToEnd:
    def test_new_user_first_submission(self, db_engine, quest, grading):
        engine = build_reward_engine(db_engine, clock=FixedClock(NOW))
        result = engine.submit_reward(USER_ID, CHARACTER_ID, quest, grading)

        assert result.breakdown.performance_multiplier == pytest.approx(1.7)
        assert result.breakdown.bonus_tokens == 10
        assert result.breakdown.final_tokens == 95
        assert result.breakdown.applied_bonuses == ["First Quest Bonus +20%"]
        assert result.transaction.balance_before == 0
        assert result.transaction.balance_after == 95
        assert result.streak == StreakState(1, 1, NOW.date(), 1, 1)

        assert get_token_summary(db_engine, USER_ID).current_tokens == 95
        assert get_streak(db_engine, USER_ID).current_streak == 1

    def test_walk_in_streak_earns_tier_bonus(self, db_engine, quest, grading):
        with Session(db_engine) as session:
            session.add(QuestStreak(
                user_id=USER_ID,
                current_streak=6,
                longest_streak=6,
                last_completed_date=NOW.date() - timedelta(days=1),
                weekly_quests=6,
                monthly_quests=6,
            ))
            session.commit()

        engine = build_reward_engine(db_engine, clock=FixedClock(NOW))
        result = engine.submit_reward(USER_ID, CHARACTER_ID, quest, grading)

        # 85 + first-of-day 10 + streak tier (walk-in 6) 10
        assert result.breakdown.final_tokens == 105
        assert "Streak Bonus +10 tokens" in result.breakdown.applied_bonuses
        assert result.streak.current_streak == 7
        assert result.streak.longest_streak == 7

    def test_boost_and_event_apply(self, db_engine, quest, grading):
        add_purchase(db_engine, add_shop_item(db_engine), character_id=CHARACTER_ID)
        add_event(db_engine, multiplier=1.5, quest_types=["daily"])

        engine = build_reward_engine(db_engine, clock=FixedClock(NOW))
        result = engine.submit_reward(USER_ID, CHARACTER_ID, quest, grading)

        # 50 * 1.7 * 2.0 * 1.5 + 10
        assert result.breakdown.final_tokens == 265
        assert result.breakdown.applied_bonuses[:2] == [
            "Character Boost x2",
            "Event Bonus x1.5",
        ]

    def test_second_submission_same_day(self, db_engine, quest, grading):
        clock = FixedClock(NOW)
        engine = build_reward_engine(db_engine, clock=clock)
        engine.submit_reward(USER_ID, CHARACTER_ID, quest, grading)
        clock.current = NOW + timedelta(hours=2)
        result = engine.submit_reward(USER_ID, CHARACTER_ID, quest, grading)

        assert result.breakdown.final_tokens == 85
        assert result.breakdown.applied_bonuses == []
        assert result.transaction.balance_after == 180
        assert result.streak.current_streak == 1
        assert result.streak.weekly_quests == 2

    def test_negative_base_is_rejected(self, db_engine, grading):
        engine = build_reward_engine(db_engine, clock=FixedClock(NOW))
        bad = QuestContext(id=9, type=QuestType.DAILY, base_token_reward=-5)
        with pytest.raises(InvalidRewardInputError):
            engine.submit_reward(USER_ID, CHARACTER_ID, bad, grading)
        assert get_token_summary(db_engine, USER_ID).current_tokens == 0

    def test_async_entry_point(self, db_engine, quest, grading):
        engine = build_reward_engine(db_engine, clock=FixedClock(NOW))
        result = run_async(
            engine.submit_reward_async(USER_ID, CHARACTER_ID, quest, grading)
        )
        assert result.breakdown.final_tokens == 95
        assert get_token_summary(db_engine, USER_ID).current_tokens == 95


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------
class TestConflictRetries:
    def test_retry_recomputes_against_fresh_state(self, lookups, quest, grading):
        # Another submission advanced the streak 2 → 3 between attempts
        ledger = FlakyLedger([_snapshot(2), _snapshot(3, balance=40)], conflicts=1)
        result = _engine_with(ledger, lookups).submit_reward(
            USER_ID, CHARACTER_ID, quest, grading
        )

        assert [b.final_tokens for b in ledger.breakdowns] == [85, 95]
        assert result.breakdown.final_tokens == 95
        assert result.breakdown.applied_bonuses == ["Streak Bonus +10 tokens"]
        assert result.transaction.balance_after == 135

    def test_lookups_rerun_on_each_attempt(self, lookups, quest, grading):
        ledger = FlakyLedger([_snapshot(0)] * 3, conflicts=2)
        _engine_with(ledger, lookups).submit_reward(USER_ID, CHARACTER_ID, quest, grading)

        boosts, events = lookups
        assert boosts.active_boost.call_count == 3
        assert events.event_multiplier.call_count == 3

    def test_gives_up_after_max_attempts(self, lookups, quest, grading, caplog):
        ledger = FlakyLedger([_snapshot(0)] * 3, conflicts=3)
        engine = _engine_with(ledger, lookups, attempts=3)

        with caplog.at_level(logging.WARNING, logger="questledger.services.reward_service"):
            with pytest.raises(LedgerConflictError):
                engine.submit_reward(USER_ID, CHARACTER_ID, quest, grading)

        assert len(ledger.breakdowns) == 3
        assert "giving up after 3 attempts" in caplog.text

    def test_single_attempt_config_does_not_retry(self, lookups, quest, grading):
        ledger = FlakyLedger([_snapshot(0)] * 2, conflicts=1)
        with pytest.raises(LedgerConflictError):
            _engine_with(ledger, lookups, attempts=1).submit_reward(
                USER_ID, CHARACTER_ID, quest, grading
            )
        assert len(ledger.breakdowns) == 1


# ---------------------------------------------------------------------------
# Error propagation
# ---------------------------------------------------------------------------
class TestErrorPropagation:
    def test_negative_base_never_reaches_ledger(self, lookups, grading):
        ledger = MagicMock()
        bad = QuestContext(id=9, type=QuestType.WEEKLY, base_token_reward=-1)
        with pytest.raises(InvalidRewardInputError) as exc_info:
            _engine_with(ledger, lookups).submit_reward(USER_ID, CHARACTER_ID, bad, grading)
        assert not exc_info.value.retryable
        ledger.commit_reward.assert_not_called()

    def test_lookup_failure_aborts_without_retry(self, lookups, quest, grading):
        boosts, _ = lookups
        boosts.active_boost.side_effect = LookupUnavailableError("boost store down")
        ledger = MagicMock()

        with pytest.raises(LookupUnavailableError):
            _engine_with(ledger, lookups).submit_reward(USER_ID, CHARACTER_ID, quest, grading)

        assert boosts.active_boost.call_count == 1
        ledger.commit_reward.assert_not_called()

    def test_ledger_unavailable_is_not_retried(self, lookups, quest, grading):
        ledger = MagicMock()
        ledger.commit_reward.side_effect = LedgerUnavailableError("db down")

        with pytest.raises(LedgerUnavailableError) as exc_info:
            _engine_with(ledger, lookups).submit_reward(USER_ID, CHARACTER_ID, quest, grading)

        assert exc_info.value.retryable
        assert ledger.commit_reward.call_count == 1

    def test_event_multiplier_uses_quest_type(self, lookups, quest, grading):
        _, events = lookups
        ledger = FlakyLedger([_snapshot(0)])
        _engine_with(ledger, lookups).submit_reward(USER_ID, CHARACTER_ID, quest, grading)
        events.event_multiplier.assert_called_once_with(QuestType.DAILY, NOW)
