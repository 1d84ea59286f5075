"""
questledger.services.ledger_service — Transactional Reward Ledger
==================================================================

The only place balances and streaks are written.

One call to :meth:`SqlLedger.commit_reward` is one database transaction:

    1. Lock (or create) the user's ``user_tokens`` and ``quest_streaks`` rows
       with ``SELECT … FOR UPDATE``.
    2. Read the walk-in streak and whether the user already completed a
       quest today, and hand them to the caller's ``calculate`` callback.
    3. Apply the returned breakdown: balance, totals, a ``quest_completions``
       row, one appended ``token_transactions`` row, and the streak
       transition.
    4. Commit — or roll back everything.

Both mutable rows carry a ``version`` column (SQLAlchemy ``version_id_col``).
If another writer got in first the flush matches zero rows, SQLAlchemy raises
``StaleDataError`` and the ledger reports :class:`LedgerConflictError`.  The
same applies to a unique-key race when two submissions create a user's first
balance row concurrently.  The caller is expected to re-run the calculation
against fresh state (see :class:`~questledger.services.reward_service.RewardEngine`).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Protocol

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from questledger.constants import QUEST_COMPLETION_REFERENCE
from questledger.database.engine import is_transient_db_error
from questledger.database.models import (
    QuestCompletion,
    QuestStreak,
    TokenTransaction,
    TransactionType,
    UserToken,
)
from questledger.engine.context import QuestContext, clamp_score
from questledger.engine.reward import RewardBreakdown
from questledger.engine.streak import (
    StreakState,
    StreakTransition,
    advance_streak,
    local_day,
)
from questledger.errors import (
    DataStoreError,
    LedgerConflictError,
    LedgerUnavailableError,
)
from questledger.services.lookup_service import as_utc

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LedgerSnapshot:
    """State read under lock that the reward calculation depends on."""

    user_id: int
    balance: int
    current_streak: int
    is_first_quest_today: bool


@dataclass(frozen=True, slots=True)
class LedgerCommit:
    """Outcome of one committed reward."""

    breakdown: RewardBreakdown
    transaction: TokenTransaction
    completion: QuestCompletion
    streak: StreakState
    transition: StreakTransition


@dataclass(frozen=True, slots=True)
class TokenSummary:
    user_id: int
    current_tokens: int = 0
    total_earned_tokens: int = 0
    total_spent_tokens: int = 0


class Ledger(Protocol):
    def commit_reward(
        self,
        user_id: int,
        character_id: int,
        quest: QuestContext,
        ai_score: int | float,
        now: datetime,
        calculate: Callable[[LedgerSnapshot], RewardBreakdown],
    ) -> LedgerCommit: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def day_window(today: date, now: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    """``[start, end)`` bounds of the local calendar day *today*, in storage time.

    Aware *now* values are stored in UTC, so the local midnights are
    converted; naive values are compared as-is.
    """
    start = datetime.combine(today, time.min)
    end = start + timedelta(days=1)
    if now.tzinfo is None:
        return start, end
    return (
        start.replace(tzinfo=tz).astimezone(UTC),
        end.replace(tzinfo=tz).astimezone(UTC),
    )


def describe_reward(quest_id: int, breakdown: RewardBreakdown) -> str:
    """Human-readable transaction description."""
    text = f"Completed quest {quest_id} and earned {breakdown.final_tokens} tokens"
    if breakdown.applied_bonuses:
        text += f" ({', '.join(breakdown.applied_bonuses)})"
    return text


def _state_of(row: QuestStreak | None) -> StreakState | None:
    if row is None:
        return None
    return StreakState(
        current_streak=row.current_streak,
        longest_streak=row.longest_streak,
        last_completed_date=row.last_completed_date,
        weekly_quests=row.weekly_quests,
        monthly_quests=row.monthly_quests,
    )


# ---------------------------------------------------------------------------
# SqlLedger
# ---------------------------------------------------------------------------
class SqlLedger:
    """Reward ledger over the SQLAlchemy models.

    *tz* defines the calendar day used for the first-quest-of-day check
    and for streak day counting.
    """

    def __init__(self, engine: Engine, tz: tzinfo = UTC) -> None:
        self._engine = engine
        self._tz = tz

    def commit_reward(
        self,
        user_id: int,
        character_id: int,
        quest: QuestContext,
        ai_score: int | float,
        now: datetime,
        calculate: Callable[[LedgerSnapshot], RewardBreakdown],
    ) -> LedgerCommit:
        try:
            with Session(self._engine, expire_on_commit=False) as session, session.begin():
                return self._apply(
                    session, user_id, character_id, quest, ai_score, now, calculate
                )
        except StaleDataError as exc:
            raise LedgerConflictError(
                f"Balance or streak for user {user_id} changed concurrently"
            ) from exc
        except IntegrityError as exc:
            raise LedgerConflictError(
                f"Concurrent first write for user {user_id}: {exc.orig}"
            ) from exc
        except SQLAlchemyError as exc:
            if is_transient_db_error(exc):
                raise LedgerUnavailableError(f"Ledger store unavailable: {exc}") from exc
            raise DataStoreError(f"Ledger commit failed: {exc}") from exc

    # -- steps (each overridable / patchable in tests) ------------------------

    def _lock_balance(self, session: Session, user_id: int) -> UserToken:
        tokens = session.scalar(
            select(UserToken).where(UserToken.user_id == user_id).with_for_update()
        )
        if tokens is None:
            tokens = UserToken(
                user_id=user_id,
                current_tokens=0,
                total_earned_tokens=0,
                total_spent_tokens=0,
            )
            session.add(tokens)
        return tokens

    def _lock_streak(self, session: Session, user_id: int) -> QuestStreak | None:
        return session.scalar(
            select(QuestStreak).where(QuestStreak.user_id == user_id).with_for_update()
        )

    def _completed_today(
        self, session: Session, user_id: int, today: date, now: datetime
    ) -> bool:
        start, end = day_window(today, now, self._tz)
        found = session.scalar(
            select(QuestCompletion.id)
            .where(
                QuestCompletion.user_id == user_id,
                QuestCompletion.completed_at >= start,
                QuestCompletion.completed_at < end,
            )
            .limit(1)
        )
        return found is not None

    def _append_transaction(self, session: Session, entry: TokenTransaction) -> TokenTransaction:
        session.add(entry)
        session.flush()
        return entry

    def _apply(
        self,
        session: Session,
        user_id: int,
        character_id: int,
        quest: QuestContext,
        ai_score: int | float,
        now: datetime,
        calculate: Callable[[LedgerSnapshot], RewardBreakdown],
    ) -> LedgerCommit:
        moment = as_utc(now)
        today = local_day(now, self._tz)

        tokens = self._lock_balance(session, user_id)
        streak_row = self._lock_streak(session, user_id)
        previous = _state_of(streak_row)

        snapshot = LedgerSnapshot(
            user_id=user_id,
            balance=tokens.current_tokens,
            current_streak=previous.current_streak if previous is not None else 0,
            is_first_quest_today=not self._completed_today(session, user_id, today, now),
        )
        breakdown = calculate(snapshot)

        # Balance
        balance_before = tokens.current_tokens
        balance_after = balance_before + breakdown.final_tokens
        tokens.current_tokens = balance_after
        tokens.total_earned_tokens += breakdown.final_tokens

        # Completion record (flushed for its id)
        completion = QuestCompletion(
            user_id=user_id,
            character_id=character_id,
            quest_id=quest.id,
            quest_type=str(quest.type),
            ai_score=round(clamp_score(ai_score)),
            tokens_earned=breakdown.final_tokens,
            bonus_tokens=breakdown.bonus_tokens,
            multiplier=breakdown.combined_multiplier,
            completed_at=moment,
        )
        session.add(completion)
        session.flush()

        # Streak
        new_state, transition = advance_streak(previous, today)
        if streak_row is None:
            streak_row = QuestStreak(user_id=user_id)
            session.add(streak_row)
        streak_row.current_streak = new_state.current_streak
        streak_row.longest_streak = new_state.longest_streak
        streak_row.last_completed_date = new_state.last_completed_date
        streak_row.weekly_quests = new_state.weekly_quests
        streak_row.monthly_quests = new_state.monthly_quests

        # Journal
        transaction = self._append_transaction(
            session,
            TokenTransaction(
                user_id=user_id,
                character_id=character_id,
                amount=breakdown.final_tokens,
                type=TransactionType.QUEST_COMPLETION.value,
                description=describe_reward(quest.id, breakdown),
                reference_id=completion.id,
                reference_type=QUEST_COMPLETION_REFERENCE,
                balance_before=balance_before,
                balance_after=balance_after,
                metadata_={
                    **breakdown.to_dict(),
                    "quest_id": quest.id,
                    "quest_type": str(quest.type),
                    "streak_transition": str(transition),
                },
                created_at=moment,
            ),
        )

        logger.debug(
            "Ledger user=%d streak %s → %d (%s)",
            user_id, snapshot.current_streak, new_state.current_streak, transition,
        )
        return LedgerCommit(
            breakdown=breakdown,
            transaction=transaction,
            completion=completion,
            streak=new_state,
            transition=transition,
        )


# ---------------------------------------------------------------------------
# Read helpers
# ---------------------------------------------------------------------------
def get_token_summary(engine: Engine, user_id: int) -> TokenSummary:
    """Current, lifetime-earned and lifetime-spent tokens (zeros if unknown)."""
    with Session(engine) as session:
        row = session.get(UserToken, user_id)
        if row is None:
            return TokenSummary(user_id=user_id)
        return TokenSummary(
            user_id=user_id,
            current_tokens=row.current_tokens,
            total_earned_tokens=row.total_earned_tokens,
            total_spent_tokens=row.total_spent_tokens,
        )


def get_streak(engine: Engine, user_id: int) -> QuestStreak | None:
    """The user's streak row, detached from its session, or ``None``."""
    with Session(engine) as session:
        row = session.get(QuestStreak, user_id)
        if row is not None:
            session.expunge(row)
        return row
