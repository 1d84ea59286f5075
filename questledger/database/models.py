"""
questledger.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables:
- user_tokens             — Per-user token balance (optimistic version column)
- quest_streaks           — Per-user daily-completion streak (optimistic version column)
- token_transactions      — Append-only balance journal, never updated
- quest_completions       — One row per rewarded quest submission
- shop_items              — Purchasable items; token boosts carry their multiplier in metadata
- token_purchases         — A character's purchase of a shop item (boost activation window)
- token_multiplier_events — Time-limited global multipliers per quest type

Users, characters and quests live in the host application's schema; they
are referenced here by plain integer ids.
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from questledger.errors import LedgerIntegrityError


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all QuestLedger ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class QuestType(enum.StrEnum):
    """Quest cadence; events target one or more of these."""
    DAILY = "daily"
    WEEKLY = "weekly"
    NO_DEADLINE = "no-deadline"


class TransactionType(enum.StrEnum):
    """Categories of token_transactions rows written by this engine."""
    QUEST_COMPLETION = "quest_completion"


class ShopItemType(enum.StrEnum):
    TOKEN_BOOST = "token_boost"
    XP_BOOST = "xp_boost"
    STAT_RESET = "stat_reset"
    PORTRAIT_UNLOCK = "portrait_unlock"
    QUEST_SKIP = "quest_skip"


class PurchaseStatus(enum.StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"


# ---------------------------------------------------------------------------
# UserToken: one balance row per user
# ---------------------------------------------------------------------------
class UserToken(Base):
    __tablename__ = "user_tokens"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    current_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_earned_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_spent_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Flushes as UPDATE ... WHERE version = :old; a concurrent writer matches zero rows
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<UserToken user={self.user_id} balance={self.current_tokens}>"


# ---------------------------------------------------------------------------
# QuestStreak: one streak row per user
# ---------------------------------------------------------------------------
class QuestStreak(Base):
    __tablename__ = "quest_streaks"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_completed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    weekly_quests: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    monthly_quests: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<QuestStreak user={self.user_id} current={self.current_streak} "
            f"longest={self.longest_streak} last={self.last_completed_date}>"
        )


# ---------------------------------------------------------------------------
# TokenTransaction: append-only balance journal
# ---------------------------------------------------------------------------
class TokenTransaction(Base):
    __tablename__ = "token_transactions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    character_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    reference_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    balance_before: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_token_transactions_user_time", "user_id", "created_at"),
        Index("ix_token_transactions_reference", "reference_type", "reference_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<TokenTransaction id={self.id} user={self.user_id} "
            f"amount={self.amount} after={self.balance_after}>"
        )


@event.listens_for(TokenTransaction, "before_update")
def _reject_transaction_update(mapper, connection, target: TokenTransaction) -> None:
    raise LedgerIntegrityError(
        f"token_transactions is append-only (attempted update of id={target.id})"
    )


# ---------------------------------------------------------------------------
# QuestCompletion: one row per rewarded submission
# ---------------------------------------------------------------------------
class QuestCompletion(Base):
    """Reward outcome of a single quest submission.

    Also the source of truth for "has this user already completed a quest
    today?" — the first-quest-of-day bonus looks here.
    """
    __tablename__ = "quest_completions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    character_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    quest_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    quest_type: Mapped[str] = mapped_column(String(20), nullable=False)
    ai_score: Mapped[int] = mapped_column(Integer, nullable=False)
    tokens_earned: Mapped[int] = mapped_column(Integer, nullable=False)
    bonus_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_quest_completions_user_time", "user_id", "completed_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<QuestCompletion id={self.id} user={self.user_id} "
            f"quest={self.quest_id} tokens={self.tokens_earned}>"
        )


# ---------------------------------------------------------------------------
# ShopItem: purchasable items
# ---------------------------------------------------------------------------
class ShopItem(Base):
    """Token-shop catalogue entry.

    For ``token_boost`` items ``metadata`` holds the boost definition, e.g.
    ``{"version": 1, "multiplier": 2.0, "duration": 259200}``; it is
    validated by :class:`~questledger.services.lookup_service.TokenBoostMetadata`
    whenever it is read.
    """
    __tablename__ = "shop_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    item_type: Mapped[str] = mapped_column(String(30), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<ShopItem id={self.id} name={self.name!r} type={self.item_type!r}>"


# ---------------------------------------------------------------------------
# TokenPurchase: a character's purchased item
# ---------------------------------------------------------------------------
class TokenPurchase(Base):
    __tablename__ = "token_purchases"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    character_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    shop_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shop_items.id", ondelete="RESTRICT"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PurchaseStatus.PENDING.value
    )
    applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    shop_item: Mapped[ShopItem] = relationship()

    __table_args__ = (
        Index("ix_token_purchases_character_expiry", "character_id", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<TokenPurchase id={self.id} character={self.character_id} "
            f"status={self.status!r} expires={self.expires_at}>"
        )


# ---------------------------------------------------------------------------
# TokenMultiplierEvent: global time-limited multipliers
# ---------------------------------------------------------------------------
class TokenMultiplierEvent(Base):
    __tablename__ = "token_multiplier_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    quest_types: Mapped[list | None] = mapped_column(JSONB, nullable=False, default=list)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index("ix_token_events_window", "is_active", "start_date", "end_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<TokenMultiplierEvent id={self.id} name={self.name!r} "
            f"x{self.multiplier}>"
        )
