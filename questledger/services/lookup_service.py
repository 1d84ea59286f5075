"""
questledger.services.lookup_service — Boost & Event Lookups
============================================================

Read-only adapters feeding multipliers into the reward pipeline.

Both lookups validate what they read at this boundary: a shop item whose
boost metadata is malformed, or an event whose quest types are unknown,
raises :class:`~questledger.errors.MalformedRecordError` instead of
silently counting as "no multiplier".  "Nothing active" is the only
condition that yields 1.0; a store that cannot be reached raises
:class:`~questledger.errors.LookupUnavailableError`.

Policy for several active boosts on one character: the highest
multiplier wins; ties go to the latest ``expires_at``, then the lowest
purchase id.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from questledger.database.engine import is_transient_db_error
from questledger.database.models import (
    PurchaseStatus,
    QuestType,
    ShopItem,
    ShopItemType,
    TokenMultiplierEvent,
    TokenPurchase,
)
from questledger.engine.context import ActiveBoost
from questledger.errors import (
    DataStoreError,
    LookupUnavailableError,
    MalformedRecordError,
)

logger = logging.getLogger(__name__)

SUPPORTED_BOOST_METADATA_VERSIONS: frozenset[int] = frozenset({1})


# ---------------------------------------------------------------------------
# Interfaces (inject fakes in tests)
# ---------------------------------------------------------------------------
class BoostLookup(Protocol):
    def active_boost(self, character_id: int, now: datetime) -> ActiveBoost | None: ...


class EventLookup(Protocol):
    def event_multiplier(self, quest_type: QuestType, now: datetime) -> float: ...


# ---------------------------------------------------------------------------
# Validated record shapes
# ---------------------------------------------------------------------------
class TokenBoostMetadata(BaseModel):
    """``shop_items.metadata`` for a ``token_boost`` item."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    version: int = 1
    multiplier: float = Field(gt=1.0)
    duration: int | None = Field(default=None, gt=0)  # seconds


class EventDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    multiplier: float = Field(gt=0)
    quest_types: list[QuestType]


def parse_boost_metadata(item: ShopItem) -> TokenBoostMetadata:
    """Validate a token-boost item's metadata or raise MalformedRecordError."""
    try:
        meta = TokenBoostMetadata.model_validate(item.metadata_ or {})
    except ValidationError as exc:
        raise MalformedRecordError(
            f"Shop item {item.id} ({item.name!r}) has malformed boost metadata: "
            f"{exc.errors(include_url=False)}"
        ) from exc
    if meta.version not in SUPPORTED_BOOST_METADATA_VERSIONS:
        raise MalformedRecordError(
            f"Shop item {item.id} uses unsupported boost metadata version {meta.version}"
        )
    return meta


def parse_event(row: TokenMultiplierEvent) -> EventDefinition:
    try:
        return EventDefinition(multiplier=row.multiplier, quest_types=row.quest_types or [])
    except ValidationError as exc:
        raise MalformedRecordError(
            f"Multiplier event {row.id} ({row.name!r}) is malformed: "
            f"{exc.errors(include_url=False)}"
        ) from exc


def as_utc(moment: datetime) -> datetime:
    """Normalise *moment* to UTC (naive values are taken as UTC already)."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(UTC)


def _store_failure(exc: SQLAlchemyError, what: str) -> Exception:
    if is_transient_db_error(exc):
        return LookupUnavailableError(f"{what} store unavailable: {exc}")
    return DataStoreError(f"{what} lookup failed: {exc}")


# ---------------------------------------------------------------------------
# SQL implementations
# ---------------------------------------------------------------------------
class SqlBoostLookup:
    """Active token boost for a character, read from ``token_purchases``."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def active_boost(self, character_id: int, now: datetime) -> ActiveBoost | None:
        cutoff = as_utc(now)
        stmt = (
            select(TokenPurchase, ShopItem)
            .join(ShopItem, TokenPurchase.shop_item_id == ShopItem.id)
            .where(
                TokenPurchase.character_id == character_id,
                ShopItem.item_type == ShopItemType.TOKEN_BOOST.value,
                TokenPurchase.status == PurchaseStatus.COMPLETED.value,
                TokenPurchase.applied_at.is_not(None),
                TokenPurchase.expires_at > cutoff,
            )
        )
        try:
            with Session(self._engine) as session:
                rows = session.execute(stmt).all()
                candidates = [
                    ActiveBoost(
                        purchase_id=purchase.id,
                        character_id=purchase.character_id,
                        multiplier=parse_boost_metadata(item).multiplier,
                        expires_at=purchase.expires_at,
                    )
                    for purchase, item in rows
                ]
        except SQLAlchemyError as exc:
            raise _store_failure(exc, "Boost") from exc

        if not candidates:
            return None

        best = min(
            candidates,
            key=lambda b: (-b.multiplier, -b.expires_at.timestamp(), b.purchase_id),
        )
        if len(candidates) > 1:
            logger.info(
                "Character %d has %d active boosts; applying purchase %d (x%s)",
                character_id, len(candidates), best.purchase_id, best.multiplier,
            )
        return best


class SqlEventLookup:
    """Highest active multiplier event covering a quest type."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def event_multiplier(self, quest_type: QuestType, now: datetime) -> float:
        moment = as_utc(now)
        stmt = select(TokenMultiplierEvent).where(
            TokenMultiplierEvent.is_active.is_(True),
            TokenMultiplierEvent.start_date <= moment,
            TokenMultiplierEvent.end_date >= moment,
        )
        try:
            with Session(self._engine) as session:
                rows = session.scalars(stmt).all()
                events = [parse_event(row) for row in rows]
        except SQLAlchemyError as exc:
            raise _store_failure(exc, "Event") from exc

        highest = 1.0
        for definition in events:
            if quest_type in definition.quest_types and definition.multiplier > highest:
                highest = definition.multiplier
        return highest
