"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import BigInteger, Engine, create_engine
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from questledger.database.models import (
    Base,
    PurchaseStatus,
    ShopItem,
    ShopItemType,
    TokenMultiplierEvent,
    TokenPurchase,
)

# ---------------------------------------------------------------------------
# Make JSONB and BigInteger work in SQLite for testing.
# JSONB renders as TEXT (SQLAlchemy's JSON serialiser still applies) and
# BigInteger as INTEGER so autoincrement primary keys work.
# ---------------------------------------------------------------------------
_sqlite_shims_registered = False


def _register_sqlite_compat():
    """Register SQLite compilation for PG-only column types (idempotent)."""
    global _sqlite_shims_registered
    if _sqlite_shims_registered:
        return

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _sqlite_shims_registered = True


_register_sqlite_compat()


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)
"""Fixed "current time" shared by the service tests."""


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all QuestLedger tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------
def add_shop_item(
    engine: Engine,
    name: str = "Token Boost 2x",
    metadata: dict | None = None,
    item_type: str = ShopItemType.TOKEN_BOOST.value,
) -> int:
    """Insert a shop item and return its id."""
    if metadata is None:
        metadata = {"version": 1, "multiplier": 2.0, "duration": 259200}
    with Session(engine) as session:
        item = ShopItem(name=name, item_type=item_type, price=100, metadata_=metadata)
        session.add(item)
        session.commit()
        return item.id


def add_purchase(
    engine: Engine,
    shop_item_id: int,
    character_id: int = 7,
    status: str = PurchaseStatus.COMPLETED.value,
    applied_at: datetime | None = NOW - timedelta(hours=1),
    expires_at: datetime | None = NOW + timedelta(hours=23),
) -> int:
    """Insert a token purchase (applied and unexpired by default)."""
    with Session(engine) as session:
        purchase = TokenPurchase(
            character_id=character_id,
            shop_item_id=shop_item_id,
            status=status,
            applied_at=applied_at,
            expires_at=expires_at,
        )
        session.add(purchase)
        session.commit()
        return purchase.id


def add_event(
    engine: Engine,
    multiplier: float = 1.5,
    quest_types: list | None = None,
    start: datetime = NOW - timedelta(days=1),
    end: datetime = NOW + timedelta(days=1),
    is_active: bool = True,
    name: str = "Double Weekend",
) -> int:
    """Insert a multiplier event (active around ``NOW`` by default)."""
    with Session(engine) as session:
        event = TokenMultiplierEvent(
            name=name,
            multiplier=multiplier,
            quest_types=["daily"] if quest_types is None else quest_types,
            start_date=start,
            end_date=end,
            is_active=is_active,
        )
        session.add(event)
        session.commit()
        return event.id
