"""
questledger.database.seed — Default Shop Item Seeder
=====================================================

Baseline token-boost items seeded on first startup so boosts can be
purchased and activated immediately.

Idempotent — only inserts items whose name doesn't already exist.  Items
edited by admins afterwards are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from questledger.database.models import ShopItem, ShopItemType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default catalogue
# ---------------------------------------------------------------------------
DEFAULT_SHOP_ITEMS: dict[str, tuple[int, dict, str]] = {
    "Token Boost 1.5x": (
        150,
        {"version": 1, "multiplier": 1.5, "duration": 86400},
        "Earn 50% more quest tokens for 24 hours",
    ),
    "Token Boost 2x": (
        300,
        {"version": 1, "multiplier": 2.0, "duration": 259200},
        "Earn double quest tokens for 3 days",
    ),
}
"""Each entry maps ``name`` → ``(price, metadata, description)``."""


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_shop_items(engine: Engine) -> int:
    """Insert default token-boost items that don't yet exist.

    Returns the number of rows inserted.
    """
    session = Session(engine)
    inserted = 0
    try:
        existing = set(session.scalars(select(ShopItem.name)).all())
        for name, (price, metadata, desc) in DEFAULT_SHOP_ITEMS.items():
            if name in existing:
                continue
            session.add(ShopItem(
                name=name,
                description=desc,
                item_type=ShopItemType.TOKEN_BOOST.value,
                price=price,
                metadata_=dict(metadata),
                is_active=True,
            ))
            inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default shop items.", inserted)
    return inserted
