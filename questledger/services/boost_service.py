"""
questledger.services.boost_service — Token Boost Activation
============================================================

Turns a completed token-boost purchase into an active boost by stamping
its activation window.  Once applied, the purchase is visible to
:class:`~questledger.services.lookup_service.SqlBoostLookup` until
``expires_at``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import Engine

from questledger.database.engine import get_session
from questledger.database.models import PurchaseStatus, ShopItemType, TokenPurchase
from questledger.errors import InvalidRewardInputError, MalformedRecordError
from questledger.services.lookup_service import as_utc, parse_boost_metadata

logger = logging.getLogger(__name__)


def activate_boost(engine: Engine, purchase_id: int, now: datetime) -> TokenPurchase:
    """Apply a completed token-boost purchase starting at *now*.

    Sets ``applied_at = now`` and ``expires_at = now + duration`` where
    ``duration`` (seconds) comes from the shop item's validated metadata.

    Raises
    ------
    InvalidRewardInputError
        Unknown purchase, not a token boost, not completed, or already applied.
    MalformedRecordError
        The item's boost metadata is invalid or has no duration.
    """
    started = as_utc(now)
    with get_session(engine, expire_on_commit=False) as session:
        purchase = session.get(TokenPurchase, purchase_id)
        if purchase is None:
            raise InvalidRewardInputError(f"Token purchase {purchase_id} not found")

        item = purchase.shop_item
        if item.item_type != ShopItemType.TOKEN_BOOST.value:
            raise InvalidRewardInputError(
                f"Purchase {purchase_id} is a {item.item_type!r}, not a token boost"
            )
        if purchase.status != PurchaseStatus.COMPLETED.value:
            raise InvalidRewardInputError(
                f"Purchase {purchase_id} has status {purchase.status!r}; only completed "
                "purchases can be activated"
            )
        if purchase.applied_at is not None:
            raise InvalidRewardInputError(f"Purchase {purchase_id} is already applied")

        meta = parse_boost_metadata(item)
        if meta.duration is None:
            raise MalformedRecordError(
                f"Shop item {item.id} ({item.name!r}) has no boost duration"
            )

        purchase.applied_at = started
        purchase.expires_at = started + timedelta(seconds=meta.duration)

    logger.info(
        "Activated boost purchase %d for character %d: x%s until %s",
        purchase.id, purchase.character_id, meta.multiplier, purchase.expires_at,
    )
    return purchase
