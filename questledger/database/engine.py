"""
questledger.database.engine — Database Connection & Async Helper
=================================================================

**Why this file exists:**
The reward engine is a synchronous SQLAlchemy library, but most host
applications that call it (web handlers, bots) run on an ``asyncio``
event loop.  Calling the DB directly from async code would block the
loop until the ledger transaction commits.

The bridge is the same one every service uses:

    1. The host's async handler calls ``await run_db(func, *args)``.
    2. ``run_db`` ships the synchronous function to a **thread pool** via
       ``asyncio.to_thread()``.
    3. The transaction runs on that thread — the event loop stays free.

Usage::

    from questledger.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from the environment
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async handler:
    summary = await run_db(get_token_summary, engine, user_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from questledger.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine`.

    *url* defaults to the ``DATABASE_URL`` environment variable.  The pool
    is sized for a request-driven service:

    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine, *, seed: bool = True) -> None:
    """Create all tables defined in :mod:`questledger.database.models`.

    Safe to call on every startup.  When *seed* is true the default
    token-boost shop items are inserted (idempotent).

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    if seed:
        from questledger.database.seed import seed_default_shop_items

        seed_default_shop_items(engine)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine, **session_kwargs) -> Iterator[Session]:
    """Yield a :class:`Session` that commits on success and rolls back on
    exception.

    Usage::

        with get_session(engine) as session:
            session.add(ShopItem(name="Token Boost 3x", item_type="token_boost"))
            # commit happens automatically on block exit
    """
    session = Session(engine, **session_kwargs)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------
def is_transient_db_error(exc: BaseException) -> bool:
    """True for connection-level failures worth retrying.

    Operational errors (lost connection, lock timeout, serialization
    failure), interface errors and pool timeouts are transient; anything
    else (programming/data/integrity errors) is not.
    """
    return isinstance(exc, (OperationalError, InterfaceError, PoolTimeoutError))


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Under the hood it calls :func:`asyncio.to_thread`, which schedules
    *func* on the default ``ThreadPoolExecutor`` so the caller's event
    loop is never blocked.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
