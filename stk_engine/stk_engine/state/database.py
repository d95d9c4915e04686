"""Async SQLAlchemy engine and session helpers.

The engine kind follows the database URL scheme:
  - ``postgresql+asyncpg://`` → connection-pooled PostgreSQL engine
  - ``sqlite+aiosqlite://``   → local SQLite engine (no trigger provisioning)

No statement or lock timeout is imposed unless configured; provisioning runs
at migration time and must be able to wait for locks on busy tables.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine

logger = logging.getLogger(__name__)


def _server_settings(statement_timeout_ms: int | None, lock_timeout_ms: int | None) -> dict[str, str]:
    settings: dict[str, str] = {}
    if statement_timeout_ms is not None:
        settings["statement_timeout"] = str(statement_timeout_ms)
    if lock_timeout_ms is not None:
        settings["lock_timeout"] = str(lock_timeout_ms)
    return settings


def get_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
    *,
    statement_timeout_ms: int | None = None,
    lock_timeout_ms: int | None = None,
) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Parameters
    ----------
    database_url:
        Connection string (PostgreSQL or SQLite scheme).
    pool_size:
        Number of persistent connections for PostgreSQL (ignored for SQLite).
    max_overflow:
        Maximum overflow connections for PostgreSQL (ignored for SQLite).
    statement_timeout_ms, lock_timeout_ms:
        Optional PostgreSQL session timeouts; ``None`` leaves the server
        default in place.
    """
    if database_url.startswith("sqlite"):
        from stk_engine.state.sqlite_adapter import get_local_engine

        # sqlite+aiosqlite:///path/to/db
        db_path = database_url.split("///", 1)[-1] if "///" in database_url else ":memory:"
        return get_local_engine(db_path or ":memory:")

    connect_args: dict[str, Any] = {}
    server_settings = _server_settings(statement_timeout_ms, lock_timeout_ms)
    if server_settings:
        connect_args["server_settings"] = server_settings

    engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
        connect_args=connect_args,
    )
    logger.info(
        "Created async engine pool_size=%d max_overflow=%d timeouts=%s",
        pool_size,
        max_overflow,
        server_settings or "server default",
    )
    return engine


def dialect_name(session: AsyncSession) -> str:
    """Return the dialect name (``postgresql``, ``sqlite``) bound to *session*."""
    bind = session.get_bind()
    return str(getattr(getattr(bind, "dialect", None), "name", ""))


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session that commits on success and rolls back on error."""
    async with AsyncSession(engine, expire_on_commit=False) as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
