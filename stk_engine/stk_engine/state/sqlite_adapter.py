"""SQLite adapter for local-only operation.

Provides an async SQLAlchemy engine backed by ``aiosqlite`` that uses the
same table definitions as the production PostgreSQL backend, so the record
operations and the type synchronizer run unchanged against a local file.

Key differences from the PostgreSQL backend:

* No connection pooling (SQLite is single-writer).
* Tables are created from metadata instead of Alembic migrations.
* JSONB / TEXT[] columns fall back to SQLite JSON (stored as TEXT).
* Trigger provisioning is unavailable; SQLite trigger names are
  database-global and there are no trigger functions.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import MetaData, event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)


def get_local_engine(
    db_path: Path | str = ".stk/state.db",
) -> AsyncEngine:
    """Create an async SQLAlchemy engine backed by SQLite via aiosqlite.

    Use ``:memory:`` for ephemeral in-memory databases.
    """
    db_path = Path(db_path) if db_path != ":memory:" else db_path

    if isinstance(db_path, Path):
        db_path.parent.mkdir(parents=True, exist_ok=True)
        url = f"sqlite+aiosqlite:///{db_path}"
    else:
        url = "sqlite+aiosqlite:///:memory:"

    engine = create_async_engine(
        url,
        echo=False,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_conn: object, _: object) -> None:
        cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    logger.info("Created SQLite engine: %s", url)
    return engine


async def create_local_tables(engine: AsyncEngine, metadata: MetaData | None = None) -> None:
    """Create registry and built-in entity tables in the SQLite database.

    Idempotent; safe to call on every startup.
    """
    if metadata is None:
        from stk_engine.schema.builtin import SCHEMA

        metadata = SCHEMA.metadata

    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    logger.info("SQLite tables created/verified")
