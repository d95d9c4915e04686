"""Tests for the local SQLite engine and the session helper."""

from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import inspect, text

from stk_engine.state.database import dialect_name, get_engine, get_session
from stk_engine.state.sqlite_adapter import create_local_tables, get_local_engine


class TestSqliteAdapter:
    @pytest.mark.asyncio
    async def test_creates_builtin_tables(self, tmp_path: Path) -> None:
        engine = get_local_engine(tmp_path / "nested" / "state.db")
        try:
            await create_local_tables(engine)
            async with engine.connect() as conn:
                names = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
        finally:
            await engine.dispose()

        assert {"stk_enum_value", "stk_trigger_mgt", "stk_change_log"} <= names
        assert {"stk_request", "stk_request_type", "stk_invoice_line", "stk_invoice_line_type"} <= names
        assert (tmp_path / "nested" / "state.db").exists()

    @pytest.mark.asyncio
    async def test_foreign_keys_enabled(self, tmp_path: Path) -> None:
        engine = get_local_engine(tmp_path / "state.db")
        try:
            async with engine.connect() as conn:
                result = await conn.execute(text("PRAGMA foreign_keys"))
                assert result.scalar() == 1
        finally:
            await engine.dispose()


class TestGetSession:
    @pytest.mark.asyncio
    async def test_commits_on_success(self, tmp_path: Path) -> None:
        engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'state.db'}")
        try:
            async with get_session(engine) as session:
                assert dialect_name(session) == "sqlite"
                await session.execute(text("CREATE TABLE scratch (id INTEGER)"))
                await session.execute(text("INSERT INTO scratch VALUES (1)"))
            async with get_session(engine) as session:
                count = (await session.execute(text("SELECT count(*) FROM scratch"))).scalar()
        finally:
            await engine.dispose()
        assert count == 1

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, tmp_path: Path) -> None:
        engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'state.db'}")
        try:
            async with get_session(engine) as session:
                await session.execute(text("CREATE TABLE scratch (id INTEGER)"))
            with pytest.raises(RuntimeError):
                async with get_session(engine) as session:
                    await session.execute(text("INSERT INTO scratch VALUES (1)"))
                    raise RuntimeError("abort")
            async with get_session(engine) as session:
                count = (await session.execute(text("SELECT count(*) FROM scratch"))).scalar()
        finally:
            await engine.dispose()
        assert count == 0
