"""Tests for the PostgreSQL catalog using a mocked AsyncSession."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import DBAPIError

from stk_engine.errors import PreconditionError, ProvisioningConflictError, UnsafeIdentifierError
from stk_engine.models.trigger_rule import EventSpec, TriggerBinding, TriggerEvent, TriggerTiming
from stk_engine.provisioning.catalog import PostgresCatalog, SchemaCatalog, catalog_for

_BINDING = TriggerBinding(
    table_name="stk_request",
    trigger_name="t10100_stk_change_log",
    function_name="t10100_stk_change_log",
    event_spec=EventSpec(timing=TriggerTiming.AFTER, events=(TriggerEvent.INSERT, TriggerEvent.UPDATE)),
)


def _result(rows: list[tuple]) -> MagicMock:
    result = MagicMock()
    result.all.return_value = rows
    result.first.return_value = rows[0] if rows else None
    return result


def _session(*results: object) -> AsyncMock:
    session = AsyncMock()
    session.execute.side_effect = list(results)
    return session


def _sql(session: AsyncMock, call_index: int) -> str:
    return str(session.execute.await_args_list[call_index].args[0])


def _params(session: AsyncMock, call_index: int) -> dict:
    return session.execute.await_args_list[call_index].args[1]


class TestQueries:
    @pytest.mark.asyncio
    async def test_base_tables_binds_schema(self) -> None:
        session = _session(_result([("stk_request",), ("stk_event",)]))
        catalog = PostgresCatalog(session, schema="private")

        assert await catalog.base_tables() == {"stk_request", "stk_event"}
        assert "information_schema.tables" in _sql(session, 0)
        assert "BASE TABLE" in _sql(session, 0)
        assert _params(session, 0) == {"schema": "private"}

    @pytest.mark.asyncio
    async def test_partition_children_walk_pg_inherits(self) -> None:
        session = _session(_result([("stk_change_log_2026",)]))

        assert await PostgresCatalog(session).partition_children() == {"stk_change_log_2026"}
        sql = _sql(session, 0)
        assert "pg_inherits" in sql
        assert "relkind = 'p'" in sql

    @pytest.mark.asyncio
    async def test_trigger_exists(self) -> None:
        session = _session(_result([(1,)]), _result([]))
        catalog = PostgresCatalog(session)

        assert await catalog.trigger_exists("stk_request", "t10100_stk_change_log") is True
        assert await catalog.trigger_exists("stk_event", "t10100_stk_change_log") is False
        assert _params(session, 1) == {
            "schema": "public",
            "table_name": "stk_event",
            "trigger_name": "t10100_stk_change_log",
        }

    @pytest.mark.asyncio
    async def test_acquire_lock_uses_transaction_advisory_lock(self) -> None:
        session = _session(_result([]))
        await PostgresCatalog(session).acquire_lock()
        assert "pg_advisory_xact_lock" in _sql(session, 0)
        assert set(_params(session, 0)) == {"lock_id"}

    def test_schema_name_validated(self) -> None:
        with pytest.raises(UnsafeIdentifierError):
            PostgresCatalog(AsyncMock(), schema="public; DROP SCHEMA x")

    def test_satisfies_protocol(self) -> None:
        assert isinstance(PostgresCatalog(AsyncMock()), SchemaCatalog)


class TestCreateTrigger:
    @pytest.mark.asyncio
    async def test_renders_ddl_for_catalog_table(self) -> None:
        session = _session(_result([("stk_request",)]), _result([]))

        await PostgresCatalog(session).create_trigger(_BINDING)

        assert _sql(session, 1) == (
            'CREATE TRIGGER "t10100_stk_change_log" AFTER INSERT OR UPDATE '
            'ON "public"."stk_request" FOR EACH ROW EXECUTE FUNCTION "t10100_stk_change_log"()'
        )

    @pytest.mark.asyncio
    async def test_non_public_schema_qualifies_table_only(self) -> None:
        session = _session(_result([("stk_request",)]), _result([]))

        await PostgresCatalog(session, schema="private").create_trigger(_BINDING)

        assert _sql(session, 1) == (
            'CREATE TRIGGER "t10100_stk_change_log" AFTER INSERT OR UPDATE '
            'ON "private"."stk_request" FOR EACH ROW EXECUTE FUNCTION "t10100_stk_change_log"()'
        )

    @pytest.mark.asyncio
    async def test_table_missing_from_catalog_rejected(self) -> None:
        session = _session(_result([("stk_event",)]))

        with pytest.raises(UnsafeIdentifierError):
            await PostgresCatalog(session).create_trigger(_BINDING)
        assert session.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_duplicate_object_is_provisioning_conflict(self) -> None:
        orig = Exception('trigger "t10100_stk_change_log" for relation "stk_request" already exists')
        orig.sqlstate = "42710"  # type: ignore[attr-defined]
        session = _session(_result([("stk_request",)]), DBAPIError("CREATE TRIGGER", {}, orig))

        with pytest.raises(ProvisioningConflictError, match="concurrently"):
            await PostgresCatalog(session).create_trigger(_BINDING)

    @pytest.mark.asyncio
    async def test_other_database_errors_propagate(self) -> None:
        orig = Exception("function t10100_stk_change_log() does not exist")
        orig.sqlstate = "42883"  # type: ignore[attr-defined]
        session = _session(_result([("stk_request",)]), DBAPIError("CREATE TRIGGER", {}, orig))

        with pytest.raises(DBAPIError):
            await PostgresCatalog(session).create_trigger(_BINDING)


class TestCatalogFor:
    def test_postgresql_session(self) -> None:
        session = MagicMock()
        session.get_bind.return_value.dialect.name = "postgresql"
        assert isinstance(catalog_for(session, schema="public"), PostgresCatalog)

    def test_other_dialects_rejected(self) -> None:
        session = MagicMock()
        session.get_bind.return_value.dialect.name = "sqlite"
        with pytest.raises(PreconditionError, match="sqlite"):
            catalog_for(session)
