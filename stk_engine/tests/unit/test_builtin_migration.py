"""Tests for the built-in entity migration.

The revision is applied with Alembic operations against a throwaway SQLite
database and compared with the tables the entity-kind registry builds, so a
kind added to the registry without a new revision is caught here.
"""

from __future__ import annotations

import importlib.util
from collections.abc import Callable, Iterator
from pathlib import Path
from types import ModuleType

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import Connection, create_engine, inspect, text

import stk_engine
from stk_engine.schema.builtin import SCHEMA

_VERSIONS = Path(stk_engine.__file__).parent / "state" / "migrations" / "versions"


def _load_revision(filename: str) -> ModuleType:
    spec = importlib.util.spec_from_file_location(f"stk_revision_{filename[:3]}", _VERSIONS / filename)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture()
def connection() -> Iterator[Connection]:
    engine = create_engine("sqlite://")
    with engine.begin() as conn:
        yield conn
    engine.dispose()


def _run(conn: Connection, step: Callable[[], None]) -> None:
    with Operations.context(MigrationContext.configure(conn)):
        step()


class TestBuiltinEntitiesRevision:
    def test_revision_chain(self) -> None:
        revision = _load_revision("002_builtin_entities.py")
        assert revision.revision == "002"
        assert revision.down_revision == "001"

    def test_creates_every_registered_table(self, connection: Connection) -> None:
        _run(connection, _load_revision("002_builtin_entities.py").upgrade)

        inspector = inspect(connection)
        assert set(inspector.get_table_names()) == set(SCHEMA.table_names())
        for table in SCHEMA.tables():
            columns = {column["name"] for column in inspector.get_columns(table.name)}
            assert columns == set(table.c.keys()), table.name

    def test_rows_insert_with_server_defaults(self, connection: Connection) -> None:
        _run(connection, _load_revision("002_builtin_entities.py").upgrade)

        connection.execute(
            text(
                "INSERT INTO stk_request_type (uu, created_by_uu, updated_by_uu, type_enum, search_key, name) "
                "VALUES ('00000000000000000000000000000001', '00000000000000000000000000000009', "
                "'00000000000000000000000000000009', 'NOTE', 'note', 'NOTE')"
            )
        )
        row = connection.execute(
            text("SELECT table_name, is_default, record_json, created, is_revoked FROM stk_request_type")
        ).one()

        assert row.table_name == "stk_request_type"
        assert not row.is_default
        assert row.record_json == "{}"
        assert row.created is not None
        assert not row.is_revoked

    def test_downgrade_drops_everything(self, connection: Connection) -> None:
        revision = _load_revision("002_builtin_entities.py")
        _run(connection, revision.upgrade)
        _run(connection, revision.downgrade)

        assert inspect(connection).get_table_names() == []
