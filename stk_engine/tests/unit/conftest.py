"""Shared fixtures for the engine unit tests.

Tests run against in-memory SQLite via aiosqlite.  Timezone-aware DateTime
columns are patched so values read back from SQLite are UTC-aware, the same
way the registry and entity tables behave on PostgreSQL.

Two test kinds are registered into their own metadata:

* ``widget``: STANDARD (default) / PREMIUM, with processed, template,
  validity, parent and association columns, plus a ``widget_line`` line kind.
* ``gadget``: ALPHA / BETA with no default; BETA carries a JSON schema.
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC

import pytest
import pytest_asyncio
from sqlalchemy import DateTime, MetaData
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.types import TypeDecorator

from stk_engine.errors import ProvisioningConflictError
from stk_engine.models.context import ActorContext
from stk_engine.models.trigger_rule import TriggerBinding
from stk_engine.provisioning.type_synchronizer import TypeSynchronizer
from stk_engine.registry.enums import EnumMemberInfo
from stk_engine.registry.kinds import ConventionSchema
from stk_engine.schema import builtin  # noqa: F401  registers built-in kinds into Base.metadata
from stk_engine.state.repository import EnumValueRepository
from stk_engine.state.tables import Base


class _UTCAwareDateTime(TypeDecorator):
    """Coerces naive datetimes returned by SQLite back to UTC-aware."""

    impl = DateTime
    cache_ok = True

    def process_result_value(self, value, dialect):  # type: ignore[override]
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


def _patch_columns_for_sqlite(metadata: MetaData) -> None:
    for table in metadata.tables.values():
        for column in table.columns:
            if isinstance(column.type, DateTime) and getattr(column.type, "timezone", False):
                column.type = _UTCAwareDateTime()


# ---------------------------------------------------------------------------
# Test kinds
# ---------------------------------------------------------------------------


class WidgetType(str, enum.Enum):
    STANDARD = "STANDARD"
    PREMIUM = "PREMIUM"


class WidgetLineType(str, enum.Enum):
    PART = "PART"


class GadgetType(str, enum.Enum):
    ALPHA = "ALPHA"
    BETA = "BETA"


GADGET_SCHEMA = {
    "type": "object",
    "properties": {"serial": {"type": "string"}},
    "required": ["serial"],
}

WIDGET_SCHEMA = ConventionSchema(MetaData())
WIDGET_SCHEMA.define(
    "widget",
    WidgetType,
    {
        WidgetType.STANDARD: EnumMemberInfo(comment="Standard widget", is_default=True),
        WidgetType.PREMIUM: EnumMemberInfo(comment="Premium widget"),
    },
    has_processed=True,
    has_template=True,
    has_valid=True,
    has_parent=True,
    has_association=True,
)
WIDGET_SCHEMA.define(
    "widget_line",
    WidgetLineType,
    {WidgetLineType.PART: EnumMemberInfo(comment="Part line", is_default=True)},
    header="widget",
)
WIDGET_SCHEMA.define(
    "gadget",
    GadgetType,
    {
        GadgetType.ALPHA: EnumMemberInfo(comment="First gadget"),
        GadgetType.BETA: EnumMemberInfo(comment="Serialised gadget", record_json={"json_schema": GADGET_SCHEMA}),
    },
)

_patch_columns_for_sqlite(Base.metadata)
_patch_columns_for_sqlite(WIDGET_SCHEMA.metadata)


# ---------------------------------------------------------------------------
# Fake catalog
# ---------------------------------------------------------------------------


class FakeCatalog:
    """In-memory :class:`SchemaCatalog` recording the bindings it creates."""

    def __init__(self, tables: set[str] | None = None, partition_children: set[str] | None = None) -> None:
        self.tables = set(tables or ())
        self.children = set(partition_children or ())
        self.triggers: set[tuple[str, str]] = set()
        self.created: list[TriggerBinding] = []
        self.lock_count = 0

    async def acquire_lock(self) -> None:
        self.lock_count += 1

    async def base_tables(self) -> set[str]:
        return set(self.tables)

    async def partition_children(self) -> set[str]:
        return set(self.children)

    async def trigger_exists(self, table_name: str, trigger_name: str) -> bool:
        return (table_name, trigger_name) in self.triggers

    async def create_trigger(self, binding: TriggerBinding) -> None:
        key = (binding.table_name, binding.trigger_name)
        if key in self.triggers:
            raise ProvisioningConflictError(f"{binding.trigger_name} already exists on {binding.table_name}")
        self.triggers.add(key)
        self.created.append(binding)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def actor() -> ActorContext:
    return ActorContext(actor_uu=uuid.uuid4(), label="tester")


@pytest.fixture
def widget_schema() -> ConventionSchema:
    return WIDGET_SCHEMA


@pytest.fixture
def sqlite_patch():
    """Patch a test-local metadata the same way the shared metadata is patched."""
    return _patch_columns_for_sqlite


@pytest.fixture
def fake_catalog() -> FakeCatalog:
    return FakeCatalog(tables={"stk_request", "stk_event", "stk_change_log", "stk_trigger_mgt"})


@pytest_asyncio.fixture
async def async_session():
    """Provide an async session backed by an in-memory SQLite database."""
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.run_sync(WIDGET_SCHEMA.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def widget_session(async_session: AsyncSession, actor: ActorContext) -> AsyncSession:
    """Session whose widget, widget_line and gadget type tables are synchronized."""
    await EnumValueRepository(async_session).publish(WIDGET_SCHEMA.enums)
    await TypeSynchronizer(async_session, WIDGET_SCHEMA).synchronize_all(actor=actor)
    return async_session
