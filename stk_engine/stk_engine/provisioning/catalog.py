"""Live schema catalog access for trigger provisioning.

The provisioner depends on the :class:`SchemaCatalog` protocol only.
:class:`PostgresCatalog` answers it from ``information_schema`` and
``pg_inherits``; every query binds names as parameters and the one DDL
statement it issues is rendered by :mod:`stk_engine.provisioning.ddl`.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from stk_engine.errors import PreconditionError, ProvisioningConflictError
from stk_engine.models.trigger_rule import TriggerBinding
from stk_engine.provisioning import ddl
from stk_engine.state.database import dialect_name

logger = logging.getLogger(__name__)

# SQLSTATE duplicate_object, raised when a trigger name already exists on a table.
_DUPLICATE_OBJECT = "42710"

# Arbitrary application-wide key for the provisioning advisory lock.
_PROVISIONING_LOCK_KEY = 0x57C7_0001


@runtime_checkable
class SchemaCatalog(Protocol):
    """What the trigger provisioner needs to know about the live schema."""

    async def acquire_lock(self) -> None:
        """Serialise provisioning runs for the rest of the transaction."""
        ...

    async def base_tables(self) -> set[str]:
        """Names of all base tables in the convention schema."""
        ...

    async def partition_children(self) -> set[str]:
        """Names of tables that are partitions of a partitioned parent."""
        ...

    async def trigger_exists(self, table_name: str, trigger_name: str) -> bool: ...

    async def create_trigger(self, binding: TriggerBinding) -> None:
        """Create *binding*; raise :class:`ProvisioningConflictError` on a name collision."""
        ...


_BASE_TABLES_SQL = text(
    "SELECT table_name FROM information_schema.tables "
    "WHERE table_schema = :schema AND table_type = 'BASE TABLE'"
)

# Children of partitioned parents; triggers attach once at the parent.
_PARTITION_CHILDREN_SQL = text(
    "SELECT child.relname "
    "FROM pg_inherits "
    "JOIN pg_class parent ON pg_inherits.inhparent = parent.oid "
    "JOIN pg_class child ON pg_inherits.inhrelid = child.oid "
    "JOIN pg_namespace nmsp_child ON nmsp_child.oid = child.relnamespace "
    "WHERE parent.relkind = 'p' AND nmsp_child.nspname = :schema"
)

_TRIGGER_EXISTS_SQL = text(
    "SELECT 1 FROM information_schema.triggers "
    "WHERE trigger_schema = :schema AND event_object_table = :table_name "
    "AND trigger_name = :trigger_name LIMIT 1"
)


class PostgresCatalog:
    """:class:`SchemaCatalog` backed by the PostgreSQL system catalogs."""

    def __init__(self, session: AsyncSession, *, schema: str = "public") -> None:
        self._session = session
        self._schema = ddl.validate_identifier(schema, kind="schema")
        self._known_tables: set[str] | None = None

    async def acquire_lock(self) -> None:
        await self._session.execute(
            text("SELECT pg_advisory_xact_lock(:lock_id)"),
            {"lock_id": _PROVISIONING_LOCK_KEY},
        )

    async def base_tables(self) -> set[str]:
        result = await self._session.execute(_BASE_TABLES_SQL, {"schema": self._schema})
        self._known_tables = {row[0] for row in result.all()}
        return set(self._known_tables)

    async def partition_children(self) -> set[str]:
        result = await self._session.execute(_PARTITION_CHILDREN_SQL, {"schema": self._schema})
        return {row[0] for row in result.all()}

    async def trigger_exists(self, table_name: str, trigger_name: str) -> bool:
        result = await self._session.execute(
            _TRIGGER_EXISTS_SQL,
            {"schema": self._schema, "table_name": table_name, "trigger_name": trigger_name},
        )
        return result.first() is not None

    async def create_trigger(self, binding: TriggerBinding) -> None:
        allowed = self._known_tables if self._known_tables is not None else await self.base_tables()
        statement = ddl.render_create_trigger(
            schema=self._schema,
            table_name=binding.table_name,
            trigger=binding.trigger_name,
            function=binding.function_name,
            event_clause=binding.event_spec.render(),
            allowed_tables=allowed,
        )
        try:
            await self._session.execute(text(statement))
        except DBAPIError as exc:
            sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
            if sqlstate == _DUPLICATE_OBJECT or "already exists" in str(exc.orig):
                raise ProvisioningConflictError(
                    f"Trigger {binding.trigger_name} on {self._schema}.{binding.table_name} "
                    "was created concurrently"
                ) from exc
            raise


def catalog_for(session: AsyncSession, *, schema: str = "public") -> SchemaCatalog:
    """Return the catalog implementation for the session's dialect.

    Raises
    ------
    PreconditionError
        If the bound database is not PostgreSQL.
    """
    name = dialect_name(session)
    if "postgresql" in name:
        return PostgresCatalog(session, schema=schema)
    raise PreconditionError(f"Trigger provisioning requires PostgreSQL, got {name or 'unknown'} dialect")
