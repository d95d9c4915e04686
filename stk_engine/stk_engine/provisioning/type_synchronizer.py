"""Type synchronizer: project published enum members into type tables.

``<kind>_type`` is fed by the enum ``<kind>_type_enum``.  Each published
member becomes one type row keyed by the kebab-cased member name; rows that
already exist are left alone, so re-running inserts only newly appended
members and a type row's ``uu`` never changes once issued.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession

from stk_engine.errors import PreconditionError, ProvisioningConflictError
from stk_engine.models.context import ActorContext
from stk_engine.registry.kinds import ConventionSchema
from stk_engine.state.database import dialect_name
from stk_engine.state.repository import EnumValueRepository, _dialect_upsert_nothing

logger = logging.getLogger(__name__)

ENUM_SUFFIX = "_enum"


def enum_identifier_for(type_table_name: str) -> str:
    """``stk_request_type`` -> ``stk_request_type_enum``."""
    return f"{type_table_name}{ENUM_SUFFIX}"


class TypeSynchronizer:
    """Inserts missing type rows for registered entity kinds."""

    def __init__(self, session: AsyncSession, schema: ConventionSchema, *, db_schema: str | None = None) -> None:
        self._session = session
        self._schema = schema
        self._db_schema = db_schema

    async def _table_exists(self, table_name: str) -> bool:
        # SQLite has no named schemas; only PostgreSQL gets the schema filter.
        db_schema = self._db_schema if "postgresql" in dialect_name(self._session) else None

        def _has_table(sync_session) -> bool:  # type: ignore[no-untyped-def]
            return inspect(sync_session.connection()).has_table(table_name, schema=db_schema)

        return await self._session.run_sync(_has_table)

    async def synchronize(self, type_table_name: str, *, actor: ActorContext | None) -> int:
        """Insert a type row for every published member not yet present.

        Parameters
        ----------
        type_table_name:
            Name of a registered type table, e.g. ``stk_request_type``.
        actor:
            Identity stamped into ``created_by_uu`` / ``updated_by_uu``.

        Returns
        -------
        Number of rows inserted (0 when already in sync).

        Raises
        ------
        PreconditionError
            If *actor* is missing, the table is not a registered type table,
            or it does not exist in the database.
        ProvisioningConflictError
            If a published member is not part of the kind's enum variant.
        """
        if actor is None:
            raise PreconditionError("An acting identity is required to synchronize type tables")
        kind = self._schema.kind_for_type_table(type_table_name)
        if kind is None:
            raise PreconditionError(f"Not a registered type table: {type_table_name!r}")
        if not await self._table_exists(type_table_name):
            raise PreconditionError(f"Type table {type_table_name} does not exist")

        identifier = enum_identifier_for(type_table_name)
        variant = self._schema.enums.variant(identifier)
        known = {member.name for member in variant}
        table = self._schema.metadata.tables[type_table_name]

        members = await EnumValueRepository(self._session).list_members(identifier)
        inserted = 0
        for member in members:
            if member.member_name not in known:
                raise ProvisioningConflictError(
                    f"{identifier}: published member {member.member_name} is not part of the registered enum"
                )
            result = await _dialect_upsert_nothing(
                self._session,
                table,
                {
                    "uu": uuid.uuid4(),
                    "created_by_uu": actor.actor_uu,
                    "updated_by_uu": actor.actor_uu,
                    "is_default": member.is_default,
                    "type_enum": member.member_name,
                    "record_json": member.record_json or {},
                    "search_key": member.search_key,
                    "name": member.member_name,
                    "description": member.comment,
                },
                index_elements=["search_key"],
            )
            inserted += result.rowcount or 0  # type: ignore[attr-defined]

        await self._session.flush()
        if inserted:
            logger.info("Synchronized %s: %d new type row(s)", type_table_name, inserted)
        else:
            logger.debug("Synchronized %s: already up to date", type_table_name)
        return inserted

    async def synchronize_all(self, *, actor: ActorContext | None) -> dict[str, int]:
        """Synchronize every registered type table; returns inserted counts by table."""
        return {
            kind.type_table_name: await self.synchronize(kind.type_table_name, actor=actor)
            for kind in self._schema.kinds()
        }
