"""Type listing and resolution for entity kinds."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stk_engine.errors import RecordValidationError
from stk_engine.records._common import as_uuid
from stk_engine.registry.kinds import ConventionSchema

logger = logging.getLogger(__name__)


class TypeResolver:
    """Reads the type table that belongs to an entity kind."""

    def __init__(self, session: AsyncSession, schema: ConventionSchema) -> None:
        self._session = session
        self._schema = schema

    async def list_types(self, table_name: str, *, include_revoked: bool = False) -> list[dict[str, Any]]:
        """Return every type row of *table_name*'s kind, oldest first."""
        type_table = self._schema.type_table(table_name)
        stmt = select(type_table).order_by(type_table.c.created, type_table.c.search_key)
        if not include_revoked:
            stmt = stmt.where(type_table.c.revoked.is_(None))
        result = await self._session.execute(stmt)
        return [dict(row._mapping) for row in result.all()]

    async def resolve_type(
        self,
        table_name: str,
        *,
        type_uu: Any = None,
        type_search_key: str | None = None,
        type_name: str | None = None,
    ) -> dict[str, Any]:
        """Resolve a type row by at most one identifier.

        With no identifier the kind's default type is returned.  Revoked
        type rows never resolve.

        Raises
        ------
        RecordValidationError
            If more than one identifier is given, no row matches, or no
            default exists for the kind.
        """
        type_table = self._schema.type_table(table_name)
        supplied = {
            key: value
            for key, value in (("type_uu", type_uu), ("type_search_key", type_search_key), ("type_name", type_name))
            if value is not None
        }
        if len(supplied) > 1:
            raise RecordValidationError(
                f"Ambiguous type for {table_name}: supply only one of {', '.join(sorted(supplied))}"
            )

        stmt = select(type_table).where(type_table.c.revoked.is_(None))
        if not supplied:
            stmt = stmt.where(type_table.c.is_default.is_(True))
            description = "default type"
        elif type_uu is not None:
            stmt = stmt.where(type_table.c.uu == as_uuid(type_uu, "type_uu"))
            description = f"type uu {type_uu}"
        elif type_search_key is not None:
            stmt = stmt.where(type_table.c.search_key == type_search_key)
            description = f"type search_key {type_search_key!r}"
        else:
            stmt = stmt.where(type_table.c.name == type_name)
            description = f"type name {type_name!r}"

        result = await self._session.execute(stmt.order_by(type_table.c.created).limit(1))
        row = result.first()
        if row is None:
            raise RecordValidationError(f"No {description} found for {table_name}")
        logger.debug("Resolved %s for %s to %s", description, table_name, row.search_key)
        return dict(row._mapping)
