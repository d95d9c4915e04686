"""Polymorphic association resolution.

An association is an inline ``{table_name, uu}`` value.  The target table
must be one the convention schema registered; a bare uu is resolved by
scanning every registered table in registration order.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stk_engine.errors import PreconditionError, ReferentialError
from stk_engine.models.context import Association
from stk_engine.records._common import as_uuid, row_exists
from stk_engine.registry.kinds import ConventionSchema

logger = logging.getLogger(__name__)


async def lookup_table_by_uu(session: AsyncSession, schema: ConventionSchema, uu: Any) -> str | None:
    """Return the registered table holding a row with *uu*, or ``None``."""
    target = as_uuid(uu)
    for table_name in schema.table_names():
        table = schema.table(table_name)
        result = await session.execute(select(table.c.uu).where(table.c.uu == target).limit(1))
        if result.first() is not None:
            return table_name
    return None


async def resolve_association(
    session: AsyncSession,
    schema: ConventionSchema,
    uu: Any,
    table_name: str | None = None,
) -> Association:
    """Build the association for *uu*, checking it against the registry.

    Raises
    ------
    ReferentialError
        If *table_name* is not a registered table or holds no row *uu*.
    PreconditionError
        If no *table_name* was given and no registered table holds *uu*.
    """
    target = as_uuid(uu, "attach uu")
    if table_name:
        if table_name not in schema.table_names():
            raise ReferentialError(f"Association target table is not registered: {table_name!r}")
        if not await row_exists(session, schema.table(table_name), target):
            raise ReferentialError(f"{target} is not a row of {table_name}")
        return Association(table_name=table_name, uu=str(target))

    found = await lookup_table_by_uu(session, schema, target)
    if found is None:
        raise PreconditionError(f"Attachment target {target} was not found in any registered table")
    logger.debug("Resolved association target %s to %s", target, found)
    return Association(table_name=found, uu=str(target))
