"""Helpers shared by the record operations."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import Table, select
from sqlalchemy.ext.asyncio import AsyncSession

from stk_engine.errors import PreconditionError, RecordValidationError
from stk_engine.models.context import ActorContext


def as_uuid(value: Any, field: str = "uu") -> uuid.UUID:
    """Coerce *value* to a UUID or raise :class:`RecordValidationError`."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise RecordValidationError(f"{field} is not a valid uuid: {value!r}") from None


def require_actor(actor: ActorContext | None) -> ActorContext:
    if actor is None:
        raise PreconditionError("An acting identity is required for this operation")
    return actor


async def row_exists(session: AsyncSession, table: Table, uu: uuid.UUID) -> bool:
    result = await session.execute(select(table.c.uu).where(table.c.uu == uu).limit(1))
    return result.first() is not None
