"""Repositories for the convention registry tables.

Each repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  All writes call ``session.flush()``
so that generated defaults are populated; the caller is responsible for calling
``session.commit()`` (or relying on the ``get_session`` context manager).
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stk_engine.errors import ProvisioningConflictError
from stk_engine.models.context import ActorContext
from stk_engine.models.enum_member import EnumMember
from stk_engine.models.trigger_rule import EventSpec, TriggerRule
from stk_engine.registry.enums import EnumRegistry
from stk_engine.state.database import dialect_name
from stk_engine.state.tables import EnumValueTable, TriggerRuleTable

logger = logging.getLogger(__name__)


async def _dialect_upsert_nothing(
    session: AsyncSession,
    table: Any,
    values: dict[str, Any],
    index_elements: list[str],
) -> Any:
    """Dialect-aware insert with ``ON CONFLICT DO NOTHING``.

    Parameters
    ----------
    session:
        The active async session.
    table:
        The SQLAlchemy table (or mapped class) to insert into.
    values:
        Column-value mapping for the row to insert.
    index_elements:
        Column names forming the unique constraint for conflict detection.

    Returns
    -------
    The execution result from ``session.execute()``; ``rowcount`` is 1 when
    the row was inserted and 0 when it already existed.
    """
    stmt: Any
    if "postgresql" in dialect_name(session):
        from sqlalchemy.dialects.postgresql import insert as _pg_insert

        stmt = _pg_insert(table).values(**values)
    else:
        from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

        stmt = _sqlite_insert(table).values(**values)
    stmt = stmt.on_conflict_do_nothing(index_elements=index_elements)
    return await session.execute(stmt)


# ---------------------------------------------------------------------------
# EnumValueRepository
# ---------------------------------------------------------------------------


class EnumValueRepository:
    """Read/write access to ``stk_enum_value``."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def publish(self, registry: EnumRegistry) -> int:
        """Write every registered member; existing members are left untouched.

        Returns the number of newly inserted members.
        """
        inserted = 0
        for identifier in registry.identifiers():
            for position, member in enumerate(registry.members(identifier)):
                result = await _dialect_upsert_nothing(
                    self._session,
                    EnumValueTable,
                    {
                        "enum_identifier": member.enum_identifier,
                        "member_name": member.member_name,
                        "position": position,
                        "comment": member.comment,
                        "is_default": member.is_default,
                        "record_json": member.record_json,
                    },
                    index_elements=["enum_identifier", "member_name"],
                )
                inserted += result.rowcount or 0  # type: ignore[attr-defined]
        await self._session.flush()
        if inserted:
            logger.info("Published %d new enum member(s)", inserted)
        return inserted

    async def list_members(self, enum_identifier: str) -> list[EnumMember]:
        """Return published members of *enum_identifier* in declaration order."""
        stmt = (
            select(EnumValueTable)
            .where(EnumValueTable.enum_identifier == enum_identifier)
            .order_by(EnumValueTable.position, EnumValueTable.created)
        )
        result = await self._session.execute(stmt)
        return [
            EnumMember(
                enum_identifier=row.enum_identifier,
                member_name=row.member_name,
                comment=row.comment,
                is_default=row.is_default,
                record_json=row.record_json,
            )
            for row in result.scalars().all()
        ]


# ---------------------------------------------------------------------------
# TriggerRuleRepository
# ---------------------------------------------------------------------------


def _row_to_rule(row: TriggerRuleTable) -> TriggerRule:
    return TriggerRule(
        root_name=row.root_name,
        event_prefix=row.event_prefix,
        event_spec=EventSpec.parse(row.event_spec),
        is_include=row.is_include,
        is_exclude=row.is_exclude,
        table_scope=tuple(row.table_scope or ()),
    )


class TriggerRuleRepository:
    """CRUD operations for ``stk_trigger_mgt``."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, rule: TriggerRule, *, actor: ActorContext) -> TriggerRule:
        """Insert a new rule.

        Raises
        ------
        ProvisioningConflictError
            If a rule with the same ``root_name`` already exists.
        """
        row = TriggerRuleTable(
            created_by_uu=actor.actor_uu,
            updated_by_uu=actor.actor_uu,
            is_include=rule.is_include,
            is_exclude=rule.is_exclude,
            table_scope=list(rule.table_scope),
            event_prefix=rule.event_prefix,
            root_name=rule.root_name,
            event_spec=rule.event_spec.render(),
        )
        try:
            self._session.add(row)
            await self._session.flush()
        except IntegrityError:
            await self._session.rollback()
            raise ProvisioningConflictError(f"Trigger rule '{rule.root_name}' already exists") from None
        logger.info("Registered trigger rule %s (%s)", rule.trigger_name, rule.event_spec.render())
        return rule

    async def ensure(self, rule: TriggerRule, *, actor: ActorContext) -> bool:
        """Insert *rule* unless an identical rule exists.  Returns True if inserted.

        Raises
        ------
        ProvisioningConflictError
            If ``root_name`` is registered with a different definition.
        """
        existing = await self.get(rule.root_name)
        if existing is None:
            await self.add(rule, actor=actor)
            return True
        if existing != rule:
            raise ProvisioningConflictError(
                f"Trigger rule '{rule.root_name}' already exists with a different definition"
            )
        return False

    async def get(self, root_name: str) -> TriggerRule | None:
        stmt = select(TriggerRuleTable).where(TriggerRuleTable.root_name == root_name)
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        return _row_to_rule(row) if row is not None else None

    async def list_rules(self) -> list[TriggerRule]:
        """Return every rule ordered by event prefix, then root name."""
        stmt = select(TriggerRuleTable).order_by(TriggerRuleTable.event_prefix, TriggerRuleTable.root_name)
        result = await self._session.execute(stmt)
        return [_row_to_rule(row) for row in result.scalars().all()]
