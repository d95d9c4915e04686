"""Generic record operations shared by every entity kind.

:class:`RecordRepository` works against any table registered in a
:class:`~stk_engine.registry.kinds.ConventionSchema`; the registry is the
allowlist, so table and column names supplied by callers are checked
before a statement is built.  Like the registry repositories it operates
inside the caller's transaction: writes flush, the caller commits.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from typing import Any

import jsonschema
from sqlalchemy import Table, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stk_engine.errors import (
    ConflictError,
    PreconditionError,
    RecordValidationError,
    ReferentialError,
)
from stk_engine.models.context import ActorContext, Association
from stk_engine.records._common import as_uuid, require_actor, row_exists
from stk_engine.records.association import lookup_table_by_uu, resolve_association
from stk_engine.records.types import TypeResolver
from stk_engine.registry.kinds import ASSOCIATION_COLUMN, ConventionSchema, EntityKind
from stk_engine.state.tables import _utcnow

logger = logging.getLogger(__name__)

# Parameters every kind accepts on create.
_BASE_PARAMS = frozenset({"name", "description", "search_key", "record_json"})
# Type selectors; consumed by resolve_type and never written directly.
_TYPE_PARAMS = frozenset({"type_uu", "type_search_key", "type_name"})
# Attachment selectors for kinds with a polymorphic association.
_ATTACH_PARAMS = frozenset({"attach_uu", "attach_table_name", ASSOCIATION_COLUMN})


def _allowed_params(kind: EntityKind) -> frozenset[str]:
    allowed = set(_BASE_PARAMS | _TYPE_PARAMS)
    if kind.has_template:
        allowed.add("is_template")
    if kind.has_valid:
        allowed.add("is_valid")
    if kind.has_parent:
        allowed.add("parent_uu")
    if kind.is_line:
        allowed.add("header_uu")
    if kind.has_association:
        allowed |= _ATTACH_PARAMS
    return frozenset(allowed)


def _validate_payload(table_name: str, payload: Any, type_row: Mapping[str, Any]) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise RecordValidationError(f"record_json for {table_name} must be a JSON object")
    json_schema = (type_row.get("record_json") or {}).get("json_schema")
    if json_schema:
        try:
            jsonschema.validate(instance=payload, schema=json_schema)
        except jsonschema.ValidationError as exc:
            raise RecordValidationError(
                f"record_json does not match the {type_row['search_key']} schema: {exc.message}"
            ) from exc
        except jsonschema.SchemaError as exc:
            raise RecordValidationError(
                f"Type {type_row['search_key']} carries an invalid json_schema: {exc.message}"
            ) from exc
    return payload


class RecordRepository:
    """create / list / get / revoke / process for registered tables."""

    def __init__(
        self,
        session: AsyncSession,
        schema: ConventionSchema,
        *,
        default_limit: int = 10,
        max_limit: int = 500,
    ) -> None:
        self._session = session
        self._schema = schema
        self._types = TypeResolver(session, schema)
        self._default_limit = default_limit
        self._max_limit = max_limit

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(
        self,
        table_name: str,
        params: Mapping[str, Any],
        *,
        actor: ActorContext | None,
    ) -> dict[str, Any]:
        """Insert a record and return its ``uu``, ``search_key`` and ``name``.

        Parameters whose value is ``None`` are treated as absent so the
        column default applies (a random ``search_key``, an empty payload,
        an empty association).

        Parameters
        ----------
        table_name:
            A registered entity table.  Type tables are written only by the
            type synchronizer.
        params:
            ``name`` (required), ``description``, ``search_key``,
            ``record_json``, one of ``type_uu`` / ``type_search_key`` /
            ``type_name``, plus the kind's optional columns: ``is_template``,
            ``is_valid``, ``parent_uu``, ``header_uu`` and, for kinds with an
            association, ``attach_uu`` / ``attach_table_name`` or a
            ``table_name_uu_json`` value.
        actor:
            Identity stamped into the audit columns.

        Raises
        ------
        PreconditionError
            Missing actor, or a line record without ``header_uu``.
        RecordValidationError
            Unknown parameters, unresolvable type, bad payload.
        ReferentialError
            ``header_uu`` / ``parent_uu`` / attach target not where expected.
        ConflictError
            ``search_key`` already used in its scope.
        """
        actor = require_actor(actor)
        if self._schema.is_type_table(table_name):
            raise RecordValidationError(f"{table_name} rows are created by type synchronization only")
        kind = self._schema.kind(table_name)
        table = self._schema.table(table_name)

        supplied = {key: value for key, value in params.items() if value is not None}
        unknown = sorted(set(supplied) - _allowed_params(kind))
        if unknown:
            raise RecordValidationError(f"Unsupported parameter(s) for {table_name}: {', '.join(unknown)}")
        if not supplied.get("name"):
            raise RecordValidationError(f"name is required to create a {table_name} record")

        type_row = await self._types.resolve_type(
            table_name,
            type_uu=supplied.pop("type_uu", None),
            type_search_key=supplied.pop("type_search_key", None),
            type_name=supplied.pop("type_name", None),
        )
        values: dict[str, Any] = {
            key: supplied[key]
            for key in ("name", "description", "search_key", "is_template", "is_valid")
            if key in supplied
        }
        if "record_json" in supplied:
            values["record_json"] = _validate_payload(table_name, supplied["record_json"], type_row)
        elif (type_row.get("record_json") or {}).get("json_schema"):
            values["record_json"] = _validate_payload(table_name, {}, type_row)

        if kind.is_line:
            if "header_uu" not in supplied:
                raise PreconditionError(f"header_uu is required to create a {table_name} record")
            header_uu = as_uuid(supplied["header_uu"], "header_uu")
            header_table = self._schema.table(kind.header)  # type: ignore[arg-type]
            if not await row_exists(self._session, header_table, header_uu):
                raise ReferentialError(f"header_uu {header_uu} is not a row of {kind.header}")
            values["header_uu"] = header_uu
        if "parent_uu" in supplied:
            parent_uu = as_uuid(supplied["parent_uu"], "parent_uu")
            if not await row_exists(self._session, table, parent_uu):
                raise ReferentialError(f"parent_uu {parent_uu} is not a row of {table_name}")
            values["parent_uu"] = parent_uu

        association = await self._association_from(supplied)
        if association is not None:
            values[ASSOCIATION_COLUMN] = association.to_json()

        uu = uuid.uuid4()
        values.update(
            uu=uu,
            type_uu=type_row["uu"],
            created_by_uu=actor.actor_uu,
            updated_by_uu=actor.actor_uu,
        )
        try:
            await self._session.execute(insert(table).values(**values))
            await self._session.flush()
        except IntegrityError:
            await self._session.rollback()
            raise ConflictError(
                f"A {table_name} record with search_key {values.get('search_key')!r} already exists"
            ) from None

        result = await self._session.execute(
            select(table.c.uu, table.c.search_key, table.c.name).where(table.c.uu == uu)
        )
        created = dict(result.one()._mapping)
        logger.info("Created %s %s (%s) by %s", table_name, uu, type_row["search_key"], actor)
        return created

    async def _association_from(self, supplied: Mapping[str, Any]) -> Association | None:
        inline = supplied.get(ASSOCIATION_COLUMN)
        attach_uu = supplied.get("attach_uu")
        attach_table = supplied.get("attach_table_name")
        if inline is not None:
            if attach_uu is not None or attach_table is not None:
                raise RecordValidationError(f"Supply either {ASSOCIATION_COLUMN} or attach_uu, not both")
            if isinstance(inline, Association):
                inline = inline.to_json()
            if not isinstance(inline, Mapping):
                raise RecordValidationError(f"{ASSOCIATION_COLUMN} must be an object with table_name and uu")
            requested = Association.from_json(dict(inline))
            if requested.is_empty:
                return None
            attach_uu, attach_table = requested.uu, requested.table_name
        if attach_uu is None:
            if attach_table is not None:
                raise RecordValidationError("attach_table_name requires attach_uu")
            return None
        return await resolve_association(self._session, self._schema, attach_uu, attach_table or None)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _columns(self, table: Table, columns: Iterable[str] | None) -> list[Any]:
        if columns is None:
            return list(table.c)
        selected = []
        for name in columns:
            if name not in table.c:
                raise RecordValidationError(f"Unknown column for {table.name}: {name!r}")
            selected.append(table.c[name])
        if not selected:
            raise RecordValidationError("At least one column must be selected")
        return selected

    async def list(
        self,
        table_name: str,
        columns: Iterable[str] | None = None,
        *,
        include_revoked: bool = False,
        templates_only: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return records newest first.

        Revoked rows are excluded unless *include_revoked*.  For kinds with
        templates, templates are excluded by default and returned alone with
        *templates_only*.  Without *limit* the repository's default cap
        applies; explicit limits are clamped to the maximum.
        """
        table = self._schema.table(table_name)
        if limit is None:
            limit = self._default_limit
        elif limit < 1:
            raise RecordValidationError(f"limit must be positive, got {limit}")
        limit = min(limit, self._max_limit)

        stmt = select(*self._columns(table, columns))
        if not include_revoked:
            stmt = stmt.where(table.c.revoked.is_(None))
        if "is_template" in table.c:
            stmt = stmt.where(table.c.is_template.is_(templates_only))
        elif templates_only:
            raise RecordValidationError(f"{table_name} records cannot be templates")
        stmt = stmt.order_by(table.c.created.desc(), table.c.uu).limit(limit)

        result = await self._session.execute(stmt)
        return [dict(row._mapping) for row in result.all()]

    async def get(
        self,
        table_name: str,
        uu: Any,
        columns: Iterable[str] | None = None,
    ) -> dict[str, Any] | None:
        """Return one record, or ``None`` when no row has *uu*."""
        table = self._schema.table(table_name)
        stmt = select(*self._columns(table, columns)).where(table.c.uu == as_uuid(uu))
        result = await self._session.execute(stmt)
        row = result.first()
        return dict(row._mapping) if row is not None else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _finalize(self, table: Table, column: str, uu: Any, actor: ActorContext | None) -> dict[str, Any]:
        actor = require_actor(actor)
        target = as_uuid(uu)
        now = _utcnow()
        stmt = (
            update(table)
            .where(table.c.uu == target, table.c[column].is_(None))
            .values({column: now, "updated": now, "updated_by_uu": actor.actor_uu})
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:  # type: ignore[attr-defined]
            if await row_exists(self._session, table, target):
                raise ConflictError(f"{table.name} {target} is already {column}")
            raise ConflictError(f"{table.name} {target} not found")
        await self._session.flush()
        logger.info("Set %s on %s %s by %s", column, table.name, target, actor)
        return {"uu": target, column: now}

    async def revoke(self, table_name: str, uu: Any, *, actor: ActorContext | None) -> dict[str, Any]:
        """Soft-delete a record.  A second revoke of the same uu raises ConflictError."""
        return await self._finalize(self._schema.table(table_name), "revoked", uu, actor)

    async def process(self, table_name: str, uu: Any, *, actor: ActorContext | None) -> dict[str, Any]:
        """Mark a record processed.  A second call raises ConflictError.

        Raises
        ------
        RecordValidationError
            If the kind does not model processed status.
        """
        kind = self._schema.kind(table_name)
        if not kind.has_processed:
            raise RecordValidationError(f"{table_name} records cannot be processed")
        return await self._finalize(self._schema.table(table_name), "processed", uu, actor)

    # ------------------------------------------------------------------
    # Types and associations
    # ------------------------------------------------------------------

    async def list_types(self, table_name: str, *, include_revoked: bool = False) -> list[dict[str, Any]]:
        return await self._types.list_types(table_name, include_revoked=include_revoked)

    async def resolve_type(
        self,
        table_name: str,
        *,
        type_uu: Any = None,
        type_search_key: str | None = None,
        type_name: str | None = None,
    ) -> dict[str, Any]:
        return await self._types.resolve_type(
            table_name,
            type_uu=type_uu,
            type_search_key=type_search_key,
            type_name=type_name,
        )

    async def lookup_table_by_uu(self, uu: Any) -> str | None:
        return await lookup_table_by_uu(self._session, self._schema, uu)

    async def attach(self, uu: Any, table_name: str | None = None) -> Association:
        """Resolve the association value a new record would store for *uu*."""
        return await resolve_association(self._session, self._schema, uu, table_name)
