"""Entity-kind registry and canonical table builder.

Every business table shares one column shape: an immutable ``uu``, a
generated constant ``table_name``, the audit quad, one-way ``revoked`` /
``processed`` timestamps with generated booleans, a ``type_uu`` pointing at
the kind's type table, and ``search_key`` / ``name`` / ``description``.
Optional columns (templating, validity, parent/header links, polymorphic
association) are added per kind.

The registry doubles as the runtime allowlist: record operations only touch
tables registered here, and polymorphic associations may only point at them.
"""

from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass

from sqlalchemy import (
    Boolean,
    Column,
    Computed,
    DateTime,
    ForeignKey,
    Index,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)

from stk_engine.errors import RecordValidationError
from stk_engine.provisioning.ddl import constant_text_expression, validate_identifier
from stk_engine.registry.enums import EnumMemberInfo, EnumRegistry
from stk_engine.state.tables import Base, _JsonType, _utcnow

logger = logging.getLogger(__name__)

ASSOCIATION_COLUMN = "table_name_uu_json"
EMPTY_ASSOCIATION = {"table_name": "", "uu": ""}


def _random_search_key() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class EntityKind:
    """Registration record for one entity kind (e.g. ``stk_request``)."""

    table_name: str
    has_processed: bool = False
    has_template: bool = False
    has_valid: bool = False
    has_parent: bool = False
    header: str | None = None
    has_association: bool = False

    @property
    def type_table_name(self) -> str:
        return f"{self.table_name}_type"

    @property
    def enum_identifier(self) -> str:
        return f"{self.type_table_name}_enum"

    @property
    def is_line(self) -> bool:
        return self.header is not None


def _audit_columns() -> list[Column]:
    return [
        Column("created", DateTime(timezone=True), nullable=False, default=_utcnow),
        Column("created_by_uu", Uuid, nullable=False),  # no FK by convention
        Column("updated", DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow),
        Column("updated_by_uu", Uuid, nullable=False),  # no FK by convention
        Column("revoked", DateTime(timezone=True), nullable=True),
        Column("is_revoked", Boolean, Computed("revoked IS NOT NULL", persisted=True)),
    ]


class ConventionSchema:
    """Registry of entity kinds and the tables built for them."""

    def __init__(self, metadata: MetaData | None = None, enums: EnumRegistry | None = None) -> None:
        self.metadata = metadata if metadata is not None else Base.metadata
        self.enums = enums if enums is not None else EnumRegistry()
        self._kinds: dict[str, EntityKind] = {}
        self._type_tables: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def define(
        self,
        table_name: str,
        variant: type[enum.Enum],
        members: Mapping[enum.Enum | str, EnumMemberInfo] | None = None,
        *,
        has_processed: bool = False,
        has_template: bool = False,
        has_valid: bool = False,
        has_parent: bool = False,
        header: str | None = None,
        has_association: bool = False,
    ) -> EntityKind:
        """Register an entity kind and build its entity and type tables."""
        validate_identifier(table_name, kind="table")
        if table_name in self._kinds:
            raise RecordValidationError(f"Entity kind already defined: {table_name}")
        if header is not None:
            if header not in self._kinds:
                raise RecordValidationError(f"Header kind {header!r} must be defined before {table_name!r}")
            if has_parent:
                raise RecordValidationError(f"{table_name}: a line kind cannot also have a parent")

        kind = EntityKind(
            table_name=table_name,
            has_processed=has_processed,
            has_template=has_template,
            has_valid=has_valid,
            has_parent=has_parent,
            header=header,
            has_association=has_association,
        )
        self.enums.register(kind.enum_identifier, variant, members)
        self._build_type_table(kind)
        self._build_entity_table(kind)
        self._kinds[table_name] = kind
        self._type_tables[kind.type_table_name] = table_name
        logger.debug("Defined entity kind %s", table_name)
        return kind

    def _build_type_table(self, kind: EntityKind) -> Table:
        name = kind.type_table_name
        return Table(
            name,
            self.metadata,
            Column("uu", Uuid, primary_key=True, default=uuid.uuid4),
            Column("table_name", Text, Computed(constant_text_expression(name), persisted=True)),
            *_audit_columns(),
            Column("is_default", Boolean, nullable=False, default=False),
            Column("type_enum", String(63), nullable=False),
            Column("record_json", _JsonType, nullable=False, default=dict),
            Column("search_key", Text, nullable=False, default=_random_search_key),
            Column("name", Text, nullable=False),
            Column("description", Text, nullable=True),
            UniqueConstraint("search_key", name=f"uq_{name}_search_key"),
            comment=f"Holds the types of {kind.table_name} records.",
        )

    def _build_entity_table(self, kind: EntityKind) -> Table:
        name = kind.table_name
        columns: list[Column] = [
            Column("uu", Uuid, primary_key=True, default=uuid.uuid4),
            Column("table_name", Text, Computed(constant_text_expression(name), persisted=True)),
        ]
        if kind.header is not None:
            columns.append(Column("header_uu", Uuid, ForeignKey(f"{kind.header}.uu"), nullable=False))
        if kind.has_parent:
            columns.append(Column("parent_uu", Uuid, ForeignKey(f"{name}.uu"), nullable=True))
        columns.extend(_audit_columns())
        if kind.has_association:
            columns.append(
                Column(
                    ASSOCIATION_COLUMN,
                    _JsonType,
                    nullable=False,
                    default=lambda: dict(EMPTY_ASSOCIATION),
                )
            )
        if kind.has_template:
            columns.append(Column("is_template", Boolean, nullable=False, default=False))
        if kind.has_valid:
            columns.append(Column("is_valid", Boolean, nullable=False, default=True))
        columns.append(Column("type_uu", Uuid, ForeignKey(f"{kind.type_table_name}.uu"), nullable=False))
        if kind.has_processed:
            columns.append(Column("processed", DateTime(timezone=True), nullable=True))
            columns.append(Column("is_processed", Boolean, Computed("processed IS NOT NULL", persisted=True)))
        columns.extend(
            [
                Column("record_json", _JsonType, nullable=False, default=dict),
                Column("search_key", Text, nullable=False, default=_random_search_key),
                Column("name", Text, nullable=False),
                Column("description", Text, nullable=True),
            ]
        )

        # Line search keys are unique per header; everything else per table.
        if kind.header is not None:
            unique = UniqueConstraint("header_uu", "search_key", name=f"uq_{name}_header_search_key")
        else:
            unique = UniqueConstraint("search_key", name=f"uq_{name}_search_key")

        return Table(
            name,
            self.metadata,
            *columns,
            unique,
            Index(f"ix_{name}_created", "created"),
            comment=f"Holds {name} records.",
        )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def kind(self, table_name: str) -> EntityKind:
        """Return the kind registered under *table_name*.

        Raises
        ------
        RecordValidationError
            If *table_name* is not a registered entity table.
        """
        try:
            return self._kinds[table_name]
        except (KeyError, TypeError):
            raise RecordValidationError(f"Unknown entity table: {table_name!r}") from None

    def kind_for_type_table(self, type_table_name: str) -> EntityKind | None:
        owner = self._type_tables.get(type_table_name)
        return self._kinds[owner] if owner is not None else None

    def kinds(self) -> list[EntityKind]:
        return list(self._kinds.values())

    def is_type_table(self, table_name: str) -> bool:
        return table_name in self._type_tables

    def table(self, table_name: str) -> Table:
        """Return the entity or type :class:`Table` registered as *table_name*."""
        if table_name not in self._kinds and table_name not in self._type_tables:
            raise RecordValidationError(f"Unknown entity table: {table_name!r}")
        return self.metadata.tables[table_name]

    def type_table(self, table_name: str) -> Table:
        return self.metadata.tables[self.kind(table_name).type_table_name]

    def table_names(self) -> list[str]:
        """Every registered entity and type table, in registration order."""
        names: list[str] = []
        for kind in self._kinds.values():
            names.extend([kind.table_name, kind.type_table_name])
        return names

    def tables(self) -> list[Table]:
        return [self.metadata.tables[name] for name in self.table_names()]
