"""Built-in entity kinds and their type tables.

Every kind gets the canonical column shape: ``uu``, a generated constant
``table_name``, the audit quad, one-way ``revoked`` / ``processed`` with
generated booleans, ``type_uu``, ``record_json``, ``search_key``, ``name``
and ``description``, plus the optional columns the kind models.  Server
defaults let rows be inserted by plain SQL as well as by the engine.

Type rows are not seeded here; ``stk converge`` synchronizes them from the
enum registry after the migration.

Revision ID: 002
Revises: 001
Create Date: 2026-05-15 00:00:00.000000+00:00

"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_JSON = postgresql.JSONB().with_variant(sa.JSON(), "sqlite")

_EMPTY_ASSOCIATION = '{"table_name": "", "uu": ""}'

# Creation order; line kinds follow their header.
_KINDS: tuple[str, ...] = (
    "stk_request",
    "stk_event",
    "stk_tag",
    "stk_business_partner",
    "stk_invoice",
    "stk_invoice_line",
)


def _server_defaults() -> dict[str, Any]:
    if op.get_bind().dialect.name == "postgresql":
        return {
            "uu": sa.text("gen_random_uuid()"),
            "search_key": sa.text("gen_random_uuid()::text"),
            "json": sa.text("'{}'::jsonb"),
            "association": sa.text(f"'{_EMPTY_ASSOCIATION}'::jsonb"),
        }
    # SQLite has no uuid generator; the engine supplies uu and search_key.
    return {
        "uu": None,
        "search_key": None,
        "json": sa.text("'{}'"),
        "association": sa.text(f"'{_EMPTY_ASSOCIATION}'"),
    }


def _head_columns(table_name: str, defaults: dict[str, Any]) -> list[sa.Column]:
    return [
        sa.Column("uu", sa.Uuid(), primary_key=True, server_default=defaults["uu"]),
        sa.Column("table_name", sa.Text(), sa.Computed(f"'{table_name}'", persisted=True)),
    ]


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("created", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("created_by_uu", sa.Uuid(), nullable=False),
        sa.Column("updated", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_by_uu", sa.Uuid(), nullable=False),
        sa.Column("revoked", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_revoked", sa.Boolean(), sa.Computed("revoked IS NOT NULL", persisted=True)),
    ]


def _tail_columns(defaults: dict[str, Any]) -> list[sa.Column]:
    return [
        sa.Column("record_json", _JSON, nullable=False, server_default=defaults["json"]),
        sa.Column("search_key", sa.Text(), nullable=False, server_default=defaults["search_key"]),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
    ]


def _create_type_table(kind: str, defaults: dict[str, Any]) -> None:
    name = f"{kind}_type"
    op.create_table(
        name,
        *_head_columns(name, defaults),
        *_audit_columns(),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("type_enum", sa.String(63), nullable=False),
        *_tail_columns(defaults),
        sa.UniqueConstraint("search_key", name=f"uq_{name}_search_key"),
        comment=f"Holds the types of {kind} records.",
    )


def _create_entity_table(
    name: str,
    defaults: dict[str, Any],
    *,
    processed: bool = False,
    template: bool = False,
    valid: bool = False,
    parent: bool = False,
    header: str | None = None,
    association: bool = False,
) -> None:
    columns = _head_columns(name, defaults)
    if header is not None:
        columns.append(sa.Column("header_uu", sa.Uuid(), sa.ForeignKey(f"{header}.uu"), nullable=False))
    if parent:
        columns.append(sa.Column("parent_uu", sa.Uuid(), sa.ForeignKey(f"{name}.uu"), nullable=True))
    columns.extend(_audit_columns())
    if association:
        columns.append(
            sa.Column("table_name_uu_json", _JSON, nullable=False, server_default=defaults["association"])
        )
    if template:
        columns.append(sa.Column("is_template", sa.Boolean(), nullable=False, server_default=sa.false()))
    if valid:
        columns.append(sa.Column("is_valid", sa.Boolean(), nullable=False, server_default=sa.true()))
    columns.append(sa.Column("type_uu", sa.Uuid(), sa.ForeignKey(f"{name}_type.uu"), nullable=False))
    if processed:
        columns.append(sa.Column("processed", sa.DateTime(timezone=True), nullable=True))
        columns.append(sa.Column("is_processed", sa.Boolean(), sa.Computed("processed IS NOT NULL", persisted=True)))
    columns.extend(_tail_columns(defaults))

    if header is not None:
        unique = sa.UniqueConstraint("header_uu", "search_key", name=f"uq_{name}_header_search_key")
    else:
        unique = sa.UniqueConstraint("search_key", name=f"uq_{name}_search_key")

    op.create_table(name, *columns, unique, comment=f"Holds {name} records.")
    op.create_index(f"ix_{name}_created", name, ["created"])


def upgrade() -> None:
    defaults = _server_defaults()
    for kind in _KINDS:
        _create_type_table(kind, defaults)

    _create_entity_table("stk_request", defaults, processed=True, template=True, valid=True, association=True)
    _create_entity_table("stk_event", defaults, association=True)
    _create_entity_table("stk_tag", defaults, association=True)
    _create_entity_table("stk_business_partner", defaults, template=True, valid=True, parent=True)
    _create_entity_table("stk_invoice", defaults, processed=True, template=True, valid=True)
    _create_entity_table("stk_invoice_line", defaults, header="stk_invoice")


def downgrade() -> None:
    for kind in reversed(_KINDS):
        op.drop_index(f"ix_{kind}_created", table_name=kind)
        op.drop_table(kind)
    for kind in reversed(_KINDS):
        op.drop_table(f"{kind}_type")
