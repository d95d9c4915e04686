"""SQLAlchemy 2.0 ORM table definitions for the convention registries.

Holds the declarative ``Base`` plus the three registry tables every
deployment carries: the enum value registry, the trigger rule registry and
the change log written by the ``t10100_stk_change_log`` trigger function.
Entity and type tables are built at registration time by
:mod:`stk_engine.registry.kinds` into the same metadata.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Cross-dialect JSON type: uses JSONB on PostgreSQL for GIN indexing and
# query operators, falls back to plain JSON (stored as TEXT) on SQLite.
_JsonType = JSONB().with_variant(JSON(), "sqlite")

# TEXT[] on PostgreSQL, a JSON list on SQLite.
_TextArrayType = ARRAY(Text).with_variant(JSON(), "sqlite")


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for registry, entity and type tables."""


# ---------------------------------------------------------------------------
# Enum registry
# ---------------------------------------------------------------------------


class EnumValueTable(Base):
    """Published enum members; the source the type synchronizer reads."""

    __tablename__ = "stk_enum_value"

    uu: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    enum_identifier: Mapped[str] = mapped_column(String(63), nullable=False)
    member_name: Mapped[str] = mapped_column(String(63), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    record_json: Mapped[dict[str, Any] | None] = mapped_column(_JsonType, nullable=True)

    __table_args__ = (
        UniqueConstraint("enum_identifier", "member_name", name="uq_stk_enum_value_member"),
        Index("ix_stk_enum_value_identifier", "enum_identifier"),
    )


# ---------------------------------------------------------------------------
# Trigger rules
# ---------------------------------------------------------------------------


class TriggerRuleTable(Base):
    """Declarative trigger provisioning rules (one row per root name)."""

    __tablename__ = "stk_trigger_mgt"

    uu: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    created_by_uu: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )
    updated_by_uu: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    is_include: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_exclude: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    table_scope: Mapped[list[str] | None] = mapped_column(_TextArrayType, nullable=True)
    event_prefix: Mapped[int] = mapped_column(Integer, nullable=False)
    root_name: Mapped[str] = mapped_column(String(63), nullable=False)
    event_spec: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (UniqueConstraint("root_name", name="stk_trigger_mgt_function_uidx"),)


# ---------------------------------------------------------------------------
# Change log
# ---------------------------------------------------------------------------


class ChangeLogTable(Base):
    """Row-level change history written by the change-log trigger function."""

    __tablename__ = "stk_change_log"

    uu: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    table_name: Mapped[str] = mapped_column(String(63), nullable=False)
    record_uu: Mapped[str | None] = mapped_column(String(64), nullable=True)
    operation: Mapped[str] = mapped_column(String(16), nullable=False)
    batch_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    old_json: Mapped[dict[str, Any] | None] = mapped_column(_JsonType, nullable=True)
    new_json: Mapped[dict[str, Any] | None] = mapped_column(_JsonType, nullable=True)

    __table_args__ = (
        Index("ix_stk_change_log_table_record", "table_name", "record_uu"),
    )
