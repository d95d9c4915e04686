"""Convention core: enum registry, trigger rules, change log, trigger functions.

Revision ID: 001
Revises:
Create Date: 2026-05-15 00:00:00.000000+00:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_JSON = postgresql.JSONB().with_variant(sa.JSON(), "sqlite")
_TEXT_ARRAY = postgresql.ARRAY(sa.Text()).with_variant(sa.JSON(), "sqlite")

# Row-level change history; one row per INSERT/UPDATE/DELETE.  The function
# keeps the migration's search_path so stk_change_log resolves to this schema
# whichever schema the triggering table lives in.
_CHANGE_LOG_FUNCTION = """
CREATE OR REPLACE FUNCTION t10100_stk_change_log()
RETURNS trigger
LANGUAGE plpgsql
SET search_path FROM CURRENT
AS $$
DECLARE
    v_old jsonb;
    v_new jsonb;
BEGIN
    IF TG_OP <> 'INSERT' THEN
        v_old := to_jsonb(OLD);
    END IF;
    IF TG_OP <> 'DELETE' THEN
        v_new := to_jsonb(NEW);
    END IF;
    INSERT INTO stk_change_log (uu, created, table_name, record_uu, operation, batch_id, old_json, new_json)
    VALUES (
        gen_random_uuid(),
        now(),
        TG_TABLE_NAME,
        COALESCE(v_new->>'uu', v_old->>'uu'),
        TG_OP,
        current_setting('stk.batch_id', true),
        v_old,
        v_new
    );
    RETURN NULL;
END;
$$;
"""

# revoked/processed are one-way; uu, search_key and the association are immutable.
_LIFECYCLE_GUARD_FUNCTION = """
CREATE OR REPLACE FUNCTION t00100_stk_lifecycle_guard()
RETURNS trigger
LANGUAGE plpgsql
SET search_path FROM CURRENT
AS $$
DECLARE
    v_old jsonb := to_jsonb(OLD);
    v_new jsonb := to_jsonb(NEW);
    v_column text;
BEGIN
    FOREACH v_column IN ARRAY ARRAY['revoked', 'processed'] LOOP
        IF v_old->>v_column IS NOT NULL AND v_new->>v_column IS DISTINCT FROM v_old->>v_column THEN
            RAISE EXCEPTION '%.% cannot be changed once set', TG_TABLE_NAME, v_column
                USING ERRCODE = 'check_violation';
        END IF;
    END LOOP;
    FOREACH v_column IN ARRAY ARRAY['uu', 'search_key', 'table_name_uu_json'] LOOP
        IF v_new->v_column IS DISTINCT FROM v_old->v_column THEN
            RAISE EXCEPTION '%.% is immutable', TG_TABLE_NAME, v_column
                USING ERRCODE = 'check_violation';
        END IF;
    END LOOP;
    RETURN NEW;
END;
$$;
"""


def upgrade() -> None:
    op.create_table(
        "stk_enum_value",
        sa.Column("uu", sa.Uuid(), primary_key=True),
        sa.Column("created", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("enum_identifier", sa.String(63), nullable=False),
        sa.Column("member_name", sa.String(63), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("record_json", _JSON, nullable=True),
        sa.UniqueConstraint("enum_identifier", "member_name", name="uq_stk_enum_value_member"),
    )
    op.create_index("ix_stk_enum_value_identifier", "stk_enum_value", ["enum_identifier"])

    op.create_table(
        "stk_trigger_mgt",
        sa.Column("uu", sa.Uuid(), primary_key=True),
        sa.Column("created", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("created_by_uu", sa.Uuid(), nullable=False),
        sa.Column("updated", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_by_uu", sa.Uuid(), nullable=False),
        sa.Column("is_include", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_exclude", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("table_scope", _TEXT_ARRAY, nullable=True),
        sa.Column("event_prefix", sa.Integer(), nullable=False),
        sa.Column("root_name", sa.String(63), nullable=False),
        sa.Column("event_spec", sa.String(64), nullable=False),
        sa.UniqueConstraint("root_name", name="stk_trigger_mgt_function_uidx"),
    )

    op.create_table(
        "stk_change_log",
        sa.Column("uu", sa.Uuid(), primary_key=True),
        sa.Column("created", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("table_name", sa.String(63), nullable=False),
        sa.Column("record_uu", sa.String(64), nullable=True),
        sa.Column("operation", sa.String(16), nullable=False),
        sa.Column("batch_id", sa.String(64), nullable=True),
        sa.Column("old_json", _JSON, nullable=True),
        sa.Column("new_json", _JSON, nullable=True),
    )
    op.create_index("ix_stk_change_log_table_record", "stk_change_log", ["table_name", "record_uu"])

    if op.get_bind().dialect.name == "postgresql":
        op.execute(_CHANGE_LOG_FUNCTION)
        op.execute(_LIFECYCLE_GUARD_FUNCTION)


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP FUNCTION IF EXISTS t00100_stk_lifecycle_guard() CASCADE")
        op.execute("DROP FUNCTION IF EXISTS t10100_stk_change_log() CASCADE")
    op.drop_table("stk_change_log")
    op.drop_table("stk_trigger_mgt")
    op.drop_table("stk_enum_value")
