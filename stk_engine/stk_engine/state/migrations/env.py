"""Alembic environment for the convention schema.

Supports both **online** (connected) and **offline** (SQL-generation) modes.
The database URL is resolved from the ``ALEMBIC_DATABASE_URL`` environment
variable, falling back to ``alembic.ini`` and then the local default.

``target_metadata`` is the shared ``Base.metadata`` after the built-in
entity kinds have been registered into it, so ``--autogenerate`` sees the
registry tables and every entity and type table.
"""

from __future__ import annotations

import logging
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from stk_engine.schema.builtin import SCHEMA

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

target_metadata = SCHEMA.metadata

# ---------------------------------------------------------------------------
# Database URL resolution
# ---------------------------------------------------------------------------

_DEFAULT_DATABASE_URL = "postgresql+asyncpg://stk_superuser@localhost:5432/stk_db"


def _get_database_url() -> str:
    """Resolve the database URL from the environment or alembic.ini.

    Priority:
    1. ``ALEMBIC_DATABASE_URL`` environment variable.
    2. ``sqlalchemy.url`` key in ``alembic.ini``.
    3. Hard-coded local development default.

    Async PostgreSQL URLs are rewritten to the synchronous psycopg driver
    because Alembic's ``MigrationContext`` needs a synchronous engine.
    """
    url = os.environ.get("ALEMBIC_DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        url = _DEFAULT_DATABASE_URL
        logger.info("Using default database URL: %s", url[:40] + "...")

    if url.startswith("postgresql+asyncpg://"):
        url = "postgresql+psycopg://" + url[len("postgresql+asyncpg://") :]
    elif url.startswith("postgresql://"):
        url = "postgresql+psycopg://" + url[len("postgresql://") :]
    elif url.startswith("sqlite+aiosqlite://"):
        url = "sqlite://" + url[len("sqlite+aiosqlite://") :]
    url = url.replace("?ssl=require", "?sslmode=require")
    url = url.replace("&ssl=require", "&sslmode=require")
    return url


# ---------------------------------------------------------------------------
# Offline migrations
# ---------------------------------------------------------------------------


def run_migrations_offline() -> None:
    """Emit migration SQL to the script output without a live database."""
    context.configure(
        url=_get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


# ---------------------------------------------------------------------------
# Online migrations
# ---------------------------------------------------------------------------


def run_migrations_online() -> None:
    """Run each revision inside a transaction on a synchronous engine."""
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = _get_database_url()

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()

    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
