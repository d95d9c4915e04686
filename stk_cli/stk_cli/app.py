"""stk CLI application -- Typer interface to the convention engine.

Provides commands to converge the schema (publish enums, synchronize type
tables, provision triggers) and to run the generic record operations
against any registered entity table.  Human-readable output goes to
*stderr* via Rich; ``--json`` writes machine-readable results to *stdout*.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import typer
from pydantic import ValidationError
from rich.console import Console
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stk_cli.display import (
    display_converge_report,
    display_provisioning_report,
    display_record,
    display_records,
    display_types,
)
from stk_engine.config import Settings, load_settings
from stk_engine.errors import ConventionError
from stk_engine.models.context import ActorContext

T = TypeVar("T")

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="stk",
    help="stk - schema-convention engine for business records",
    no_args_is_help=True,
)
console = Console(stderr=True)

# Mutable global options populated by the Typer callback.
_json_output: bool = False
_database_url: str | None = None
_actor_uu: str | None = None


# ---------------------------------------------------------------------------
# Callback -- global options
# ---------------------------------------------------------------------------


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    database_url: str | None = typer.Option(
        None,
        "--database-url",
        help="Database URL (postgresql+asyncpg:// or sqlite+aiosqlite://).",
        envvar="STK_DATABASE_URL",
    ),
    actor: str | None = typer.Option(
        None,
        "--actor",
        help="uu of the acting identity stamped on every change.",
        envvar="STK_ACTOR_UU",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output, _database_url, _actor_uu  # noqa: PLW0603
    _json_output = json_mode
    _database_url = database_url
    _actor_uu = actor


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings() -> Settings:
    overrides: dict[str, Any] = {}
    if _database_url:
        overrides["database_url"] = _database_url
    if _actor_uu:
        overrides["actor_uu"] = _actor_uu
    try:
        return load_settings(**overrides)
    except ValidationError as exc:
        console.print(f"[red]Invalid configuration: {exc}[/red]")
        raise typer.Exit(code=2) from exc


def _actor(settings: Settings) -> ActorContext | None:
    # A missing actor is reported by the engine as a PreconditionError.
    return ActorContext(actor_uu=settings.actor_uu) if settings.actor_uu else None


def _run(operation: Callable[[AsyncSession, Settings], Awaitable[T]]) -> T:
    """Open a session, run *operation* in one transaction and map errors to exit codes."""
    from stk_engine.state.database import get_engine, get_session

    settings = _settings()

    async def _main() -> T:
        engine = get_engine(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            statement_timeout_ms=settings.statement_timeout_ms,
            lock_timeout_ms=settings.lock_timeout_ms,
        )
        try:
            if settings.database_url.startswith("sqlite"):
                from stk_engine.state.sqlite_adapter import create_local_tables

                await create_local_tables(engine)
            async with get_session(engine) as session:
                return await operation(session, settings)
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_main())
    except ConventionError as exc:
        console.print(f"[red]{type(exc).__name__}: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    except SQLAlchemyError as exc:
        console.print(f"[red]Database error: {exc}[/red]")
        raise typer.Exit(code=1) from exc


def _emit_json(data: Any) -> None:
    sys.stdout.write(json.dumps(data, sort_keys=True, default=str) + "\n")


def _repository(session: AsyncSession, settings: Settings):  # type: ignore[no-untyped-def]
    from stk_engine.records import RecordRepository
    from stk_engine.schema.builtin import SCHEMA

    return RecordRepository(
        session,
        SCHEMA,
        default_limit=settings.default_list_limit,
        max_limit=settings.max_list_limit,
    )


def _parse_columns(columns: str | None) -> list[str] | None:
    if not columns:
        return None
    return [name.strip() for name in columns.split(",") if name.strip()]


# ---------------------------------------------------------------------------
# Convergence
# ---------------------------------------------------------------------------


@app.command()
def converge(
    provision: bool = typer.Option(
        True,
        "--provision/--no-provision",
        help="Provision trigger bindings (PostgreSQL only).",
    ),
) -> None:
    """Publish enums, register rules, synchronize types and provision triggers."""
    from stk_engine.converge import converge as run_converge
    from stk_engine.schema.builtin import SCHEMA

    async def _op(session: AsyncSession, settings: Settings) -> Any:
        return await run_converge(
            session,
            SCHEMA,
            actor=_actor(settings),
            db_schema=settings.convention_schema,
            provision=provision,
        )

    report = _run(_op)
    if _json_output:
        _emit_json(report.model_dump(mode="json"))
    else:
        display_converge_report(console, report)


@app.command("sync-types")
def sync_types(
    type_table: str | None = typer.Argument(
        None,
        help="Type table to synchronize, e.g. stk_request_type. Defaults to all.",
    ),
) -> None:
    """Publish the enum registry and insert missing type rows."""
    from stk_engine.provisioning.type_synchronizer import TypeSynchronizer
    from stk_engine.schema.builtin import SCHEMA
    from stk_engine.state.repository import EnumValueRepository

    async def _op(session: AsyncSession, settings: Settings) -> dict[str, int]:
        await EnumValueRepository(session).publish(SCHEMA.enums)
        synchronizer = TypeSynchronizer(session, SCHEMA, db_schema=settings.convention_schema)
        if type_table is None:
            return await synchronizer.synchronize_all(actor=_actor(settings))
        return {type_table: await synchronizer.synchronize(type_table, actor=_actor(settings))}

    inserted = _run(_op)
    if _json_output:
        _emit_json(inserted)
    else:
        for name, count in sorted(inserted.items()):
            colour = "green" if count else "dim"
            console.print(f"[{colour}]{name}: {count} new type row(s)[/{colour}]")


@app.command()
def provision() -> None:
    """Create missing trigger bindings for every registered rule."""
    from stk_engine.provisioning.trigger_provisioner import TriggerProvisioner

    async def _op(session: AsyncSession, settings: Settings) -> Any:
        return await TriggerProvisioner(session, schema=settings.convention_schema).provision()

    report = _run(_op)
    if _json_output:
        _emit_json(report.model_dump(mode="json"))
    else:
        display_provisioning_report(console, report)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@app.command()
def create(
    table: str = typer.Argument(..., help="Entity table, e.g. stk_request."),
    name: str = typer.Option(..., "--name", "-n", help="Record name."),
    description: str | None = typer.Option(None, "--description", "-d", help="Record description."),
    search_key: str | None = typer.Option(None, "--search-key", help="Search key; random when omitted."),
    type_search_key: str | None = typer.Option(None, "--type", help="Type search key; default type when omitted."),
    json_payload: str | None = typer.Option(None, "--json-payload", help="record_json as a JSON object."),
    attach: str | None = typer.Option(None, "--attach", help="uu of the record to associate with."),
    attach_table: str | None = typer.Option(None, "--attach-table", help="Table of the --attach record."),
    header: str | None = typer.Option(None, "--header", help="Header uu for line records."),
    parent: str | None = typer.Option(None, "--parent", help="Parent uu."),
    template: bool | None = typer.Option(None, "--template/--no-template", help="Create as a template."),
) -> None:
    """Create a record and print its uu, search_key and name."""
    payload: Any = None
    if json_payload is not None:
        try:
            payload = json.loads(json_payload)
        except json.JSONDecodeError as exc:
            console.print(f"[red]Invalid --json-payload: {exc}[/red]")
            raise typer.Exit(code=2) from exc

    params = {
        "name": name,
        "description": description,
        "search_key": search_key,
        "type_search_key": type_search_key,
        "record_json": payload,
        "attach_uu": attach,
        "attach_table_name": attach_table,
        "header_uu": header,
        "parent_uu": parent,
        "is_template": template,
    }

    async def _op(session: AsyncSession, settings: Settings) -> dict[str, Any]:
        return await _repository(session, settings).create(table, params, actor=_actor(settings))

    created = _run(_op)
    if _json_output:
        _emit_json(created)
    else:
        console.print(f"[green]Created {table}[/green] {created['uu']} ({created['search_key']})")


@app.command("list")
def list_records(
    table: str = typer.Argument(..., help="Entity or type table."),
    include_revoked: bool = typer.Option(False, "--all", help="Include revoked records."),
    templates: bool = typer.Option(False, "--templates", help="Show templates instead of live records."),
    limit: int | None = typer.Option(None, "--limit", help="Maximum rows (default 10)."),
    columns: str | None = typer.Option(None, "--columns", help="Comma-separated column names."),
) -> None:
    """List records newest first."""
    selected = _parse_columns(columns)

    async def _op(session: AsyncSession, settings: Settings) -> list[dict[str, Any]]:
        return await _repository(session, settings).list(
            table,
            selected,
            include_revoked=include_revoked,
            templates_only=templates,
            limit=limit,
        )

    rows = _run(_op)
    if _json_output:
        _emit_json(rows)
    else:
        display_records(console, table, rows, selected)


@app.command()
def get(
    table: str = typer.Argument(..., help="Entity or type table."),
    uu: str = typer.Argument(..., help="Record uu."),
    columns: str | None = typer.Option(None, "--columns", help="Comma-separated column names."),
) -> None:
    """Show one record.  A missing record is not an error."""
    selected = _parse_columns(columns)

    async def _op(session: AsyncSession, settings: Settings) -> dict[str, Any] | None:
        return await _repository(session, settings).get(table, uu, selected)

    row = _run(_op)
    if _json_output:
        _emit_json(row)
    elif row is None:
        console.print(f"[yellow]No {table} record with uu {uu}[/yellow]")
    else:
        display_record(console, table, row)


@app.command()
def revoke(
    table: str = typer.Argument(..., help="Entity or type table."),
    uu: str = typer.Argument(..., help="Record uu."),
) -> None:
    """Revoke (soft-delete) a record."""

    async def _op(session: AsyncSession, settings: Settings) -> dict[str, Any]:
        return await _repository(session, settings).revoke(table, uu, actor=_actor(settings))

    result = _run(_op)
    if _json_output:
        _emit_json(result)
    else:
        console.print(f"[green]Revoked {table}[/green] {result['uu']}")


@app.command()
def process(
    table: str = typer.Argument(..., help="Entity table with processed status."),
    uu: str = typer.Argument(..., help="Record uu."),
) -> None:
    """Mark a record processed."""

    async def _op(session: AsyncSession, settings: Settings) -> dict[str, Any]:
        return await _repository(session, settings).process(table, uu, actor=_actor(settings))

    result = _run(_op)
    if _json_output:
        _emit_json(result)
    else:
        console.print(f"[green]Processed {table}[/green] {result['uu']}")


@app.command()
def types(
    table: str = typer.Argument(..., help="Entity table, e.g. stk_request."),
    include_revoked: bool = typer.Option(False, "--all", help="Include revoked types."),
) -> None:
    """List the type rows of an entity kind."""

    async def _op(session: AsyncSession, settings: Settings) -> list[dict[str, Any]]:
        return await _repository(session, settings).list_types(table, include_revoked=include_revoked)

    rows = _run(_op)
    if _json_output:
        _emit_json(rows)
    else:
        display_types(console, table, rows)


@app.command()
def lookup(
    uu: str = typer.Argument(..., help="uu to locate."),
) -> None:
    """Find which registered table holds a uu."""

    async def _op(session: AsyncSession, settings: Settings) -> str | None:
        return await _repository(session, settings).lookup_table_by_uu(uu)

    table_name = _run(_op)
    if _json_output:
        _emit_json({"uu": uu, "table_name": table_name})
    elif table_name is None:
        console.print(f"[yellow]No registered table holds {uu}[/yellow]")
    else:
        console.print(f"{uu} [bold]{table_name}[/bold]")
