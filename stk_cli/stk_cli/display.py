"""Rich output formatting for the ``stk`` CLI.

All functions write to a :class:`rich.console.Console` bound to *stderr* so
JSON written to *stdout* with ``--json`` is never mixed with decoration.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from stk_engine.converge import ConvergeReport
    from stk_engine.models.trigger_rule import ProvisioningReport

# Columns shown when the caller does not pick any.
_DEFAULT_COLUMNS = ("uu", "search_key", "name", "created", "is_revoked")


def _cell(value: Any) -> str:
    if value is None:
        return "[dim]-[/dim]"
    if isinstance(value, bool):
        return "[green]yes[/green]" if value else "no"
    return str(value)


def display_records(
    console: Console,
    title: str,
    rows: Sequence[dict[str, Any]],
    columns: Sequence[str] | None = None,
) -> None:
    """Render *rows* as a table, newest first as returned."""
    if not rows:
        console.print(f"[dim]No {title} records found.[/dim]")
        return
    if columns is None:
        columns = [name for name in _DEFAULT_COLUMNS if name in rows[0]] or list(rows[0])

    table = Table(title=title, show_lines=False, pad_edge=True, expand=False)
    for name in columns:
        table.add_column(name, style="bold" if name == "name" else None)
    for row in rows:
        table.add_row(*(_cell(row.get(name)) for name in columns))
    console.print(table)


def display_record(console: Console, title: str, row: dict[str, Any]) -> None:
    """Render a single record as a key/value panel."""
    lines = [f"[bold]{key}:[/bold] {_cell(value)}" for key, value in row.items()]
    console.print(Panel("\n".join(lines), title=title, border_style="blue"))


def display_types(console: Console, table_name: str, rows: Sequence[dict[str, Any]]) -> None:
    """Render the type rows of an entity kind, marking the default."""
    table = Table(title=f"{table_name} types", show_lines=False, pad_edge=True, expand=False)
    table.add_column("Search Key", style="bold")
    table.add_column("Name")
    table.add_column("Default", justify="center")
    table.add_column("Description")
    table.add_column("uu", style="dim")
    for row in rows:
        table.add_row(
            row["search_key"],
            row["name"],
            "[green]*[/green]" if row["is_default"] else "",
            row.get("description") or "",
            str(row["uu"]),
        )
    console.print(table)


def display_provisioning_report(console: Console, report: ProvisioningReport) -> None:
    """Render created trigger bindings and a one-line summary."""
    if report.created:
        table = Table(title="Created Triggers", show_lines=False, pad_edge=True, expand=False)
        table.add_column("Table", style="bold")
        table.add_column("Trigger")
        table.add_column("Events")
        for binding in report.created:
            table.add_row(binding.table_name, binding.trigger_name, binding.event_spec.render())
        console.print(table)
    console.print(
        f"[green]{report.created_count}[/green] trigger(s) created, "
        f"[dim]{report.existing_count} already present[/dim]"
    )


def display_converge_report(console: Console, report: ConvergeReport) -> None:
    """Render the outcome of a convergence run."""
    synced = {name: count for name, count in report.type_rows_inserted.items() if count}
    lines = [
        f"[bold]Enum members published:[/bold] {report.enum_members_published}",
        f"[bold]Trigger rules registered:[/bold] {report.rules_registered}",
        f"[bold]Type rows inserted:[/bold] {sum(synced.values())}",
    ]
    lines.extend(f"  {name}: {count}" for name, count in sorted(synced.items()))
    console.print(Panel("\n".join(lines), title="Converge", border_style="blue"))
    display_provisioning_report(console, report.provisioning)
    if not report.changed:
        console.print("[dim]Schema already converged.[/dim]")
