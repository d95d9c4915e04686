"""Identifier validation and dynamic DDL rendering.

Every statement whose text depends on a catalog-discovered or
registry-supplied name is built here and nowhere else.  Names are checked
against a strict pattern and, where a live catalog is available, against
the allowlist of tables that catalog reported.  Quoting is delegated to the
PostgreSQL dialect's identifier preparer so no name is ever spliced into SQL
unquoted.

Trigger names carry a leading ``t`` because PostgreSQL identifiers may not
start with a digit.  The event prefix is zero-padded to a fixed width so
that name order, which PostgreSQL uses to fire same-event triggers, is the
numeric order of the prefixes.

Trigger functions are referenced unqualified: they are created once by the
first migration and resolved through the ``search_path``, while the tables
they are bound to may live in any convention schema.
"""

from __future__ import annotations

import re
from collections.abc import Collection

from sqlalchemy.dialects import postgresql

from stk_engine.errors import UnsafeIdentifierError

# Lower-case SQL identifiers only; 63 is PostgreSQL's NAMEDATALEN - 1.
_IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")

TRIGGER_NAME_PREFIX = "t"
# Prefixes run 0 to 99999; t00100 sorts before t10100.
EVENT_PREFIX_WIDTH = 5
MAX_EVENT_PREFIX = 10**EVENT_PREFIX_WIDTH - 1

_PREPARER = postgresql.dialect().identifier_preparer


def validate_identifier(
    name: str,
    allowlist: Collection[str] | None = None,
    *,
    kind: str = "identifier",
) -> str:
    """Return *name* unchanged if it is a safe identifier.

    Parameters
    ----------
    name:
        Candidate identifier.
    allowlist:
        Optional set of names the caller obtained from the live catalog or a
        registry.  When given, *name* must be a member.
    kind:
        Label used in the error message ("table", "schema", ...).

    Raises
    ------
    UnsafeIdentifierError
        If the name does not match the identifier pattern or is not in the
        allowlist.
    """
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise UnsafeIdentifierError(f"Invalid {kind} name: {name!r}")
    if allowlist is not None and name not in allowlist:
        raise UnsafeIdentifierError(f"Unknown {kind} name: {name!r}")
    return name


def trigger_name(event_prefix: int, root_name: str) -> str:
    """Build the deterministic trigger (and function) name for a rule.

    >>> trigger_name(10100, "stk_change_log")
    't10100_stk_change_log'
    >>> trigger_name(100, "stk_lifecycle_guard")
    't00100_stk_lifecycle_guard'
    """
    if not 0 <= event_prefix <= MAX_EVENT_PREFIX:
        raise UnsafeIdentifierError(f"Event prefix must be between 0 and {MAX_EVENT_PREFIX}, got {event_prefix}")
    validate_identifier(root_name, kind="root")
    name = f"{TRIGGER_NAME_PREFIX}{event_prefix:0{EVENT_PREFIX_WIDTH}d}_{root_name}"
    return validate_identifier(name, kind="trigger")


def quote(name: str) -> str:
    """Validate and always-quote an identifier for PostgreSQL."""
    return _PREPARER.quote_identifier(validate_identifier(name))


def render_create_trigger(
    *,
    schema: str,
    table_name: str,
    trigger: str,
    function: str,
    event_clause: str,
    allowed_tables: Collection[str],
) -> str:
    """Render ``CREATE TRIGGER`` for one table.

    *event_clause* must come from :meth:`EventSpec.render`, which only emits
    keywords from a closed set; it is re-checked here before use.
    """
    validate_identifier(table_name, allowed_tables, kind="table")
    if not _EVENT_CLAUSE_RE.match(event_clause):
        raise UnsafeIdentifierError(f"Invalid trigger event clause: {event_clause!r}")
    return (
        f"CREATE TRIGGER {quote(trigger)} {event_clause} "
        f"ON {quote(schema)}.{quote(table_name)} "
        f"FOR EACH ROW EXECUTE FUNCTION {quote(function)}()"
    )


_EVENT_CLAUSE_RE = re.compile(r"^(BEFORE|AFTER) (INSERT|UPDATE|DELETE)( OR (INSERT|UPDATE|DELETE)){0,2}$")


def constant_text_expression(value: str) -> str:
    """SQL text for a generated column holding a constant identifier value."""
    return f"'{validate_identifier(value, kind='table')}'"
