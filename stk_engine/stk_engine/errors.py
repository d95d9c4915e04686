"""Error taxonomy shared by the provisioning and record layers.

Provisioning errors abort the migration step that raised them.  Record-layer
errors are returned to the immediate caller; nothing in the engine retries.
A missing record on ``get`` is not an error and never raises.
"""

from __future__ import annotations


class ConventionError(Exception):
    """Base exception for all schema-convention errors."""


class ConflictError(ConventionError):
    """A lifecycle mutation hit a record that is already finalised or missing."""


class RecordValidationError(ConventionError):
    """Input could not be validated (type identifiers, payloads, column names)."""


class UnsafeIdentifierError(RecordValidationError, ValueError):
    """An identifier failed the pattern check or the catalog allowlist."""


class ReferentialError(ConventionError):
    """A supplied uu does not belong to the expected table."""


class PreconditionError(ConventionError):
    """A required actor, table, parent or attachment reference is missing."""


class ProvisioningConflictError(ConventionError):
    """Trigger or enum registry configuration conflicts with existing state."""
