"""Generic record operations: CRUD, type resolution and associations."""

from stk_engine.records.association import lookup_table_by_uu, resolve_association
from stk_engine.records.repository import RecordRepository
from stk_engine.records.types import TypeResolver

__all__ = [
    "RecordRepository",
    "TypeResolver",
    "lookup_table_by_uu",
    "resolve_association",
]
