"""Explicit actor context and polymorphic association values."""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ActorContext(BaseModel):
    """The acting identity stamped into ``created_by_uu`` / ``updated_by_uu``.

    Passed explicitly to every mutating call; there is no process-wide
    fallback.
    """

    model_config = ConfigDict(frozen=True)

    actor_uu: uuid.UUID = Field(..., description="uu of the acting user or service.")
    label: str | None = Field(default=None, description="Optional display name for logs.")

    def __str__(self) -> str:
        return self.label or str(self.actor_uu)


class Association(BaseModel):
    """Inline ``{table_name, uu}`` reference to an arbitrary record.

    Stored in ``table_name_uu_json``; empty strings mean "no association".
    """

    model_config = ConfigDict(frozen=True)

    table_name: str = ""
    uu: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.table_name and not self.uu

    def to_json(self) -> dict[str, Any]:
        return {"table_name": self.table_name, "uu": self.uu}

    @classmethod
    def from_json(cls, value: dict[str, Any] | None) -> Association:
        if not value:
            return cls()
        return cls(table_name=value.get("table_name") or "", uu=str(value.get("uu") or ""))
