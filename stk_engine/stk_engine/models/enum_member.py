"""Enum registry member model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def to_search_key(member_name: str) -> str:
    """Kebab-case a member name: ``ADDRESS_BILL_TO`` -> ``address-bill-to``."""
    return member_name.replace("_", "-").lower()


class EnumMember(BaseModel):
    """One member of a registered enum, as stored in ``stk_enum_value``.

    Members are immutable once shipped; an enum may only grow.
    """

    model_config = ConfigDict(frozen=True)

    enum_identifier: str = Field(..., min_length=1, description="Registry identifier, e.g. stk_request_type_enum.")
    member_name: str = Field(..., min_length=1, description="Member name, e.g. NOTE.")
    comment: str | None = Field(default=None, description="Human description of the member.")
    is_default: bool = Field(default=False, description="Whether this member is the kind's default type.")
    record_json: dict[str, Any] | None = Field(default=None, description="Optional extra payload.")

    @property
    def search_key(self) -> str:
        return to_search_key(self.member_name)
