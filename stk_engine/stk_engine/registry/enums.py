"""Enum registry: closed tagged variants plus per-member metadata.

Each registered enum is a ``str`` Enum whose values equal the member names.
The registry attaches the comment, default flag and optional payload that
the type synchronizer copies into type rows.  Enums only grow: registering
an identifier again must keep every member already registered.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from stk_engine.errors import ProvisioningConflictError
from stk_engine.models.enum_member import EnumMember
from stk_engine.provisioning.ddl import validate_identifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnumMemberInfo:
    """Side metadata for one enum member."""

    comment: str | None = None
    is_default: bool = False
    record_json: dict[str, Any] | None = field(default=None, hash=False)


class EnumRegistry:
    """In-process source of truth for type semantics."""

    def __init__(self) -> None:
        self._variants: dict[str, type[enum.Enum]] = {}
        self._info: dict[str, dict[str, EnumMemberInfo]] = {}

    def register(
        self,
        enum_identifier: str,
        variant: type[enum.Enum],
        members: Mapping[enum.Enum | str, EnumMemberInfo] | None = None,
    ) -> None:
        """Register (or extend) the enum *enum_identifier*.

        Raises
        ------
        ProvisioningConflictError
            If a previously registered member is missing from *variant*, a
            member's value differs from its name, metadata references an
            unknown member, or more than one member is flagged default.
        """
        validate_identifier(enum_identifier, kind="enum")
        if not enum_identifier.endswith("_enum"):
            raise ProvisioningConflictError(f"Enum identifier must end with '_enum': {enum_identifier!r}")

        names = [member.name for member in variant]
        for member in variant:
            if member.value != member.name:
                raise ProvisioningConflictError(
                    f"{enum_identifier}: member {member.name} must have value equal to its name"
                )

        previous = self._variants.get(enum_identifier)
        if previous is not None:
            dropped = [m.name for m in previous if m.name not in names]
            if dropped:
                raise ProvisioningConflictError(
                    f"{enum_identifier}: members cannot be removed once registered: {', '.join(dropped)}"
                )

        info = dict(self._info.get(enum_identifier, {}))
        for key, member_info in (members or {}).items():
            name = key.name if isinstance(key, enum.Enum) else key
            if name not in names:
                raise ProvisioningConflictError(f"{enum_identifier}: unknown member {name!r}")
            info[name] = member_info

        defaults = [name for name, member_info in info.items() if member_info.is_default]
        if len(defaults) > 1:
            raise ProvisioningConflictError(
                f"{enum_identifier}: more than one default member ({', '.join(sorted(defaults))})"
            )

        self._variants[enum_identifier] = variant
        self._info[enum_identifier] = info
        logger.debug("Registered enum %s with %d member(s)", enum_identifier, len(names))

    def __contains__(self, enum_identifier: object) -> bool:
        return enum_identifier in self._variants

    def identifiers(self) -> list[str]:
        return list(self._variants)

    def variant(self, enum_identifier: str) -> type[enum.Enum]:
        try:
            return self._variants[enum_identifier]
        except KeyError:
            raise KeyError(f"Enum not registered: {enum_identifier}") from None

    def members(self, enum_identifier: str) -> list[EnumMember]:
        """Return the members of *enum_identifier* in declaration order."""
        variant = self.variant(enum_identifier)
        info = self._info[enum_identifier]
        members: list[EnumMember] = []
        for member in variant:
            member_info = info.get(member.name, EnumMemberInfo())
            members.append(
                EnumMember(
                    enum_identifier=enum_identifier,
                    member_name=member.name,
                    comment=member_info.comment,
                    is_default=member_info.is_default,
                    record_json=member_info.record_json,
                )
            )
        return members

    def all_members(self) -> list[EnumMember]:
        return [m for identifier in self._variants for m in self.members(identifier)]
