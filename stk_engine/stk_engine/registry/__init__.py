"""Enum and entity-kind registries."""

from stk_engine.registry.enums import EnumMemberInfo, EnumRegistry
from stk_engine.registry.kinds import ConventionSchema, EntityKind

__all__ = [
    "ConventionSchema",
    "EntityKind",
    "EnumMemberInfo",
    "EnumRegistry",
]
