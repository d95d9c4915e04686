"""Pydantic value models used across the engine."""

from stk_engine.models.context import ActorContext, Association
from stk_engine.models.enum_member import EnumMember, to_search_key
from stk_engine.models.trigger_rule import (
    EventSpec,
    ProvisioningReport,
    TriggerBinding,
    TriggerEvent,
    TriggerRule,
    TriggerTiming,
)

__all__ = [
    "ActorContext",
    "Association",
    "EnumMember",
    "EventSpec",
    "ProvisioningReport",
    "TriggerBinding",
    "TriggerEvent",
    "TriggerRule",
    "TriggerTiming",
    "to_search_key",
]
