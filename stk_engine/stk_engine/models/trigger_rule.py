"""Trigger provisioning rule models.

A ``TriggerRule`` says which automation function fires on which tables.
Its trigger and function share one deterministic name,
``t<event_prefix>_<root_name>`` with the prefix zero-padded to five digits,
so the numeric prefix controls firing order between rules on the same
event.
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stk_engine.errors import RecordValidationError
from stk_engine.provisioning.ddl import MAX_EVENT_PREFIX, trigger_name, validate_identifier


class TriggerTiming(str, Enum):
    BEFORE = "BEFORE"
    AFTER = "AFTER"


class TriggerEvent(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


_EVENT_ORDER = {TriggerEvent.INSERT: 0, TriggerEvent.UPDATE: 1, TriggerEvent.DELETE: 2}
_SPEC_RE = re.compile(r"^\s*(\w+)\s+(\w+(?:\s+OR\s+\w+)*)\s*$", re.IGNORECASE)


class EventSpec(BaseModel):
    """Timing plus a non-empty set of row events, e.g. ``AFTER INSERT OR DELETE``."""

    model_config = ConfigDict(frozen=True)

    timing: TriggerTiming
    events: tuple[TriggerEvent, ...] = Field(..., min_length=1)

    @field_validator("events")
    @classmethod
    def canonical_order(cls, v: tuple[TriggerEvent, ...]) -> tuple[TriggerEvent, ...]:
        return tuple(sorted(set(v), key=_EVENT_ORDER.__getitem__))

    def render(self) -> str:
        return f"{self.timing.value} " + " OR ".join(e.value for e in self.events)

    @classmethod
    def parse(cls, text: str) -> EventSpec:
        """Parse the textual form stored in ``stk_trigger_mgt.event_spec``.

        Raises
        ------
        RecordValidationError
            If the text is not ``BEFORE|AFTER`` followed by ``OR``-joined
            ``INSERT``/``UPDATE``/``DELETE`` keywords.
        """
        match = _SPEC_RE.match(text or "")
        if match is None:
            raise RecordValidationError(f"Invalid trigger event spec: {text!r}")
        timing_word, events_part = match.groups()
        try:
            timing = TriggerTiming(timing_word.upper())
            words = re.split(r"\s+OR\s+", events_part, flags=re.IGNORECASE)
            events = tuple(TriggerEvent(word.upper()) for word in words)
        except ValueError as exc:
            raise RecordValidationError(f"Invalid trigger event spec: {text!r}") from exc
        return cls(timing=timing, events=events)


class TriggerRule(BaseModel):
    """Declarative rule describing which tables get a trigger binding.

    * neither ``is_include`` nor ``is_exclude``: every base table;
    * ``is_include``: only tables in ``table_scope``;
    * ``is_exclude``: every base table except those in ``table_scope``.

    Partition children are never targeted regardless of the flags.
    """

    model_config = ConfigDict(frozen=True)

    root_name: str = Field(..., description="Globally unique rule root, e.g. stk_change_log.")
    event_prefix: int = Field(..., ge=0, le=MAX_EVENT_PREFIX, description="Ordering prefix, e.g. 10100.")
    event_spec: EventSpec
    is_include: bool = False
    is_exclude: bool = False
    table_scope: tuple[str, ...] = ()

    @field_validator("root_name")
    @classmethod
    def root_is_identifier(cls, v: str) -> str:
        return validate_identifier(v, kind="root")

    @field_validator("table_scope")
    @classmethod
    def scope_are_identifiers(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        seen: list[str] = []
        for name in v:
            validate_identifier(name, kind="table")
            if name not in seen:
                seen.append(name)
        return tuple(seen)

    @model_validator(mode="after")
    def include_xor_exclude(self) -> TriggerRule:
        if self.is_include and self.is_exclude:
            raise ValueError("is_include and is_exclude cannot both be true")
        if (self.is_include or self.is_exclude) and not self.table_scope:
            raise ValueError("table_scope is required when is_include or is_exclude is set")
        return self

    @property
    def trigger_name(self) -> str:
        return trigger_name(self.event_prefix, self.root_name)

    @property
    def function_name(self) -> str:
        # Same convention as the trigger name.
        return self.trigger_name


class TriggerBinding(BaseModel):
    """A single (table, trigger) pair the provisioner created or found."""

    model_config = ConfigDict(frozen=True)

    table_name: str
    trigger_name: str
    function_name: str
    event_spec: EventSpec


class ProvisioningReport(BaseModel):
    """Outcome of one provisioning run."""

    created: list[TriggerBinding] = Field(default_factory=list)
    existing: list[TriggerBinding] = Field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def existing_count(self) -> int:
        return len(self.existing)
