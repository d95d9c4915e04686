"""Built-in entity kinds, their type enums and the built-in trigger rules.

Importing this module registers every kind into ``Base.metadata`` so the
migrations and the local SQLite adapter see the full table set.
"""

from __future__ import annotations

from enum import Enum

from stk_engine.models.trigger_rule import EventSpec, TriggerEvent, TriggerRule, TriggerTiming
from stk_engine.registry.enums import EnumMemberInfo
from stk_engine.registry.kinds import ConventionSchema
from stk_engine.state.tables import Base

# ---------------------------------------------------------------------------
# Type enums
# ---------------------------------------------------------------------------

_NO_AUTOMATION = "Action purpose with no automation or validation"


class RequestType(str, Enum):
    NOTE = "NOTE"
    DISCUSS = "DISCUSS"
    NOTICE = "NOTICE"
    ACTION = "ACTION"
    TODO = "TODO"
    CHECKLIST = "CHECKLIST"


class EventType(str, Enum):
    NONE = "NONE"
    ACTION = "ACTION"


class TagType(str, Enum):
    NONE = "NONE"
    ADDRESS = "ADDRESS"
    EMAIL = "EMAIL"
    PHONE = "PHONE"


class BusinessPartnerType(str, Enum):
    ORGANIZATION = "ORGANIZATION"
    INDIVIDUAL = "INDIVIDUAL"


class InvoiceType(str, Enum):
    SALES_STANDARD = "SALES_STANDARD"
    PURCHASE_STANDARD = "PURCHASE_STANDARD"
    SALES_CREDIT_MEMO = "SALES_CREDIT_MEMO"
    PURCHASE_CREDIT_MEMO = "PURCHASE_CREDIT_MEMO"


class InvoiceLineType(str, Enum):
    ITEM = "ITEM"
    DESCRIPTION = "DESCRIPTION"
    DISCOUNT = "DISCOUNT"


# ---------------------------------------------------------------------------
# Kinds
# ---------------------------------------------------------------------------

SCHEMA = ConventionSchema(Base.metadata)

SCHEMA.define(
    "stk_request",
    RequestType,
    {
        RequestType.NOTE: EnumMemberInfo(comment=_NO_AUTOMATION, is_default=True),
        RequestType.DISCUSS: EnumMemberInfo(comment="Request needs discussion before it is actioned"),
        RequestType.NOTICE: EnumMemberInfo(comment="Informational notice; no response expected"),
        RequestType.ACTION: EnumMemberInfo(comment=_NO_AUTOMATION),
        RequestType.TODO: EnumMemberInfo(comment="Work item to be completed by its owner"),
        RequestType.CHECKLIST: EnumMemberInfo(comment=_NO_AUTOMATION),
    },
    has_processed=True,
    has_template=True,
    has_valid=True,
    has_association=True,
)

SCHEMA.define(
    "stk_event",
    EventType,
    {
        EventType.NONE: EnumMemberInfo(comment="General purpose event", is_default=True),
        EventType.ACTION: EnumMemberInfo(comment="Event recording an action taken"),
    },
    has_association=True,
)

SCHEMA.define(
    "stk_tag",
    TagType,
    {
        TagType.NONE: EnumMemberInfo(comment="Free-form tag", is_default=True),
        TagType.ADDRESS: EnumMemberInfo(
            comment="Postal address",
            record_json={
                "json_schema": {
                    "type": "object",
                    "properties": {
                        "address1": {"type": "string"},
                        "city": {"type": "string"},
                        "postal": {"type": "string"},
                    },
                    "required": ["address1"],
                }
            },
        ),
        TagType.EMAIL: EnumMemberInfo(
            comment="Email address",
            record_json={
                "json_schema": {
                    "type": "object",
                    "properties": {"email": {"type": "string"}},
                    "required": ["email"],
                }
            },
        ),
        TagType.PHONE: EnumMemberInfo(comment="Phone number"),
    },
    has_association=True,
)

SCHEMA.define(
    "stk_business_partner",
    BusinessPartnerType,
    {
        BusinessPartnerType.ORGANIZATION: EnumMemberInfo(comment="Company or other organization", is_default=True),
        BusinessPartnerType.INDIVIDUAL: EnumMemberInfo(comment="Single person"),
    },
    has_template=True,
    has_valid=True,
    has_parent=True,
)

SCHEMA.define(
    "stk_invoice",
    InvoiceType,
    {
        InvoiceType.SALES_STANDARD: EnumMemberInfo(comment="Customer invoice", is_default=True),
        InvoiceType.PURCHASE_STANDARD: EnumMemberInfo(comment="Vendor invoice"),
        InvoiceType.SALES_CREDIT_MEMO: EnumMemberInfo(comment="Credit issued to a customer"),
        InvoiceType.PURCHASE_CREDIT_MEMO: EnumMemberInfo(comment="Credit received from a vendor"),
    },
    has_processed=True,
    has_template=True,
    has_valid=True,
)

SCHEMA.define(
    "stk_invoice_line",
    InvoiceLineType,
    {
        InvoiceLineType.ITEM: EnumMemberInfo(comment="Line for a sold or purchased item", is_default=True),
        InvoiceLineType.DESCRIPTION: EnumMemberInfo(comment="Text-only line"),
        InvoiceLineType.DISCOUNT: EnumMemberInfo(comment="Discount applied to the invoice"),
    },
    header="stk_invoice",
)

# ---------------------------------------------------------------------------
# Trigger rules
# ---------------------------------------------------------------------------

CHANGE_LOG_RULE = TriggerRule(
    root_name="stk_change_log",
    event_prefix=10100,
    event_spec=EventSpec(
        timing=TriggerTiming.AFTER,
        events=(TriggerEvent.INSERT, TriggerEvent.UPDATE, TriggerEvent.DELETE),
    ),
    is_exclude=True,
    table_scope=("stk_change_log",),
)

LIFECYCLE_GUARD_RULE = TriggerRule(
    root_name="stk_lifecycle_guard",
    event_prefix=100,
    event_spec=EventSpec(timing=TriggerTiming.BEFORE, events=(TriggerEvent.UPDATE,)),
    is_exclude=True,
    table_scope=("stk_change_log", "stk_trigger_mgt"),
)

BUILTIN_TRIGGER_RULES: tuple[TriggerRule, ...] = (LIFECYCLE_GUARD_RULE, CHANGE_LOG_RULE)
