"""Tests for the enum registry and the entity-kind registry."""

from __future__ import annotations

import enum

import pytest
from sqlalchemy import MetaData

from stk_engine.errors import ProvisioningConflictError, RecordValidationError
from stk_engine.registry.enums import EnumMemberInfo, EnumRegistry
from stk_engine.registry.kinds import ASSOCIATION_COLUMN, ConventionSchema


class Color(str, enum.Enum):
    RED = "RED"
    GREEN = "GREEN"


class ColorV2(str, enum.Enum):
    RED = "RED"
    GREEN = "GREEN"
    BLUE = "BLUE"


class ColorDropped(str, enum.Enum):
    RED = "RED"


class Mislabelled(str, enum.Enum):
    RED = "red"


class TestEnumRegistry:
    def test_register_and_read_members(self) -> None:
        registry = EnumRegistry()
        registry.register("color_type_enum", Color, {Color.RED: EnumMemberInfo(comment="Warm", is_default=True)})

        members = registry.members("color_type_enum")
        assert [m.member_name for m in members] == ["RED", "GREEN"]
        assert members[0].is_default is True
        assert members[0].comment == "Warm"
        assert members[1].is_default is False
        assert "color_type_enum" in registry

    def test_identifier_must_end_with_enum(self) -> None:
        with pytest.raises(ProvisioningConflictError, match="_enum"):
            EnumRegistry().register("color_type", Color)

    def test_values_must_equal_names(self) -> None:
        with pytest.raises(ProvisioningConflictError, match="value equal to its name"):
            EnumRegistry().register("mislabelled_enum", Mislabelled)

    def test_members_may_be_appended(self) -> None:
        registry = EnumRegistry()
        registry.register("color_type_enum", Color, {"RED": EnumMemberInfo(is_default=True)})
        registry.register("color_type_enum", ColorV2, {ColorV2.BLUE: EnumMemberInfo(comment="Cool")})

        members = registry.members("color_type_enum")
        assert [m.member_name for m in members] == ["RED", "GREEN", "BLUE"]
        # Metadata from the first registration is kept.
        assert members[0].is_default is True

    def test_members_cannot_be_removed(self) -> None:
        registry = EnumRegistry()
        registry.register("color_type_enum", Color)
        with pytest.raises(ProvisioningConflictError, match="GREEN"):
            registry.register("color_type_enum", ColorDropped)

    def test_metadata_for_unknown_member(self) -> None:
        with pytest.raises(ProvisioningConflictError, match="unknown member"):
            EnumRegistry().register("color_type_enum", Color, {"BLUE": EnumMemberInfo()})

    def test_single_default(self) -> None:
        with pytest.raises(ProvisioningConflictError, match="more than one default"):
            EnumRegistry().register(
                "color_type_enum",
                Color,
                {Color.RED: EnumMemberInfo(is_default=True), Color.GREEN: EnumMemberInfo(is_default=True)},
            )

    def test_unknown_variant(self) -> None:
        with pytest.raises(KeyError):
            EnumRegistry().variant("missing_enum")


class TestConventionSchema:
    def _schema(self) -> ConventionSchema:
        schema = ConventionSchema(MetaData())
        schema.define("order_doc", Color, {Color.RED: EnumMemberInfo(is_default=True)}, has_processed=True)
        schema.define("order_doc_line", Color, header="order_doc")
        schema.define("note_doc", Color, has_template=True, has_parent=True, has_association=True)
        return schema

    def test_type_table_and_enum_naming(self) -> None:
        schema = self._schema()
        kind = schema.kind("order_doc")
        assert kind.type_table_name == "order_doc_type"
        assert kind.enum_identifier == "order_doc_type_enum"
        assert "order_doc_type_enum" in schema.enums

    def test_canonical_columns(self) -> None:
        schema = self._schema()
        columns = set(schema.table("order_doc").c.keys())
        assert {
            "uu",
            "table_name",
            "created",
            "created_by_uu",
            "updated",
            "updated_by_uu",
            "revoked",
            "is_revoked",
            "processed",
            "is_processed",
            "type_uu",
            "record_json",
            "search_key",
            "name",
            "description",
        } == columns

    def test_optional_columns_per_kind(self) -> None:
        schema = self._schema()
        note = schema.table("note_doc").c
        assert "is_template" in note
        assert "parent_uu" in note
        assert ASSOCIATION_COLUMN in note
        assert "processed" not in note
        assert "is_valid" not in note

        line = schema.table("order_doc_line").c
        assert "header_uu" in line
        assert "parent_uu" not in line

    def test_line_search_key_unique_per_header(self) -> None:
        schema = self._schema()
        constraint_columns = {
            tuple(c.name for c in constraint.columns)
            for constraint in schema.table("order_doc_line").constraints
            if constraint.name and constraint.name.startswith("uq_")
        }
        assert ("header_uu", "search_key") in constraint_columns

    def test_type_table_shape(self) -> None:
        schema = self._schema()
        columns = set(schema.type_table("order_doc").c.keys())
        assert {"uu", "type_enum", "search_key", "name", "description", "is_default", "record_json"} <= columns

    def test_table_names_in_registration_order(self) -> None:
        assert self._schema().table_names() == [
            "order_doc",
            "order_doc_type",
            "order_doc_line",
            "order_doc_line_type",
            "note_doc",
            "note_doc_type",
        ]

    def test_unknown_table_is_rejected(self) -> None:
        schema = self._schema()
        with pytest.raises(RecordValidationError):
            schema.kind("stk_missing")
        with pytest.raises(RecordValidationError):
            schema.table("stk_change_log")

    def test_type_table_lookup(self) -> None:
        schema = self._schema()
        assert schema.is_type_table("order_doc_type")
        assert schema.kind_for_type_table("order_doc_type") == schema.kind("order_doc")
        assert schema.kind_for_type_table("order_doc") is None

    def test_duplicate_and_ordering_errors(self) -> None:
        schema = self._schema()
        with pytest.raises(RecordValidationError, match="already defined"):
            schema.define("order_doc", Color)
        with pytest.raises(RecordValidationError, match="must be defined before"):
            schema.define("late_line", Color, header="missing_header")
        with pytest.raises(RecordValidationError, match="cannot also have a parent"):
            schema.define("bad_line", Color, header="order_doc", has_parent=True)
