"""Tests for identifier validation and dynamic DDL rendering."""

from __future__ import annotations

import pytest

from stk_engine.errors import RecordValidationError, UnsafeIdentifierError
from stk_engine.provisioning.ddl import (
    constant_text_expression,
    quote,
    render_create_trigger,
    trigger_name,
    validate_identifier,
)


class TestValidateIdentifier:
    @pytest.mark.parametrize("name", ["stk_request", "_private", "t10100_stk_change_log", "a" * 63])
    def test_accepts_safe_names(self, name: str) -> None:
        assert validate_identifier(name) == name

    @pytest.mark.parametrize(
        "name",
        ["", "1table", "Stk_Request", "stk-request", 'stk"; DROP TABLE x; --', "a" * 64, "stk request"],
    )
    def test_rejects_unsafe_names(self, name: str) -> None:
        with pytest.raises(UnsafeIdentifierError):
            validate_identifier(name)

    def test_rejects_non_strings(self) -> None:
        with pytest.raises(UnsafeIdentifierError):
            validate_identifier(None)  # type: ignore[arg-type]

    def test_allowlist_membership(self) -> None:
        assert validate_identifier("stk_request", {"stk_request"}) == "stk_request"
        with pytest.raises(UnsafeIdentifierError, match="Unknown table"):
            validate_identifier("stk_event", {"stk_request"}, kind="table")

    def test_unsafe_identifier_is_a_validation_error(self) -> None:
        assert issubclass(UnsafeIdentifierError, RecordValidationError)


class TestTriggerName:
    def test_prefix_and_root(self) -> None:
        assert trigger_name(10100, "stk_change_log") == "t10100_stk_change_log"

    def test_prefix_controls_sort_order(self) -> None:
        names = [trigger_name(20100, "stk_b"), trigger_name(10100, "stk_a")]
        assert sorted(names) == ["t10100_stk_a", "t20100_stk_b"]

    def test_prefix_is_zero_padded(self) -> None:
        assert trigger_name(100, "stk_lifecycle_guard") == "t00100_stk_lifecycle_guard"
        assert trigger_name(0, "stk_first") == "t00000_stk_first"

    def test_name_order_matches_numeric_order_across_widths(self) -> None:
        prefixes = [10100, 200, 99999, 5, 1000]
        names = [trigger_name(prefix, "stk_x") for prefix in prefixes]
        assert sorted(names) == [trigger_name(prefix, "stk_x") for prefix in sorted(prefixes)]

    @pytest.mark.parametrize("prefix", [-1, 100000])
    def test_prefix_out_of_range_rejected(self, prefix: int) -> None:
        with pytest.raises(UnsafeIdentifierError):
            trigger_name(prefix, "stk_change_log")

    def test_bad_root_rejected(self) -> None:
        with pytest.raises(UnsafeIdentifierError):
            trigger_name(100, "Bad Root")


class TestRenderCreateTrigger:
    def test_renders_quoted_statement(self) -> None:
        sql = render_create_trigger(
            schema="public",
            table_name="stk_request",
            trigger="t10100_stk_change_log",
            function="t10100_stk_change_log",
            event_clause="AFTER INSERT OR UPDATE OR DELETE",
            allowed_tables={"stk_request"},
        )
        assert sql == (
            'CREATE TRIGGER "t10100_stk_change_log" AFTER INSERT OR UPDATE OR DELETE '
            'ON "public"."stk_request" '
            'FOR EACH ROW EXECUTE FUNCTION "t10100_stk_change_log"()'
        )

    def test_function_is_not_schema_qualified(self) -> None:
        sql = render_create_trigger(
            schema="private",
            table_name="stk_request",
            trigger="t10100_stk_change_log",
            function="t10100_stk_change_log",
            event_clause="AFTER INSERT",
            allowed_tables={"stk_request"},
        )
        assert 'ON "private"."stk_request" ' in sql
        assert sql.endswith('EXECUTE FUNCTION "t10100_stk_change_log"()')

    def test_table_must_be_in_catalog(self) -> None:
        with pytest.raises(UnsafeIdentifierError):
            render_create_trigger(
                schema="public",
                table_name="stk_unknown",
                trigger="t1_x",
                function="t1_x",
                event_clause="AFTER INSERT",
                allowed_tables={"stk_request"},
            )

    @pytest.mark.parametrize("clause", ["AFTER TRUNCATE", "INSTEAD OF INSERT", "AFTER INSERT; DROP TABLE x"])
    def test_event_clause_is_rechecked(self, clause: str) -> None:
        with pytest.raises(UnsafeIdentifierError):
            render_create_trigger(
                schema="public",
                table_name="stk_request",
                trigger="t1_x",
                function="t1_x",
                event_clause=clause,
                allowed_tables={"stk_request"},
            )


def test_quote_always_quotes() -> None:
    assert quote("stk_request") == '"stk_request"'


def test_constant_text_expression() -> None:
    assert constant_text_expression("stk_request") == "'stk_request'"
    with pytest.raises(UnsafeIdentifierError):
        constant_text_expression("x'); DROP TABLE y; --")
