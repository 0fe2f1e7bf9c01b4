"""
Unit tests for single-statement clause extraction.
"""
import pytest

from sqlblocks.parser_modules.clauses import (
    balanced_group,
    exec_sql_block,
    insert_block,
    leading_keyword,
    select_into_from_text,
    strip_assignment_prefix,
    update_block,
)
from sqlblocks.symbols import TransformContext


class TestExecSqlClassification:
    def setup_method(self):
        self.ctx = TransformContext(object_name="test_fn")

    @pytest.mark.parametrize("sql,expected", [
        ("  update t set a = 1", "sql_update"),
        ("INSERT INTO t (a) VALUES (1)", "sql_insert"),
        ("DELETE FROM t", "sql_delete"),
        ("SELECT a INTO b FROM t", "sql_select_into"),
        ("SELECT a FROM t", "sql_raw"),
        ("TRUNCATE t", "sql_raw"),
        ("", "sql_raw"),
    ])
    def test_leading_keyword_dispatch(self, sql, expected):
        assert exec_sql_block(self.ctx, sql).type == expected

    def test_into_flag_uses_target_name(self):
        block = exec_sql_block(self.ctx, "SELECT a, b FROM t WHERE c = 1;", into=True, target_name="v_row")
        assert block.fields == {"COLUMNS": "a, b", "TARGET": "v_row", "TABLE": "t"}

    def test_into_flag_without_from(self):
        block = exec_sql_block(self.ctx, "SELECT now()", into=True, target_name="v_now")
        assert block.fields == {"COLUMNS": "SELECT now()", "TARGET": "v_now", "TABLE": ""}

    def test_ids_come_from_context(self):
        first = exec_sql_block(self.ctx, "DELETE FROM a")
        second = exec_sql_block(self.ctx, "DELETE FROM b")
        assert (first.id, second.id) == ("block_1", "block_2")


def test_leading_keyword():
    assert leading_keyword("\n  select 1") == "SELECT"
    assert leading_keyword("(SELECT 1)") == ""


@pytest.mark.parametrize("where", ["", " WHERE id = p_id", " where a = 1 AND b IN (SELECT x FROM y)"])
def test_select_into_table_excludes_where(where):
    """Test the TABLE field never carries the WHERE clause."""
    block = select_into_from_text(TransformContext(), f"SELECT col INTO v_col FROM reservations{where}")
    assert block.fields["TABLE"] == "reservations"
    assert block.fields["TARGET"] == "v_col"


def test_select_into_text_miss_degrades():
    block = select_into_from_text(TransformContext(), "SELECT 1")
    assert block.fields == {"COLUMNS": "SELECT 1", "TARGET": "", "TABLE": ""}


def test_update_without_where():
    block = update_block(TransformContext(), "UPDATE settings SET value = 'x';")
    assert block.fields == {"TABLE": "settings", "ASSIGNMENTS": "value = 'x'"}


class TestInsert:
    def test_nested_parentheses_in_values(self):
        block = insert_block(TransformContext(), (
            "INSERT INTO payments (amount, paid_at) VALUES (round(v_fee * (1 + v_tax), 2), now())"
        ))
        assert block.fields["TABLE"] == "payments"
        assert block.fields["COLUMNS"] == "amount, paid_at"
        assert block.fields["VALUES"] == "round(v_fee * (1 + v_tax), 2), now()"

    def test_insert_select_degrades_to_table(self):
        block = insert_block(TransformContext(), "INSERT INTO archive SELECT * FROM bookings")
        assert block.fields == {"TABLE": "archive", "COLUMNS": "", "VALUES": ""}

    def test_default_values_degrades(self):
        block = insert_block(TransformContext(), "INSERT INTO events(id) DEFAULT VALUES")
        assert block.fields == {"TABLE": "events", "COLUMNS": "", "VALUES": ""}


def test_balanced_group_skips_quoted_parens():
    text = "f(a, ')', (b))tail"
    inner, end = balanced_group(text, 1)
    assert inner == "a, ')', (b)"
    assert text[end:] == "tail"
    assert balanced_group(text, 0) is None
    assert balanced_group("(open", 0) is None


@pytest.mark.parametrize("expr,expected", [
    ("v_fee := calculate_facility_fee(lower(v_request.time_slot))",
     "calculate_facility_fee(lower(v_request.time_slot))"),
    ("v_request.status := 'approved'", "'approved'"),
    ("v_arr[1] := 2", "2"),
    ("coalesce(a, b)", "coalesce(a, b)"),
    ("", ""),
])
def test_strip_assignment_prefix(expr, expected):
    assert strip_assignment_prefix(expr) == expected
