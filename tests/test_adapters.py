"""
Tests for the adapter registry and payload routing.
"""
import pytest

from sqlblocks.adapters import PostgresAdapter, get_adapter


def _top(ws):
    return ws["blocks"]["blocks"][0]


def test_get_adapter():
    assert get_adapter("postgres").dialect == "postgres"


def test_unknown_adapter_lists_available():
    with pytest.raises(KeyError) as excinfo:
        get_adapter("oracle")
    assert "Available: postgres" in str(excinfo.value)


class TestPostgresAdapter:
    def setup_method(self):
        self.adapter = PostgresAdapter()

    def test_payload_with_tree_uses_structured_pipeline(self):
        payload = {
            "object_type": "function",
            "name": "approve",
            "return_type": "jsonb",
            "ast_json": [{"PLpgSQL_function": {
                "datums": [{"PLpgSQL_var": {"refname": "found"}}],
                "action": {"PLpgSQL_stmt_block": {"body": [
                    {"PLpgSQL_stmt_return": {"expr": {"PLpgSQL_expr": {"query": "'{}'::jsonb"}}}},
                ]}},
            }}],
        }
        fn = _top(self.adapter.transform_payload(payload))
        assert fn["fields"]["NAME"] == "approve"
        assert fn["fields"]["RETURN_TYPE"] == "jsonb"
        assert fn["inputs"]["BODY"]["block"]["fields"]["VALUE"] == "'{}'::jsonb"

    def test_payload_defaults_return_type(self):
        fn = _top(self.adapter.transform_payload({
            "name": "f",
            "ast_json": [{"PLpgSQL_function": {"datums": [], "action": {}}}],
        }))
        assert fn["fields"]["RETURN_TYPE"] == "void"

    @pytest.mark.parametrize("object_type", ["view", "view_definition"])
    def test_view_payload(self, object_type):
        view = _top(self.adapter.transform_payload({
            "object_type": object_type,
            "name": "my_view",
            "ast_json": {"stmts": [{"stmt": {"SelectStmt": {}}}]},
        }))
        assert view["type"] == "sql_view_def"
        assert view["inputs"]["BODY"]["block"]["fields"]["SQL"] == "SELECT query (parsed)"

    def test_payload_without_tree_uses_source(self):
        top = _top(self.adapter.transform_payload({
            "object_type": "check_constraint",
            "name": "chk_price",
            "ast_json": None,
            "source_code": "price > 0",
        }))
        assert top["type"] == "sql_check"
        assert top["fields"]["EXPRESSION"] == "price > 0"

    def test_empty_payload_is_empty_workspace(self):
        assert self.adapter.transform_payload({})["blocks"]["blocks"] == []

    def test_view_source_parsed_with_sqlglot(self):
        """Test CREATE VIEW text takes the structured path and keeps the table name."""
        view = _top(self.adapter.transform_source(
            "CREATE VIEW reporting.active_users AS SELECT id, name FROM users WHERE active"
        ))
        assert view["fields"]["NAME"] == "active_users"
        select = view["inputs"]["BODY"]["block"]
        assert select["fields"] == {"COLUMNS": "id, name", "TABLE": "users"}
        assert select["next"]["block"]["fields"] == {"CONDITION": "active"}

    def test_declared_view_name_wins_over_label(self):
        """Test the name in CREATE VIEW is used even when a label is passed."""
        view = _top(self.adapter.transform_source("CREATE VIEW v AS SELECT 1 AS one", name="from_file"))
        assert view["fields"]["NAME"] == "v"

    def test_label_names_bare_select_view(self):
        view = _top(self.adapter.transform_source(
            "SELECT id FROM users", object_type="view_definition", name="from_file"
        ))
        assert view["type"] == "sql_view_def"
        assert view["fields"]["NAME"] == "from_file"

    def test_routine_source_uses_fallback(self):
        fn = _top(self.adapter.transform_source(
            "CREATE FUNCTION one() RETURNS int AS $$ BEGIN RETURN 1; END; $$ LANGUAGE plpgsql;"
        ))
        assert fn["type"] == "sql_function_def"
        assert fn["inputs"]["BODY"]["block"]["fields"]["VALUE"] == "1"
