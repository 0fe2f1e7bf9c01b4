"""
Unit tests for the line-based statement splitter.
"""
from sqlblocks.parser_modules.splitter import (
    locate_body,
    split_block,
    split_case,
    split_declarations,
    split_if,
    split_loop,
    split_statements,
    strip_line_comment,
)


class TestSplitStatements:
    def test_simple_statements(self):
        body = """
            v_count := 0;
            PERFORM notify_user(v_id);
            RETURN v_count;
        """
        assert split_statements(body) == [
            "v_count := 0",
            "PERFORM notify_user(v_id)",
            "RETURN v_count",
        ]

    def test_if_block_kept_together(self):
        body = """
            IF v_count > 0 THEN
              RETURN true;
            END IF;
            RETURN false;
        """
        stmts = split_statements(body)
        assert len(stmts) == 2
        assert stmts[0].startswith("IF v_count > 0 THEN")
        assert stmts[0].endswith("END IF")
        assert stmts[1] == "RETURN false"

    def test_inline_if_does_not_change_depth(self):
        body = "IF a THEN RETURN 1; END IF;\nRETURN 2;"
        assert split_statements(body) == ["IF a THEN RETURN 1; END IF", "RETURN 2"]

    def test_for_with_loop_on_next_line(self):
        body = """
            FOR r IN SELECT * FROM bookings
            LOOP
              PERFORM process(r.id);
            END LOOP;
            RETURN 1;
        """
        stmts = split_statements(body)
        assert len(stmts) == 2
        assert stmts[0].endswith("END LOOP")

    def test_select_for_update_is_not_a_loop(self):
        body = "SELECT id INTO v_id FROM t\nFOR UPDATE;\nRETURN v_id;"
        assert split_statements(body) == ["SELECT id INTO v_id FROM t\nFOR UPDATE", "RETURN v_id"]

    def test_nested_blocks(self):
        body = """
            BEGIN
              IF x THEN
                RETURN 1;
              END IF;
            EXCEPTION WHEN OTHERS THEN
              RETURN 0;
            END;
            RETURN 2;
        """
        stmts = split_statements(body)
        assert len(stmts) == 2
        assert stmts[0].startswith("BEGIN") and stmts[0].endswith("END")

    def test_comments_and_blank_lines_dropped(self):
        body = "-- leading note\n\nRETURN 'a--b'; -- trailing\n"
        assert split_statements(body) == ["RETURN 'a--b'"]

    def test_trailing_partial_buffer_is_emitted(self):
        assert split_statements("RETURN 1;\nPERFORM f()") == ["RETURN 1", "PERFORM f()"]

    def test_unbalanced_end_floors_at_zero(self):
        assert split_statements("END;\nRETURN 1;") == ["END", "RETURN 1"]


def test_strip_line_comment_keeps_quoted_dashes():
    assert strip_line_comment("x := '--'; -- note") == "x := '--'; "


def test_locate_body_with_declare():
    source = """
    AS $fn$
    DECLARE
      v_total NUMERIC := 0;
    BEGIN
      IF a THEN RETURN 1; END IF;
      RETURN v_total;
    END;
    $fn$ LANGUAGE plpgsql;
    """
    located = locate_body(source)
    assert "v_total NUMERIC" in located.declarations
    assert "RETURN v_total;" in located.body
    assert "END IF;" in located.body
    assert "$fn$" not in located.body


def test_locate_body_without_begin():
    assert locate_body("AS $$ SELECT 1; $$ LANGUAGE sql") is None


def test_split_declarations():
    text = """
      v_count INT := 0;
      v_rec record;
      c_limit CONSTANT integer := 10;
      v_name varchar(40) NOT NULL DEFAULT 'x';
    """
    assert split_declarations(text) == [
        ("v_count", "INT"),
        ("v_rec", "RECORD"),
        ("c_limit", "integer"),
        ("v_name", "varchar(40)"),
    ]


class TestSplitIf:
    def test_then_and_else(self):
        parts = split_if("IF a > 1 THEN\nRETURN 1;\nELSE\nRETURN 2;\nEND IF")
        assert parts.condition == "a > 1"
        assert parts.then_text == "RETURN 1;"
        assert parts.else_text == "RETURN 2;"

    def test_elsif_becomes_nested_if(self):
        parts = split_if("IF a THEN\nRETURN 1;\nELSIF b THEN\nRETURN 2;\nELSE\nRETURN 3;\nEND IF")
        assert parts.else_text.startswith("IF b THEN")
        assert parts.else_text.endswith("END IF;")
        nested = split_if(parts.else_text)
        assert nested.condition == "b"
        assert nested.else_text == "RETURN 3;"

    def test_nested_else_is_not_split(self):
        stmt = "IF a THEN\nIF b THEN\nRETURN 1;\nELSE\nRETURN 2;\nEND IF;\nEND IF"
        parts = split_if(stmt)
        assert parts.else_text is None
        assert "ELSE" in parts.then_text

    def test_not_an_if(self):
        assert split_if("RETURN 1") is None


def test_split_loop():
    header, body = split_loop("WHILE n > 0 LOOP\nn := n - 1;\nEND LOOP")
    assert header == "WHILE n > 0"
    assert body.strip() == "n := n - 1;"


def test_split_block_handlers():
    body, handlers = split_block(
        "BEGIN\nINSERT INTO t (a) VALUES (1);\n"
        "EXCEPTION\nWHEN unique_violation OR foreign_key_violation THEN\nRETURN 0;\n"
        "WHEN OTHERS THEN RAISE;\nEND"
    )
    assert body == "INSERT INTO t (a) VALUES (1);"
    assert [(h.conditions, h.action_text) for h in handlers] == [
        ("unique_violation, foreign_key_violation", "RETURN 0;"),
        ("OTHERS", "RAISE;"),
    ]


def test_split_block_without_exception_section():
    body, handlers = split_block("BEGIN\nRETURN 1;\nEND")
    assert body == "RETURN 1;"
    assert handlers == []


def test_split_case():
    expr, clauses = split_case("CASE v_kind WHEN 'a' THEN RETURN 1;\nWHEN 'b' THEN\nRETURN 2;\nELSE RETURN 0;\nEND CASE")
    assert expr == "v_kind"
    assert clauses == [("'a'", "RETURN 1;"), ("'b'", "RETURN 2;"), ("ELSE", "RETURN 0;")]
