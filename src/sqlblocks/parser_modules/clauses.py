"""
Clause extraction for single SQL statements (SELECT INTO, UPDATE, INSERT, DELETE).
"""
from __future__ import annotations

import re
from typing import Optional, Tuple

from ..blocks import RAW_CAP, truncate
from ..models import Block
from ..symbols import TransformContext

RE_SELECT_BODY = re.compile(r"SELECT\s+(.*?)\s+FROM\s+(.*)", re.IGNORECASE | re.DOTALL)
RE_SELECT_INTO = re.compile(r"SELECT\s+(.*?)\s+INTO\s+(.*?)\s+FROM\s+(.*)", re.IGNORECASE | re.DOTALL)
RE_HAS_INTO = re.compile(r"^\s*SELECT\b.*\bINTO\b", re.IGNORECASE | re.DOTALL)
RE_WHERE_SPLIT = re.compile(r"(.*?)\s+WHERE\s+(.*)", re.IGNORECASE | re.DOTALL)
RE_UPDATE = re.compile(r"UPDATE\s+(\S+)\s+SET\s+(.*?)(?:\s+WHERE\s+(.*))?$", re.IGNORECASE | re.DOTALL)
RE_INSERT_HEAD = re.compile(r"INSERT\s+INTO\s+([^\s(]+)\s*\(", re.IGNORECASE)
RE_VALUES_HEAD = re.compile(r"\s*VALUES\s*\(", re.IGNORECASE)
RE_INSERT_PREFIX = re.compile(r"^\s*INSERT\s+INTO\s+", re.IGNORECASE)
RE_DELETE = re.compile(r"DELETE\s+FROM\s+(\S+)", re.IGNORECASE)
RE_LEADING_KEYWORD = re.compile(r"^\s*([A-Za-z]+)")
RE_ASSIGN_PREFIX = re.compile(
    r"^\s*[A-Za-z_][\w$]*(?:\.[A-Za-z_][\w$]*)*(?:\[[^\]]*\])?\s*:=\s*(.*)$", re.DOTALL
)


def strip_terminator(sql: str) -> str:
    return (sql or "").strip().rstrip(";").strip()


def leading_keyword(sql: str) -> str:
    m = RE_LEADING_KEYWORD.match(sql or "")
    return m.group(1).upper() if m else ""


def balanced_group(text: str, open_at: int) -> Optional[Tuple[str, int]]:
    """Return (inner text, index after the close) for the paren opening at ``open_at``."""
    if open_at >= len(text) or text[open_at] != "(":
        return None
    depth = 0
    quote = None
    for i in range(open_at, len(text)):
        ch = text[i]
        if quote:
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return text[open_at + 1:i], i + 1
    return None


def _split_table_where(from_clause: str) -> str:
    from_clause = from_clause.strip()
    where = RE_WHERE_SPLIT.match(from_clause)
    return where.group(1).strip() if where else from_clause


def raw_block(ctx: TransformContext, text: str, cap: int = RAW_CAP) -> Block:
    return ctx.new_block("sql_raw", {"SQL": truncate(text, cap)})


def select_into_from_target(ctx: TransformContext, query: str, target_name: str) -> Block:
    """SELECT INTO where the parser stripped INTO and resolved the target itself."""
    query = strip_terminator(query)
    embedded = RE_SELECT_INTO.search(query)
    if embedded:
        return ctx.new_block("sql_select_into", {
            "COLUMNS": truncate(embedded.group(1).strip(), 60),
            "TARGET": truncate(target_name, 40),
            "TABLE": truncate(_split_table_where(embedded.group(3)), 60),
        })
    m = RE_SELECT_BODY.search(query)
    if not m:
        return ctx.new_block("sql_select_into", {
            "COLUMNS": truncate(query, 60),
            "TARGET": truncate(target_name, 40),
            "TABLE": "",
        })
    return ctx.new_block("sql_select_into", {
        "COLUMNS": truncate(m.group(1).strip(), 60),
        "TARGET": truncate(target_name, 40),
        "TABLE": truncate(_split_table_where(m.group(2)), 60),
    })


def match_select_into(query: str) -> Optional[re.Match]:
    return RE_SELECT_INTO.search(strip_terminator(query))


def select_into_from_text(ctx: TransformContext, query: str) -> Block:
    """SELECT <cols> INTO <target> FROM <rest> matched against the raw text."""
    m = match_select_into(query)
    if not m:
        return ctx.new_block("sql_select_into", {
            "COLUMNS": truncate(strip_terminator(query), 60),
            "TARGET": "",
            "TABLE": "",
        })
    return ctx.new_block("sql_select_into", {
        "COLUMNS": truncate(m.group(1).strip(), 60),
        "TARGET": truncate(m.group(2).strip(), 40),
        "TABLE": truncate(_split_table_where(m.group(3)), 60),
    })


def update_block(ctx: TransformContext, query: str) -> Block:
    query = strip_terminator(query)
    m = RE_UPDATE.search(query)
    if not m:
        return ctx.new_block("sql_update", {"TABLE": truncate(query, 60), "ASSIGNMENTS": ""})
    fields = {
        "TABLE": truncate(m.group(1), 40),
        "ASSIGNMENTS": truncate(m.group(2).strip(), 80),
    }
    if m.group(3):
        fields["WHERE"] = truncate(m.group(3).strip(), 80)
    return ctx.new_block("sql_update", fields)


def insert_block(ctx: TransformContext, query: str) -> Block:
    query = strip_terminator(query)
    head = RE_INSERT_HEAD.search(query)
    if head:
        cols = balanced_group(query, head.end() - 1)
        if cols:
            values_head = RE_VALUES_HEAD.match(query, cols[1])
            vals = balanced_group(query, values_head.end() - 1) if values_head else None
            if vals:
                return ctx.new_block("sql_insert", {
                    "TABLE": truncate(head.group(1), 40),
                    "COLUMNS": truncate(cols[0].strip(), 60),
                    "VALUES": truncate(vals[0].strip(), 60),
                })
    rest = RE_INSERT_PREFIX.sub("", query)
    tokens = rest.split()
    table = tokens[0].split("(")[0] if tokens else query
    return ctx.new_block("sql_insert", {
        "TABLE": truncate(table or query, 40),
        "COLUMNS": "",
        "VALUES": "",
    })


def delete_block(ctx: TransformContext, query: str) -> Block:
    query = strip_terminator(query)
    m = RE_DELETE.search(query)
    return ctx.new_block("sql_delete", {"TABLE": truncate(m.group(1) if m else query, 40)})


def exec_sql_block(ctx: TransformContext, query: str, into: bool = False,
                   target_name: Optional[str] = None) -> Block:
    """Classify one execute-SQL statement by its leading keyword."""
    keyword = leading_keyword(query)
    if keyword == "SELECT" and into:
        return select_into_from_target(ctx, query, target_name or "?")
    if keyword == "SELECT" and RE_HAS_INTO.search(query):
        return select_into_from_text(ctx, query)
    if keyword == "UPDATE":
        return update_block(ctx, query)
    if keyword == "INSERT":
        return insert_block(ctx, query)
    if keyword == "DELETE":
        return delete_block(ctx, query)
    return raw_block(ctx, query)


def strip_assignment_prefix(expr: str) -> str:
    """``v := f(x)`` -> ``f(x)``; text without such a prefix is returned unchanged."""
    m = RE_ASSIGN_PREFIX.match(expr or "")
    return m.group(1) if m else (expr or "")


def assignment_block(ctx: TransformContext, target: str, expr: str) -> Block:
    """Assignment to a local variable, or to a parameter/record field."""
    if not ctx.registry.is_assignable(target):
        return ctx.new_block("plpgsql_set_var", {
            "NAME": truncate(target, 40),
            "VALUE": truncate(expr, 60),
        })
    var_id = ctx.registry.id_for(target)
    value = ctx.new_block("sql_expression", {"EXPRESSION": truncate(expr, 100)})
    return ctx.new_block("variables_set", {"VAR": {"id": var_id}}, {"VALUE": value})
