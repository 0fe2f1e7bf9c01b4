"""
View body decomposition into clause blocks (SELECT/FROM, JOIN, WHERE, GROUP BY, ORDER BY, LIMIT).
"""
from __future__ import annotations

import re
from typing import List, Optional

from sqlglot import expressions as exp

from ..blocks import truncate
from ..models import Block
from ..symbols import TransformContext

RE_SELECT = re.compile(r"\bSELECT\b\s+([\s\S]+?)\bFROM\b", re.IGNORECASE)
RE_FROM = re.compile(
    r"\bFROM\b\s+([\s\S]+?)(?:\bWHERE\b|\bGROUP\b|\bORDER\b|\bLIMIT\b|\bLEFT\b|\bJOIN\b"
    r"|\bRIGHT\b|\bINNER\b|\bFULL\b|\bCROSS\b|$)",
    re.IGNORECASE,
)
RE_JOIN = re.compile(
    r"\b(LEFT|RIGHT|INNER|FULL|CROSS)?\s*(?:OUTER\s+)?JOIN\s+([\w.]+)\s+(?:(?:AS\s+)?\w+\s+)?ON\s+(.+?)"
    r"(?=\bLEFT\b|\bRIGHT\b|\bINNER\b|\bFULL\b|\bCROSS\b|\bJOIN\b|\bWHERE\b|\bGROUP\b|\bORDER\b|\bLIMIT\b|$)",
    re.IGNORECASE | re.DOTALL,
)
RE_WHERE = re.compile(r"\bWHERE\b\s+([\s\S]+?)(?:\bGROUP\b|\bORDER\b|\bLIMIT\b|$)", re.IGNORECASE)
RE_GROUP = re.compile(r"\bGROUP\s+BY\b\s+([\s\S]+?)(?:\bHAVING\b|\bORDER\b|\bLIMIT\b|$)", re.IGNORECASE)
RE_ORDER = re.compile(r"\bORDER\s+BY\b\s+([\s\S]+?)(?:\bLIMIT\b|\bOFFSET\b|$)", re.IGNORECASE)
RE_LIMIT = re.compile(r"\bLIMIT\s+(\w+)", re.IGNORECASE)
RE_VIEW_TRAILER = re.compile(r"(?:\s+WITH\s+(?:NO\s+)?DATA)?\s*;?\s*$", re.IGNORECASE)


def _select_block(ctx: TransformContext, columns: Optional[str], table: Optional[str]) -> Block:
    fields = {"COLUMNS": truncate(columns, 80) if columns is not None else ""}
    if table:
        fields["TABLE"] = truncate(table, 60)
    return ctx.new_block("sql_select", fields)


def from_text(ctx: TransformContext, body: str) -> List[Block]:
    """Regex decomposition of a view's SELECT text."""
    select_body = RE_VIEW_TRAILER.sub("", (body or "").strip())
    blocks: List[Block] = []

    select = RE_SELECT.search(select_body)
    from_ = RE_FROM.search(select_body)
    if select or from_:
        blocks.append(_select_block(
            ctx,
            select.group(1).strip() if select else None,
            from_.group(1).strip() if from_ else None,
        ))

    for join in RE_JOIN.finditer(select_body):
        blocks.append(ctx.new_block("sql_join", {
            "TYPE": (join.group(1) or "INNER").strip().upper(),
            "TABLE": truncate(join.group(2).strip(), 40),
            "CONDITION": truncate(join.group(3).strip(), 60),
        }))

    where = RE_WHERE.search(select_body)
    if where:
        blocks.append(ctx.new_block("sql_where", {"CONDITION": truncate(where.group(1).strip(), 80)}))

    group = RE_GROUP.search(select_body)
    if group:
        blocks.append(ctx.new_block("sql_group_by", {"COLUMNS": truncate(group.group(1).strip(), 60)}))

    order = RE_ORDER.search(select_body)
    if order:
        blocks.append(ctx.new_block("sql_order_by", {"COLUMNS": truncate(order.group(1).strip(), 60)}))

    limit = RE_LIMIT.search(select_body)
    if limit:
        blocks.append(ctx.new_block("sql_limit", {"COUNT": limit.group(1)}))

    return blocks


def _clause(node: exp.Expression, *keys: str):
    for key in keys:
        value = node.args.get(key)
        if value is not None:
            return value
    return None


def find_select(tree: Optional[exp.Expression]) -> Optional[exp.Select]:
    """The SELECT a view definition (or bare query) is built on."""
    if tree is None:
        return None
    if isinstance(tree, exp.Create):
        tree = tree.expression
    if isinstance(tree, exp.Subquery):
        tree = tree.this
    if isinstance(tree, exp.Select):
        return tree
    if isinstance(tree, exp.Union):
        # set operations: render the left-most branch
        return find_select(tree.left)
    return tree.find(exp.Select) if isinstance(tree, exp.Expression) else None


def _table_name(node: exp.Expression) -> str:
    if isinstance(node, exp.Table):
        return ".".join(p for p in (node.db, node.name) if p)
    return node.sql()


def from_expression(ctx: TransformContext, tree: exp.Expression, dialect: str = "postgres") -> List[Block]:
    """Clause blocks from a sqlglot tree; same block shapes as :func:`from_text`."""
    select = find_select(tree)
    if select is None:
        return []
    blocks: List[Block] = []

    columns = ", ".join(e.sql(dialect=dialect) for e in select.expressions)
    from_ = _clause(select, "from", "from_")
    blocks.append(_select_block(ctx, columns, from_.this.sql(dialect=dialect) if from_ is not None else None))

    for join in select.args.get("joins") or []:
        kind = " ".join(p for p in (join.side, join.kind) if p) or "INNER"
        on = join.args.get("on")
        blocks.append(ctx.new_block("sql_join", {
            "TYPE": kind.upper(),
            "TABLE": truncate(_table_name(join.this), 40),
            "CONDITION": truncate(on.sql(dialect=dialect) if on is not None else "", 60),
        }))

    where = select.args.get("where")
    if where is not None:
        blocks.append(ctx.new_block("sql_where", {"CONDITION": truncate(where.this.sql(dialect=dialect), 80)}))

    group = select.args.get("group")
    if group is not None:
        cols = ", ".join(e.sql(dialect=dialect) for e in group.expressions)
        blocks.append(ctx.new_block("sql_group_by", {"COLUMNS": truncate(cols, 60)}))

    order = select.args.get("order")
    if order is not None:
        cols = ", ".join(e.sql(dialect=dialect) for e in order.expressions)
        blocks.append(ctx.new_block("sql_order_by", {"COLUMNS": truncate(cols, 60)}))

    limit = select.args.get("limit")
    if limit is not None:
        count = limit.expression if limit.expression is not None else limit.this
        blocks.append(ctx.new_block("sql_limit", {"COUNT": count.sql(dialect=dialect) if count is not None else ""}))

    return blocks
