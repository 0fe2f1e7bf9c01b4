"""
Fallback pipeline: raw routine/view/trigger source to block workspaces.

Used when no parse tree is available. Definitions are detected with patterns,
routine bodies are split into statements with nesting-depth tracking and each
statement is mapped through the ordered rule table in ``parser_modules.rules``.
"""
from __future__ import annotations

import logging
import re
from typing import Callable, Dict, List, Optional

from .blocks import (
    CONDITION_CAP, NAME_CAP, PARAMS_CAP, RAW_CAP, SOURCE_CAP, TYPE_CAP, VALUE_CAP,
    append_after, block_summary, chain, truncate,
)
from .models import Block, ObjectKind, Workspace
from .parser_modules import splitter, view_clauses
from .parser_modules.clauses import (
    assignment_block, balanced_group, delete_block, insert_block, raw_block,
    select_into_from_text, strip_terminator, update_block,
)
from .parser_modules.rules import FallbackKind, match_rule
from .symbols import TransformContext

logger = logging.getLogger(__name__)

RE_ROUTINE = re.compile(
    r"CREATE\s+(?:OR\s+REPLACE\s+)?(FUNCTION|PROCEDURE)\s+(?:[\w\"]+\.)?([\w\"]+)\s*\(",
    re.IGNORECASE,
)
RE_RETURNS = re.compile(r"\s*RETURNS\s+(SETOF\s+[^\s(]+|TABLE\b|[^\s(]+(?:\s*\([^)]*\))?)", re.IGNORECASE)
RE_VIEW = re.compile(
    r"CREATE\s+(?:OR\s+REPLACE\s+)?(?:TEMP(?:ORARY)?\s+)?(?:MATERIALIZED\s+)?VIEW\s+"
    r"(?:IF\s+NOT\s+EXISTS\s+)?(?:[\w\"]+\.)?([\w\"]+)\s*(?:\([^)]*\)\s*)?"
    r"(?:WITH\s*\([^)]*\)\s*)?AS\b\s*(.*)$",
    re.IGNORECASE | re.DOTALL,
)
RE_TRIGGER = re.compile(
    r"CREATE\s+(?:OR\s+REPLACE\s+)?(?:CONSTRAINT\s+)?TRIGGER\s+([\w\"]+)\s+(BEFORE|AFTER|INSTEAD\s+OF)\s+"
    r"([\w\s,]+?)\s+ON\s+(?:[\w\"]+\.)?([\w\"]+).*?EXECUTE\s+(?:FUNCTION|PROCEDURE)\s+"
    r"(?:[\w\"]+\.)?([\w\"]+)\s*\(",
    re.IGNORECASE | re.DOTALL,
)
RE_RLS_USING = re.compile(r"\bUSING\s*\(", re.IGNORECASE)
RE_RLS_CHECK = re.compile(r"\bWITH\s+CHECK\s*\(", re.IGNORECASE)
RE_ELSE_WORD = re.compile(r"\bELSE\b", re.IGNORECASE)
RE_FOR_HEAD = re.compile(r"^FOR(?:EACH)?\s+\w+\s+(?:SLICE\s+\d+\s+)?IN\s+", re.IGNORECASE)
RE_WHILE_HEAD = re.compile(r"^WHILE\s+", re.IGNORECASE)
RE_PARAM_MODE = re.compile(r"^(?:IN|OUT|INOUT|VARIADIC)\s+", re.IGNORECASE)
RE_PARAM_NAME = re.compile(r"^([A-Za-z_]\w*)\s+\S")


def _log_debug(ctx: TransformContext, msg: str, *args) -> None:
    logger.debug("[object=%s] " + msg, ctx.object_name or "-", *args)


def _log_warning(ctx: TransformContext, msg: str, *args) -> None:
    logger.warning("[object=%s] " + msg, ctx.object_name or "-", *args)


def _unquote(name: str) -> str:
    return (name or "").replace('"', "")


def split_top_level(text: str, sep: str = ",") -> List[str]:
    """Split on ``sep`` outside parentheses and quotes."""
    parts: List[str] = []
    depth = 0
    quote = None
    start = 0
    for i, ch in enumerate(text or ""):
        if quote:
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(0, depth - 1)
        elif ch == sep and depth == 0:
            parts.append(text[start:i])
            start = i + 1
    parts.append((text or "")[start:])
    return [p.strip() for p in parts if p.strip()]


def parameter_names(params: str) -> List[str]:
    """Names from a routine's parameter list; unnamed parameters are skipped."""
    names = []
    for item in split_top_level(params):
        m = RE_PARAM_NAME.match(RE_PARAM_MODE.sub("", item))
        if m:
            names.append(m.group(1))
    return names


class SourceTransformer:
    """Regex-based extraction for sources without a parse tree."""

    def __init__(self):
        self._rules: Dict[FallbackKind, Callable[[TransformContext, str, Optional[re.Match]], Optional[Block]]] = {
            FallbackKind.IF: self._map_if,
            FallbackKind.ASSIGN: self._map_assign,
            FallbackKind.RETURN: self._map_return,
            FallbackKind.PERFORM: self._map_perform,
            FallbackKind.RAISE: self._map_raise,
            FallbackKind.SELECT_INTO: lambda ctx, stmt, m: select_into_from_text(ctx, stmt),
            FallbackKind.INSERT: lambda ctx, stmt, m: insert_block(ctx, stmt),
            FallbackKind.UPDATE: lambda ctx, stmt, m: update_block(ctx, stmt),
            FallbackKind.DELETE: lambda ctx, stmt, m: delete_block(ctx, stmt),
            FallbackKind.NOTIFY: self._map_notify,
            FallbackKind.FOR: self._map_for,
            FallbackKind.LOOP: self._map_loop,
            FallbackKind.BLOCK: self._map_block,
            FallbackKind.CASE: self._map_case,
        }

    def to_workspace(self, source: str, object_type: Optional[str] = None,
                     name: Optional[str] = None) -> Workspace:
        ctx = TransformContext(object_name=name or "")
        try:
            blocks = self._top_level(ctx, source or "", ObjectKind.from_hint(object_type), name)
        except Exception as e:
            _log_warning(ctx, "fallback transform failed: %s", e)
            return Workspace()
        for i, block in enumerate(blocks):
            block.x, block.y = 20, 20 + i * 200
        return Workspace(blocks=blocks, variables=ctx.registry.variables())

    # ---- definitions ----
    def _top_level(self, ctx: TransformContext, source: str, hint: Optional[ObjectKind],
                   name: Optional[str]) -> List[Block]:
        if not source.strip():
            return []
        if hint is ObjectKind.CHECK_CONSTRAINT:
            return [ctx.new_block("sql_check", {"EXPRESSION": truncate(source, SOURCE_CAP)})]
        if hint is ObjectKind.COLUMN_DEFAULT:
            return [ctx.new_block("sql_default", {"EXPRESSION": truncate(source, SOURCE_CAP)})]
        if hint is ObjectKind.RLS_POLICY:
            return self._rls_blocks(ctx, source)

        routine = RE_ROUTINE.search(source)
        if routine:
            return [self._routine_block(ctx, source, routine)]
        view = RE_VIEW.search(source)
        if view:
            return [self._view_block(ctx, _unquote(view.group(1)), view.group(2))]
        trigger = RE_TRIGGER.search(source)
        if trigger:
            return [ctx.new_block("sql_trigger_def", {
                "NAME": _unquote(trigger.group(1)),
                "TIMING": re.sub(r"\s+", " ", trigger.group(2).upper()),
                "EVENTS": truncate(trigger.group(3), 60),
                "TABLE": _unquote(trigger.group(4)),
                "FUNCTION": _unquote(trigger.group(5)) + "()",
            })]
        if hint is ObjectKind.VIEW:
            # provider view text is the bare SELECT
            return [self._view_block(ctx, name or "view", source)]
        _log_debug(ctx, "no definition pattern matched; emitting raw source")
        return [raw_block(ctx, source, SOURCE_CAP)]

    def _rls_blocks(self, ctx: TransformContext, source: str) -> List[Block]:
        blocks: List[Block] = []
        for pattern, block_type in ((RE_RLS_USING, "rls_using"), (RE_RLS_CHECK, "rls_with_check")):
            m = pattern.search(source)
            group = balanced_group(source, m.end() - 1) if m else None
            if group:
                blocks.append(ctx.new_block(block_type, {"EXPRESSION": truncate(group[0], 80)}))
        return blocks or [raw_block(ctx, source)]

    def _routine_block(self, ctx: TransformContext, source: str, m: re.Match) -> Block:
        routine_name = _unquote(m.group(2))
        ctx.object_name = ctx.object_name or routine_name
        params = balanced_group(source, m.end() - 1)
        params_text, after = (params[0], params[1]) if params else ("", m.end())
        returns = RE_RETURNS.match(source, after)
        return_type = "void"
        if returns:
            return_type = returns.group(1).strip()
            if return_type.upper() == "TABLE":
                open_at = source.find("(", returns.end())
                cols = balanced_group(source, open_at) if open_at >= 0 else None
                return_type = f"TABLE({cols[0].strip()})" if cols else return_type
        ctx.registry.register_params(parameter_names(params_text))

        block = ctx.new_block("sql_function_def", {
            "NAME": truncate(routine_name, NAME_CAP),
            "PARAMS": truncate(params_text.strip(), PARAMS_CAP),
            "RETURN_TYPE": truncate(return_type, TYPE_CAP),
        })
        head = chain(self._routine_body(ctx, source[after:]))
        if head is not None:
            block.inputs["BODY"] = head
        return block

    def _routine_body(self, ctx: TransformContext, text: str) -> List[Block]:
        located = splitter.locate_body(text)
        if located is None:
            body = splitter.dollar_quoted_body(text)
            if body is None:
                return []
            _log_debug(ctx, "body has no BEGIN; mapping dollar-quoted statements")
            return self.map_statements(ctx, body)

        declares: List[Block] = []
        for var_name, type_name in splitter.split_declarations(located.declarations):
            ctx.registry.id_for(var_name)
            declares.append(ctx.new_block("plpgsql_declare", {
                "NAME": var_name,
                "TYPE": truncate(type_name, TYPE_CAP),
            }))
        # the outer body may carry its own EXCEPTION section
        body = self._map_block(ctx, "BEGIN\n" + located.body + "\nEND", None)
        return declares + ([body] if body is not None else [])

    def _view_block(self, ctx: TransformContext, view_name: str, body: str) -> Block:
        ctx.object_name = ctx.object_name or view_name
        block = ctx.new_block("sql_view_def", {"NAME": truncate(view_name, NAME_CAP)})
        head = chain(view_clauses.from_text(ctx, body))
        if head is not None:
            block.inputs["BODY"] = head
        return block

    # ---- statements ----
    def map_statements(self, ctx: TransformContext, text: str) -> List[Block]:
        blocks: List[Block] = []
        for stmt in splitter.split_statements(text or ""):
            block = self.map_statement(ctx, stmt)
            if block is not None:
                blocks.append(block)
        return blocks

    def map_statement(self, ctx: TransformContext, stmt: str) -> Optional[Block]:
        stmt = stmt.strip()
        if not stmt:
            return None
        kind, m = match_rule(stmt)
        handler = self._rules.get(kind)
        if handler is None:
            _log_debug(ctx, "no rule for statement: %s", truncate(stmt, 60))
            return raw_block(ctx, strip_terminator(stmt), RAW_CAP)
        return handler(ctx, stmt, m)

    def _map_if(self, ctx: TransformContext, stmt: str, m: Optional[re.Match]) -> Block:
        parts = splitter.split_if(stmt)
        if parts is None:
            return ctx.new_block("plpgsql_if", {"CONDITION": "condition"})
        then_head = chain(self.map_statements(ctx, parts.then_text))
        else_head = chain(self.map_statements(ctx, parts.else_text)) if parts.else_text else None
        has_else = else_head is not None or bool(RE_ELSE_WORD.search(stmt))
        block = ctx.new_block("plpgsql_if_else" if has_else else "plpgsql_if", {
            "CONDITION": truncate(parts.condition, CONDITION_CAP),
        })
        if then_head is not None:
            block.inputs["THEN_BODY"] = then_head
        if else_head is not None:
            block.inputs["ELSE_BODY"] = else_head
        return block

    def _map_assign(self, ctx: TransformContext, stmt: str, m: re.Match) -> Block:
        return assignment_block(ctx, m.group(1), m.group(2).strip())

    def _map_return(self, ctx: TransformContext, stmt: str, m: re.Match) -> Block:
        return ctx.new_block("plpgsql_return", {"VALUE": truncate(m.group(1), VALUE_CAP)})

    def _map_perform(self, ctx: TransformContext, stmt: str, m: re.Match) -> Block:
        return ctx.new_block("plpgsql_perform", {"EXPRESSION": truncate(m.group(1), 80)})

    def _map_raise(self, ctx: TransformContext, stmt: str, m: re.Match) -> Block:
        return ctx.new_block("plpgsql_raise", {
            "LEVEL": m.group(1).upper(),
            "MESSAGE": truncate(m.group(2), 60),
        })

    def _map_notify(self, ctx: TransformContext, stmt: str, m: re.Match) -> Block:
        return ctx.new_block("plpgsql_notify", {
            "CHANNEL": m.group(1),
            "PAYLOAD": truncate(m.group(2) or "", 60),
        })

    def _map_for(self, ctx: TransformContext, stmt: str, m: re.Match) -> Block:
        header, body = splitter.split_loop(stmt)
        query = RE_FOR_HEAD.sub("", header, count=1)
        block = ctx.new_block("plpgsql_for_each", {
            "VARIABLE": m.group(1),
            "QUERY": truncate(query, 60),
        })
        head = chain(self.map_statements(ctx, body))
        if head is not None:
            block.inputs["BODY"] = head
        return block

    def _map_loop(self, ctx: TransformContext, stmt: str, m: re.Match) -> Block:
        header, body = splitter.split_loop(stmt)
        fields = {}
        if RE_WHILE_HEAD.match(header):
            fields["CONDITION"] = truncate(RE_WHILE_HEAD.sub("", header, count=1), CONDITION_CAP)
        block = ctx.new_block("plpgsql_loop", fields)
        head = chain(self.map_statements(ctx, body))
        if head is not None:
            block.inputs["BODY"] = head
        return block

    def _map_block(self, ctx: TransformContext, stmt: str, m: Optional[re.Match]) -> Optional[Block]:
        body_text, handlers = splitter.split_block(stmt)
        body = chain(self.map_statements(ctx, body_text))
        if not handlers:
            return body

        handler_blocks: List[Block] = []
        for handler in handlers:
            handler_blocks.append(ctx.new_block("plpgsql_when", {
                "CONDITION": handler.conditions,
                "RESULT": "",
            }))
            action = chain(self.map_statements(ctx, handler.action_text))
            if action is not None:
                handler_blocks.append(action)

        wrapper = ctx.new_block("plpgsql_exception")
        handlers_head = chain(handler_blocks)
        if handlers_head is not None:
            wrapper.inputs["HANDLERS"] = handlers_head
        return append_after(body, wrapper) if body is not None else wrapper

    def _map_case(self, ctx: TransformContext, stmt: str, m: re.Match) -> Block:
        expr, clauses = splitter.split_case(stmt)
        whens: List[Block] = []
        for condition, result_text in clauses:
            results = self.map_statements(ctx, result_text)
            whens.append(ctx.new_block("plpgsql_when", {
                "CONDITION": truncate(condition, 40),
                "RESULT": truncate(block_summary(results[0]) if results else "", 40),
            }))
        block = ctx.new_block("plpgsql_case_when", {"EXPRESSION": truncate(expr, 40)})
        head = chain(whens)
        if head is not None:
            block.inputs["WHEN_CLAUSES"] = head
        return block


_DEFAULT = SourceTransformer()


def to_workspace_from_source(source: str, object_type: Optional[str] = None,
                             name: Optional[str] = None) -> Dict:
    """Workspace JSON for raw source text (fallback pipeline)."""
    return _DEFAULT.to_workspace(source, object_type, name).to_dict()
