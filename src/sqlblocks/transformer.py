"""
Structured pipeline: pre-parsed PL/pgSQL statement trees to block workspaces.

The upstream parse provider (libpg_query's PL/pgSQL JSON output) describes a
routine as ``[{"PLpgSQL_function": {"datums": [...], "action": {...}}}]``.
Every statement node is a single-key dict whose key is the node kind tag.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from sqlglot import expressions as exp

from .blocks import (
    CONDITION_CAP, NAME_CAP, PARAMS_CAP, TYPE_CAP, VALUE_CAP,
    append_after, block_summary, chain, truncate,
)
from .models import (
    Block, Datum, DatumKind, StmtKind, Workspace, build_datum_names,
)
from .parser_modules import view_clauses
from .parser_modules.clauses import (
    assignment_block, exec_sql_block, raw_block, strip_assignment_prefix,
)
from .symbols import SENTINEL_NAME, TransformContext, local_name, split_datums

logger = logging.getLogger(__name__)

Names = Dict[int, str]
Handler = Callable[[TransformContext, Dict[str, Any], Names], Optional[Block]]

# elog levels: compact table used by older provider builds, then PostgreSQL's own codes
RAISE_LEVELS = {
    "0": "DEBUG", "1": "LOG", "2": "INFO", "3": "NOTICE", "4": "WARNING", "5": "EXCEPTION",
    "10": "DEBUG", "11": "DEBUG", "12": "DEBUG", "13": "DEBUG", "14": "DEBUG",
    "15": "LOG", "17": "INFO", "18": "NOTICE", "19": "WARNING", "21": "EXCEPTION",
}

ROW_COUNT_KIND = 0
VIEW_PLACEHOLDER = "View definition"
PARSED_SELECT_PLACEHOLDER = "SELECT query (parsed)"


def _log_debug(ctx: TransformContext, msg: str, *args) -> None:
    logger.debug("[object=%s] " + msg, ctx.object_name or "-", *args)


def _log_warning(ctx: TransformContext, msg: str, *args) -> None:
    logger.warning("[object=%s] " + msg, ctx.object_name or "-", *args)


def _query(node: Optional[Dict[str, Any]], key: str) -> str:
    """Text of an embedded ``{"PLpgSQL_expr": {"query": ...}}`` under ``key``."""
    if not isinstance(node, dict):
        return ""
    expr = node.get(key)
    if not isinstance(expr, dict):
        return ""
    return (expr.get("PLpgSQL_expr") or {}).get("query") or ""


def _ref_name(ref: Any, names: Names) -> Optional[str]:
    """Resolve a datum reference: embedded datum, ``{"dno": n}`` or a bare index."""
    if isinstance(ref, int):
        return names.get(ref)
    if not isinstance(ref, dict):
        return None
    if "dno" in ref:
        return names.get(ref["dno"])
    for kind in DatumKind:
        body = ref.get(kind.value)
        if not isinstance(body, dict):
            continue
        if body.get("refname"):
            return body["refname"]
        if body.get("dno") is not None:
            return names.get(body["dno"])
    return None


def classify_statement(node: Any) -> Optional[StmtKind]:
    """Node kind of one statement dict, or None when the tag is not understood."""
    if not isinstance(node, dict) or not node:
        return None
    for tag in node:
        try:
            return StmtKind(tag)
        except ValueError:
            continue
    return None


def _node_tag(node: Any) -> str:
    if isinstance(node, dict) and node:
        return str(next(iter(node)))
    return "unknown"


def extract_function_node(ast_json: Any) -> Optional[Dict[str, Any]]:
    if isinstance(ast_json, list):
        for item in ast_json:
            if isinstance(item, dict) and isinstance(item.get("PLpgSQL_function"), dict):
                return item["PLpgSQL_function"]
        return None
    if isinstance(ast_json, dict) and isinstance(ast_json.get("PLpgSQL_function"), dict):
        return ast_json["PLpgSQL_function"]
    return None


def parse_datums(raw_datums: Any) -> List[Datum]:
    out: List[Datum] = []
    for index, raw in enumerate(raw_datums or []):
        datum = Datum.from_json(index, raw)
        if datum is not None:
            out.append(datum)
    return out


def format_params(datums: List[Datum]) -> str:
    """``name type`` pairs for the datums that precede the sentinel."""
    params, _ = split_datums(datums)
    parts = []
    for d in params:
        if not d.name:
            continue
        parts.append(f"{d.name} {d.type_name}" if d.type_name else d.name)
    return ", ".join(parts)


class AstTransformer:
    """Maps pre-parsed routine and view trees to workspaces.

    The instance holds no per-call state; every call builds its own
    :class:`TransformContext`, so one transformer can serve concurrent callers.
    """

    def __init__(self, dialect: str = "postgres"):
        self.dialect = dialect
        self._handlers: Dict[StmtKind, Handler] = {
            StmtKind.EXECSQL: self._map_execsql,
            StmtKind.IF: self._map_if,
            StmtKind.RETURN: self._map_return,
            StmtKind.RETURN_QUERY: self._map_return_query,
            StmtKind.RETURN_NEXT: self._map_return_next,
            StmtKind.ASSIGN: self._map_assign,
            StmtKind.RAISE: self._map_raise,
            StmtKind.PERFORM: self._map_perform,
            StmtKind.GETDIAG: self._map_getdiag,
            StmtKind.FORS: self._map_fors,
            StmtKind.FORI: self._map_fori,
            StmtKind.DYNFORS: self._map_dynfors,
            StmtKind.FOREACH_A: self._map_foreach,
            StmtKind.LOOP: self._map_loop,
            StmtKind.WHILE: self._map_while,
            StmtKind.EXIT: self._map_exit,
            StmtKind.BLOCK: self._map_block,
            StmtKind.DYNEXECUTE: self._map_dynexecute,
            StmtKind.CASE: self._map_case,
        }

    # ---- public entry points ----
    def to_workspace(self, ast_json: Any, function_name: str, return_type: str,
                     language: str = "plpgsql") -> Workspace:
        ctx = TransformContext(object_name=function_name or "")
        try:
            return self._function_workspace(ctx, ast_json, function_name, return_type, language)
        except Exception as e:
            _log_warning(ctx, "structured transform failed: %s", e)
            return Workspace()

    def to_workspace_for_view(self, parsed: Any, view_name: str) -> Workspace:
        ctx = TransformContext(object_name=view_name or "")
        view = ctx.new_block("sql_view_def", {"NAME": truncate(view_name, NAME_CAP)})
        try:
            body = self._view_body(ctx, parsed)
        except Exception as e:
            _log_warning(ctx, "view transform failed: %s", e)
            body = []
        head = chain(body)
        if head is not None:
            view.inputs["BODY"] = head
        view.x, view.y = 20, 20
        return Workspace(blocks=[view])

    # ---- routine ----
    def _function_workspace(self, ctx: TransformContext, ast_json: Any, function_name: str,
                            return_type: str, language: str) -> Workspace:
        func = extract_function_node(ast_json)
        if func is None:
            _log_debug(ctx, "no PLpgSQL_function node (language=%s)", language)
            return Workspace()

        datums = parse_datums(func.get("datums"))
        if datums and not any(d.kind is DatumKind.VAR and d.name == SENTINEL_NAME for d in datums):
            _log_debug(ctx, "no '%s' datum; treating all %d datums as parameters", SENTINEL_NAME, len(datums))
        names = build_datum_names(datums)
        local_vars = ctx.registry.register_datums(datums)

        # the routine's outer block carries its top-level EXCEPTION handlers
        body_head = self._map_block(ctx, self._outer_block(func), names)
        declares = [self._declare_block(ctx, d) for d in local_vars]

        fn = ctx.new_block("sql_function_def", {
            "NAME": truncate(function_name, NAME_CAP),
            "PARAMS": truncate(format_params(datums), PARAMS_CAP),
            "RETURN_TYPE": truncate(return_type, TYPE_CAP),
        })
        fn.x, fn.y = 20, 20
        head = chain(declares + [body_head])
        if head is not None:
            fn.inputs["BODY"] = head
        return Workspace(blocks=[fn], variables=ctx.registry.variables())

    @staticmethod
    def _outer_block(func: Dict[str, Any]) -> Dict[str, Any]:
        action = func.get("action")
        block = action.get("PLpgSQL_stmt_block") if isinstance(action, dict) else None
        return block if isinstance(block, dict) else {}

    @staticmethod
    def _declare_block(ctx: TransformContext, datum: Datum) -> Block:
        if datum.kind is DatumKind.REC:
            type_name = "RECORD"
        else:
            type_name = truncate(datum.type_name or "UNKNOWN", TYPE_CAP)
        return ctx.new_block("plpgsql_declare", {"NAME": local_name(datum), "TYPE": type_name})

    # ---- dispatch ----
    def map_statements(self, ctx: TransformContext, statements: Any, names: Names) -> List[Block]:
        blocks: List[Block] = []
        for node in statements or []:
            block = self.map_statement(ctx, node, names)
            if block is not None:
                blocks.append(block)
        return blocks

    def map_statement(self, ctx: TransformContext, node: Any, names: Names) -> Optional[Block]:
        kind = classify_statement(node)
        handler = self._handlers.get(kind) if kind is not None else None
        if handler is None:
            tag = _node_tag(node)
            _log_debug(ctx, "unmapped node kind %s", tag)
            return raw_block(ctx, tag, 60)
        body = node[kind.value]
        return handler(ctx, body if isinstance(body, dict) else {}, names)

    def _chain_into(self, ctx: TransformContext, block: Block, slot: str, statements: Any,
                    names: Names) -> Block:
        head = chain(self.map_statements(ctx, statements, names))
        if head is not None:
            block.inputs[slot] = head
        return block

    # ---- mappers ----
    def _map_execsql(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        query = _query(node, "sqlstmt")
        into = bool(node.get("into"))
        target = _ref_name(node.get("target"), names) if into else None
        return exec_sql_block(ctx, query, into=into, target_name=target)

    def _map_if(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        condition = _query(node, "cond") or "condition"
        then_head = chain(self.map_statements(ctx, node.get("then_body"), names))
        else_head = chain(self._else_blocks(ctx, node, names))

        block_type = "plpgsql_if_else" if else_head is not None else "plpgsql_if"
        block = ctx.new_block(block_type, {"CONDITION": truncate(condition, CONDITION_CAP)})
        if then_head is not None:
            block.inputs["THEN_BODY"] = then_head
        if else_head is not None:
            block.inputs["ELSE_BODY"] = else_head
        return block

    def _else_blocks(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> List[Block]:
        """ELSIF arms fold into nested IFs placed in the else branch."""
        elsifs = [e.get("PLpgSQL_if_elsif", e) for e in node.get("elsif_list") or [] if isinstance(e, dict)]
        if not elsifs:
            return self.map_statements(ctx, node.get("else_body"), names)
        first, rest = elsifs[0], elsifs[1:]
        nested = {
            "cond": first.get("cond"),
            "then_body": first.get("stmts"),
            "elsif_list": rest,
            "else_body": node.get("else_body"),
        }
        return [self._map_if(ctx, nested, names)]

    def _map_return(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        value = _query(node, "expr")
        if not value and node.get("retvarno") is not None:
            value = names.get(node["retvarno"], "")
        return ctx.new_block("plpgsql_return", {"VALUE": truncate(value, VALUE_CAP)})

    def _map_return_query(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        query = _query(node, "query")
        if not query:
            dyn = _query(node, "dynquery")
            query = f"EXECUTE {dyn}" if dyn else ""
        return ctx.new_block("plpgsql_return", {"VALUE": truncate(f"QUERY {query}".strip(), VALUE_CAP)})

    def _map_return_next(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        value = _query(node, "expr")
        if not value and node.get("retvarno") is not None:
            value = names.get(node["retvarno"], "")
        return ctx.new_block("plpgsql_return", {"VALUE": truncate(f"NEXT {value}".strip(), VALUE_CAP)})

    def _map_assign(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        varno = node.get("varno")
        target = names.get(varno) or f"var_{varno}"
        expr = strip_assignment_prefix(_query(node, "expr"))
        return assignment_block(ctx, target, expr)

    def _map_raise(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        raw_level = node.get("elog_level")
        if raw_level is None or raw_level == "":
            level = "EXCEPTION"
        else:
            level = RAISE_LEVELS.get(str(raw_level), str(raw_level))
        message = node.get("message") or node.get("condname") or ""
        return ctx.new_block("plpgsql_raise", {"LEVEL": level, "MESSAGE": truncate(message, 60)})

    def _map_perform(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        return ctx.new_block("plpgsql_perform", {"EXPRESSION": truncate(_query(node, "expr"), 80)})

    def _map_getdiag(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        items = node.get("diag_items") or []
        if not items:
            return raw_block(ctx, "GET DIAGNOSTICS ...")
        item = items[0]
        if isinstance(item, dict) and isinstance(item.get("PLpgSQL_diag_item"), dict):
            item = item["PLpgSQL_diag_item"]
        item = item if isinstance(item, dict) else {}
        target_no = item.get("target")
        target = names.get(target_no) or f"var_{target_no}"
        kind = item.get("kind")
        label = "ROW_COUNT" if kind in (None, ROW_COUNT_KIND) else f"DIAG_{kind}"
        return assignment_block(ctx, target, label)

    def _for_each(self, ctx: TransformContext, node: Dict[str, Any], names: Names,
                  variable: str, query: str) -> Block:
        body = chain(self.map_statements(ctx, node.get("body"), names))
        block = ctx.new_block("plpgsql_for_each", {"VARIABLE": variable, "QUERY": truncate(query, 60)})
        if body is not None:
            block.inputs["BODY"] = body
        return block

    def _map_fors(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        variable = _ref_name(node.get("var"), names) or "record"
        return self._for_each(ctx, node, names, variable, _query(node, "query"))

    def _map_fori(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        variable = _ref_name(node.get("var"), names) or "i"
        lower = _query(node, "lower") or "1"
        upper = _query(node, "upper") or "N"
        span = f"{lower} .. {upper}"
        if node.get("reverse"):
            span = f"REVERSE {span}"
        return self._for_each(ctx, node, names, variable, span)

    def _map_dynfors(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        variable = _ref_name(node.get("var"), names) or "record"
        return self._for_each(ctx, node, names, variable, f"EXECUTE {_query(node, 'query')}".strip())

    def _map_foreach(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        variable = names.get(node.get("varno")) or _ref_name(node.get("var"), names) or "element"
        return self._for_each(ctx, node, names, variable, f"ARRAY {_query(node, 'expr')}".strip())

    def _map_loop(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        return self._chain_into(ctx, ctx.new_block("plpgsql_loop"), "BODY", node.get("body"), names)

    def _map_while(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        block = ctx.new_block("plpgsql_loop", {"CONDITION": truncate(_query(node, "cond"), CONDITION_CAP)})
        return self._chain_into(ctx, block, "BODY", node.get("body"), names)

    def _map_exit(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        # is_exit is omitted from the provider's JSON when false
        keyword = "EXIT" if node.get("is_exit") else "CONTINUE"
        label = node.get("label")
        text = f"{keyword} {label}" if label else keyword
        cond = _query(node, "cond")
        if cond:
            text = f"{text} WHEN {cond}"
        return raw_block(ctx, text, 60)

    def _map_block(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Optional[Block]:
        body = chain(self.map_statements(ctx, node.get("body"), names))
        handlers = self._exception_handlers(node.get("exceptions"))
        if not handlers:
            return body

        handler_blocks: List[Block] = []
        for handler in handlers:
            when = ctx.new_block("plpgsql_when", {
                "CONDITION": self._condition_names(handler.get("conditions")) or "OTHERS",
                "RESULT": "",
            })
            handler_blocks.append(when)
            action = chain(self.map_statements(ctx, handler.get("action"), names))
            if action is not None:
                handler_blocks.append(action)

        wrapper = ctx.new_block("plpgsql_exception")
        handlers_head = chain(handler_blocks)
        if handlers_head is not None:
            wrapper.inputs["HANDLERS"] = handlers_head
        if body is None:
            return wrapper
        return append_after(body, wrapper)

    @staticmethod
    def _exception_handlers(exceptions: Any) -> List[Dict[str, Any]]:
        if isinstance(exceptions, dict):
            exceptions = exceptions.get("PLpgSQL_exception_block", exceptions)
            exceptions = exceptions.get("exc_list") if isinstance(exceptions, dict) else None
        out: List[Dict[str, Any]] = []
        for item in exceptions or []:
            if isinstance(item, dict) and isinstance(item.get("PLpgSQL_exception"), dict):
                out.append(item["PLpgSQL_exception"])
        return out

    @staticmethod
    def _condition_names(conditions: Any) -> str:
        parts: List[str] = []
        for cond in conditions or []:
            if not isinstance(cond, dict):
                continue
            body = cond.get("PLpgSQL_condition", cond)
            if not isinstance(body, dict):
                continue
            name = body.get("condname") or body.get("condition_name") or body.get("sqlstate")
            parts.append(str(name) if name else "OTHERS")
        return ", ".join(parts)

    def _map_dynexecute(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        query = _query(node, "query")
        return raw_block(ctx, f"EXECUTE {query}" if query else "EXECUTE ...", 80)

    def _map_case(self, ctx: TransformContext, node: Dict[str, Any], names: Names) -> Block:
        whens: List[Block] = []
        for item in node.get("case_when_list") or []:
            arm = item.get("PLpgSQL_case_when") if isinstance(item, dict) else None
            if not isinstance(arm, dict):
                continue
            stmts = self.map_statements(ctx, arm.get("stmts"), names)
            whens.append(ctx.new_block("plpgsql_when", {
                "CONDITION": truncate(_query(arm, "expr"), 40),
                "RESULT": truncate(block_summary(stmts[0]) if stmts else "", 40),
            }))
        if node.get("have_else"):
            stmts = self.map_statements(ctx, node.get("else_stmts"), names)
            whens.append(ctx.new_block("plpgsql_when", {
                "CONDITION": "ELSE",
                "RESULT": truncate(block_summary(stmts[0]) if stmts else "", 40),
            }))

        block = ctx.new_block("plpgsql_case_when", {"EXPRESSION": truncate(_query(node, "t_expr"), 40)})
        head = chain(whens)
        if head is not None:
            block.inputs["WHEN_CLAUSES"] = head
        return block

    # ---- views ----
    def _view_body(self, ctx: TransformContext, parsed: Any) -> List[Block]:
        if isinstance(parsed, exp.Expression):
            blocks = view_clauses.from_expression(ctx, parsed, dialect=self.dialect)
            if blocks:
                return blocks
            _log_debug(ctx, "no SELECT in view expression")
        elif parsed is not None:
            blocks = [raw_block(ctx, PARSED_SELECT_PLACEHOLDER) for _ in self._select_statements(parsed)]
            if blocks:
                return blocks
        return [raw_block(ctx, VIEW_PLACEHOLDER)]

    @staticmethod
    def _select_statements(parsed: Any) -> List[Dict[str, Any]]:
        if isinstance(parsed, dict):
            stmts = parsed.get("stmts") or []
        elif isinstance(parsed, list):
            stmts = parsed
        else:
            return []
        out: List[Dict[str, Any]] = []
        for wrapper in stmts:
            if not isinstance(wrapper, dict):
                continue
            stmt = wrapper.get("stmt", wrapper)
            if not isinstance(stmt, dict):
                continue
            if isinstance(stmt.get("SelectStmt"), dict):
                out.append(stmt["SelectStmt"])
            elif isinstance(stmt.get("ViewStmt"), dict):
                query = stmt["ViewStmt"].get("query") or {}
                if isinstance(query, dict) and isinstance(query.get("SelectStmt"), dict):
                    out.append(query["SelectStmt"])
        return out


_DEFAULT = AstTransformer()


def to_workspace(ast_json: Any, function_name: str, return_type: str,
                 language: str = "plpgsql") -> Dict[str, Any]:
    """Workspace JSON for one routine's pre-parsed tree."""
    return _DEFAULT.to_workspace(ast_json, function_name, return_type, language).to_dict()


def to_workspace_for_view(parsed: Any, view_name: str) -> Dict[str, Any]:
    """Workspace JSON for one view (sqlglot expression or provider statement list)."""
    return _DEFAULT.to_workspace_for_view(parsed, view_name).to_dict()
