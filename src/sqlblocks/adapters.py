from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import sqlglot
from sqlglot import expressions as exp
from sqlglot.errors import SqlglotError

from .fallback import RE_VIEW, SourceTransformer
from .models import ObjectKind
from .transformer import AstTransformer


logger = logging.getLogger(__name__)

PAYLOAD_KEYS = ("object_type", "name", "return_type", "language", "ast_json", "source_code")


class Adapter(Protocol):
    name: str
    dialect: str

    def transform_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    def transform_source(self, sql: str, object_type: Optional[str] = None,
                         name: Optional[str] = None) -> Dict[str, Any]: ...


class PostgresAdapter:
    name = "postgres"
    dialect = "postgres"

    def __init__(self):
        self.structured = AstTransformer(dialect=self.dialect)
        self.fallback = SourceTransformer()

    def transform_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Route one parse-provider payload to the structured or fallback pipeline."""
        object_type = payload.get("object_type")
        name = payload.get("name") or ""
        ast_json = payload.get("ast_json")
        if ast_json:
            if ObjectKind.from_hint(object_type) is ObjectKind.VIEW or object_type == "view":
                return self.structured.to_workspace_for_view(ast_json, name).to_dict()
            return self.structured.to_workspace(
                ast_json, name, payload.get("return_type") or "void", payload.get("language") or "plpgsql"
            ).to_dict()
        logger.debug("[object=%s] no ast_json in payload; using source fallback", name or "-")
        return self.fallback.to_workspace(payload.get("source_code") or "", object_type, name or None).to_dict()

    def transform_source(self, sql: str, object_type: Optional[str] = None,
                         name: Optional[str] = None) -> Dict[str, Any]:
        """Transform raw SQL; view definitions sqlglot understands take the structured path.

        ``name`` labels sources that do not declare one (fragments, bare SELECTs);
        a name declared in the source always wins, as on the fallback path.
        """
        view = self._parse_view(sql)
        if view is not None:
            view_name = view.this.find(exp.Table).name or name or "view"
            return self.structured.to_workspace_for_view(view, view_name).to_dict()
        return self.fallback.to_workspace(sql, object_type, name).to_dict()

    def _parse_view(self, sql: str) -> Optional[exp.Create]:
        if not RE_VIEW.search(sql or ""):
            return None
        try:
            tree = sqlglot.parse_one(sql, read=self.dialect)
        except SqlglotError as e:
            logger.debug("sqlglot could not parse source: %s", e)
            return None
        if isinstance(tree, exp.Create) and (tree.args.get("kind") or "").upper() == "VIEW":
            if tree.this is not None and tree.this.find(exp.Table) is not None:
                return tree
        return None


_ADAPTERS: Dict[str, Adapter] = {
    "postgres": PostgresAdapter(),
}


def get_adapter(name: str) -> Adapter:
    if name not in _ADAPTERS:
        raise KeyError(f"Unknown adapter '{name}'. Available: {', '.join(_ADAPTERS)}")
    return _ADAPTERS[name]
