"""
Core data models for sqlblocks.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional


class DatumKind(Enum):
    """Kinds of entries in a parsed routine's declaration table."""
    VAR = "PLpgSQL_var"
    ROW = "PLpgSQL_row"
    REC = "PLpgSQL_rec"
    RECFIELD = "PLpgSQL_recfield"


class StmtKind(Enum):
    """Statement node kinds understood by the structured pipeline."""
    EXECSQL = "PLpgSQL_stmt_execsql"
    IF = "PLpgSQL_stmt_if"
    RETURN = "PLpgSQL_stmt_return"
    RETURN_QUERY = "PLpgSQL_stmt_return_query"
    RETURN_NEXT = "PLpgSQL_stmt_return_next"
    ASSIGN = "PLpgSQL_stmt_assign"
    RAISE = "PLpgSQL_stmt_raise"
    PERFORM = "PLpgSQL_stmt_perform"
    GETDIAG = "PLpgSQL_stmt_getdiag"
    FORS = "PLpgSQL_stmt_fors"
    FORI = "PLpgSQL_stmt_fori"
    DYNFORS = "PLpgSQL_stmt_dynfors"
    FOREACH_A = "PLpgSQL_stmt_foreach_a"
    LOOP = "PLpgSQL_stmt_loop"
    WHILE = "PLpgSQL_stmt_while"
    EXIT = "PLpgSQL_stmt_exit"
    BLOCK = "PLpgSQL_stmt_block"
    DYNEXECUTE = "PLpgSQL_stmt_dynexecute"
    CASE = "PLpgSQL_stmt_case"


class ObjectKind(Enum):
    """Object-kind hints accepted by the fallback pipeline."""
    CHECK_CONSTRAINT = "check_constraint"
    COLUMN_DEFAULT = "column_default"
    RLS_POLICY = "rls_policy"
    VIEW = "view_definition"

    @classmethod
    def from_hint(cls, hint: Optional[str]) -> Optional["ObjectKind"]:
        if not hint:
            return None
        try:
            return cls(hint.strip().lower())
        except ValueError:
            return None


@dataclass
class Block:
    """One node of the visual-block tree."""
    type: str
    id: str
    fields: Dict[str, Any] = field(default_factory=dict)
    inputs: Dict[str, "Block"] = field(default_factory=dict)
    next: Optional["Block"] = None
    x: Optional[int] = None
    y: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type, "id": self.id}
        if self.x is not None:
            out["x"] = self.x
        if self.y is not None:
            out["y"] = self.y
        if self.fields:
            out["fields"] = dict(self.fields)
        if self.inputs:
            out["inputs"] = {name: {"block": child.to_dict()} for name, child in self.inputs.items()}
        if self.next is not None:
            out["next"] = {"block": self.next.to_dict()}
        return out

    def iter_chain(self) -> Iterator["Block"]:
        """Yield this block and its successors along ``next``."""
        current: Optional[Block] = self
        while current is not None:
            yield current
            current = current.next


@dataclass
class VariableRecord:
    name: str
    id: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "id": self.id}


@dataclass
class Workspace:
    """Output document: top-level blocks plus the variable model."""
    blocks: List[Block] = field(default_factory=list)
    variables: List[VariableRecord] = field(default_factory=list)
    language_version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variables": [v.to_dict() for v in self.variables],
            "blocks": {
                "languageVersion": self.language_version,
                "blocks": [b.to_dict() for b in self.blocks],
            },
        }

    def iter_blocks(self) -> Iterator[Block]:
        """Walk every block in the workspace (inputs and next chains)."""
        stack: List[Block] = list(reversed(self.blocks))
        while stack:
            block = stack.pop()
            yield block
            if block.next is not None:
                stack.append(block.next)
            for child in reversed(list(block.inputs.values())):
                stack.append(child)


@dataclass
class Datum:
    """Entry from a parsed routine's declaration table."""
    index: int
    kind: DatumKind
    name: str = ""
    type_name: Optional[str] = None
    parent_index: Optional[int] = None

    @classmethod
    def from_json(cls, index: int, raw: Any) -> Optional["Datum"]:
        if not isinstance(raw, dict):
            return None
        for kind in DatumKind:
            body = raw.get(kind.value)
            if body is None:
                continue
            body = body if isinstance(body, dict) else {}
            if kind is DatumKind.RECFIELD:
                return cls(index, kind, name=body.get("fieldname") or "",
                           parent_index=body.get("recparentno"))
            type_name = None
            if kind is DatumKind.VAR:
                type_name = ((body.get("datatype") or {}).get("PLpgSQL_type") or {}).get("typname")
            return cls(index, kind, name=body.get("refname") or "", type_name=type_name)
        return None

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.kind is DatumKind.ROW:
            return f"row_{self.index}"
        if self.kind is DatumKind.REC:
            return f"rec_{self.index}"
        return f"var_{self.index}"


def build_datum_names(datums: List[Datum]) -> Dict[int, str]:
    """Map declaration-table index -> name used when resolving statement references."""
    by_index = {d.index: d for d in datums}
    names: Dict[int, str] = {}
    for d in datums:
        if d.kind is DatumKind.RECFIELD:
            parent = by_index.get(d.parent_index) if d.parent_index is not None else None
            names[d.index] = f"{parent.display_name}.{d.name}" if parent else d.name
        else:
            names[d.index] = d.display_name
    return names
