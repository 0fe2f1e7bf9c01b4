"""
Symbol registry and per-call transform state.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .models import Block, Datum, DatumKind, VariableRecord

# Implicit boolean every routine declares right after its parameters.
SENTINEL_NAME = "found"


def split_datums(datums: Iterable[Datum]) -> Tuple[List[Datum], List[Datum]]:
    """Split a declaration table into (parameters, locals).

    Everything before the sentinel is a parameter. Locals exclude composite
    row and record-field entries, which are parser bookkeeping.
    """
    params: List[Datum] = []
    local_vars: List[Datum] = []
    past_sentinel = False
    for datum in datums:
        if datum.kind is DatumKind.VAR and datum.name == SENTINEL_NAME:
            past_sentinel = True
            continue
        if not past_sentinel:
            params.append(datum)
            continue
        if datum.kind in (DatumKind.ROW, DatumKind.RECFIELD):
            continue
        local_vars.append(datum)
    return params, local_vars


class SymbolRegistry:
    """Stable name -> variable id mapping for one transform call."""

    def __init__(self):
        self._ids: Dict[str, str] = {}
        self._params: Set[str] = set()

    def register_params(self, names: Iterable[str]) -> None:
        for name in names:
            if name:
                self._params.add(name)

    def register_datums(self, datums: Iterable[Datum]) -> List[Datum]:
        """Register locals from a declaration table and return them in order."""
        params, local_vars = split_datums(datums)
        self.register_params(d.name for d in params)
        for datum in local_vars:
            self.id_for(local_name(datum))
        return local_vars

    def id_for(self, name: str) -> str:
        if name not in self._ids:
            self._ids[name] = f"var_{name}"
        return self._ids[name]

    def is_parameter(self, name: str) -> bool:
        return name in self._params and name not in self._ids

    def is_assignable(self, name: str) -> bool:
        """Whether an assignment target belongs in the editor's variable model."""
        return bool(name) and not self.is_parameter(name) and "." not in name

    def variables(self) -> List[VariableRecord]:
        return [VariableRecord(name=n, id=i) for n, i in self._ids.items()]


def local_name(datum: Datum) -> str:
    if datum.kind is DatumKind.REC:
        return datum.name or "record"
    return datum.name


@dataclass
class TransformContext:
    """Mutable state owned by a single transform call."""
    object_name: str = ""
    registry: SymbolRegistry = field(default_factory=SymbolRegistry)
    _counter: int = 0

    def next_id(self) -> str:
        self._counter += 1
        return f"block_{self._counter}"

    def new_block(self, block_type: str, fields: Optional[Dict[str, Any]] = None,
                  inputs: Optional[Dict[str, Block]] = None) -> Block:
        return Block(type=block_type, id=self.next_id(), fields=dict(fields or {}),
                     inputs=dict(inputs or {}))
