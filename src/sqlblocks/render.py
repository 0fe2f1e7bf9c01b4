"""Text rendering of workspace JSON as a rich tree."""
from __future__ import annotations

from typing import Any, Dict, Iterator, Optional

from rich.markup import escape
from rich.tree import Tree


def _iter_chain(block: Optional[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
    while block:
        yield block
        block = (block.get("next") or {}).get("block")


def _label(block: Dict[str, Any]) -> str:
    fields = block.get("fields") or {}
    parts = []
    for key, value in fields.items():
        if isinstance(value, dict):
            value = value.get("id", "")
        parts.append(f"{key}={escape(str(value))}")
    head = f"[bold]{escape(block.get('type', '?'))}[/bold]"
    return f"{head} {' '.join(parts)}" if parts else head


def _add_chain(parent: Tree, head: Optional[Dict[str, Any]]) -> None:
    for block in _iter_chain(head):
        node = parent.add(_label(block))
        for slot, child in (block.get("inputs") or {}).items():
            _add_chain(node.add(f"[dim]{escape(slot)}[/dim]"), child.get("block"))


def workspace_tree(workspace: Dict[str, Any], title: str = "workspace") -> Tree:
    """Build a tree of every block: one branch per input slot, siblings in chain order."""
    tree = Tree(f"[bold cyan]{escape(title)}[/bold cyan]")
    variables = workspace.get("variables") or []
    if variables:
        var_node = tree.add("[dim]variables[/dim]")
        for var in variables:
            var_node.add(f"{escape(var.get('name', ''))} ({escape(var.get('id', ''))})")
    for top in (workspace.get("blocks") or {}).get("blocks") or []:
        _add_chain(tree, top)
    return tree
