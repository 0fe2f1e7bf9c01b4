"""
Shared block helpers: truncation and chaining.
"""
from __future__ import annotations

import re
from typing import List, Optional, Sequence

from .models import Block

ELLIPSIS = "..."
_WS = re.compile(r"\s+")

# Field caps shared by both pipelines
NAME_CAP = 60
PARAMS_CAP = 80
TYPE_CAP = 40
CONDITION_CAP = 80
VALUE_CAP = 100
EXPRESSION_CAP = 100
MESSAGE_CAP = 60
RAW_CAP = 100
SOURCE_CAP = 120


def truncate(text: Optional[str], max_len: int) -> str:
    """Collapse whitespace and cap ``text`` at ``max_len`` characters.

    Truncated results end with ``...`` and are exactly ``max_len`` long.
    """
    if not text:
        return ""
    clean = _WS.sub(" ", str(text)).strip()
    if len(clean) <= max_len:
        return clean
    if max_len <= len(ELLIPSIS):
        return clean[:max(max_len, 0)]
    return clean[:max_len - len(ELLIPSIS)] + ELLIPSIS


def last_in_chain(head: Block) -> Block:
    current = head
    while current.next is not None:
        current = current.next
    return current


def append_after(head: Block, tail: Block) -> Block:
    """Attach ``tail`` to the end of the chain starting at ``head``."""
    last_in_chain(head).next = tail
    return head


def chain(blocks: Sequence[Optional[Block]]) -> Optional[Block]:
    """Link sibling blocks via ``next`` and return the head (None when empty).

    An element that already heads a chain keeps it; the following element is
    attached after its tail.
    """
    items: List[Block] = [b for b in blocks if b is not None]
    if not items:
        return None
    for prev, cur in zip(items, items[1:]):
        append_after(prev, cur)
    return items[0]


def block_summary(block: Optional[Block]) -> str:
    """One-line text for a block, used as the RESULT of WHEN clauses."""
    if block is None:
        return ""
    for key in ("VALUE", "SQL", "TABLE", "EXPRESSION"):
        value = block.fields.get(key)
        if isinstance(value, str) and value:
            return value
    return ""
