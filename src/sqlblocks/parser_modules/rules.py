"""
Ordered statement rules for the fallback pipeline. First match wins.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Pattern, Tuple


class FallbackKind(Enum):
    IF = "if"
    ASSIGN = "assign"
    RETURN = "return"
    PERFORM = "perform"
    RAISE = "raise"
    SELECT_INTO = "select_into"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    NOTIFY = "notify"
    FOR = "for"
    LOOP = "loop"
    BLOCK = "block"
    CASE = "case"
    RAW = "raw"


@dataclass(frozen=True)
class Rule:
    kind: FallbackKind
    pattern: Pattern

    def match(self, stmt: str) -> Optional[re.Match]:
        return self.pattern.match(stmt)


_I = re.IGNORECASE
_IS = re.IGNORECASE | re.DOTALL

RULES: List[Rule] = [
    Rule(FallbackKind.IF, re.compile(r"^IF\b", _I)),
    Rule(FallbackKind.ASSIGN, re.compile(r"^([A-Za-z_][\w.]*)\s*:=\s*(.+?);?$", re.DOTALL)),
    Rule(FallbackKind.RETURN, re.compile(r"^RETURN\b\s*(.*?);?$", _IS)),
    Rule(FallbackKind.PERFORM, re.compile(r"^PERFORM\s+(.+?);?$", _IS)),
    Rule(FallbackKind.RAISE, re.compile(r"^RAISE\s+(EXCEPTION|NOTICE|WARNING|DEBUG|LOG|INFO)\s+(.+?);?$", _IS)),
    Rule(FallbackKind.SELECT_INTO, re.compile(r"^SELECT\s+.+?\s+INTO\s+.+?\s+FROM\s+.+", _IS)),
    Rule(FallbackKind.INSERT, re.compile(r"^INSERT\s+INTO\b", _I)),
    Rule(FallbackKind.UPDATE, re.compile(r"^UPDATE\s+\S+\s+SET\b", _IS)),
    Rule(FallbackKind.DELETE, re.compile(r"^DELETE\s+FROM\b", _I)),
    Rule(FallbackKind.NOTIFY, re.compile(r"^NOTIFY\s+(\w+)(?:\s*,\s*(.+?))?;?$", _IS)),
    Rule(FallbackKind.FOR, re.compile(r"^FOR\s+(\w+)\s+IN\s+(.+)", _IS)),
    Rule(FallbackKind.FOR, re.compile(r"^FOREACH\s+(\w+)\s+(?:SLICE\s+\d+\s+)?IN\s+(ARRAY\s+.+)", _IS)),
    Rule(FallbackKind.LOOP, re.compile(r"^(?:WHILE\s+.+?\s+)?LOOP\b", _IS)),
    Rule(FallbackKind.BLOCK, re.compile(r"^BEGIN\b", _I)),
    Rule(FallbackKind.CASE, re.compile(r"^CASE\b", _I)),
]


def match_rule(stmt: str) -> Tuple[FallbackKind, Optional[re.Match]]:
    """Return the first rule matching ``stmt``; RAW when nothing does."""
    text = (stmt or "").strip()
    for rule in RULES:
        m = rule.match(text)
        if m:
            return rule.kind, m
    return FallbackKind.RAW, None
