"""
Line-based statement splitting for routine bodies without a parse tree.

This is a best-effort heuristic: keywords inside string literals or block
comments are not excluded.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Tuple

RE_OPENER = re.compile(
    r"^(IF|FOR(?!\s+(?:UPDATE|SHARE|NO\s+KEY|KEY\s+SHARE)\b)|FOREACH|WHILE|LOOP|BEGIN|CASE)\b",
    re.IGNORECASE,
)
RE_CLOSER = re.compile(r"^END\b", re.IGNORECASE)
RE_INLINE_END = re.compile(r"\bEND\b", re.IGNORECASE)
RE_LOOP_WORD = re.compile(r"\bLOOP\b", re.IGNORECASE)

RE_DOLLAR_BODY = re.compile(r"\$(\w*)\$(.*?)\$\1\$", re.DOTALL)
RE_BEGIN = re.compile(r"\bBEGIN\b", re.IGNORECASE)
RE_OUTER_END = re.compile(r"\bEND\b(?!\s+(?:IF|LOOP|CASE)\b)", re.IGNORECASE)
RE_DECLARE = re.compile(r"\bDECLARE\b", re.IGNORECASE)
RE_DECLARE_ITEM = re.compile(
    r"^([A-Za-z_]\w*)\s+(?:CONSTANT\s+)?(.+?)(?:\s+NOT\s+NULL)?(?:\s*(?::=|=|\bDEFAULT\b).*)?$",
    re.IGNORECASE | re.DOTALL,
)

RE_IF_HEAD = re.compile(r"^IF\s+(.+?)\s+THEN\b", re.IGNORECASE | re.DOTALL)
RE_IF_TAIL = re.compile(r"\bEND\s+IF\s*;?\s*$", re.IGNORECASE)
RE_IF_MARKER = re.compile(r"^(ELSIF|ELSEIF|ELSE)\b", re.IGNORECASE)
RE_LOOP_TAIL = re.compile(r"\bEND\s+LOOP\b[^;]*;?\s*$", re.IGNORECASE)
RE_BLOCK_HEAD = re.compile(r"^BEGIN\b", re.IGNORECASE)
RE_BLOCK_TAIL = re.compile(r"\bEND\b\s*\w*\s*;?\s*$", re.IGNORECASE)
RE_EXCEPTION_MARKER = re.compile(r"^EXCEPTION\b", re.IGNORECASE)
RE_WHEN_MARKER = re.compile(r"^WHEN\b", re.IGNORECASE)
RE_WHEN_CLAUSE = re.compile(r"^WHEN\s+(.+?)\s+THEN\b(.*)$", re.IGNORECASE | re.DOTALL)
RE_CASE_HEAD = re.compile(r"^CASE\b", re.IGNORECASE)
RE_CASE_TAIL = re.compile(r"\bEND\s+CASE\s*;?\s*$", re.IGNORECASE)
RE_CASE_MARKER = re.compile(r"^(WHEN|ELSE)\b", re.IGNORECASE)
RE_FIRST_WHEN = re.compile(r"\bWHEN\b", re.IGNORECASE)
RE_OR = re.compile(r"\s+OR\s+", re.IGNORECASE)


def strip_line_comment(line: str) -> str:
    """Drop a trailing ``--`` comment that is not inside a quoted literal."""
    quote = None
    for i, ch in enumerate(line):
        if quote:
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == "-" and line.startswith("--", i):
            return line[:i]
    return line


class DepthTracker:
    """Nesting depth across lines of a routine body."""

    def __init__(self):
        self.depth = 0
        self._awaiting_loop = False

    def feed(self, line: str) -> int:
        text = line.strip()
        opener = RE_OPENER.match(text)
        if opener:
            word = opener.group(1).upper()
            rest = text[opener.end():]
            if word == "LOOP" and self._awaiting_loop:
                # LOOP keyword of a FOR/WHILE header on an earlier line
                self._awaiting_loop = False
            elif RE_INLINE_END.search(rest):
                pass
            else:
                self.depth += 1
                self._awaiting_loop = (word.startswith("FOR") or word == "WHILE") \
                    and not RE_LOOP_WORD.search(rest)
        elif RE_CLOSER.match(text):
            self.depth = max(0, self.depth - 1)
        elif self._awaiting_loop and RE_LOOP_WORD.search(text):
            self._awaiting_loop = False
        return self.depth


def _clean_lines(text: str) -> List[str]:
    lines = []
    for raw in (text or "").split("\n"):
        line = strip_line_comment(raw).strip()
        if line:
            lines.append(line)
    return lines


def split_statements(body: str) -> List[str]:
    """Split a body into statements, keeping nested constructs together.

    A statement ends at a line ending with ``;`` while the depth is zero; the
    terminator is dropped. A trailing partial buffer is returned as-is.
    """
    statements: List[str] = []
    current: List[str] = []
    tracker = DepthTracker()
    for line in _clean_lines(body):
        depth = tracker.feed(line)
        current.append(line)
        if depth == 0 and line.endswith(";"):
            statements.append("\n".join(current)[:-1].rstrip())
            current = []
    if current:
        statements.append("\n".join(current))
    return [s for s in statements if s.strip()]


@dataclass
class Segment:
    marker: Optional[re.Match]
    lines: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def text_after_marker(self) -> str:
        if not self.lines:
            return ""
        first = self.lines[0][self.marker.end():].strip() if self.marker else self.lines[0]
        return "\n".join([first] + self.lines[1:] if first else self.lines[1:])


def segments(text: str, marker: Pattern) -> List[Segment]:
    """Cut ``text`` at top-level lines matching ``marker``."""
    out = [Segment(None)]
    tracker = DepthTracker()
    for line in _clean_lines(text):
        if tracker.depth == 0:
            m = marker.match(line)
            if m:
                out.append(Segment(m))
        tracker.feed(line)
        out[-1].lines.append(line)
    return out


@dataclass
class RoutineBody:
    declarations: str
    body: str


def locate_body(source: str) -> Optional[RoutineBody]:
    """Find the DECLARE section and the text between BEGIN and the outer END."""
    dollar = RE_DOLLAR_BODY.search(source or "")
    text = dollar.group(2) if dollar else (source or "")
    begin = RE_BEGIN.search(text)
    if not begin:
        return None
    ends = list(RE_OUTER_END.finditer(text, begin.end()))
    end_at = ends[-1].start() if ends else len(text)
    head = text[:begin.start()]
    declare = RE_DECLARE.search(head)
    return RoutineBody(
        declarations=head[declare.end():] if declare else "",
        body=text[begin.end():end_at],
    )


def dollar_quoted_body(source: str) -> Optional[str]:
    m = RE_DOLLAR_BODY.search(source or "")
    return m.group(2) if m else None


def split_declarations(text: str) -> List[Tuple[str, str]]:
    """Parse ``name [CONSTANT] type [:= default];`` items into (name, type)."""
    items: List[Tuple[str, str]] = []
    cleaned = "\n".join(_clean_lines(text))
    for piece in cleaned.split(";"):
        piece = piece.strip()
        if not piece:
            continue
        m = RE_DECLARE_ITEM.match(piece)
        if not m:
            continue
        type_name = m.group(2).strip()
        if type_name.lower() == "record":
            type_name = "RECORD"
        items.append((m.group(1), type_name))
    return items


@dataclass
class IfParts:
    condition: str
    then_text: str
    else_text: Optional[str]


def split_if(stmt: str) -> Optional[IfParts]:
    head = RE_IF_HEAD.match(stmt.strip())
    if not head:
        return None
    inner = RE_IF_TAIL.sub("", stmt.strip()[head.end():])
    parts = segments(inner, RE_IF_MARKER)
    else_text = None
    if len(parts) > 1:
        branch = parts[1]
        if branch.marker.group(1).upper() == "ELSE":
            else_text = branch.text_after_marker
        else:
            rest = [branch.text_after_marker] + [p.text for p in parts[2:]]
            else_text = "IF " + "\n".join(rest) + "\nEND IF;"
    return IfParts(condition=head.group(1).strip(), then_text=parts[0].text, else_text=else_text)


def split_loop(stmt: str) -> Tuple[str, str]:
    """Return (header before LOOP, body) for FOR/WHILE/LOOP statements."""
    text = stmt.strip()
    m = RE_LOOP_WORD.search(text)
    if not m:
        return text, ""
    return text[:m.start()].strip(), RE_LOOP_TAIL.sub("", text[m.end():])


@dataclass
class Handler:
    conditions: str
    action_text: str


def _when_clause(segment: Segment) -> Tuple[str, str]:
    m = RE_WHEN_CLAUSE.match(segment.text)
    if not m:
        return segment.text_after_marker, ""
    return m.group(1).strip(), m.group(2).strip()


def split_block(stmt: str) -> Tuple[str, List[Handler]]:
    """Return (body, exception handlers) for a nested BEGIN ... END statement."""
    text = RE_BLOCK_HEAD.sub("", stmt.strip(), count=1)
    text = RE_BLOCK_TAIL.sub("", text)
    parts = segments(text, RE_EXCEPTION_MARKER)
    handlers: List[Handler] = []
    for part in parts[1:]:
        for when in segments(part.text_after_marker, RE_WHEN_MARKER)[1:]:
            cond, action = _when_clause(when)
            names = ", ".join(c.strip() for c in RE_OR.split(cond) if c.strip())
            handlers.append(Handler(conditions=names or "OTHERS", action_text=action))
    return parts[0].text, handlers


def split_case(stmt: str) -> Tuple[str, List[Tuple[str, str]]]:
    """Return (case expression, [(condition, result text)]); ELSE has condition ``ELSE``."""
    text = RE_CASE_HEAD.sub("", stmt.strip(), count=1)
    text = RE_CASE_TAIL.sub("", text)
    text = RE_FIRST_WHEN.sub("\nWHEN", text, count=1)
    parts = segments(text, RE_CASE_MARKER)
    clauses: List[Tuple[str, str]] = []
    for part in parts[1:]:
        if part.marker.group(1).upper() == "ELSE":
            clauses.append(("ELSE", part.text_after_marker))
        else:
            clauses.append(_when_clause(part))
    return parts[0].text.strip(), clauses
