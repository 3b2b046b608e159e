"""Turtle Script parser: source text to instruction tree.

Supported statements (keywords and identifiers are case-insensitive)::

    forward n / back n      move; any unambiguous prefix works (f, fo, b, ba ...)
    left n / right n        rotate counter-clockwise / clockwise by n degrees
    pen up|down             raise or lower the pen
    hsv h s v               set color; each param is _, +n, -n, +var, -var, n or var
    var name = expr         declare (or overwrite) a variable
    name = expr             reassign an existing variable
    repeat expr:            run the indented block floor(expr) times
    repeat until expr:      run the block until expr is non-zero (checked first)
    if expr:                run the block once when expr is non-zero
    break / continue        leave / restart the nearest enclosing repeat

Blocks are delimited by indentation (space = 1, tab = 4). `#` and `//` start a
comment that runs to the end of the line.
"""

import logging
import re
from typing import List, NamedTuple

from .errors import ExprError, TurtleSyntaxError
from .expressions import Node, VarRef, ident, is_identifier, parse_expr, parse_number
from .nodes import (
    Absolute,
    Break,
    Continue,
    HSVParam,
    Hsv,
    If,
    Ignore,
    Instruction,
    Move,
    Offset,
    Pen,
    Repeat,
    Turn,
    Var,
)

logger = logging.getLogger(__name__)

ABBREVIABLE = ("forward", "back", "left", "right")
TAB_WIDTH = 4

_UNTIL_RE = re.compile(r"^repeat\s+until(?:\s+(.*))?$", re.IGNORECASE | re.DOTALL)
_REPEAT_RE = re.compile(r"^repeat\s+(.*)$", re.IGNORECASE | re.DOTALL)
_IF_RE = re.compile(r"^if\s+(.*)$", re.IGNORECASE | re.DOTALL)


class SourceLine(NamedTuple):
    number: int  # 1-based
    indent: int  # indentation units (space 1, tab 4)
    offset: int  # characters of leading whitespace, for column reporting
    content: str  # comment-stripped, trimmed text
    raw: str


def strip_comment(text: str) -> str:
    cut = len(text)
    for marker in ("#", "//"):
        pos = text.find(marker)
        if pos != -1:
            cut = min(cut, pos)
    return text[:cut]


def preprocess(source: str) -> List[SourceLine]:
    """Split source into comment-stripped lines with measured indentation."""
    lines: List[SourceLine] = []
    text = source.replace("\r\n", "\n").replace("\r", "\n")
    for number, raw in enumerate(text.split("\n"), start=1):
        indent = 0
        offset = 0
        for ch in raw:
            if ch == " ":
                indent += 1
            elif ch == "\t":
                indent += TAB_WIDTH
            else:
                break
            offset += 1
        content = strip_comment(raw[offset:]).strip()
        lines.append(SourceLine(number, indent, offset, content, raw))
    return lines


def resolve_abbrev(word: str) -> str:
    """Expand a prefix of forward/back/left/right to the full command name.

    Words that are not a prefix of any movement command come back unchanged.

    Raises:
        ValueError: when the word is a prefix of more than one command.
    """
    if not word:
        return word
    matches = [c for c in ABBREVIABLE if c.startswith(word)]
    if len(matches) == 1:
        return matches[0]
    if word in matches:
        return word
    if not matches:
        return word
    raise ValueError(f"Ambiguous command abbreviation '{word}'")


def parse_hsv_param(raw: str) -> HSVParam:
    if raw == "_":
        return Ignore()
    if raw[0] in "+-":
        sign, body = raw[0], raw[1:]
        if is_identifier(body):
            return Offset(VarRef(ident(body)), sign)
        value = parse_number(body) if body and body[0] not in "+-" else None
        if value is None:
            raise ValueError(f"Invalid HSV offset: {raw}")
        return Offset(value, sign)
    if is_identifier(raw):
        return Absolute(VarRef(ident(raw)))
    value = parse_number(raw)
    if value is None:
        raise ValueError(f"Invalid HSV absolute value: {raw}")
    return Absolute(value)


class _BlockParser:
    def __init__(self, source: str):
        self.lines = preprocess(source)
        self.i = 0

    def error(self, message: str, line: SourceLine, column: int = 0) -> TurtleSyntaxError:
        # column is 0-based within the trimmed content
        return TurtleSyntaxError(message, line.number, line.offset + column + 1)

    def expression(self, text: str, line: SourceLine, column: int) -> Node:
        """Parse an argument expression starting at `column` of the content."""
        try:
            return parse_expr(text)
        except ExprError as e:
            lead = len(text) - len(text.lstrip())
            raise self.error(e.msg, line, column + lead + (e.column or 1) - 1) from e
        except RecursionError as e:
            raise self.error("Expression too deeply nested", line, column) from e

    def header(self, line: SourceLine, keyword: str) -> str:
        """Return a block header without its mandatory trailing ':'."""
        content = line.content
        colon = content.rfind(":")
        if colon == -1:
            raise self.error(f"Expected ':' after {keyword}", line, len(content))
        if content[colon + 1:].strip():
            raise self.error(f"Unexpected text after ':' in {keyword}", line, colon + 1)
        return content[:colon].rstrip()

    def block(self, parent_indent: int, loop_depth: int) -> List[Instruction]:
        out: List[Instruction] = []
        while self.i < len(self.lines):
            line = self.lines[self.i]
            if not line.content:
                self.i += 1
                continue
            if line.indent <= parent_indent:
                break
            out.append(self.statement(line, loop_depth))
        return out

    def statement(self, line: SourceLine, loop_depth: int) -> Instruction:
        content = line.content
        parts = content.split()
        try:
            head = resolve_abbrev(ident(parts[0]))
        except ValueError as e:
            raise self.error(str(e), line) from e
        n = line.number

        if head == "var":
            if len(parts) < 4 or parts[2] != "=":
                raise self.error("Invalid var declaration. Use: var name = value", line)
            if not is_identifier(parts[1]):
                raise self.error(f"Invalid variable name: {parts[1]}", line, content.find(parts[1]))
            rhs = content.index("=") + 1
            self.i += 1
            return Var(ident(parts[1]), self.expression(content[rhs:], line, rhs), False, line=n)

        if is_identifier(parts[0]) and len(parts) >= 3 and parts[1] == "=":
            rhs = content.index("=") + 1
            self.i += 1
            return Var(ident(parts[0]), self.expression(content[rhs:], line, rhs), True, line=n)

        if head == "repeat":
            header = self.header(line, "repeat")
            until = _UNTIL_RE.match(header)
            if until:
                text = until.group(1) or ""
                if not text.strip():
                    raise self.error("repeat until requires an expression", line)
                expr = self.expression(text, line, until.start(1))
                self.i += 1
                body = self.block(line.indent, loop_depth + 1)
                return Repeat("until", None, expr, tuple(body), line=n)
            count = _REPEAT_RE.match(header)
            if not count or not count.group(1).strip():
                raise self.error("repeat requires a count", line)
            expr = self.expression(count.group(1), line, count.start(1))
            self.i += 1
            body = self.block(line.indent, loop_depth + 1)
            return Repeat("count", expr, None, tuple(body), line=n)

        if head == "if":
            header = self.header(line, "if expression")
            test = _IF_RE.match(header)
            if not test or not test.group(1).strip():
                raise self.error("if requires an expression", line)
            expr = self.expression(test.group(1), line, test.start(1))
            self.i += 1
            body = self.block(line.indent, loop_depth)
            return If(expr, tuple(body), line=n)

        if head in ("break", "continue"):
            if len(parts) != 1:
                raise self.error(f"{head} takes no arguments", line, len(parts[0]) + 1)
            if loop_depth == 0:
                raise self.error(f"'{head}' outside repeat loop", line)
            self.i += 1
            return Break(line=n) if head == "break" else Continue(line=n)

        if head in ABBREVIABLE:
            if len(parts) < 2:
                raise self.error(f"{head} requires 1 argument", line, len(parts[0]))
            start = len(parts[0])
            while start < len(content) and content[start].isspace():
                start += 1
            value = self.expression(content[start:], line, start)
            self.i += 1
            if head in ("forward", "back"):
                return Move(head, value, line=n)
            return Turn(head, value, line=n)

        if head == "pen":
            if len(parts) != 2:
                raise self.error("pen requires one argument: up|down", line)
            state = ident(parts[1])
            if state not in ("up", "down"):
                raise self.error("Invalid pen state", line, content.find(parts[1]))
            self.i += 1
            return Pen(state, line=n)

        if head == "hsv":
            if len(parts) != 4:
                raise self.error("hsv requires 3 params: h s v", line)
            try:
                h, s, v = (parse_hsv_param(p) for p in parts[1:])
            except ValueError as e:
                raise self.error(str(e), line) from e
            self.i += 1
            return Hsv(h, s, v, line=n)

        raise self.error(f"Unknown command: {parts[0]}", line)


def parse(source: str) -> List[Instruction]:
    """Parse Turtle Script source into a list of top-level instructions.

    Raises:
        TypeError: if `source` is not a string.
        TurtleSyntaxError: on malformed input, with 1-based line and column.
    """
    if not isinstance(source, str):
        raise TypeError("parse() requires a string")
    parser = _BlockParser(source)
    program = parser.block(-1, 0)
    logger.debug("parsed %d top-level instructions from %d lines", len(program), len(parser.lines))
    return program
