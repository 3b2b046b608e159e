"""Expression engine for Turtle Script.

Expressions appear wherever a command takes a numeric argument (`forward`,
`repeat`, `if`, `var` ...). They are parsed once, at program parse time, into
a small tree of frozen dataclasses and evaluated later against the run's
variable environment.

Grammar, lowest to highest precedence::

    comparison := addsub (('==' | '!=' | '<' | '<=' | '>' | '>=') addsub)*
    addsub     := muldiv (('+' | '-') muldiv)*
    muldiv     := unary (('*' | '/' | '%') unary)*
    unary      := ('+' | '-') unary | primary
    primary    := number | identifier | '(' comparison ')'

Evaluation never raises for bad values: a missing variable, a division by
zero or an overflow produce a non-finite float, and the instruction that
consumes the value decides whether that is an error.
"""

import math
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, NamedTuple, Tuple, Union

from .errors import ExprError

IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

COMPARISON_OPS = ("==", "!=", "<", "<=", ">", ">=")
TWO_CHAR_OPS = ("==", "!=", "<=", ">=")
SINGLE_CHAR_OPS = "()+-*/%<>"


def ident(name: str) -> str:
    """Identifiers are case-insensitive; this is their canonical form."""
    return name.lower()


def is_identifier(text: str) -> bool:
    return IDENT_RE.fullmatch(text) is not None


def parse_number(text: str):
    """Return `text` as a finite float, or None if it is not a plain number."""
    if NUMBER_RE.fullmatch(text) is None:
        return None
    value = float(text)
    return value if math.isfinite(value) else None


# --- AST -------------------------------------------------------------------


@dataclass(frozen=True)
class Num:
    value: float
    kind = "num"


@dataclass(frozen=True)
class VarRef:
    name: str
    kind = "var"


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"
    kind = "unary"


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"
    kind = "bin"


Node = Union[Num, VarRef, Unary, Binary]


# --- Tokenizer -------------------------------------------------------------


class Token(NamedTuple):
    type: str  # "num" | "id" | "op"
    value: str
    pos: int


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        two = text[i:i + 2]
        if two in TWO_CHAR_OPS:
            tokens.append(Token("op", two, i))
            i += 2
            continue
        if ch in SINGLE_CHAR_OPS:
            tokens.append(Token("op", ch, i))
            i += 1
            continue
        if ch in "!=":
            raise ExprError(f"Unexpected '{ch}' in expression", column=i + 1, text=text)
        if ch.isdigit() or ch == ".":
            start = i
            while i < n and (text[i].isdigit() or text[i] in "._"):
                i += 1
            raw = text[start:i].replace("_", "")
            if raw in ("", ".") or raw.count(".") > 1:
                raise ExprError("Invalid number literal", column=start + 1, text=text)
            tokens.append(Token("num", raw, start))
            continue
        m = IDENT_RE.match(text, i)
        if m:
            tokens.append(Token("id", ident(m.group(0)), i))
            i = m.end()
            continue
        raise ExprError(f"Unexpected character '{ch}' in expression", column=i + 1, text=text)
    return tokens


# --- Parser ----------------------------------------------------------------


class _Parser:
    def __init__(self, text: str, tokens: List[Token]):
        self.text = text
        self.tokens = tokens
        self.pos = 0

    def peek(self):
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def next_op(self, ops) -> Union[str, None]:
        tok = self.peek()
        if tok is not None and tok.type == "op" and tok.value in ops:
            self.pos += 1
            return tok.value
        return None

    def error(self, message: str, tok=None) -> ExprError:
        column = tok.pos + 1 if tok is not None else len(self.text) + 1
        return ExprError(message, column=column, text=self.text)

    def comparison(self) -> Node:
        node = self.addsub()
        while True:
            op = self.next_op(COMPARISON_OPS)
            if op is None:
                return node
            node = Binary(op, node, self.addsub())

    def addsub(self) -> Node:
        node = self.muldiv()
        while True:
            op = self.next_op("+-")
            if op is None:
                return node
            node = Binary(op, node, self.muldiv())

    def muldiv(self) -> Node:
        node = self.unary()
        while True:
            op = self.next_op("*/%")
            if op is None:
                return node
            node = Binary(op, node, self.unary())

    def unary(self) -> Node:
        op = self.next_op("+-")
        if op is not None:
            return Unary(op, self.unary())
        return self.primary()

    def primary(self) -> Node:
        tok = self.peek()
        if tok is None:
            raise self.error("Unexpected end of expression")
        if tok.type == "num":
            self.pos += 1
            return Num(float(tok.value))
        if tok.type == "id":
            self.pos += 1
            return VarRef(tok.value)
        if tok.value == "(":
            self.pos += 1
            node = self.comparison()
            if self.next_op(")") is None:
                raise self.error("Expected ')'", self.peek())
            return node
        raise self.error(f"Unexpected token '{tok.value}' in expression", tok)


def parse_expr(text: str) -> Node:
    """Parse expression text into a node.

    A lone identifier or a lone number skips tokenization and comes back as a
    bare `VarRef` / `Num`.

    Raises:
        ExprError: on empty input, bad characters or leftover tokens.
    """
    text = text.strip()
    if not text:
        raise ExprError("Empty expression", column=1, text=text)
    if is_identifier(text):
        return VarRef(ident(text))
    value = parse_number(text)
    if value is not None:
        return Num(value)

    parser = _Parser(text, tokenize(text))
    node = parser.comparison()
    if parser.pos != len(parser.tokens):
        leftover = " ".join(t.value for t in parser.tokens[parser.pos:])
        raise parser.error(
            f"Unexpected extra tokens in expression: '{text}' -> leftover: {leftover}",
            parser.peek(),
        )
    return node


# --- Evaluation ------------------------------------------------------------


def _binary(op: str, a: float, b: float) -> float:
    if op == "+":
        return a + b
    if op == "-":
        return a - b
    if op == "*":
        return a * b
    if op == "/":
        return math.nan if b == 0 else a / b
    if op == "%":
        if b == 0 or not math.isfinite(a) or math.isnan(b):
            return math.nan
        return math.fmod(a, b)
    if op == "==":
        return 1.0 if a == b else 0.0
    if op == "!=":
        return 1.0 if a != b else 0.0
    if op == "<":
        return 1.0 if a < b else 0.0
    if op == "<=":
        return 1.0 if a <= b else 0.0
    if op == ">":
        return 1.0 if a > b else 0.0
    if op == ">=":
        return 1.0 if a >= b else 0.0
    raise ExprError(f"Unsupported operator '{op}'")


def evaluate(node: Node, env: Mapping[str, float]) -> float:
    """Evaluate `node` against `env`. Missing variables evaluate to NaN.

    Walks the tree with an explicit stack, so long operator chains such as
    ``1 + 1 + ... + 1`` do not hit the interpreter's recursion limit.
    """
    values: List[float] = []
    stack: List[Tuple[Node, bool]] = [(node, False)]
    while stack:
        current, operands_done = stack.pop()
        if isinstance(current, Num):
            values.append(current.value)
        elif isinstance(current, VarRef):
            values.append(env.get(current.name, math.nan))
        elif isinstance(current, Unary):
            if operands_done:
                value = values.pop()
                values.append(-value if current.op == "-" else value)
            else:
                stack.append((current, True))
                stack.append((current.operand, False))
        elif isinstance(current, Binary):
            if operands_done:
                right = values.pop()
                left = values.pop()
                values.append(_binary(current.op, left, right))
            else:
                # left is pushed last so it is evaluated first
                stack.append((current, True))
                stack.append((current.right, False))
                stack.append((current.left, False))
        else:
            raise ExprError(f"Unsupported expression: {type(current).__name__}")
    return values[0]


def eval_expr(text: str, env: Dict[str, float]) -> float:
    """Parse and evaluate in one go; handy for hosts and tests."""
    return evaluate(parse_expr(text), env)
