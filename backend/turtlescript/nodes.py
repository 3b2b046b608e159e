"""Instruction tree produced by the parser and consumed by the engines.

Every node is a frozen dataclass; the tree is built once by `lexer.parse` and
never mutated afterwards, so one parsed program can be handed to any number of
runs. `line` records the 1-based source line of the instruction and is left
out of equality so hand-built trees compare equal to parsed ones.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Optional, Tuple, Union

from .expressions import Node, VarRef

# --- HSV parameters ---------------------------------------------------------


@dataclass(frozen=True)
class Ignore:
    kind = "ignore"


@dataclass(frozen=True)
class Offset:
    """Add `source` (a literal magnitude or a variable) with `sign` applied."""

    source: Union[float, VarRef]
    sign: str = "+"
    kind = "offset"


@dataclass(frozen=True)
class Absolute:
    source: Union[float, VarRef]
    kind = "absolute"


HSVParam = Union[Ignore, Offset, Absolute]

# --- Instructions -----------------------------------------------------------


@dataclass(frozen=True)
class Move:
    direction: str  # "forward" | "back"
    value: Node
    line: Optional[int] = field(default=None, compare=False)
    kind = "MOVE"


@dataclass(frozen=True)
class Turn:
    direction: str  # "left" | "right"
    value: Node
    line: Optional[int] = field(default=None, compare=False)
    kind = "TURN"


@dataclass(frozen=True)
class Pen:
    state: str  # "up" | "down"
    line: Optional[int] = field(default=None, compare=False)
    kind = "PEN"


@dataclass(frozen=True)
class Hsv:
    h: HSVParam
    s: HSVParam
    v: HSVParam
    line: Optional[int] = field(default=None, compare=False)
    kind = "HSV"


@dataclass(frozen=True)
class Var:
    name: str
    value: Node
    reassign: bool = False
    line: Optional[int] = field(default=None, compare=False)
    kind = "VAR"


@dataclass(frozen=True)
class Repeat:
    mode: str  # "count" | "until"
    count: Optional[Node] = None
    until: Optional[Node] = None
    body: Tuple["Instruction", ...] = ()
    line: Optional[int] = field(default=None, compare=False)
    kind = "REPEAT"


@dataclass(frozen=True)
class If:
    test: Node
    body: Tuple["Instruction", ...] = ()
    line: Optional[int] = field(default=None, compare=False)
    kind = "IF"


@dataclass(frozen=True)
class Break:
    line: Optional[int] = field(default=None, compare=False)
    kind = "BREAK"


@dataclass(frozen=True)
class Continue:
    line: Optional[int] = field(default=None, compare=False)
    kind = "CONTINUE"


Instruction = Union[Move, Turn, Pen, Hsv, Var, Repeat, If, Break, Continue]

MOTION_TYPES = (Move, Turn)


def dump(obj: Any) -> Any:
    """Convert an instruction tree (or any node in it) to JSON-ready data.

    Nodes become dicts tagged with ``"type"``; tuples become lists.
    """
    if is_dataclass(obj) and not isinstance(obj, type):
        out = {"type": obj.kind}
        for f in fields(obj):
            value = getattr(obj, f.name)
            if f.name == "line" and value is None:
                continue
            out[f.name] = dump(value)
        return out
    if isinstance(obj, (list, tuple)):
        return [dump(item) for item in obj]
    return obj
