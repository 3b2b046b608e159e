"""Execution core shared by the synchronous, async and stepping engines.

`Machine` owns one run: turtle state, the flat variable environment, the
operation log and an explicit stack of frames for `repeat` and `if` bodies.
`advance()` executes instructions until exactly one movement (`forward`,
`back`, `left`, `right`) has happened, or the program ends. The three engines
in `interpreter.py` differ only in what they do between two calls to
`advance()`, so control flow (loops, conditionals, break/continue) exists in
this one place.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .color import HSV, apply_hsv, wrap_hue
from .errors import OutputLimitExceeded, StepLimitExceeded, TurtleRuntimeError
from .expressions import Node, evaluate
from .lexer import parse
from .nodes import MOTION_TYPES, Break, Continue, Hsv, If, Instruction, Move, Pen, Repeat, Turn, Var
from .raster import iter_line, round_half_up
from .renderer import Renderer

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 1_000_000

Program = Union[str, Sequence[Instruction]]
PixelCallback = Callable[[int, int, HSV], None]


@dataclass
class Frame:
    """Activation record of a `repeat` or `if` body in progress."""

    kind: str  # "count" | "until" | "if"
    body: Sequence[Instruction]
    index: int = 0
    remaining: int = 0
    until: Optional[Node] = None
    line: Optional[int] = None

    @property
    def is_loop(self) -> bool:
        return self.kind != "if"


@dataclass
class RunResult:
    final_x: int
    final_y: int
    final_heading: float
    pen_down: bool
    color: HSV
    variables: Dict[str, float]
    operations: List[Dict[str, Any]] = field(default_factory=list)
    completed: bool = True
    steps: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "final_x": self.final_x,
            "final_y": self.final_y,
            "final_heading": self.final_heading,
            "pen_down": self.pen_down,
            "color": self.color.to_dict(),
            "variables": dict(self.variables),
            "operations": list(self.operations),
            "completed": self.completed,
            "steps": self.steps,
        }


class Machine:
    """One run of a Turtle Script program.

    Args:
        program: source text (parsed here) or an already parsed instruction list.
        start_x, start_y: initial position in cells.
        heading: initial heading in degrees, 0 = +X, increasing clockwise.
        initial_hsv: initial color (HSV, mapping or 3-sequence).
        initial_pen_down: whether the pen starts down.
        width, height: optional grid bounds; cells outside are not plotted.
            The turtle itself may leave the grid.
        renderer: optional renderer collaborator (see `renderer.Renderer`).
        on_pixel: optional callback invoked for every plotted cell.
        record: keep the operation log.
        max_steps: instruction budget; None disables it.
        max_operations: cap on the recorded log length; None disables it.
        clear: call the renderer's `clear_pixels` before starting.
    """

    def __init__(
        self,
        program: Program,
        *,
        start_x: float = 0,
        start_y: float = 0,
        heading: float = 0,
        initial_hsv: Any = None,
        initial_pen_down: bool = False,
        width: Optional[int] = None,
        height: Optional[int] = None,
        renderer: Optional[Renderer] = None,
        on_pixel: Optional[PixelCallback] = None,
        record: bool = True,
        max_steps: Optional[int] = DEFAULT_MAX_STEPS,
        max_operations: Optional[int] = None,
        clear: bool = False,
    ):
        self.program: List[Instruction] = parse(program) if isinstance(program, str) else list(program)
        self.x = float(start_x)
        self.y = float(start_y)
        self.heading = float(heading)
        self.pen_is_down = bool(initial_pen_down)
        self.color = HSV.from_value(initial_hsv)
        self.width = width
        self.height = height
        self.renderer = renderer
        self.on_pixel = on_pixel
        self.record = record
        self.max_steps = max_steps
        self.max_operations = max_operations

        self.variables: Dict[str, float] = {}
        self.operations: List[Dict[str, Any]] = []
        self.frames: List[Frame] = []
        self.steps = 0
        self.finished = False
        self.failed = False
        self._root_index = 0

        self._handlers = {
            Move: self._move,
            Turn: self._turn,
            Pen: self._pen,
            Hsv: self._hsv,
            Var: self._var,
            Repeat: self._repeat,
            If: self._if,
            Break: self._break,
            Continue: self._continue,
        }

        if clear:
            self._call_renderer("clear_pixels")
        self._sync_renderer()

    # --- driving ----------------------------------------------------------

    def advance(self) -> bool:
        """Run until one movement has executed.

        Returns True after a movement, False once the program is exhausted
        (or was already finished). Runtime errors finish the run, get the
        partial result attached and propagate.
        """
        if self.finished:
            return False
        try:
            while True:
                instr = self._next_instruction()
                if instr is None:
                    self.finished = True
                    logger.debug("run finished after %d steps, %d operations", self.steps, len(self.operations))
                    return False
                self._execute(instr)
                if isinstance(instr, MOTION_TYPES):
                    return True
        except TurtleRuntimeError as e:
            self.finished = True
            self.failed = True
            if e.result is None:
                e.result = self.result()
            raise

    def cancel(self) -> None:
        if not self.finished:
            self.finished = True
            self.failed = True

    def result(self) -> RunResult:
        return RunResult(
            final_x=round_half_up(self.x),
            final_y=round_half_up(self.y),
            final_heading=self.heading,
            pen_down=self.pen_is_down,
            color=self.color,
            variables=dict(self.variables),
            operations=list(self.operations) if self.record else [],
            completed=self.finished and not self.failed,
            steps=self.steps,
        )

    def state(self) -> Dict[str, Any]:
        return {
            "x": round_half_up(self.x),
            "y": round_half_up(self.y),
            "heading": self.heading,
            "pen_down": self.pen_is_down,
            "color": self.color.to_dict(),
            "variables": dict(self.variables),
            "operations": list(self.operations),
        }

    # --- frame machinery --------------------------------------------------

    def _tick(self, line: Optional[int]) -> None:
        self.steps += 1
        if self.max_steps is not None and self.steps > self.max_steps:
            raise StepLimitExceeded("Step limit exceeded", line=line)

    def _next_instruction(self) -> Optional[Instruction]:
        while True:
            if not self.frames:
                if self._root_index >= len(self.program):
                    return None
                instr = self.program[self._root_index]
                self._root_index += 1
                return instr
            frame = self.frames[-1]
            if frame.index < len(frame.body):
                instr = frame.body[frame.index]
                frame.index += 1
                return instr
            self._end_of_body(frame)

    def _end_of_body(self, frame: Frame) -> None:
        """Decide what happens when the innermost frame runs off its body."""
        if frame.kind == "count":
            frame.remaining -= 1
            if frame.remaining > 0:
                self._tick(frame.line)
                frame.index = 0
                return
        elif frame.kind == "until":
            if not self._until_met(frame.until, frame.line):
                self._tick(frame.line)
                frame.index = 0
                return
        self.frames.pop()

    def _nearest_loop(self, keyword: str, line: Optional[int]) -> int:
        for i in range(len(self.frames) - 1, -1, -1):
            if self.frames[i].is_loop:
                return i
        raise TurtleRuntimeError(f"'{keyword}' outside repeat loop", line=line)

    # --- evaluation helpers -----------------------------------------------

    def _number(self, node: Node, message: str, line: Optional[int]) -> float:
        value = evaluate(node, self.variables)
        if not math.isfinite(value):
            raise TurtleRuntimeError(message, line=line)
        return value

    def _until_met(self, node: Node, line: Optional[int]) -> bool:
        return self._number(node, "Invalid until expression", line) != 0

    def _record(self, op: Dict[str, Any]) -> None:
        if not self.record:
            return
        if self.max_operations is not None and len(self.operations) >= self.max_operations:
            raise OutputLimitExceeded("Operation log limit reached")
        self.operations.append(op)

    def _call_renderer(self, name: str, *args: Any) -> None:
        method = getattr(self.renderer, name, None) if self.renderer is not None else None
        if callable(method):
            method(*args)

    def _sync_renderer(self) -> None:
        if self.renderer is None:
            return
        self._call_renderer("pen_set", round_half_up(self.x), round_half_up(self.y))
        self._call_renderer("pen_down" if self.pen_is_down else "pen_up")
        self._call_renderer("set_heading", self.heading)

    def _in_bounds(self, cx: int, cy: int) -> bool:
        if self.width is not None and not 0 <= cx < self.width:
            return False
        if self.height is not None and not 0 <= cy < self.height:
            return False
        return True

    # --- instructions -----------------------------------------------------

    def _execute(self, instr: Instruction) -> None:
        handler = self._handlers.get(type(instr))
        line = getattr(instr, "line", None)
        if handler is None:
            raise TurtleRuntimeError(f"Unknown instruction type: {type(instr).__name__}", line=line)
        self._tick(line)
        try:
            handler(instr)
        except TurtleRuntimeError as e:
            if e.line is None:
                e.line = line
            raise
        except RecursionError as e:
            raise TurtleRuntimeError("Expression too deeply nested", line=line) from e

    def _move(self, instr: Move) -> None:
        distance = self._number(instr.value, "Invalid move value", instr.line)
        if instr.direction == "back":
            distance = -distance
        rad = math.radians(self.heading)
        target_x = self.x + distance * math.cos(rad)
        target_y = self.y + distance * math.sin(rad)
        if not (math.isfinite(target_x) and math.isfinite(target_y)):
            raise TurtleRuntimeError("Invalid move value", line=instr.line)
        if self.pen_is_down:
            self._plot_segment(target_x, target_y, instr.line)
        self.x, self.y = target_x, target_y
        self._sync_renderer()
        self._record({"op": "move", "x": round_half_up(self.x), "y": round_half_up(self.y)})

    def _plot_segment(self, target_x: float, target_y: float, line: Optional[int]) -> None:
        cells = iter_line(self.x, self.y, target_x, target_y)
        next(cells)  # start cell, already under the pen
        for cell in cells:
            # every visited cell costs a step, plotted or culled
            self._tick(line)
            if not self._in_bounds(*cell):
                continue
            cx, cy = cell
            if self.on_pixel is not None:
                self.on_pixel(cx, cy, self.color)
            self._call_renderer("draw_pixel", cx, cy, self.color)
            self._record({"op": "plot", "x": cx, "y": cy, "color": self.color.to_dict()})

    def _turn(self, instr: Turn) -> None:
        angle = self._number(instr.value, "Invalid turn value", instr.line)
        delta = -angle if instr.direction == "left" else angle
        self.heading = wrap_hue(self.heading + delta)
        self._record({"op": "turn", "heading": self.heading})
        self._call_renderer("set_heading", self.heading)

    def _pen(self, instr: Pen) -> None:
        self.pen_is_down = instr.state == "down"
        self._record({"op": "pen", "down": self.pen_is_down})
        self._sync_renderer()

    def _hsv(self, instr: Hsv) -> None:
        self.color = apply_hsv(self.color, instr.h, instr.s, instr.v, self.variables)
        self._record({"op": "hsv", "color": self.color.to_dict()})

    def _var(self, instr: Var) -> None:
        value = self._number(
            instr.value, f"Undefined variable or invalid value in assignment to {instr.name}", instr.line
        )
        if instr.reassign and instr.name not in self.variables:
            raise TurtleRuntimeError(f"Cannot reassign undeclared variable '{instr.name}'", line=instr.line)
        self.variables[instr.name] = value

    def _repeat(self, instr: Repeat) -> None:
        if instr.mode == "count":
            times = math.floor(self._number(instr.count, "Invalid repeat count", instr.line))
            if times > 0 and instr.body:
                self.frames.append(Frame("count", instr.body, remaining=times, line=instr.line))
            return
        if not self._until_met(instr.until, instr.line):
            self.frames.append(Frame("until", instr.body, until=instr.until, line=instr.line))

    def _if(self, instr: If) -> None:
        test = self._number(instr.test, "Invalid if condition", instr.line)
        if test != 0 and instr.body:
            self.frames.append(Frame("if", instr.body, line=instr.line))

    def _break(self, instr: Break) -> None:
        i = self._nearest_loop("break", instr.line)
        del self.frames[i:]

    def _continue(self, instr: Continue) -> None:
        i = self._nearest_loop("continue", instr.line)
        del self.frames[i + 1:]
        frame = self.frames[i]
        frame.index = len(frame.body)
