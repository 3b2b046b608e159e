"""Turtle Script engines and the `Interpreter` facade used by hosts.

Three engines run a program with identical observable results:

- `interpret`: runs to completion in one call.
- `interpret_async`: a coroutine that suspends (``asyncio.sleep(delay)``) right
  after every `forward`/`back`/`left`/`right`, so a host can animate.
- `Stepper` (`create_stepper`): advances one movement per `step()` call, for a
  render loop driven by an external clock.

All three are thin drivers over `machine.Machine`; they only differ in what
happens between two movements.

`Interpreter` wraps the engines for hosts. Like the HTTP API it never raises
for program errors: `run()` returns a dict with the run result and a
structured `errors` entry (code, message, line, column, hint).
"""

import asyncio
import logging
import time
from typing import Any, Dict, Iterator, Optional, Tuple

from .color import HSV
from .errors import RunCancelled, TurtleRuntimeError, TurtleSyntaxError
from .lexer import parse
from .machine import DEFAULT_MAX_STEPS, Machine, Program, RunResult
from .nodes import dump
from .raster import round_half_up

logger = logging.getLogger(__name__)

_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")


def _as_bool(value: Any, key: str) -> bool:
    """Strict boolean for a settings flag; "false" and "0" are false."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in _TRUE + _FALSE:
        return value.strip().lower() in _TRUE
    raise ValueError(f"Invalid boolean for {key}: {value!r}")


def interpret(program: Program, **options: Any) -> RunResult:
    """Run `program` to completion and return its result.

    `options` are the `Machine` keyword arguments (start position, heading,
    initial color, pen, bounds, renderer, on_pixel, record, limits).

    Raises:
        TurtleSyntaxError: if `program` is text that fails to parse.
        TurtleRuntimeError: on a runtime failure; `.result` holds the partial run.
    """
    machine = Machine(program, **options)
    while machine.advance():
        pass
    return machine.result()


def _check_cancelled(machine: Machine, cancel: Optional[asyncio.Event]) -> None:
    if cancel is not None and cancel.is_set():
        machine.cancel()
        err = RunCancelled("Run cancelled")
        err.result = machine.result()
        raise err


async def interpret_async(
    program: Program,
    delay: float = 0.0,
    cancel: Optional[asyncio.Event] = None,
    **options: Any,
) -> RunResult:
    """Run `program`, yielding to the event loop after every movement.

    Args:
        program: source text or parsed instructions.
        delay: seconds to sleep after each movement; 0 yields without waiting.
        cancel: optional event checked at every suspension point. Once set,
            the run stops with `RunCancelled` (partial result attached).
        **options: as for `interpret`.
    """
    machine = Machine(program, **options)
    while machine.advance():
        _check_cancelled(machine, cancel)
        await asyncio.sleep(delay)
        _check_cancelled(machine, cancel)
    return machine.result()


class Stepper:
    """Execute a program one movement at a time.

    Usage::

        stepper = create_stepper(source, start_x=40, start_y=40)
        while stepper.step():
            draw_frame()
        result = stepper.result()
    """

    def __init__(self, program: Program, **options: Any):
        self._machine = Machine(program, **options)

    def step(self) -> bool:
        """Execute instructions up to and including the next movement.

        Returns False (and marks the stepper done) when nothing was left.
        """
        return self._machine.advance()

    def done(self) -> bool:
        return self._machine.finished

    def result(self) -> Optional[RunResult]:
        """The run result, or None while the program is still running."""
        if not self.done():
            return None
        return self._machine.result()

    def state(self) -> Dict[str, Any]:
        return self._machine.state()

    def cancel(self) -> None:
        self._machine.cancel()

    def __iter__(self) -> Iterator[Tuple[int, int, float]]:
        m = self._machine
        while self.step():
            yield round_half_up(m.x), round_half_up(m.y), m.heading


def create_stepper(program: Program, **options: Any) -> Stepper:
    return Stepper(program, **options)


class Interpreter:
    """Host-facing facade over the engines.

    Tunable attributes (defaults are set in __init__; per-run `settings` may
    override them):
    - max_steps: instruction budget per run
    - max_operations: cap on the recorded operation log
    - max_code_chars: largest accepted program text
    """

    ENGINES = ("sync", "async", "step")
    RUN_OPTIONS = ("start_x", "start_y", "heading", "initial_pen_down", "width", "height", "record")

    def __init__(self):
        self.max_steps = DEFAULT_MAX_STEPS
        self.max_operations = 200_000
        self.max_code_chars = 100_000

    # --- Error helpers -------------------------------------------------
    def _err(self, code: str, message: str, *, line: Optional[int] = None, column: Optional[int] = None, line_text: Optional[str] = None, hint: Optional[str] = None) -> Dict[str, Any]:
        err: Dict[str, Any] = {"code": code, "message": message, "line": line, "column": column}
        if line_text is not None:
            err["context"] = {"line_text": line_text}
        if hint:
            err["hint"] = hint
        return err

    def _line_text(self, code: str, line: Optional[int]) -> Optional[str]:
        if not line:
            return None
        lines = code.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        return lines[line - 1] if line <= len(lines) else None

    def _options(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Translate a JSON-ish settings dict into engine keyword arguments.

        Raises:
            TypeError, ValueError: on malformed values.
        """
        options: Dict[str, Any] = {}
        for key in self.RUN_OPTIONS:
            if settings.get(key) is not None:
                options[key] = settings[key]
        for key in ("start_x", "start_y", "heading"):
            if key in options:
                options[key] = float(options[key])
        for key in ("width", "height"):
            if key in options:
                options[key] = int(options[key])
        for key in ("initial_pen_down", "record"):
            if key in options:
                options[key] = _as_bool(options[key], key)
        if settings.get("initial_hsv") is not None:
            options["initial_hsv"] = HSV.from_value(settings["initial_hsv"])
        options["max_steps"] = int(settings.get("max_steps", self.max_steps))
        options["max_operations"] = int(settings.get("max_operations", self.max_operations))
        return options

    def _prepare(self, code: str, settings: Optional[Dict[str, Any]]):
        """Parse and build options. Returns (program, options, error_or_none)."""
        if len(code) > self.max_code_chars:
            return None, None, self._err("CODE_TOO_LARGE", f"Program longer than {self.max_code_chars} characters")
        try:
            program = parse(code)
        except TurtleSyntaxError as e:
            return None, None, self._err(
                "SYNTAX_ERROR",
                e.msg,
                line=e.line,
                column=e.column,
                line_text=self._line_text(code, e.line),
                hint="Check the command name or syntax.",
            )
        try:
            options = self._options(settings or {})
        except (TypeError, ValueError) as e:
            return None, None, self._err("INVALID_SETTINGS", str(e))
        return program, options, None

    def _failure(self, code: str, e: TurtleRuntimeError) -> Dict[str, Any]:
        logger.info("run failed: %s", e)
        return {
            "result": e.result.to_dict() if e.result is not None else None,
            "errors": self._err(e.code, e.msg, line=e.line, line_text=self._line_text(code, e.line)),
        }

    def parse(self, code: str) -> Dict[str, Any]:
        """Parse only; returns the instruction tree as JSON-ready data."""
        program, _, err = self._prepare(code, None)
        if err:
            return {"instructions": None, "errors": err}
        try:
            instructions = dump(program)
        except RecursionError:
            return {"instructions": None, "errors": self._err("CODE_TOO_LARGE", "Instruction tree too deeply nested to serialize")}
        return {"instructions": instructions, "errors": None}

    def run(self, code: str, settings: Optional[Dict[str, Any]] = None, engine: str = "sync", renderer: Any = None) -> Dict[str, Any]:
        """Run `code` with the synchronous engine or the stepper.

        Use `run_async` for the async engine. `renderer` (e.g. a `PixelGrid`)
        receives the drawing calls.
        """
        if engine not in ("sync", "step"):
            return {"result": None, "errors": self._err("INVALID_ENGINE", f"Unknown engine '{engine}'")}
        program, options, err = self._prepare(code, settings)
        if err:
            return {"result": None, "errors": err}
        start = time.time()
        options["renderer"] = renderer
        try:
            if engine == "step":
                stepper = Stepper(program, **options)
                while stepper.step():
                    pass
                result = stepper.result()
            else:
                result = interpret(program, **options)
        except TurtleRuntimeError as e:
            return self._failure(code, e)
        logger.debug("%s run took %.3fs", engine, time.time() - start)
        return {"result": result.to_dict(), "errors": None}

    async def run_async(self, code: str, settings: Optional[Dict[str, Any]] = None, cancel: Optional[asyncio.Event] = None, renderer: Any = None) -> Dict[str, Any]:
        settings = settings or {}
        program, options, err = self._prepare(code, settings)
        if err:
            return {"result": None, "errors": err}
        try:
            delay = max(0.0, float(settings.get("delay", 0.0)))
        except (TypeError, ValueError) as e:
            return {"result": None, "errors": self._err("INVALID_SETTINGS", str(e))}
        try:
            result = await interpret_async(program, delay=delay, cancel=cancel, renderer=renderer, **options)
        except TurtleRuntimeError as e:
            return self._failure(code, e)
        return {"result": result.to_dict(), "errors": None}
