"""Exception types raised by the Turtle Script parser and engines.

Parse-time problems carry a 1-based source position. Runtime problems carry
the line of the failing instruction (when known) and, once a driver has caught
them, the partial run result so callers can inspect what was drawn before the
failure.
"""

from typing import Any, Optional


class TurtleError(Exception):
    """Base class for every error the language raises."""

    code = "ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.msg = message


class ExprError(TurtleError):
    """Raised when an expression cannot be tokenized or parsed.

    Attributes:
        column: optional 1-based column within the expression text
        text: optional expression text
    """

    code = "SYNTAX_ERROR"

    def __init__(self, message: str, *, column: Optional[int] = None, text: Optional[str] = None):
        super().__init__(message)
        self.column = column
        self.text = text


class TurtleSyntaxError(TurtleError):
    """Malformed program text. Always carries line and column (1-based)."""

    code = "SYNTAX_ERROR"

    def __init__(self, message: str, line: int, column: int = 1):
        super().__init__(message)
        self.line = line
        self.column = column

    def __str__(self) -> str:
        return f"{self.msg} (line {self.line}, col {self.column})"


class TurtleRuntimeError(TurtleError):
    """A run aborted while executing an instruction.

    `result` is filled in by the engine with the partial run result
    (``completed=False``) before the error leaves the driver.
    """

    code = "RUNTIME_ERROR"

    def __init__(self, message: str, *, line: Optional[int] = None):
        super().__init__(message)
        self.line = line
        self.result: Any = None

    def __str__(self) -> str:
        if self.line is not None:
            return f"{self.msg} (line {self.line})"
        return self.msg


class StepLimitExceeded(TurtleRuntimeError):
    code = "STEP_LIMIT"


class OutputLimitExceeded(TurtleRuntimeError):
    code = "OUTPUT_LIMIT"


class RunCancelled(TurtleRuntimeError):
    """The host cancelled an async run or a stepper before it finished."""

    code = "CANCELLED"
