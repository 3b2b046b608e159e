"""HSV color model: the current color and how `hsv` parameters change it."""

import math
from typing import Dict, Mapping, NamedTuple

from .errors import TurtleRuntimeError
from .expressions import VarRef
from .nodes import Absolute, HSVParam, Ignore, Offset


class HSV(NamedTuple):
    """Hue in [0, 360), saturation and value in [0, 100]."""

    h: float = 0.0
    s: float = 0.0
    v: float = 100.0

    def to_dict(self) -> Dict[str, float]:
        return {"h": self.h, "s": self.s, "v": self.v}

    @classmethod
    def from_value(cls, value) -> "HSV":
        """Accept an HSV, a mapping with h/s/v keys or a 3-sequence."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            return cls(float(value.get("h", 0)), float(value.get("s", 0)), float(value.get("v", 100)))
        h, s, v = value
        return cls(float(h), float(s), float(v))


def wrap_hue(h: float) -> float:
    return ((h % 360) + 360) % 360


def clamp(v: float, lo: float, hi: float) -> float:
    return lo if v < lo else (hi if v > hi else v)


def normalize(value: float, component: str) -> float:
    if component == "h":
        return wrap_hue(value)
    return clamp(value, 0, 100)


def _lookup(ref: VarRef, env: Mapping[str, float]) -> float:
    value = env.get(ref.name, math.nan)
    if not math.isfinite(value):
        raise TurtleRuntimeError(f"Undefined variable '{ref.name}' in hsv")
    return value


def apply_param(current: float, param: HSVParam, component: str, env: Mapping[str, float]) -> float:
    """Resolve one `hsv` parameter against the current component value.

    Args:
        current: the component's value before the instruction.
        param: Ignore / Offset / Absolute.
        component: "h", "s" or "v"; selects wrap (hue) or clamp (s, v).
        env: variable environment for by-variable parameters.

    Raises:
        TurtleRuntimeError: when a referenced variable is undefined.
    """
    if isinstance(param, Ignore):
        return current
    if isinstance(param, Offset):
        if isinstance(param.source, VarRef):
            magnitude = _lookup(param.source, env)
        else:
            magnitude = param.source
        delta = -magnitude if param.sign == "-" else magnitude
        return normalize(current + delta, component)
    if isinstance(param, Absolute):
        if isinstance(param.source, VarRef):
            return normalize(_lookup(param.source, env), component)
        return normalize(param.source, component)
    raise TurtleRuntimeError(f"Unknown hsv parameter: {type(param).__name__}")


def apply_hsv(color: HSV, h: HSVParam, s: HSVParam, v: HSVParam, env: Mapping[str, float]) -> HSV:
    return HSV(
        apply_param(color.h, h, "h", env),
        apply_param(color.s, s, "s", env),
        apply_param(color.v, v, "v", env),
    )
