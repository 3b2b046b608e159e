"""Integer line rasterization used to turn a pen-down move into cells."""

import math
from typing import Callable, Iterator, Tuple


def round_half_up(v: float) -> int:
    """Round to the nearest cell, halves towards +infinity (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(v + 0.5))


def iter_line(x0: float, y0: float, x1: float, y1: float) -> Iterator[Tuple[int, int]]:
    """Yield every cell of an 8-connected Bresenham walk, endpoints included."""
    x0, y0 = round_half_up(x0), round_half_up(y0)
    x1, y1 = round_half_up(x1), round_half_up(y1)
    dx, sx = abs(x1 - x0), (1 if x0 < x1 else -1)
    dy, sy = -abs(y1 - y0), (1 if y0 < y1 else -1)
    err = dx + dy
    # one cell per iteration; the walk is exactly Chebyshev-distance long
    for _ in range(max(dx, -dy) + 1):
        yield x0, y0
        if x0 == x1 and y0 == y1:
            return
        e2 = 2 * err
        if e2 >= dy:
            err += dy
            x0 += sx
        if e2 <= dx:
            err += dx
            y0 += sy


def raster_line(x0: float, y0: float, x1: float, y1: float, visit: Callable[[int, int], None]) -> None:
    for cx, cy in iter_line(x0, y0, x1, y1):
        visit(cx, cy)
