"""Renderer collaborator used by the engines.

The engines only ever *call into* a renderer; they never read pixels back.
Every method is optional on the concrete object, so a host can pass anything
that implements the subset it cares about. `PixelGrid` is a headless
implementation that keeps painted cells in a dict; hosts use it to return
the painted picture and tests use it as a spy.
"""

from typing import Dict, Optional, Protocol, Tuple

from .color import HSV, wrap_hue


class Renderer(Protocol):
    def pen_set(self, x: int, y: int) -> None: ...

    def pen_up(self) -> None: ...

    def pen_down(self) -> None: ...

    def set_heading(self, degrees: float) -> None: ...

    def draw_pixel(self, x: int, y: int, color: HSV) -> None: ...

    def get_pixel_size(self) -> int: ...

    def clear_pixels(self) -> None: ...


class PixelGrid:
    """In-memory grid of painted cells keyed by integer (x, y)."""

    def __init__(self, pixel_size: int = 10):
        self.pixel_size = pixel_size
        self.pen: Tuple[int, int] = (0, 0)
        self.is_pen_down = False
        self.heading = 0.0
        self.painted: Dict[Tuple[int, int], HSV] = {}

    def pen_set(self, x: int, y: int) -> None:
        self.pen = (int(x), int(y))

    def pen_up(self) -> None:
        self.is_pen_down = False

    def pen_down(self) -> None:
        self.is_pen_down = True

    def set_heading(self, degrees: float) -> None:
        self.heading = wrap_hue(degrees)

    def draw_pixel(self, x: int, y: int, color: HSV) -> None:
        self.painted[(int(x), int(y))] = HSV.from_value(color)

    def get_pixel_size(self) -> int:
        return self.pixel_size

    def set_pixel_size(self, size: int) -> None:
        """Change cell size, keeping the pen over the same screen point."""
        size = max(1, int(size))
        if size == self.pixel_size:
            return
        center_x = self.pen[0] * self.pixel_size + self.pixel_size / 2
        center_y = self.pen[1] * self.pixel_size + self.pixel_size / 2
        self.pixel_size = size
        self.pen = (int(center_x // size), int(center_y // size))

    def clear_pixels(self) -> None:
        self.painted.clear()

    def get_pixel(self, x: int, y: int) -> Optional[HSV]:
        return self.painted.get((x, y))

    def start_cell(self, width_px: int, height_px: int) -> Tuple[int, int]:
        """Cell at the centre of a `width_px` x `height_px` canvas."""
        return width_px // (2 * self.pixel_size), height_px // (2 * self.pixel_size)

    def to_dict(self):
        return {
            "pixel_size": self.pixel_size,
            "pen": {"x": self.pen[0], "y": self.pen[1], "down": self.is_pen_down},
            "heading": self.heading,
            "pixels": [
                {"x": x, "y": y, "color": color.to_dict()}
                for (x, y), color in sorted(self.painted.items())
            ],
        }
