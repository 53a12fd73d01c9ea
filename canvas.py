"""Drawing surfaces driven by the interpreter.

The interpreter only knows the small ``DrawingCanvas`` interface. A
``PixelCanvas`` rasterizes into an RGBA buffer; a ``SizingCanvas`` only
records the bounding box of everywhere the pen went, so a program can be run
once to size the real canvas and once to draw it.
"""

from __future__ import annotations
import math
from typing import Tuple

import numpy as np
from numpy.typing import NDArray

from color import TRANSPARENT, Color
from lexer import PenError


class SizingError(PenError):
    """Raised when a sizing box ends up inverted."""


def round_half_away(value: float) -> int:
    if value >= 0:
        return int(math.floor(value + 0.5))
    return -int(math.floor(-value + 0.5))


class DrawingCanvas:
    def move_pen_to(self, x: float, y: float) -> None:
        raise NotImplementedError

    def blot(self, x: float, y: float) -> None:
        raise NotImplementedError

    def set_color(self, color: Color) -> None:
        raise NotImplementedError


class PixelCanvas(DrawingCanvas):
    def __init__(
        self,
        width: int,
        height: int,
        *,
        offset: Tuple[int, int] = (0, 0),
        pen: Tuple[float, float] = (0.0, 0.0),
    ) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Canvas dimensions must be positive, got {width}x{height}")
        self.width = int(width)
        self.height = int(height)
        self.offset_x, self.offset_y = int(offset[0]), int(offset[1])
        self.pen_x, self.pen_y = float(pen[0]), float(pen[1])
        self.pen_color: Color = TRANSPARENT
        # [row][column][channel], row-major like the output byte buffer
        self.buffer: NDArray[np.uint8] = np.zeros((self.height, self.width, 4), dtype=np.uint8)

    def move_pen_to(self, x: float, y: float) -> None:
        if self.pen_color.alpha != 0:
            self._draw_line(
                round_half_away(self.pen_x),
                round_half_away(self.pen_y),
                round_half_away(x),
                round_half_away(y),
            )
        self.pen_x = x
        self.pen_y = y

    def blot(self, x: float, y: float) -> None:
        self._draw_pixel(round_half_away(x), round_half_away(y))

    def set_color(self, color: Color) -> None:
        self.pen_color = color

    def pixel(self, x: int, y: int) -> Color:
        """Return the color stored at buffer coordinates ``(x, y)``."""
        r, g, b, a = (int(v) for v in self.buffer[y, x])
        return Color(r, g, b, a)

    def to_array(self) -> NDArray[np.uint8]:
        return self.buffer.copy()

    def to_bytes(self) -> bytes:
        return self.buffer.tobytes()

    def _draw_pixel(self, x: int, y: int) -> None:
        px = x + self.offset_x
        py = y + self.offset_y
        if px < 0 or px >= self.width or py < 0 or py >= self.height:
            # off the page: clipped
            return
        existing = self.pixel(px, py)
        self.buffer[py, px] = Color.overlay(self.pen_color, existing).as_tuple()

    # Bresenham integer line rasterization
    def _draw_line(self, x0: int, y0: int, x1: int, y1: int) -> None:
        dx = abs(x1 - x0)
        dy = -abs(y1 - y0)
        sx = 1 if x0 < x1 else -1
        sy = 1 if y0 < y1 else -1
        err = dx + dy
        x, y = x0, y0
        while True:
            self._draw_pixel(x, y)
            if x == x1 and y == y1:
                break
            e2 = 2 * err
            if e2 >= dy:
                err += dy
                x += sx
            if e2 <= dx:
                err += dx
                y += sy


class SizingCanvas(DrawingCanvas):
    def __init__(self) -> None:
        # the box always contains the origin, where every run starts
        self.min_x = 0
        self.min_y = 0
        self.max_x = 0
        self.max_y = 0

    def move_pen_to(self, x: float, y: float) -> None:
        ix = round_half_away(x)
        iy = round_half_away(y)
        self.min_x = min(self.min_x, ix)
        self.min_y = min(self.min_y, iy)
        self.max_x = max(self.max_x, ix)
        self.max_y = max(self.max_y, iy)

    def blot(self, x: float, y: float) -> None:
        pass

    def set_color(self, color: Color) -> None:
        pass

    def dimensions(self) -> Tuple[int, int]:
        self._check()
        return (self.max_x - self.min_x + 1, self.max_y - self.min_y + 1)

    def offsets(self) -> Tuple[int, int]:
        self._check()
        return (-self.min_x, -self.min_y)

    def _check(self) -> None:
        if self.max_x < self.min_x or self.max_y < self.min_y:
            raise SizingError(
                f"Sizing box is inverted: ({self.min_x}, {self.min_y})-({self.max_x}, {self.max_y})"
            )
