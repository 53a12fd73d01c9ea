from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple


def _to_channel(value: float) -> int:
    v = int(value + 0.5)
    if v < 0:
        return 0
    if v > 255:
        return 255
    return v


@dataclass(frozen=True)
class Color:
    """An RGBA color with 8-bit channels."""

    red: int
    green: int
    blue: int
    alpha: int

    def __post_init__(self) -> None:
        for name in ("red", "green", "blue", "alpha"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"Color {name} must be an integer, got {value!r}")
            if value < 0 or value > 255:
                raise ValueError(f"Color {name} must be in [0, 255], got {value}")

    def __str__(self) -> str:
        return f"#{self.red:02X}{self.green:02X}{self.blue:02X}{self.alpha:02X}"

    @classmethod
    def transparent(cls) -> "Color":
        return cls(0, 0, 0, 0)

    @classmethod
    def from_ints(cls, red: int, green: int, blue: int, alpha: int = 255) -> "Color":
        return cls(int(red), int(green), int(blue), int(alpha))

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.red, self.green, self.blue, self.alpha)

    @staticmethod
    def overlay(top: "Color", bottom: "Color") -> "Color":
        """Composite ``top`` over ``bottom`` (Porter-Duff "over").

        The operation is order dependent: ``overlay(a, b)`` paints ``a`` on
        top of an existing ``b``. A fully transparent top leaves the bottom
        untouched, so two transparent colors never reach the division.
        """
        if top.alpha == 0:
            return bottom
        top_a = top.alpha / 255.0
        bottom_a = bottom.alpha / 255.0
        inv_a = 1.0 - top_a
        new_a = top_a + bottom_a * inv_a
        if new_a <= 0.0:
            return TRANSPARENT

        def mix(t: int, b: int) -> int:
            return _to_channel((t * top_a + b * bottom_a * inv_a) / new_a)

        return Color(
            mix(top.red, bottom.red),
            mix(top.green, bottom.green),
            mix(top.blue, bottom.blue),
            _to_channel(new_a * 255.0),
        )


TRANSPARENT = Color(0, 0, 0, 0)
