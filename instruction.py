"""The closed set of pen instructions.

Every instruction is a frozen dataclass so equal instructions hash equally;
L-system rules are keyed by exact instruction values. ``str()`` yields the
canonical program text for the instruction, which parses back to an equal
value.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import ClassVar, Iterable

from color import TRANSPARENT, Color


class Instruction:
    mnemonic: ClassVar[str] = ""

    def __str__(self) -> str:
        return self.mnemonic


@dataclass(frozen=True)
class Noop(Instruction):
    mnemonic: ClassVar[str] = "NOOP"


@dataclass(frozen=True)
class Move(Instruction):
    mnemonic: ClassVar[str] = "MOVE"
    x: int
    y: int

    def __str__(self) -> str:
        return f"MOVE {self.x} {self.y}"


@dataclass(frozen=True)
class MoveRel(Instruction):
    mnemonic: ClassVar[str] = "SHFT"
    dx: int
    dy: int

    def __str__(self) -> str:
        return f"SHFT {self.dx} {self.dy}"


@dataclass(frozen=True)
class MoveForward(Instruction):
    mnemonic: ClassVar[str] = "WALK"
    distance: int

    def __str__(self) -> str:
        return f"WALK {self.distance}"


@dataclass(frozen=True)
class Face(Instruction):
    mnemonic: ClassVar[str] = "FACE"
    degrees: int

    def __str__(self) -> str:
        return f"FACE {self.degrees}"


@dataclass(frozen=True)
class Turn(Instruction):
    mnemonic: ClassVar[str] = "TURN"
    degrees: int

    def __str__(self) -> str:
        return f"TURN {self.degrees}"


@dataclass(frozen=True)
class SetColor(Instruction):
    mnemonic: ClassVar[str] = "RGBA"
    color: Color

    def __str__(self) -> str:
        if self.color == TRANSPARENT:
            return "BLNK"
        c = self.color
        return f"RGBA {c.red} {c.green} {c.blue} {c.alpha}"


@dataclass(frozen=True)
class Blot(Instruction):
    mnemonic: ClassVar[str] = "BLOT"


@dataclass(frozen=True)
class Comment(Instruction):
    mnemonic: ClassVar[str] = ";"
    text: str

    def __str__(self) -> str:
        # '@' and edge whitespace do not survive the '; text' form
        if len(self.text) == 1 and (self.text == "@" or self.text.strip() != self.text):
            return f"<{self.text}>"
        return f"; {self.text}"


@dataclass(frozen=True)
class Goto(Instruction):
    mnemonic: ClassVar[str] = "GOTO"
    address: int

    def __str__(self) -> str:
        return f"GOTO {self.address}"


@dataclass(frozen=True)
class Jump(Instruction):
    mnemonic: ClassVar[str] = "JUMP"
    offset: int

    def __str__(self) -> str:
        return f"JUMP {self.offset}"


@dataclass(frozen=True)
class Call(Instruction):
    mnemonic: ClassVar[str] = "CALL"
    address: int

    def __str__(self) -> str:
        return f"CALL {self.address}"


@dataclass(frozen=True)
class Return(Instruction):
    mnemonic: ClassVar[str] = "RTRN"


@dataclass(frozen=True)
class Repeat(Instruction):
    mnemonic: ClassVar[str] = "LOOP"
    address: int
    count: int

    def __str__(self) -> str:
        return f"LOOP {self.address} {self.count}"


@dataclass(frozen=True)
class Halt(Instruction):
    mnemonic: ClassVar[str] = "HALT"


def format_program(instructions: Iterable[Instruction]) -> str:
    lines = [str(inst) for inst in instructions]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"
