from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from instruction import Instruction, MoveForward, Turn

Rules = Dict[Instruction, List[Instruction]]


def rewrite(instructions: Sequence[Instruction], rules: Mapping[Instruction, Sequence[Instruction]]) -> List[Instruction]:
    """Apply one rewrite pass.

    Each instruction that is an exact key of ``rules`` is replaced by a copy of
    its replacement sequence; everything else is kept. Spliced-in
    instructions are not rewritten again within the same pass.
    """
    result: List[Instruction] = []
    for inst in instructions:
        replacement = rules.get(inst)
        if replacement is None:
            result.append(inst)
        else:
            result.extend(replacement)
    return result


@dataclass
class LSystem:
    seed: List[Instruction]
    rules: Rules
    aliases: Optional[Rules] = field(default=None)

    def evaluate(self, instructions: Sequence[Instruction]) -> List[Instruction]:
        return rewrite(instructions, self.rules)

    def iterate(self, count: int) -> List[Instruction]:
        if count < 0:
            raise ValueError("L-system iteration count must be non-negative")
        acc = list(self.seed)
        for _ in range(count):
            acc = self.evaluate(acc)
        return acc

    def run(self, count: int) -> List[Instruction]:
        """Iterate ``count`` times, then translate placeholders through the aliases once."""
        program = self.iterate(count)
        if self.aliases is not None:
            program = rewrite(program, self.aliases)
        return program


def koch_curve(length: int, angle: int) -> LSystem:
    # quadratic Koch curve: F -> F - F + F + F - F
    walk = MoveForward(length)
    return LSystem(
        seed=[walk],
        rules={
            walk: [
                walk,
                Turn(-angle),
                walk,
                Turn(angle),
                walk,
                Turn(angle),
                walk,
                Turn(-angle),
                walk,
            ]
        },
    )
