from __future__ import annotations
import json
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Sequence, Tuple, Union

from canvas import DrawingCanvas, PixelCanvas, SizingCanvas
from extensions import HookRegistry, RuntimeServices, StepContext, build_default_services
from instruction import (
    Blot,
    Call,
    Comment,
    Face,
    Goto,
    Halt,
    Instruction,
    Jump,
    Move,
    MoveForward,
    MoveRel,
    Noop,
    Repeat,
    Return,
    SetColor,
    Turn,
)
from lexer import PenError
from parser import Program, SourceLocation


class PenRuntimeError(PenError):
    """Raised for runtime faults."""

    def __init__(
        self,
        message: str,
        *,
        location: Optional[SourceLocation] = None,
        address: Optional[int] = None,
        rule: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        self.address = address
        self.rule = rule
        self.step_index: Optional[int] = None


class RuntimeControlError(PenRuntimeError):
    """Raised when a program breaks the call/return contract."""


class StepBudgetExceeded(PenRuntimeError):
    """Raised when a run takes more steps than its budget allows."""


ProgramLike = Union[Program, Sequence[Instruction]]


@dataclass
class PenState:
    pen_x: float = 0.0
    pen_y: float = 0.0
    heading: float = 0.0  # radians
    program_counter: int = 0
    executing: bool = True
    call_stack: List[int] = field(default_factory=list)

    def snapshot(self) -> Dict[str, str]:
        return {
            "pen": f"({self.pen_x:.3f}, {self.pen_y:.3f})",
            "heading": f"{math.degrees(self.heading):.3f}",
            "pc": str(self.program_counter),
            "stack": str(len(self.call_stack)),
        }


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    address: int
    rule: str
    location: Optional[SourceLocation]
    pen_snapshot: Optional[Dict[str, str]]


class StateLogger:
    def __init__(self, verbose: bool, history: int = 256) -> None:
        self.verbose = verbose
        # Only the most recent entries are kept; fractal programs run for
        # millions of steps.
        self.entries: Deque[StateEntry] = deque(maxlen=max(1, history))
        self.next_state_index = 0

    def record(
        self,
        *,
        address: int,
        rule: str,
        location: Optional[SourceLocation],
        pen_snapshot: Optional[Dict[str, str]] = None,
    ) -> StateEntry:
        step_index = self.next_state_index
        entry = StateEntry(
            step_index=step_index,
            state_id=f"s_{step_index:06d}",
            address=address,
            rule=rule,
            location=location,
            pen_snapshot=pen_snapshot,
        )
        self.entries.append(entry)
        self.next_state_index += 1
        return entry

    @property
    def last_entry(self) -> Optional[StateEntry]:
        return self.entries[-1] if self.entries else None


def _as_program(program: ProgramLike) -> Program:
    if isinstance(program, Program):
        return program
    return Program.from_instructions(program)


def check_program(program: ProgramLike) -> None:
    """Reject programs whose control flow can never be well-formed."""
    program = _as_program(program)
    length = len(program)
    for address, inst in enumerate(program.instructions):
        if isinstance(inst, (Goto, Call, Repeat)) and inst.address > length:
            raise RuntimeControlError(
                f"{inst.mnemonic} target {inst.address} is outside the program (length {length})",
                location=program.location_of(address),
                address=address,
                rule=inst.mnemonic,
            )
        if isinstance(inst, Repeat) and inst.count < 1:
            raise RuntimeControlError(
                f"LOOP count must be at least 1, got {inst.count}",
                location=program.location_of(address),
                address=address,
                rule=inst.mnemonic,
            )


class Interpreter:
    def __init__(
        self,
        program: ProgramLike,
        canvas: DrawingCanvas,
        *,
        verbose: bool = False,
        services: Optional[RuntimeServices] = None,
        history: int = 256,
    ) -> None:
        self.program = _as_program(program)
        self.canvas = canvas
        self.verbose = verbose
        self.services = services or build_default_services()
        self.hook_registry: HookRegistry = self.services.hook_registry
        self.state = PenState()
        self.logger = StateLogger(verbose=verbose, history=history)

    def run(self) -> PenState:
        self.state = PenState()
        try:
            check_program(self.program)
            self._emit_event("program_start", self, self.program)
            while self.step():
                pass
        except PenRuntimeError as error:
            self._emit_event("on_error", self, error)
            if error.step_index is None and self.logger.last_entry is not None:
                error.step_index = self.logger.last_entry.step_index
            raise
        except Exception as exc:
            self._emit_event("on_error", self, exc)
            # Convert unexpected Python-level exceptions so callers can
            # format them with a pen traceback.
            last = self.logger.last_entry
            wrapped = PenRuntimeError(
                f"Internal interpreter error: {exc}",
                location=last.location if last else None,
                address=last.address if last else None,
                rule="internal",
            )
            if last is not None:
                wrapped.step_index = last.step_index
            raise wrapped from exc
        self._emit_event("program_end", self, self.state)
        return self.state

    def step(self) -> bool:
        """Execute one instruction; return whether the program is still running."""
        state = self.state
        pc = state.program_counter
        if not state.executing or pc >= len(self.program):
            return False
        inst = self.program.instructions[pc]
        location = self.program.location_of(pc)
        self._log_step(inst, pc, location)
        self._emit_event("before_instruction", self, inst, pc)
        new_pc = self._execute_instruction(inst, pc, location)
        state.program_counter = pc + 1 if new_pc is None else new_pc
        self._emit_event("after_instruction", self, inst, pc)
        return state.executing and state.program_counter < len(self.program)

    # returns the new program counter, or None to fall through
    def _execute_instruction(self, inst: Instruction, pc: int, location: Optional[SourceLocation]) -> Optional[int]:
        state = self.state
        if isinstance(inst, (Noop, Comment)):
            return None
        if isinstance(inst, MoveForward):
            self._move_to(
                state.pen_x + inst.distance * math.cos(state.heading),
                state.pen_y + inst.distance * math.sin(state.heading),
            )
            return None
        if isinstance(inst, Turn):
            state.heading += math.radians(inst.degrees)
            return None
        if isinstance(inst, Move):
            self._move_to(float(inst.x), float(inst.y))
            return None
        if isinstance(inst, MoveRel):
            self._move_to(state.pen_x + inst.dx, state.pen_y + inst.dy)
            return None
        if isinstance(inst, Face):
            state.heading = math.radians(inst.degrees)
            return None
        if isinstance(inst, SetColor):
            self.canvas.set_color(inst.color)
            return None
        if isinstance(inst, Blot):
            self.canvas.blot(state.pen_x, state.pen_y)
            return None
        if isinstance(inst, Goto):
            return inst.address
        if isinstance(inst, Jump):
            # offset 0 is the next instruction, -1 repeats this one
            return max(0, pc + inst.offset + 1)
        if isinstance(inst, Call):
            state.call_stack.append(pc + 1)
            return inst.address
        if isinstance(inst, Return):
            if not state.call_stack:
                raise RuntimeControlError(
                    "RTRN with an empty call stack",
                    location=location,
                    address=pc,
                    rule=inst.mnemonic,
                )
            return state.call_stack.pop()
        if isinstance(inst, Repeat):
            if inst.count < 1:
                raise RuntimeControlError(
                    f"LOOP count must be at least 1, got {inst.count}",
                    location=location,
                    address=pc,
                    rule=inst.mnemonic,
                )
            # the body ends in RTRN, which re-enters it until only pc + 1 is left
            state.call_stack.append(pc + 1)
            state.call_stack.extend([inst.address] * (inst.count - 1))
            return inst.address
        if isinstance(inst, Halt):
            state.executing = False
            return None
        raise PenRuntimeError(f"Unknown instruction {inst!r}", location=location, address=pc, rule="internal")

    def _move_to(self, x: float, y: float) -> None:
        self.canvas.move_pen_to(x, y)
        self.state.pen_x = x
        self.state.pen_y = y

    def _emit_event(self, event: str, *args: Any, **kwargs: Any) -> None:
        if not self.hook_registry.has_handlers(event):
            return
        try:
            self.hook_registry.emit(event, *args, **kwargs)
        except PenRuntimeError:
            raise
        except Exception as exc:
            last = self.logger.last_entry
            raise PenRuntimeError(
                f"Extension hook '{event}' failed: {exc}",
                location=last.location if last else None,
                address=last.address if last else None,
                rule="EXT",
            )

    def _log_step(self, inst: Instruction, address: int, location: Optional[SourceLocation]) -> None:
        pen_snapshot = self.state.snapshot() if self.verbose else None
        entry = self.logger.record(
            address=address,
            rule=inst.mnemonic,
            location=location,
            pen_snapshot=pen_snapshot,
        )

        # Run step rules (every N steps) after recording.
        try:
            self.hook_registry.after_step(
                self,
                StepContext(step_index=entry.step_index, rule=inst.mnemonic, address=address, location=location),
            )
        except PenRuntimeError:
            raise
        except Exception as exc:
            raise PenRuntimeError(
                f"Extension step rule failed: {exc}",
                location=location,
                address=address,
                rule="EXT",
            )


def measure(program: ProgramLike, *, services: Optional[RuntimeServices] = None) -> SizingCanvas:
    """Dry-run ``program`` and return the box its pen covered."""
    canvas = SizingCanvas()
    Interpreter(program, canvas, services=services).run()
    return canvas


def render(
    program: ProgramLike,
    *,
    width: Optional[int] = None,
    height: Optional[int] = None,
    offset: Optional[Tuple[int, int]] = None,
    services: Optional[RuntimeServices] = None,
    verbose: bool = False,
) -> PixelCanvas:
    """Run ``program`` onto a new pixel canvas.

    Any of ``width``, ``height`` or ``offset`` left out is taken from a
    sizing pass over the same program, so an auto-sized drawing is never
    clipped.
    """
    program = _as_program(program)
    if width is None or height is None or offset is None:
        sizing = measure(program, services=services)
        auto_width, auto_height = sizing.dimensions()
        width = auto_width if width is None else width
        height = auto_height if height is None else height
        offset = sizing.offsets() if offset is None else offset
    canvas = PixelCanvas(width, height, offset=offset)
    Interpreter(program, canvas, services=services, verbose=verbose).run()
    return canvas


@dataclass
class TracebackFrame:
    name: str
    address: int
    location: Optional[SourceLocation]
    statement: Optional[str]


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def build_frames(self, error: PenRuntimeError) -> List[TracebackFrame]:
        program = self.interpreter.program
        frames: List[TracebackFrame] = []
        name = "<top-level>"
        for return_address in self.interpreter.state.call_stack:
            call_site = return_address - 1
            frames.append(self._frame(name, call_site))
            inst = program.instructions[call_site] if 0 <= call_site < len(program) else None
            if isinstance(inst, (Call, Repeat)):
                name = f"<subroutine {inst.address}>"
        if error.address is not None:
            frames.append(self._frame(name, error.address))
        return frames

    def _frame(self, name: str, address: int) -> TracebackFrame:
        program = self.interpreter.program
        statement = str(program.instructions[address]) if 0 <= address < len(program) else None
        return TracebackFrame(name=name, address=address, location=program.location_of(address), statement=statement)

    def format_text(self, error: PenRuntimeError, verbose: bool) -> str:
        lines = ["Traceback (most recent call last):"]
        for frame in self.build_frames(error):
            if frame.location:
                lines.append(
                    f"  File \"{frame.location.file}\", line {frame.location.line}, address {frame.address}, in {frame.name}"
                )
            else:
                lines.append(f"  Address {frame.address}, in {frame.name}")
            if frame.statement:
                lines.append(f"    {frame.statement}")
        last = self.interpreter.logger.last_entry
        if last is not None:
            lines.append(f"    State log index: {last.step_index}  State id: {last.state_id}")
            if verbose and last.pen_snapshot is not None:
                snapshot = ", ".join(f"{k}={v}" for k, v in last.pen_snapshot.items())
                lines.append(f"    Pen snapshot: {snapshot}")
        rule = error.rule or "runtime"
        lines.append(f"{error.__class__.__name__}: {error.message} (rule: {rule})")
        return "\n".join(lines)

    def to_json(self, error: PenRuntimeError) -> str:
        frames_json: List[Dict[str, Any]] = []
        for index, frame in enumerate(self.build_frames(error)):
            entry: Dict[str, Any] = {"frame_index": index, "name": frame.name, "address": frame.address}
            if frame.location:
                entry["source_location"] = {
                    "file": frame.location.file,
                    "line": frame.location.line,
                    "statement": frame.location.statement,
                }
            if frame.statement:
                entry["instruction"] = frame.statement
            frames_json.append(entry)
        recent = [
            {"step_index": e.step_index, "state_id": e.state_id, "address": e.address, "rule": e.rule}
            for e in list(self.interpreter.logger.entries)[-10:]
        ]
        data = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "rule": error.rule,
                "failing_step_index": error.step_index,
            },
            "traceback": frames_json,
            "recent_steps": recent,
        }
        return json.dumps(data, indent=2)
