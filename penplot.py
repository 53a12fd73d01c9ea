"""penplot command-line entry point."""

from __future__ import annotations
import argparse
import sys
from typing import List, Optional, Sequence, Tuple

from export import save_image
from extensions import ExtensionAPI, RuntimeServices, StepContext, build_default_services, install_step_budget
from instruction import Instruction, format_program
from interpreter import Interpreter, PenRuntimeError, TracebackFormatter, measure, render
from lexer import ParseError
from parser import Program, parse_lsystem, parse_program


def _read_source(path: Optional[str]) -> str:
    if path is None:
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8") as handle:
        return handle.read()


def _build_services(args: argparse.Namespace, program: Program) -> RuntimeServices:
    services = build_default_services()
    if args.max_steps is not None:
        install_step_budget(services, args.max_steps)
    if args.trace:
        ext = ExtensionAPI(services=services, ext_name="trace")

        @ext.every_n_steps(1, name="trace")
        def _trace(_interpreter: Interpreter, ctx: StepContext) -> None:
            print(f"{ctx.address}: {program.instructions[ctx.address]}", file=sys.stderr)

    return services


def _offset(args: argparse.Namespace, program: Program, services: RuntimeServices) -> Optional[Tuple[int, int]]:
    if args.offset_x is None and args.offset_y is None:
        return None
    if args.offset_x is None or args.offset_y is None:
        # the axis left out comes from a sizing pass
        auto_x, auto_y = measure(program, services=services).offsets()
        return (auto_x if args.offset_x is None else args.offset_x, auto_y if args.offset_y is None else args.offset_y)
    return (args.offset_x, args.offset_y)


def _render_to_file(program: Program, output: str, args: argparse.Namespace) -> int:
    services = _build_services(args, program)
    # Keep the last interpreter so a failure can be shown with its traceback.
    started: List[Interpreter] = []
    services.hook_registry.on_event(
        "program_start", lambda interpreter, _program: started.append(interpreter), priority=100, ext_name="cli"
    )
    try:
        canvas = render(
            program,
            width=args.width,
            height=args.height,
            offset=_offset(args, program, services),
            services=services,
            verbose=args.verbose,
        )
    except PenRuntimeError as error:
        if started:
            formatter = TracebackFormatter(started[-1])
            print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
            if args.traceback_json:
                print(formatter.to_json(error), file=sys.stderr)
        else:
            print(f"{error.__class__.__name__}: {error.message}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"Invalid canvas settings: {exc}", file=sys.stderr)
        return 1
    except MemoryError:
        print("Invalid canvas settings: canvas too large to allocate", file=sys.stderr)
        return 1
    try:
        save_image(output, canvas)
    except OSError as exc:
        print(f"Failed to write {output}: {exc}", file=sys.stderr)
        return 1
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    filename = args.input or "<stdin>"
    try:
        source_text = _read_source(args.input)
    except OSError as exc:
        print(f"Failed to read {filename}: {exc}", file=sys.stderr)
        return 1
    try:
        program = parse_program(source_text, filename)
    except ParseError as error:
        print(f"ParseError: {error}", file=sys.stderr)
        return 1
    return _render_to_file(program, args.output, args)


def _write_program(code: Sequence[Instruction], path: Optional[str]) -> None:
    text = format_program(code)
    if path is None:
        sys.stdout.write(text)
        return
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(text)


def cmd_fractal(args: argparse.Namespace) -> int:
    filename = args.input or "<stdin>"
    try:
        lsystem_text = _read_source(args.input)
    except OSError as exc:
        print(f"Failed to read {filename}: {exc}", file=sys.stderr)
        return 1
    try:
        l_system = parse_lsystem(lsystem_text, filename)
    except ParseError as error:
        print(f"L system could not be parsed: {error}", file=sys.stderr)
        return 1
    code = l_system.run(args.count)
    if args.output is not None or args.render is None:
        try:
            _write_program(code, args.output)
        except OSError as exc:
            print(f"Failed to write {args.output}: {exc}", file=sys.stderr)
            return 1
    if args.render is not None:
        return _render_to_file(Program.from_instructions(code, filename), args.render, args)
    return 0


def _add_render_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--width", type=int, default=None, help="Canvas width (auto-sized when omitted)")
    parser.add_argument("--height", type=int, default=None, help="Canvas height (auto-sized when omitted)")
    parser.add_argument("--offset-x", type=int, default=None, help="Horizontal translation applied before drawing")
    parser.add_argument("--offset-y", type=int, default=None, help="Vertical translation applied before drawing")
    parser.add_argument("--max-steps", type=int, default=None, help="Abort a run after this many steps")
    parser.add_argument("--trace", action="store_true", help="Print every executed instruction to stderr")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit pen snapshots in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")


def build_argparser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="penplot", description="A pseudo-assembly turtle graphics language.")
    sub = parser.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser("run", help="Run a program and render its output to an image file")
    run_p.add_argument("-i", "--input", default=None, help="Source file to run (stdin when omitted)")
    run_p.add_argument("-o", "--output", required=True, help="Image file to write (.png or .bmp)")
    _add_render_options(run_p)
    run_p.set_defaults(func=cmd_run)

    fractal_p = sub.add_parser("fractal", help="Expand an L-system into program text")
    fractal_p.add_argument("-i", "--input", default=None, help="L-system source (stdin when omitted)")
    fractal_p.add_argument("-o", "--output", default=None, help="File for the generated program (stdout when omitted)")
    fractal_p.add_argument("-c", "--count", type=int, required=True, help="Number of rewrite iterations")
    fractal_p.add_argument("--render", default=None, help="Also render the generated program to this image file")
    _add_render_options(fractal_p)
    fractal_p.set_defaults(func=cmd_fractal)
    return parser


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = build_argparser()
    args = parser.parse_args(argv)
    if getattr(args, "count", 0) < 0:
        print("--count must be non-negative", file=sys.stderr)
        return 1
    if args.max_steps is not None and args.max_steps <= 0:
        print("--max-steps must be positive", file=sys.stderr)
        return 1
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(run_cli())
