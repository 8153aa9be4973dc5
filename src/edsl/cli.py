"""Command-line interface: check and lay out EDSL diagram files."""

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .compiler import EDSLCompiler
from .config import CompilerConfig
from .errors import BuildError, EDSLError, LayoutError, ParseError
from .measure import HeuristicTextMeasurer, PillowTextMeasurer

EXIT_OK = 0
EXIT_PARSE = 1
EXIT_BUILD = 2
EXIT_LAYOUT = 3
EXIT_USAGE = 4


@dataclass
class CliError(Exception):
    message: str
    exit_code: int = EXIT_USAGE
    hint: Optional[str] = None


class UsageError(Exception):
    pass


class FriendlyArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # pragma: no cover - argparse callback
        raise UsageError(message)


def _build_parser() -> argparse.ArgumentParser:
    parser = FriendlyArgumentParser(
        prog="edsl",
        description="Parse, validate and lay out EDSL diagrams.",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log pipeline details"
    )
    parser.add_argument(
        "--measure",
        choices=["pillow", "heuristic"],
        default="pillow",
        help="Text measurement used to size boxes",
    )

    subparsers = parser.add_subparsers(dest="command")

    check_parser = subparsers.add_parser("check", help="Parse and build, report counts")
    check_parser.add_argument("input", help="Input .edsl file ('-' for stdin)")

    layout_parser = subparsers.add_parser(
        "layout", help="Lay out a diagram and write the positioned graph as JSON"
    )
    layout_parser.add_argument("input", help="Input .edsl file ('-' for stdin)")
    layout_parser.add_argument("-o", "--output", help="Output .json path")
    layout_parser.add_argument("--algorithm", help="Layout algorithm (dagre, force)")
    layout_parser.add_argument("--direction", help="Flow direction (TB, BT, LR, RL)")
    layout_parser.add_argument("--seed", type=int, help="Seed for force layout")
    layout_parser.add_argument("--iterations", type=int, help="Force iterations")
    layout_parser.add_argument(
        "--threads",
        type=int,
        default=1,
        help="Lay out root containers on this many threads",
    )
    layout_parser.add_argument(
        "--debug", action="store_true", help="Print a compile trace to stderr"
    )

    return parser


def _read_input(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    input_path = Path(path)
    if not input_path.exists():
        raise CliError(f"input file not found: {input_path}")
    try:
        return input_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CliError(f"failed to read input file: {input_path}", hint=str(exc))


def _write_text(path: Path, content: str) -> None:
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise CliError(f"failed to write output file: {path}", hint=str(exc))


def _compiler_config(args: argparse.Namespace) -> CompilerConfig:
    measure = (
        HeuristicTextMeasurer() if args.measure == "heuristic" else PillowTextMeasurer()
    )
    overrides: Dict[str, Any] = {}
    threads = 1
    if args.command == "layout":
        if args.threads < 1:
            raise CliError("--threads must be at least 1")
        if args.iterations is not None and args.iterations < 0:
            raise CliError("--iterations must not be negative")
        threads = args.threads
        overrides = {
            "algorithm": args.algorithm.lower() if args.algorithm else None,
            "direction": args.direction,
            "seed": args.seed,
            "iterations": args.iterations,
        }
        overrides = {k: v for k, v in overrides.items() if v is not None}
    return CompilerConfig(
        parallel=threads > 1,
        max_threads=threads,
        measure=measure,
        overrides=overrides,
    )


def _handle_check(args: argparse.Namespace) -> int:
    source = _read_input(args.input)
    compiler = EDSLCompiler(_compiler_config(args))
    graph = compiler.build(compiler.parse(source))
    print(
        f"OK: {len(graph.nodes)} nodes, {len(graph.edges)} edges, "
        f"{len(graph.containers)} containers"
    )
    return EXIT_OK


def _handle_layout(args: argparse.Namespace) -> int:
    source = _read_input(args.input)
    compiler = EDSLCompiler(_compiler_config(args))
    graph = compiler.compile(source, debug=args.debug)

    if args.debug:
        trace = compiler.get_trace()
        if trace is not None:
            sys.stderr.write(trace.summary() + "\n")

    payload = json.dumps(graph.to_dict(), indent=2)
    if args.output:
        output_path = Path(args.output)
        _write_text(output_path, payload + "\n")
        print(f"Wrote {output_path}")
    else:
        sys.stdout.write(payload + "\n")
    return EXIT_OK


def _exit_code_for(exc: EDSLError) -> int:
    if isinstance(exc, ParseError):
        return EXIT_PARSE
    if isinstance(exc, BuildError):
        return EXIT_BUILD
    if isinstance(exc, LayoutError):
        return EXIT_LAYOUT
    return EXIT_USAGE


def main(argv: Optional[Iterable[str]] = None) -> int:
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    parser = _build_parser()

    try:
        args = parser.parse_args(raw_argv)
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(levelname)s %(name)s: %(message)s",
        )

        if args.command == "check":
            return _handle_check(args)
        if args.command == "layout":
            return _handle_layout(args)
        raise UsageError("missing subcommand (use one of: check, layout)")
    except UsageError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return EXIT_USAGE
    except CliError as err:
        sys.stderr.write(f"error: {err.message}\n")
        if err.hint:
            sys.stderr.write(f"hint: {err.hint}\n")
        return err.exit_code
    except EDSLError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return _exit_code_for(exc)
    except ValueError as exc:
        # Invalid compiler settings from the command line
        sys.stderr.write(f"error: {exc}\n")
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
