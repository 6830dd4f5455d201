"""Command-line interface for archdraw compile workflows."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .archdraw import archdraw
from .config import DIRECTIONS, LAYOUT_ENGINES
from .errors import ArchdrawError, LayoutFailure
from .icons import default_icons
from .resources import load_example

SUBCOMMANDS = "compile, icons, example"
CLI_DEFAULTS = {"iconSize": 80}


@dataclass
class CliError(Exception):
    code: str
    message: str
    hint: Optional[str] = None
    exit_code: int = 1
    file: Optional[str] = None
    retryable: bool = True


class UsageError(Exception):
    pass


class FriendlyArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # pragma: no cover - argparse callback
        raise UsageError(message)


def _build_parser() -> argparse.ArgumentParser:
    parser = FriendlyArgumentParser(
        prog="archdraw",
        description="Lay out architecture diagram documents and draw them as SVG.",
    )
    parser.add_argument("--error-format", choices=["text", "json"], default="text")
    parser.add_argument("--debug", action="store_true")

    subparsers = parser.add_subparsers(dest="command")

    compile_parser = subparsers.add_parser("compile", help="Compile a JSON diagram document to SVG")
    compile_parser.add_argument("input", nargs="?", help="Input .json document")
    compile_parser.add_argument("--text", help="Raw JSON document")
    compile_parser.add_argument("--stdout", action="store_true", help="Write SVG to stdout")
    compile_parser.add_argument("-o", "--output", help="Output .svg path")
    compile_parser.add_argument("--config", help="JSON file with render options")
    compile_parser.add_argument("--icon-size", type=float, default=None, help="Icon size in pixels (default 80)")
    compile_parser.add_argument("--layout-engine", choices=list(LAYOUT_ENGINES))
    compile_parser.add_argument("--direction", choices=list(DIRECTIONS))

    subparsers.add_parser("icons", help="List built-in icon names")
    subparsers.add_parser("example", help="Print an example diagram document")

    return parser


def _read_input(path: Optional[str], text: Optional[str]) -> tuple[str, str, Optional[Path]]:
    if path and text is not None:
        raise CliError(
            "E_ARGS",
            "--text cannot be combined with file input",
            hint="Use either FILE or --text.",
            exit_code=2,
        )

    if text is not None:
        return text, "<text>", None

    if path:
        input_path = Path(path)
        if not input_path.exists():
            raise CliError(
                "E_IO_READ",
                f"input file not found: {input_path}",
                exit_code=2,
                file=str(input_path),
            )
        try:
            return input_path.read_text(), str(input_path), input_path
        except OSError as exc:
            raise CliError(
                "E_IO_READ",
                f"failed to read input file: {input_path}",
                hint=str(exc),
                exit_code=2,
                file=str(input_path),
            )

    if sys.stdin.isatty():
        raise CliError(
            "E_ARGS",
            "no input provided",
            hint="Use compile with FILE, --text, or pipe stdin.",
            exit_code=2,
        )

    data = sys.stdin.read()
    if not data.strip():
        raise CliError(
            "E_ARGS",
            "stdin was empty",
            hint="Pipe a JSON diagram document into stdin.",
            exit_code=2,
        )
    return data, "<stdin>", None


def _load_options(args: argparse.Namespace) -> Dict[str, Any]:
    options: Dict[str, Any] = {}
    if args.config:
        config_path = Path(args.config)
        try:
            loaded = json.loads(config_path.read_text())
        except OSError as exc:
            raise CliError(
                "E_IO_READ",
                f"failed to read config file: {config_path}",
                hint=str(exc),
                exit_code=2,
                file=str(config_path),
            )
        except json.JSONDecodeError as exc:
            raise CliError(
                "E_CONFIG_INVALID",
                f"config file is not valid JSON: {exc}",
                exit_code=3,
                file=str(config_path),
            )
        if not isinstance(loaded, dict):
            raise CliError(
                "E_CONFIG_INVALID",
                "config file must contain a JSON object",
                exit_code=3,
                file=str(config_path),
            )
        options.update(loaded)
    if args.icon_size is not None:
        options["iconSize"] = args.icon_size
    if args.layout_engine:
        options["layoutEngine"] = args.layout_engine
    if args.direction:
        options["direction"] = args.direction
    return options


def _write_text(path: Path, content: str) -> None:
    try:
        path.write_text(content)
    except OSError as exc:
        raise CliError(
            "E_IO_WRITE",
            f"failed to write output file: {path}",
            hint=str(exc),
            exit_code=4,
            file=str(path),
        )


def _error_from_exception(exc: Exception) -> CliError:
    if isinstance(exc, CliError):
        return exc
    if isinstance(exc, LayoutFailure):
        return CliError(
            exc.code,
            exc.message,
            hint="Install Graphviz or use --layout-engine layered.",
            exit_code=5,
            retryable=True,
        )
    if isinstance(exc, ArchdrawError):
        return CliError(
            exc.code,
            exc.message,
            hint="Check diagram ids, references and render options.",
            exit_code=3,
            retryable=True,
        )
    return CliError(
        "E_INTERNAL",
        str(exc) or exc.__class__.__name__,
        hint="Re-run with --debug to see traceback.",
        exit_code=1,
        retryable=False,
    )


def _emit_error(err: CliError, *, error_format: str) -> None:
    if error_format == "json":
        payload = {
            "ok": False,
            "code": err.code,
            "message": err.message,
            "file": err.file,
            "hint": err.hint,
            "retryable": err.retryable,
        }
        sys.stderr.write(json.dumps(payload) + "\n")
        return

    sys.stderr.write(f"error[{err.code}]: {err.message}\n")
    if err.hint:
        sys.stderr.write(f"hint: {err.hint}\n")


def _handle_compile(args: argparse.Namespace) -> int:
    if args.stdout and args.output:
        raise CliError(
            "E_ARGS",
            "--stdout and --output are mutually exclusive",
            hint="Choose either --stdout or --output.",
            exit_code=2,
        )

    source, source_name, source_path = _read_input(args.input, args.text)
    options = _load_options(args)
    try:
        svg_text = archdraw(source, options, defaults=CLI_DEFAULTS)
    except ArchdrawError as exc:
        err = _error_from_exception(exc)
        err.file = source_name
        raise err from exc

    if args.stdout or (source_path is None and not args.output):
        sys.stdout.write(svg_text)
        if not svg_text.endswith("\n"):
            sys.stdout.write("\n")
        return 0

    output_path = Path(args.output) if args.output else source_path.with_suffix(".svg")
    _write_text(output_path, svg_text)
    print(f"Wrote {output_path}")
    return 0


def main(argv: Optional[Iterable[str]] = None) -> int:
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    parser = _build_parser()

    if not raw_argv:
        err = CliError(
            "E_ARGS",
            "missing subcommand",
            hint=f"Use one of: {SUBCOMMANDS}.",
            exit_code=2,
        )
        _emit_error(err, error_format="text")
        return err.exit_code

    debug_enabled = "--debug" in raw_argv or os.getenv("ARCHDRAW_DEBUG") == "1"
    if debug_enabled:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr)
    error_format = "text"
    if "--error-format" in raw_argv:
        idx = raw_argv.index("--error-format")
        if idx + 1 < len(raw_argv):
            error_format = raw_argv[idx + 1]

    try:
        args = parser.parse_args(raw_argv)
        error_format = args.error_format

        if args.command == "compile":
            return _handle_compile(args)
        if args.command == "icons":
            for name in default_icons().names():
                print(name)
            return 0
        if args.command == "example":
            print(load_example())
            return 0

        raise CliError(
            "E_ARGS",
            "missing subcommand",
            hint=f"Use one of: {SUBCOMMANDS}.",
            exit_code=2,
        )
    except UsageError as exc:
        err = CliError(
            "E_ARGS",
            str(exc),
            hint=f"Use subcommands: {SUBCOMMANDS}.",
            exit_code=2,
        )
        _emit_error(err, error_format=error_format)
        return err.exit_code
    except Exception as exc:  # pragma: no cover - exercised in integration tests
        err = _error_from_exception(exc)
        _emit_error(err, error_format=error_format)
        if debug_enabled:
            traceback.print_exc(file=sys.stderr)
        return err.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
