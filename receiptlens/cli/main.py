#!/usr/bin/env python3

import argparse
from collections.abc import Callable, Sequence

from receiptlens.runtime import configure_logging


def _coerce_exit_code(code: object) -> int:
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    return 1


def _run_command(command: Callable[[argparse.Namespace], None], args: argparse.Namespace) -> int:
    """
    Run a command handler that may call sys.exit().

    This keeps process termination centralized in this module's entrypoint.
    """
    try:
        command(args)
    except SystemExit as exc:
        return _coerce_exit_code(exc.code)
    return 0


def _add_input_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("file", nargs="?", default="-", help="OCR text file ('-' or omitted reads stdin)")
    parser.add_argument("--profile", default=None, help="Use this format profile instead of detection")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of a text report")


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="receiptlens",
        description="Extract purchased items from OCR receipt text",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  parse [file|-] [--profile NAME] [--json]
                             Parse OCR text into items
  explain [file|-] [--profile NAME] [--json]
                             Show line types, candidates and rejections per engine
  serve [--host] [--port]    Start the HTTP parse server

Environment:
  RECEIPTLENS_CONFIG_DIR     Directory with formats.toml / vocabulary.toml /
                             item_classifier.toml overrides
  RECEIPTLENS_LOG_LEVEL      DEBUG, INFO, WARNING or ERROR
""",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parse_parser = subparsers.add_parser("parse", help="Parse OCR text into items")
    _add_input_arguments(parse_parser)

    explain_parser = subparsers.add_parser("explain", help="Explain how OCR text was parsed")
    _add_input_arguments(explain_parser)

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP parse server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    configure_logging()

    if args.command == "parse":
        from receiptlens.cli.receipt import cmd_parse

        return _run_command(cmd_parse, args)
    elif args.command == "explain":
        from receiptlens.cli.receipt import cmd_explain

        return _run_command(cmd_explain, args)
    elif args.command == "serve":
        from receiptlens.cli.receipt import cmd_serve

        return _run_command(cmd_serve, args)

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
