"""Receipt command handlers used by the unified CLI."""

import argparse
import json
import sys
from pathlib import Path

from receiptlens.receipt.format_profiles import RuleConfigError
from receiptlens.receipt.formatter import (
    explanation_to_dict,
    format_explanation,
    format_parse_result,
    result_to_dict,
)
from receiptlens.receipt.orchestrator import ReceiptParser
from receiptlens.runtime import get_logger, load_parser_rule_set

logger = get_logger(__name__)


def _read_text(source: str | None) -> str:
    """Read OCR text from a file path, or stdin for None / "-"."""
    if source is None or source == "-":
        return sys.stdin.read()
    path = Path(source)
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Cannot read %s: %s", path, exc)
        print(f"Error: cannot read {path}: {exc}")
        sys.exit(1)


def _build_parser() -> ReceiptParser:
    try:
        return ReceiptParser(load_parser_rule_set())
    except RuleConfigError as exc:
        logger.error("Invalid parser rules: %s", exc)
        print(f"Error: invalid parser rules: {exc}")
        sys.exit(1)


def cmd_parse(args: argparse.Namespace) -> None:
    """Parse OCR text and print the items."""
    text = _read_text(args.file)
    result = _build_parser().parse(text, profile_hint=args.profile)

    if args.json:
        print(json.dumps(result_to_dict(result), ensure_ascii=False, indent=2))
        return
    print(format_parse_result(result))


def cmd_explain(args: argparse.Namespace) -> None:
    """Print per-engine line classifications, candidates and rejections."""
    text = _read_text(args.file)
    explanation = _build_parser().explain(text, profile_hint=args.profile)

    if args.json:
        print(json.dumps(explanation_to_dict(explanation), ensure_ascii=False, indent=2))
        return
    print(format_explanation(explanation))


def cmd_serve(args: argparse.Namespace) -> None:
    """Start the FastAPI server for parsing receipt text."""
    import uvicorn

    from receiptlens.runtime import parse_server as server

    print(f"Starting receipt parser on {args.host}:{args.port}")
    print(f"Endpoints: http://{args.host}:{args.port}/parse | /explain | /health")
    print("Press Ctrl+C to stop")

    uvicorn.run(server.app, host=args.host, port=args.port)
