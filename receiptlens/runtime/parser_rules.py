"""Runtime loader for receipt parser rules."""

from __future__ import annotations

from collections.abc import Iterable
from functools import lru_cache
from pathlib import Path
from typing import Any

from receiptlens.receipt.format_profiles import RuleConfigError
from receiptlens.receipt.orchestrator import ReceiptParser
from receiptlens.receipt.rule_set import ParserRuleSet, build_parser_rule_set
from receiptlens.runtime.logging import get_logger
from receiptlens.runtime.paths import get_paths

logger = get_logger(__name__)


def _load_toml(path: Path) -> dict[str, Any]:
    """Load TOML file and return parsed dict; missing files map to empty dict."""
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore[no-redef]

    if not path.exists():
        return {}

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise RuleConfigError(f"{path}: {exc}") from exc
    return data if isinstance(data, dict) else {}


def _layered(bundled: Path, user: Path) -> list[Path]:
    """Bundled file first, then the user file, skipping a path seen twice."""
    seen: set[Path] = set()
    files: list[Path] = []
    for candidate in (bundled, user):
        resolved = candidate.resolve()
        if resolved in seen:
            continue
        seen.add(resolved)
        files.append(candidate)
    return files


def _load_layers(paths: Iterable[Path]) -> tuple[dict[str, Any], ...]:
    layers = []
    for path in paths:
        data = _load_toml(path)
        if data:
            logger.debug("Loaded rule layer %s", path)
        layers.append(data)
    return tuple(layers)


@lru_cache(maxsize=8)
def load_parser_rule_set(
    format_paths: tuple[str, ...] | None = None,
    vocabulary_paths: tuple[str, ...] | None = None,
    classifier_paths: tuple[str, ...] | None = None,
) -> ParserRuleSet:
    """Load parser rules from runtime-configured files into one frozen rule set.

    Each argument, when given, replaces the default layering for that rule
    kind. The default is the bundled file followed by the user file in the
    configuration directory; missing files are empty layers.

    Raises:
        RuleConfigError: if any layer is malformed.
    """
    p = get_paths()

    if format_paths is None:
        format_files = _layered(p.default_format_rules, p.format_rules)
    else:
        format_files = [Path(path) for path in format_paths]

    if vocabulary_paths is None:
        vocabulary_files = _layered(p.default_vocabulary_rules, p.vocabulary_rules)
    else:
        vocabulary_files = [Path(path) for path in vocabulary_paths]

    if classifier_paths is None:
        classifier_files = _layered(p.default_item_classifier_rules, p.item_classifier_rules)
    else:
        classifier_files = [Path(path) for path in classifier_paths]

    rule_set = build_parser_rule_set(
        format_configs=_load_layers(format_files),
        vocabulary_configs=_load_layers(vocabulary_files),
        classifier_configs=_load_layers(classifier_files),
    )
    logger.debug(
        "Built rule set with engines %s",
        ", ".join(engine.name for engine in rule_set.engines),
    )
    return rule_set


def get_default_parser() -> ReceiptParser:
    """Return a parser over the default (bundled + user) rule set."""
    return ReceiptParser(load_parser_rule_set())
