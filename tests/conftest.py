"""Shared pytest fixtures for receiptlens tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from receiptlens.receipt.orchestrator import ReceiptParser
from receiptlens.receipt.rule_set import ParserRuleSet
from receiptlens.runtime.parser_rules import load_parser_rule_set
from receiptlens.runtime.paths import reset_paths

RULES_DIR = Path(__file__).resolve().parents[1] / "receiptlens" / "receipt" / "rules"


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point the user config directory at an empty temp dir for every test."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    monkeypatch.setenv("RECEIPTLENS_CONFIG_DIR", str(config_dir))
    reset_paths()
    load_parser_rule_set.cache_clear()
    yield config_dir
    reset_paths()
    load_parser_rule_set.cache_clear()


@pytest.fixture
def rule_set() -> ParserRuleSet:
    """Bundled rules only."""
    return load_parser_rule_set(
        format_paths=(str(RULES_DIR / "default_formats.toml"),),
        vocabulary_paths=(str(RULES_DIR / "default_vocabulary.toml"),),
        classifier_paths=(str(RULES_DIR / "default_item_classifier.toml"),),
    )


@pytest.fixture
def parser(rule_set: ParserRuleSet) -> ReceiptParser:
    return ReceiptParser(rule_set)
