"""Centralized path management for receiptlens.

Bundled default rules ship inside the package; user overrides live in a
configuration directory that defaults to ``~/.config/receiptlens`` and can be
moved with the RECEIPTLENS_CONFIG_DIR environment variable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

CONFIG_DIR_ENV = "RECEIPTLENS_CONFIG_DIR"


def _get_package_root() -> Path:
    # receiptlens/runtime/paths.py -> receiptlens/runtime -> receiptlens
    return Path(__file__).resolve().parent.parent


def _get_config_dir() -> Path:
    configured = os.environ.get(CONFIG_DIR_ENV, "").strip()
    if configured:
        return Path(configured).expanduser()
    return Path("~/.config/receiptlens").expanduser()


@dataclass
class ProjectPaths:
    """Container for bundled rule files and user configuration paths."""

    package_root: Path = field(default_factory=_get_package_root)
    config: Path = field(default_factory=_get_config_dir)

    def __post_init__(self) -> None:
        self.package_root = self.package_root.resolve()

    # --- Bundled defaults ---
    @property
    def bundled_rules(self) -> Path:
        """Directory of rule files shipped with the package."""
        return self.package_root / "receipt" / "rules"

    @property
    def default_format_rules(self) -> Path:
        return self.bundled_rules / "default_formats.toml"

    @property
    def default_vocabulary_rules(self) -> Path:
        return self.bundled_rules / "default_vocabulary.toml"

    @property
    def default_item_classifier_rules(self) -> Path:
        return self.bundled_rules / "default_item_classifier.toml"

    # --- User overrides ---
    @property
    def format_rules(self) -> Path:
        """User format profiles and engines, layered over the defaults."""
        return self.config / "formats.toml"

    @property
    def vocabulary_rules(self) -> Path:
        """User keyword dictionaries, unioned with the defaults."""
        return self.config / "vocabulary.toml"

    @property
    def item_classifier_rules(self) -> Path:
        """User item categorization rules, consulted before the defaults."""
        return self.config / "item_classifier.toml"


_paths: ProjectPaths | None = None


def get_paths() -> ProjectPaths:
    """Get the singleton ProjectPaths instance.

    Returns:
        The global ProjectPaths instance.
    """
    global _paths
    if _paths is None:
        _paths = ProjectPaths()
    return _paths


def reset_paths() -> None:
    """Forget the cached instance so the next get_paths() re-reads the environment."""
    global _paths
    _paths = None
