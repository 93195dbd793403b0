"""Runtime infrastructure for receiptlens.

This package provides process/runtime services including:
- Logging setup via get_logger()
- Path resolution via get_paths(), ProjectPaths
- Rule loading via load_parser_rule_set(), get_default_parser()

The HTTP wrapper lives in receiptlens.runtime.parse_server and is imported
on demand so the library does not pull in FastAPI.

Usage:
    from receiptlens.runtime import get_logger, load_parser_rule_set

    logger = get_logger(__name__)
    rule_set = load_parser_rule_set()
"""

from receiptlens.runtime.logging import (
    DEFAULT_LOG_LEVEL,
    LOG_FORMAT,
    LOG_FORMAT_DEBUG,
    configure_logging,
    get_logger,
    set_log_level,
)
from receiptlens.runtime.parser_rules import get_default_parser, load_parser_rule_set
from receiptlens.runtime.paths import (
    ProjectPaths,
    get_paths,
    reset_paths,
)

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "set_log_level",
    "DEFAULT_LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_FORMAT_DEBUG",
    # Rules
    "load_parser_rule_set",
    "get_default_parser",
    # Paths
    "get_paths",
    "reset_paths",
    "ProjectPaths",
]
