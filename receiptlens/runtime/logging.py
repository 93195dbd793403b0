"""Centralized logging configuration for receiptlens.

Usage:
    from receiptlens.runtime import get_logger
    logger = get_logger(__name__)

    logger.debug("Detailed debug info")
    logger.info("General info")

Library modules under receiptlens.receipt and receiptlens.domain log through
``logging.getLogger(__name__)``; their names already sit in the
``receiptlens`` namespace, so configuring it here covers them too.

Environment variables:
    RECEIPTLENS_LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR). Default: INFO
"""

import logging
import os
import sys

LOGGER_NAMESPACE = "receiptlens"

DEFAULT_LOG_LEVEL = logging.INFO

LOG_FORMAT = "%(levelname)s [%(name)s] %(message)s"
LOG_FORMAT_DEBUG = "%(levelname)s [%(name)s:%(lineno)d] %(message)s"

LEVEL_NAMES = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}

_logging_configured = False


def level_from_env(default: int = DEFAULT_LOG_LEVEL) -> int:
    """Read RECEIPTLENS_LOG_LEVEL; unknown or empty values fall back to default."""
    env_level = os.environ.get("RECEIPTLENS_LOG_LEVEL", "").upper()
    return LEVEL_NAMES.get(env_level, default)


def configure_logging(level: int | None = None) -> None:
    """Attach a stderr handler to the receiptlens namespace once.

    Args:
        level: Log level to use. If None, reads RECEIPTLENS_LOG_LEVEL or
               uses DEFAULT_LOG_LEVEL.
    """
    global _logging_configured

    if _logging_configured:
        if level is not None:
            set_log_level(level)
        return

    if level is None:
        level = level_from_env()

    log_format = LOG_FORMAT_DEBUG if level == logging.DEBUG else LOG_FORMAT
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(log_format))

    root_logger = logging.getLogger(LOGGER_NAMESPACE)
    root_logger.setLevel(level)
    root_logger.addHandler(handler)
    root_logger.propagate = False

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the receiptlens namespace.

    Args:
        name: Module name, typically __name__

    Returns:
        Configured logger instance
    """
    configure_logging()

    if name == LOGGER_NAMESPACE or name.startswith(f"{LOGGER_NAMESPACE}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


def set_log_level(level: int) -> None:
    """Change the log level at runtime.

    Args:
        level: New log level (e.g., logging.DEBUG)
    """
    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(level)

    for handler in logger.handlers:
        if level == logging.DEBUG:
            handler.setFormatter(logging.Formatter(LOG_FORMAT_DEBUG))
        else:
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
