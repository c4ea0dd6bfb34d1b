"""Logging helpers."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
NOISY_LOGGERS = ("urllib3", "charset_normalizer")


def configure_logging(verbose: bool = False, log_file: str | None = None) -> None:
    """Configure application logging once for CLI usage.

    The scheduler loop is long-running, so an optional file handler is attached
    next to the console one when ``log_file`` is given.
    """
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)
    # Connection pool chatter drowns per-source messages in debug mode.
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger() -> logging.Logger:
    """Return the module logger used across the package."""
    return logging.getLogger("sms_patrol")
