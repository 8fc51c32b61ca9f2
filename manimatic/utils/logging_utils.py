"""Logging setup helpers."""

import logging
import os
import sys
from typing import Optional

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_DEBUG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(filename)s:%(lineno)d]: %(message)s"

# Chatty third-party loggers, kept at WARNING unless debugging.
_NOISY = ("httpx", "httpcore", "aiohttp.access")


def configure_logging(level_name: Optional[str] = None) -> None:
    """
    Configure root logging on stderr, leaving stdout to the CLI.

    Controlled by LOG_LEVEL env var (default: INFO) unless a level is passed.
    Safe to call again once the config is loaded: only the level changes.
    """
    level_name = (level_name or os.getenv("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    noisy_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in _NOISY:
        logging.getLogger(name).setLevel(noisy_level)

    # Avoid clobbering existing handlers (e.g., tests or embedding apps).
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        return

    logging.basicConfig(
        level=level,
        format=_DEBUG_FORMAT if level <= logging.DEBUG else _FORMAT,
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
