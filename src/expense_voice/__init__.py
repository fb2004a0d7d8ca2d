"""cuenta-voz: spoken expense capture backed by a local SQLite store.

Importing the package attaches a single stderr handler to the ``expense_voice``
logger; modules obtain their loggers through :func:`get_logger`.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_PACKAGE_LOGGER = "expense_voice"


def _known_level(level: str | None) -> str | None:
    normalized = (level or "").strip().upper()
    return normalized if normalized in logging.getLevelNamesMapping() else None


def _configure_package_logger() -> None:
    logger = logging.getLogger(_PACKAGE_LOGGER)
    if logger.handlers:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(_known_level(os.getenv("LOG_LEVEL")) or "INFO")
    logger.propagate = False


def get_logger(component: Optional[str] = None) -> logging.Logger:
    """Return ``expense_voice`` or its ``expense_voice.<component>`` child."""
    if not component:
        return logging.getLogger(_PACKAGE_LOGGER)
    return logging.getLogger(f"{_PACKAGE_LOGGER}.{component.strip('.')}")


def set_log_level(level: str) -> None:
    """Apply the configured level to every package logger."""
    normalized = _known_level(level)
    if normalized is None:
        raise ValueError(f"Unknown log level: {level!r}")
    logging.getLogger(_PACKAGE_LOGGER).setLevel(normalized)


_configure_package_logger()

__all__ = ["get_logger", "set_log_level"]
