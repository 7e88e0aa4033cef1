"""Logging helpers shared by Stacker components."""

from __future__ import annotations

import json
import logging
from typing import Any

LOGGER_NAME = "stacker"


def get_logger(suffix: str | None = None) -> logging.Logger:
    """Return the package logger or one of its children."""

    if not suffix:
        return logging.getLogger(LOGGER_NAME)
    return logging.getLogger(f"{LOGGER_NAME}.{suffix}")


def configure_logging(level: str | int = "INFO") -> None:
    """Attach a stream handler to the ``stacker`` logger.

    Applications that already configure logging should skip this; library
    code never calls it.
    """

    logger = logging.getLogger(LOGGER_NAME)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)
    if not any(getattr(h, "_stacker", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
        handler._stacker = True  # type: ignore[attr-defined]
        logger.addHandler(handler)


def log_event(logger: logging.Logger, level: int, payload: dict[str, Any]) -> None:
    """Emit *payload* as a single-line JSON record."""

    if logger.isEnabledFor(level):
        logger.log(level, json.dumps(payload, separators=(",", ":"), default=str))


__all__ = ["LOGGER_NAME", "configure_logging", "get_logger", "log_event"]
