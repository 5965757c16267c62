"""Contract for runtime telemetry and console logging setup."""

from __future__ import annotations

import logging
from typing import Protocol

from rich.logging import RichHandler


class Telemetry(Protocol):
    """Reports session and conversation events to a configured sink."""

    def emit(self, event_name: str, payload: dict) -> None:
        """Publish telemetry event to the configured sink."""


class LoggingTelemetry:
    """Telemetry sink that forwards events to a logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("qonvo.telemetry")

    def emit(self, event_name: str, payload: dict) -> None:
        self._logger.debug(event_name, extra={"payload": payload})


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a rich console handler to the ``qonvo`` logger tree."""
    logger = logging.getLogger("qonvo")
    logger.setLevel(level.strip().upper())
    if not any(isinstance(handler, RichHandler) for handler in logger.handlers):
        logger.addHandler(RichHandler(rich_tracebacks=True, show_path=False))
    return logger
