"""Logging and telemetry sinks."""

from .logging import Telemetry, configure_logging

__all__ = ["Telemetry", "configure_logging"]
