"""Logging setup for the engine and the CLI."""

from stk_engine.telemetry.json_formatter import JSONFormatter, configure_logging

__all__ = ["JSONFormatter", "configure_logging"]
