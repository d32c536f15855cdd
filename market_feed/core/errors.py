"""Error hierarchy shared by the feed subsystems.

Most failures in the feed are recovered where they happen (a bad frame is
dropped, a lost connection is retried) so these types mostly travel between a
helper and the boundary that catches it. Configuration errors are the only
ones expected to reach the process entry point.
"""
from __future__ import annotations


class CoreError(Exception):
    """Base class for all custom exceptions in the application."""


class ConfigurationError(CoreError):
    """Raised when configuration files are missing or invalid."""


class MarketDataError(CoreError):
    """Raised for failures while parsing market data."""


class MalformedFrameError(MarketDataError):
    """Raised when a stream payload lacks a field or carries a bad value."""
