"""Enumerations shared across feed subsystems.

They live in the core package so that the normalizer, the transport and the
store can import them without introducing circular dependencies.
"""
from __future__ import annotations

from enum import Enum


class EventKind(str, Enum):
    """Tag of a normalized wire event."""

    TICKER = "ticker"
    TRADE = "trade"


class StreamType(str, Enum):
    """Binance channel suffixes subscribed per instrument."""

    TICKER = "ticker"
    TRADE = "trade"

    @property
    def suffix(self) -> str:
        return f"@{self.value}"


class StreamStatus(str, Enum):
    """Connectivity status of the websocket transport."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
    ERROR = "error"  # retries exhausted, needs a manual connect()
