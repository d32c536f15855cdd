"""Utilities for dealing with wall-clock timestamps.

Trade windows compare exchange trade times (milliseconds since epoch) against
the local wall clock, so every component takes its "now" from here or from an
injected callable with the same signature.
"""
from __future__ import annotations

from datetime import datetime, timezone

from .types import TimestampMs


def now_utc() -> datetime:
    """Return the current UTC datetime with tzinfo."""

    return datetime.now(timezone.utc)


def now_ms() -> TimestampMs:
    """Return the current UNIX time in integer milliseconds."""

    return TimestampMs(int(now_utc().timestamp() * 1000))

