"""Shared type aliases for readability and contract enforcement."""
from __future__ import annotations

from typing import Any, Mapping, NewType, TypeAlias

Symbol = NewType("Symbol", str)
TimestampMs = NewType("TimestampMs", int)

JSONLike: TypeAlias = Mapping[str, Any]


def normalize_symbol(value: str) -> Symbol:
    """Return the canonical (stripped, lower-case) form of an instrument id."""

    return Symbol(value.strip().lower())
