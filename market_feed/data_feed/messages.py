"""Wire-frame normalization for the Binance combined stream.

Combined-stream frames look like ``{"stream": "btcusdt@ticker", "data": {...}}``.
The stream suffix selects the payload shape:

* ``@ticker`` – 24h rolling summary → :class:`TickerSnapshot`;
* ``@trade`` – single trade → :class:`TradeEvent`.

Binance sends prices and quantities as decimal text, while times and ids are
native JSON numbers. This module is the only place that unifies the two, and
the only place that lower-cases instrument ids. Everything downstream can
assume canonical symbols and floats.

:func:`normalize_frame` never raises for bad input: a frame that cannot be
decoded is logged and dropped so the stream keeps flowing.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Union

from market_feed.core.enums import EventKind, StreamType
from market_feed.core.errors import MalformedFrameError
from market_feed.core.types import JSONLike, Symbol, normalize_symbol

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TickerSnapshot:
    """Latest 24h rolling market summary for one instrument."""

    symbol: Symbol
    last_price: float
    price_change: float
    price_change_percent: float
    volume: float  # base asset volume
    high: float
    low: float
    event_time_ms: int

    @property
    def kind(self) -> EventKind:
        return EventKind.TICKER


@dataclass(frozen=True, slots=True)
class TradeEvent:
    """Single public trade as delivered by the ``@trade`` channel."""

    symbol: Symbol
    price: float
    quantity: float
    trade_id: int
    trade_time_ms: int
    is_buyer_maker: bool

    @property
    def kind(self) -> EventKind:
        return EventKind.TRADE

    @property
    def is_sell_pressure(self) -> bool:
        # Buyer resting on the book means the aggressor hit the bid.
        return self.is_buyer_maker

    @property
    def notional(self) -> float:
        return self.price * self.quantity


NormalizedEvent = Union[TickerSnapshot, TradeEvent]


def _require(payload: JSONLike, key: str) -> Any:
    try:
        return payload[key]
    except KeyError:
        raise MalformedFrameError(f"missing field {key!r}") from None


def _as_float(payload: JSONLike, key: str) -> float:
    value = _require(payload, key)
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise MalformedFrameError(f"field {key!r} is not numeric: {value!r}")
    try:
        return float(value)
    except ValueError:
        raise MalformedFrameError(f"field {key!r} is not numeric: {value!r}") from None


def _as_int(payload: JSONLike, key: str) -> int:
    value = _require(payload, key)
    if isinstance(value, bool):
        raise MalformedFrameError(f"field {key!r} is not an integer: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise MalformedFrameError(f"field {key!r} is not an integer: {value!r}")


def _as_symbol(payload: JSONLike, key: str = "s") -> Symbol:
    value = _require(payload, key)
    if not isinstance(value, str) or not value.strip():
        raise MalformedFrameError(f"field {key!r} is not a symbol: {value!r}")
    return normalize_symbol(value)


def parse_ticker_payload(payload: JSONLike) -> TickerSnapshot:
    """Convert a ``24hrTicker`` payload into :class:`TickerSnapshot`.

    Field map: ``s`` symbol, ``c`` last price, ``p`` price change, ``P``
    change percent, ``v`` base volume, ``h``/``l`` 24h high/low, ``E`` event
    time. Raises :class:`MalformedFrameError` on a missing or bad field.
    """

    return TickerSnapshot(
        symbol=_as_symbol(payload),
        last_price=_as_float(payload, "c"),
        price_change=_as_float(payload, "p"),
        price_change_percent=_as_float(payload, "P"),
        volume=_as_float(payload, "v"),
        high=_as_float(payload, "h"),
        low=_as_float(payload, "l"),
        event_time_ms=_as_int(payload, "E"),
    )


def parse_trade_payload(payload: JSONLike) -> TradeEvent:
    """Convert a ``trade`` payload into :class:`TradeEvent`.

    Field map: ``s`` symbol, ``t`` trade id, ``p`` price, ``q`` quantity,
    ``T`` trade time, ``m`` buyer-is-maker flag.
    """

    is_buyer_maker = _require(payload, "m")
    if not isinstance(is_buyer_maker, bool):
        raise MalformedFrameError(f"field 'm' is not a boolean: {is_buyer_maker!r}")
    return TradeEvent(
        symbol=_as_symbol(payload),
        price=_as_float(payload, "p"),
        quantity=_as_float(payload, "q"),
        trade_id=_as_int(payload, "t"),
        trade_time_ms=_as_int(payload, "T"),
        is_buyer_maker=is_buyer_maker,
    )


_PARSERS = {
    StreamType.TICKER.suffix: parse_ticker_payload,
    StreamType.TRADE.suffix: parse_trade_payload,
}


def normalize_frame(raw: str | bytes) -> NormalizedEvent | None:
    """Decode one combined-stream frame into a domain event.

    Returns ``None`` for undecodable frames (logged at WARNING) and for
    streams with an unrecognized suffix (logged at DEBUG).
    """

    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as exc:
        LOGGER.warning("Dropping undecodable frame: %s", exc, extra={"frame": _preview(raw)})
        return None
    if not isinstance(message, Mapping):
        LOGGER.warning("Dropping frame with non-object root", extra={"frame": _preview(raw)})
        return None
    stream = message.get("stream")
    data = message.get("data")
    if not isinstance(stream, str) or not isinstance(data, Mapping):
        LOGGER.warning("Dropping frame without stream/data", extra={"frame": _preview(raw)})
        return None

    for suffix, parser in _PARSERS.items():
        if stream.endswith(suffix):
            break
    else:
        LOGGER.debug("Ignoring unrecognized stream", extra={"stream": stream})
        return None

    try:
        return parser(data)
    except MalformedFrameError as exc:
        LOGGER.warning("Dropping malformed %s payload: %s", suffix, exc, extra={"stream": stream})
        return None


def _preview(raw: str | bytes, limit: int = 200) -> str:
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, (bytes, bytearray)) else str(raw)
    return text[:limit]


__all__ = [
    "NormalizedEvent",
    "TickerSnapshot",
    "TradeEvent",
    "normalize_frame",
    "parse_ticker_payload",
    "parse_trade_payload",
]
