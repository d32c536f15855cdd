"""Market data ingestion package.

``messages`` turns raw combined-stream frames into the domain events consumed
by :mod:`market_feed.market`; ``binance_stream`` owns the websocket that
produces those frames.
"""

from .binance_stream import BinanceStreamSession, build_combined_stream_url, build_stream_url
from .messages import NormalizedEvent, TickerSnapshot, TradeEvent, normalize_frame

__all__ = [
    "BinanceStreamSession",
    "NormalizedEvent",
    "TickerSnapshot",
    "TradeEvent",
    "build_combined_stream_url",
    "build_stream_url",
    "normalize_frame",
]
