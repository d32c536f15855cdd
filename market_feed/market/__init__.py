"""In-memory market state: per-instrument trade windows and the market store."""

from .market_store import MarketStore, MarketView
from .trade_window import TradeWindow

__all__ = ["MarketStore", "MarketView", "TradeWindow"]
