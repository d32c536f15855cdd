"""Per-instrument rolling window of recent trades.

The window keeps trades oldest first under two independent bounds:

* age – nothing with ``trade_time_ms <= now - window_ms`` survives a mutation;
* count – at most ``max_trades`` entries, oldest dropped first.

Both bounds are enforced on every :meth:`TradeWindow.append` and again by
:meth:`TradeWindow.prune`, which the store calls on a timer so quiet
instruments still drain. The retained trades live in an immutable tuple that
is swapped in a single assignment, so a concurrent reader of
:meth:`TradeWindow.snapshot` sees either the previous or the next state,
never a half-trimmed one.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Tuple

from market_feed.core.time_utils import now_ms
from market_feed.core.types import normalize_symbol
from market_feed.data_feed.messages import TradeEvent

LOGGER = logging.getLogger(__name__)

DEFAULT_WINDOW_MS = 60_000
DEFAULT_MAX_TRADES = 500


class TradeWindow:
    """Bounded, arrival-ordered trade buffer owned by one instrument."""

    def __init__(
        self,
        symbol: str,
        *,
        window_ms: int = DEFAULT_WINDOW_MS,
        max_trades: int = DEFAULT_MAX_TRADES,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if window_ms <= 0 or max_trades <= 0:
            raise ValueError("window_ms and max_trades must be positive")
        self.symbol = normalize_symbol(symbol)
        self.window_ms = window_ms
        self.max_trades = max_trades
        self._clock = clock
        self._trades: Tuple[TradeEvent, ...] = ()

    def append(self, trade: TradeEvent) -> bool:
        """Add ``trade`` and re-apply both bounds; return False if rejected."""

        symbol = normalize_symbol(trade.symbol)
        if symbol != self.symbol:
            LOGGER.debug(
                "Trade routed to the wrong window",
                extra={"window_symbol": self.symbol, "trade_symbol": trade.symbol},
            )
            return False
        if symbol != trade.symbol:
            trade = replace(trade, symbol=symbol)
        cutoff = self._clock() - self.window_ms
        retained = [item for item in self._trades if item.trade_time_ms > cutoff]
        retained.append(trade)
        self._trades = tuple(retained[-self.max_trades :])
        return True

    def prune(self, now_ms: int | None = None) -> bool:
        """Drop aged-out trades; return True only if something was removed."""

        current = self._trades
        if not current:
            return False
        cutoff = (self._clock() if now_ms is None else now_ms) - self.window_ms
        # Arrival order is not guaranteed to be time order, so scan everything.
        retained = tuple(item for item in current if item.trade_time_ms > cutoff)
        if len(retained) == len(current):
            return False
        self._trades = retained
        return True

    def snapshot(self) -> Tuple[TradeEvent, ...]:
        """Return the retained trades, oldest first."""

        return self._trades

    def clear(self) -> None:
        self._trades = ()

    @property
    def latest(self) -> TradeEvent | None:
        """Most recent trade by arrival order."""

        trades = self._trades
        return trades[-1] if trades else None

    def __len__(self) -> int:
        return len(self._trades)

    def __repr__(self) -> str:
        return f"TradeWindow(symbol={self.symbol!r}, trades={len(self._trades)})"


__all__ = ["DEFAULT_MAX_TRADES", "DEFAULT_WINDOW_MS", "TradeWindow"]
