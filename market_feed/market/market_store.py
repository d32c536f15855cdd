"""In-memory aggregation of the live feed.

:class:`MarketStore` is the single owner of mutable market state:

* one :class:`TickerSnapshot` per configured instrument, fully replaced on
  every ticker event;
* one :class:`TradeWindow` per configured instrument, created on its first
  trade;
* the focused instrument used by the detail views and the connectivity flag
  reported by the transport.

Writes arrive from the websocket reader thread (``ingest_frame``), from the
prune timer (``prune_all``) and from UI code (``select_instrument``); they
are serialized by one lock. Both maps are published copy-on-write as
read-only mappings, so lock-free readers always dereference a complete
version. ``version`` grows by one per published change. Change listeners run
under the same lock, so they observe versions strictly in order, and they
are not called for no-ops.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Sequence, Tuple

from market_feed.config.models import DEFAULT_INSTRUMENTS, AppConfig, Instrument
from market_feed.core.enums import EventKind
from market_feed.core.time_utils import now_ms
from market_feed.core.types import Symbol, normalize_symbol
from market_feed.data_feed.messages import NormalizedEvent, TickerSnapshot, TradeEvent, normalize_frame

from .trade_window import DEFAULT_MAX_TRADES, DEFAULT_WINDOW_MS, TradeWindow

LOGGER = logging.getLogger(__name__)

ChangeListener = Callable[[int], None]

_EMPTY_TRADES: Tuple[TradeEvent, ...] = ()


@dataclass(frozen=True, slots=True)
class MarketView:
    """Consistent read-only picture of the store at one version."""

    version: int
    focused_symbol: Symbol
    connected: bool
    focused_ticker: TickerSnapshot | None
    focused_trades: Tuple[TradeEvent, ...]
    tickers_by_volume: Tuple[TickerSnapshot, ...]
    tickers_in_config_order: Tuple[TickerSnapshot, ...]


class MarketStore:
    """Ticker map, trade windows and focus selection for the UI layer."""

    def __init__(
        self,
        instruments: Sequence[Instrument] = DEFAULT_INSTRUMENTS,
        *,
        window_ms: int = DEFAULT_WINDOW_MS,
        max_trades: int = DEFAULT_MAX_TRADES,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if not instruments:
            raise ValueError("MarketStore needs at least one instrument")
        self._instruments: Tuple[Instrument, ...] = tuple(instruments)
        self._by_symbol: Dict[Symbol, Instrument] = {
            Symbol(instrument.symbol): instrument for instrument in self._instruments
        }
        self._window_ms = window_ms
        self._max_trades = max_trades
        self._clock = clock
        self._lock = threading.RLock()
        self._listeners: List[ChangeListener] = []

        self._tickers: Mapping[Symbol, TickerSnapshot] = MappingProxyType({})
        self._windows: Dict[Symbol, TradeWindow] = {}
        self._histories: Mapping[Symbol, Tuple[TradeEvent, ...]] = MappingProxyType({})
        self._focused = Symbol(self._instruments[0].symbol)
        self._connected = False
        self._version = 0
        self._dropped_frames = 0

    @classmethod
    def from_config(cls, config: AppConfig, *, clock: Callable[[], int] = now_ms) -> "MarketStore":
        return cls(
            config.instruments,
            window_ms=config.feed.window.duration_ms,
            max_trades=config.feed.window.max_trades,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def ingest_frame(self, raw: str | bytes) -> bool:
        """Normalize one wire frame and apply it; return True if state changed."""

        event = normalize_frame(raw)
        if event is None:
            with self._lock:
                self._dropped_frames += 1
            return False
        return self.apply_event(event)

    def apply_event(self, event: NormalizedEvent) -> bool:
        """Route a ticker to snapshot replacement and a trade to its window."""

        symbol = normalize_symbol(event.symbol)
        if symbol not in self._by_symbol:
            LOGGER.debug("Ignoring event for unconfigured instrument", extra={"symbol": event.symbol})
            return False
        if symbol != event.symbol:
            event = replace(event, symbol=symbol)
        if event.kind is EventKind.TICKER:
            return self._replace_ticker(event)
        return self._append_trade(event)

    def _replace_ticker(self, ticker: TickerSnapshot) -> bool:
        with self._lock:
            tickers = dict(self._tickers)
            tickers[ticker.symbol] = ticker
            self._tickers = MappingProxyType(tickers)
            self._notify(self._bump())
        return True

    def _append_trade(self, trade: TradeEvent) -> bool:
        with self._lock:
            window = self._windows.get(trade.symbol)
            if window is None:
                window = TradeWindow(
                    trade.symbol,
                    window_ms=self._window_ms,
                    max_trades=self._max_trades,
                    clock=self._clock,
                )
                self._windows[trade.symbol] = window
            if not window.append(trade):
                return False
            histories = dict(self._histories)
            histories[trade.symbol] = window.snapshot()
            self._histories = MappingProxyType(histories)
            self._notify(self._bump())
        return True

    def prune_all(self, now_ms: int | None = None) -> bool:
        """Evict aged-out trades from every window; True if any window shrank."""

        now = self._clock() if now_ms is None else now_ms
        with self._lock:
            shrunk = {
                symbol: window.snapshot()
                for symbol, window in self._windows.items()
                if window.prune(now)
            }
            if not shrunk:
                return False
            histories = dict(self._histories)
            histories.update(shrunk)
            self._histories = MappingProxyType(histories)
            LOGGER.debug("Pruned trade windows", extra={"symbols": sorted(shrunk)})
            self._notify(self._bump())
        return True

    def select_instrument(self, symbol: str) -> None:
        """Focus ``symbol``.

        Unconfigured symbols are accepted as-is (after case normalization);
        the focused views are simply empty for them.
        """

        target = normalize_symbol(str(symbol))
        if target not in self._by_symbol:
            LOGGER.info("Focusing an unconfigured instrument", extra={"symbol": target})
        with self._lock:
            if target == self._focused:
                return
            self._focused = target
            self._notify(self._bump())

    def set_connected(self, connected: bool) -> None:
        with self._lock:
            if connected == self._connected:
                return
            self._connected = connected
            self._notify(self._bump())

    def reset(self) -> None:
        """Clear tickers and trade windows; focus and connectivity are kept."""

        with self._lock:
            self._tickers = MappingProxyType({})
            self._windows = {}
            self._histories = MappingProxyType({})
            LOGGER.info("Market store reset")
            self._notify(self._bump())

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------
    def subscribe(self, listener: ChangeListener) -> None:
        """Call ``listener(version)`` after every published change.

        Listeners run on the writing thread with the store lock held. They may
        read the store but must not wait on another writer thread.
        """

        self._listeners.append(listener)

    def _bump(self) -> int:
        self._version += 1
        return self._version

    def _notify(self, version: int) -> None:
        for listener in list(self._listeners):
            try:
                listener(version)
            except Exception:
                LOGGER.exception("Market store listener failed", extra={"version": version})

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    @property
    def instruments(self) -> Tuple[Instrument, ...]:
        return self._instruments

    @property
    def focused_symbol(self) -> Symbol:
        return self._focused

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def version(self) -> int:
        return self._version

    @property
    def dropped_frames(self) -> int:
        """Frames that produced no event (undecodable or unknown stream)."""

        return self._dropped_frames

    @property
    def tickers(self) -> Mapping[Symbol, TickerSnapshot]:
        return self._tickers

    @property
    def histories(self) -> Mapping[Symbol, Tuple[TradeEvent, ...]]:
        return self._histories

    def instrument(self, symbol: str) -> Instrument | None:
        return self._by_symbol.get(normalize_symbol(symbol))

    def ticker(self, symbol: str) -> TickerSnapshot | None:
        return self._tickers.get(normalize_symbol(symbol))

    def trades(self, symbol: str) -> Tuple[TradeEvent, ...]:
        return self._histories.get(normalize_symbol(symbol), _EMPTY_TRADES)

    def latest_trade(self, symbol: str) -> TradeEvent | None:
        trades = self.trades(symbol)
        return trades[-1] if trades else None

    def focused_ticker(self) -> TickerSnapshot | None:
        return self._tickers.get(self._focused)

    def focused_trades(self) -> Tuple[TradeEvent, ...]:
        return self._histories.get(self._focused, _EMPTY_TRADES)

    def tickers_by_volume(self) -> Tuple[TickerSnapshot, ...]:
        """All snapshots, highest 24h volume first."""

        return _by_volume(self._tickers)

    def tickers_in_config_order(self) -> Tuple[TickerSnapshot, ...]:
        """Snapshots in instrument configuration order, skipping missing ones."""

        return _in_config_order(self._instruments, self._tickers)

    def view(self) -> MarketView:
        """Return every read view computed from a single version of the state."""

        with self._lock:
            version = self._version
            focused = self._focused
            connected = self._connected
            tickers = self._tickers
            histories = self._histories
        return MarketView(
            version=version,
            focused_symbol=focused,
            connected=connected,
            focused_ticker=tickers.get(focused),
            focused_trades=histories.get(focused, _EMPTY_TRADES),
            tickers_by_volume=_by_volume(tickers),
            tickers_in_config_order=_in_config_order(self._instruments, tickers),
        )


def _by_volume(tickers: Mapping[Symbol, TickerSnapshot]) -> Tuple[TickerSnapshot, ...]:
    return tuple(sorted(tickers.values(), key=lambda ticker: ticker.volume, reverse=True))


def _in_config_order(
    instruments: Sequence[Instrument],
    tickers: Mapping[Symbol, TickerSnapshot],
) -> Tuple[TickerSnapshot, ...]:
    ordered: List[TickerSnapshot] = []
    for instrument in instruments:
        ticker = tickers.get(Symbol(instrument.symbol))
        if ticker is not None:
            ordered.append(ticker)
    return tuple(ordered)


__all__ = ["ChangeListener", "MarketStore", "MarketView"]
