from __future__ import annotations

import json
import threading
from typing import Any, Callable, Dict, Iterable, List

import pytest
import websocket

from market_feed.config.models import AppConfig, FeedConfig, Instrument, TradeWindowConfig
from market_feed.core.types import Symbol
from market_feed.data_feed.messages import TickerSnapshot, TradeEvent

BASE_TIME_MS = 1_704_110_400_000  # 2024-01-01 12:00:00 UTC


class FakeClock:
    """Deterministic millisecond clock injected into windows and stores."""

    def __init__(self, now_ms: int = BASE_TIME_MS) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, delta_ms: int) -> int:
        self.now_ms += delta_ms
        return self.now_ms


class FakeSocket:
    """Stand-in for ``websocket.WebSocket`` driven by a scripted frame list."""

    def __init__(
        self,
        frames: Iterable[Any] = (),
        *,
        fail_connect: bool = False,
        hold_open: bool = False,
        connect_error: Exception | None = None,
    ) -> None:
        self.frames: List[Any] = list(frames)
        self.fail_connect = fail_connect
        self.connect_error = connect_error
        self.hold_open = hold_open
        self.connected_url: str | None = None
        self.timeout: float | None = None
        self.closed = threading.Event()

    def connect(self, url: str) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        if self.fail_connect:
            raise ConnectionRefusedError("connection refused")
        self.connected_url = url

    def settimeout(self, timeout: float) -> None:
        self.timeout = timeout

    def recv(self) -> Any:
        if self.frames and not self.closed.is_set():
            return self.frames.pop(0)
        if self.hold_open:
            self.closed.wait(5.0)
        raise websocket.WebSocketConnectionClosedException("socket is already closed.")

    def close(self) -> None:
        self.closed.set()


class FakeSocketFactory:
    """Hands out scripted sockets; refuses connections once the script runs out."""

    def __init__(self, sockets: Iterable[FakeSocket] = ()) -> None:
        self._pending = list(sockets)
        self.created: List[FakeSocket] = []

    def __call__(self) -> FakeSocket:
        sock = self._pending.pop(0) if self._pending else FakeSocket(fail_connect=True)
        self.created.append(sock)
        return sock

    def queue(self, sock: FakeSocket) -> None:
        self._pending.append(sock)


def ticker_payload(symbol: str = "BTCUSDT", **overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "e": "24hrTicker",
        "E": BASE_TIME_MS,
        "s": symbol,
        "p": "150.50",
        "P": "0.351",
        "w": "42900.12",
        "c": "43050.10",
        "Q": "0.010",
        "o": "42899.60",
        "h": "43200.00",
        "l": "42500.00",
        "v": "18234.551",
        "q": "782345678.90",
        "O": BASE_TIME_MS - 86_400_000,
        "C": BASE_TIME_MS,
        "F": 100,
        "L": 200,
        "n": 101,
    }
    payload.update(overrides)
    return payload


def trade_payload(symbol: str = "BTCUSDT", **overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "e": "trade",
        "E": BASE_TIME_MS,
        "s": symbol,
        "t": 12345,
        "p": "43050.10",
        "q": "0.250",
        "T": BASE_TIME_MS,
        "m": True,
    }
    payload.update(overrides)
    return payload


def make_frame(stream: str, data: Any) -> str:
    return json.dumps({"stream": stream, "data": data})


def ticker_frame(symbol: str = "BTCUSDT", **overrides: Any) -> str:
    return make_frame(f"{symbol.lower()}@ticker", ticker_payload(symbol, **overrides))


def trade_frame(symbol: str = "BTCUSDT", **overrides: Any) -> str:
    return make_frame(f"{symbol.lower()}@trade", trade_payload(symbol, **overrides))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def instruments() -> list[Instrument]:
    return [
        Instrument(symbol="BTCUSDT", display_name="BTC/USDT", base_asset="BTC", quote_asset="USDT"),
        Instrument(symbol="ETHUSDT", display_name="ETH/USDT", base_asset="ETH", quote_asset="USDT"),
    ]


@pytest.fixture
def app_config(instruments: list[Instrument]) -> AppConfig:
    return AppConfig(
        feed=FeedConfig(window=TradeWindowConfig(duration_sec=60, max_trades=500, prune_interval_sec=0.01)),
        instruments=instruments,
    )


@pytest.fixture
def ticker_factory() -> Callable[..., TickerSnapshot]:
    def _factory(symbol: str = "btcusdt", **overrides: Any) -> TickerSnapshot:
        payload: Dict[str, Any] = {
            "symbol": Symbol(symbol),
            "last_price": 100.0,
            "price_change": 1.0,
            "price_change_percent": 1.0,
            "volume": 1_000.0,
            "high": 105.0,
            "low": 95.0,
            "event_time_ms": BASE_TIME_MS,
        }
        payload.update(overrides)
        return TickerSnapshot(**payload)

    return _factory


@pytest.fixture
def trade_factory() -> Callable[..., TradeEvent]:
    counter = {"next_id": 1}

    def _factory(symbol: str = "btcusdt", **overrides: Any) -> TradeEvent:
        trade_id = counter["next_id"]
        counter["next_id"] += 1
        payload: Dict[str, Any] = {
            "symbol": Symbol(symbol),
            "price": 100.0,
            "quantity": 0.5,
            "trade_id": trade_id,
            "trade_time_ms": BASE_TIME_MS,
            "is_buyer_maker": False,
        }
        payload.update(overrides)
        return TradeEvent(**payload)

    return _factory


class FrameBuilder:
    """Builds combined-stream wire frames for tests."""

    base_time_ms = BASE_TIME_MS

    raw = staticmethod(make_frame)
    ticker = staticmethod(ticker_frame)
    trade = staticmethod(trade_frame)
    ticker_payload = staticmethod(ticker_payload)
    trade_payload = staticmethod(trade_payload)


@pytest.fixture
def frames() -> FrameBuilder:
    return FrameBuilder()


@pytest.fixture
def fake_socket() -> type[FakeSocket]:
    return FakeSocket


@pytest.fixture
def socket_factory() -> Callable[..., FakeSocketFactory]:
    def _build(*sockets: FakeSocket) -> FakeSocketFactory:
        return FakeSocketFactory(sockets)

    return _build
