from __future__ import annotations

import threading
from typing import List

from market_feed.core.enums import StreamStatus
from market_feed.data_feed.binance_stream import BinanceStreamSession
from market_feed.main import MarketFeedRuntime, _status_payload
from market_feed.market.market_store import MarketStore

WAIT_SEC = 2.0


def _wait_for_version(store: MarketStore, version: int) -> threading.Event:
    reached = threading.Event()

    def listener(current: int) -> None:
        if current >= version:
            reached.set()

    store.subscribe(listener)
    return reached


def test_runtime_should_feed_stream_frames_into_store(
    app_config, clock, frames, fake_socket, socket_factory
) -> None:
    now = clock.now_ms
    wire = [
        frames.ticker("ETHUSDT", c="2250.5"),
        frames.trade("BTCUSDT", t=1, T=now),
        "not json",
        frames.trade("ETHUSDT", t=2, T=now),
        frames.trade("BTCUSDT", t=3, T=now),
        frames.raw("btcusdt@aggTrade", {"s": "BTCUSDT"}),
        frames.trade("BTCUSDT", t=4, T=now),
    ]
    factory = socket_factory(fake_socket(wire, hold_open=True))
    store = MarketStore.from_config(app_config, clock=clock)
    session = BinanceStreamSession("wss://example.test/stream", socket_factory=factory, retry_delay_sec=0.0)
    runtime = MarketFeedRuntime(app_config, store=store, session=session)
    # open + 1 ticker + 4 trades
    reached = _wait_for_version(store, 6)

    runtime.connect()
    try:
        assert reached.wait(WAIT_SEC)
        assert runtime.status is StreamStatus.OPEN
        assert store.connected is True

        runtime.select_instrument("ETHUSDT")
        view = runtime.view()
        assert view.focused_ticker is not None
        assert view.focused_ticker.last_price == 2250.5
        assert [trade.trade_id for trade in view.focused_trades] == [2]
        assert [trade.trade_id for trade in store.trades("btcusdt")] == [1, 3, 4]
        assert store.dropped_frames == 2

        payload = _status_payload(runtime)
        assert payload["status"] == "open"
        assert payload["focused"] == "ethusdt"
        assert payload["focused_trades"] == 1
    finally:
        runtime.close()

    assert runtime.status is StreamStatus.CLOSED
    assert store.connected is False


def test_runtime_should_surface_terminal_error(app_config, socket_factory) -> None:
    session = BinanceStreamSession(
        "wss://example.test/stream",
        socket_factory=socket_factory(),
        max_retries=2,
        retry_delay_sec=0.0,
    )
    runtime = MarketFeedRuntime(app_config, session=session)
    statuses: List[StreamStatus] = []
    session.on_status(statuses.append)

    runtime.connect()
    assert session.join(WAIT_SEC)

    assert runtime.status is StreamStatus.ERROR
    assert runtime.store.connected is False
    assert statuses[-1] is StreamStatus.ERROR


def test_prune_timer_should_drain_idle_windows(app_config, clock, trade_factory, socket_factory) -> None:
    store = MarketStore.from_config(app_config, clock=clock)
    session = BinanceStreamSession("wss://example.test/stream", socket_factory=socket_factory())
    runtime = MarketFeedRuntime(app_config, store=store, session=session)
    store.apply_event(trade_factory("btcusdt", trade_time_ms=clock.now_ms))
    drained = _wait_for_version(store, store.version + 1)

    clock.advance(61_000)
    runtime.start_pruning()
    runtime.start_pruning()
    try:
        assert drained.wait(WAIT_SEC)
    finally:
        runtime.stop_pruning()

    assert store.trades("btcusdt") == ()
    runtime.close()
    assert runtime.status is StreamStatus.CLOSED
