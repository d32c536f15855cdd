from __future__ import annotations

import pytest

from market_feed.market.trade_window import TradeWindow


def test_window_should_cap_count_keeping_latest_arrivals(clock, trade_factory) -> None:
    window = TradeWindow("BTCUSDT", clock=clock)
    trades = [trade_factory(trade_time_ms=clock.now_ms - 1_000 + i) for i in range(600)]
    for trade in trades:
        assert window.append(trade) is True

    retained = window.snapshot()
    assert len(retained) == 500
    assert retained == tuple(trades[100:])
    assert window.latest is trades[-1]


def test_window_prune_should_respect_age_bound(clock, trade_factory) -> None:
    trade_time = clock.now_ms
    window = TradeWindow("btcusdt", clock=clock)
    window.append(trade_factory(trade_time_ms=trade_time))

    assert window.prune(trade_time + 59_000) is False
    assert len(window) == 1
    assert window.prune(trade_time + 61_000) is True
    assert window.snapshot() == ()
    assert window.latest is None


def test_window_prune_should_report_no_change_without_republishing(clock, trade_factory) -> None:
    window = TradeWindow("btcusdt", clock=clock)
    window.append(trade_factory(trade_time_ms=clock.now_ms))
    before = window.snapshot()
    assert window.prune() is False
    assert window.snapshot() is before
    assert TradeWindow("btcusdt", clock=clock).prune() is False


def test_window_append_should_evict_aged_trades(clock, trade_factory) -> None:
    window = TradeWindow("btcusdt", clock=clock)
    old = trade_factory(trade_time_ms=clock.now_ms)
    window.append(old)
    clock.advance(60_500)
    fresh = trade_factory(trade_time_ms=clock.now_ms)
    window.append(fresh)
    assert window.snapshot() == (fresh,)


def test_window_append_should_keep_new_trade_even_if_stale(clock, trade_factory) -> None:
    window = TradeWindow("btcusdt", clock=clock)
    stale = trade_factory(trade_time_ms=clock.now_ms - 120_000)
    assert window.append(stale) is True
    assert window.snapshot() == (stale,)
    assert window.prune() is True


def test_window_should_reject_trade_for_other_instrument(clock, trade_factory) -> None:
    window = TradeWindow("btcusdt", clock=clock)
    assert window.append(trade_factory("ethusdt")) is False
    assert len(window) == 0


def test_window_should_accept_mixed_case_trade_symbol(clock, trade_factory) -> None:
    window = TradeWindow("btcusdt", clock=clock)
    assert window.append(trade_factory("BTCUSDT")) is True
    assert window.latest.symbol == "btcusdt"
    assert len(window) == 1


def test_window_should_preserve_arrival_order_over_trade_time(clock, trade_factory) -> None:
    window = TradeWindow("btcusdt", clock=clock)
    later = trade_factory(trade_time_ms=clock.now_ms)
    earlier = trade_factory(trade_time_ms=clock.now_ms - 5_000)
    window.append(later)
    window.append(earlier)
    assert window.snapshot() == (later, earlier)
    assert window.latest is earlier


def test_window_snapshot_should_be_unaffected_by_later_mutation(clock, trade_factory) -> None:
    window = TradeWindow("btcusdt", max_trades=2, clock=clock)
    window.append(trade_factory(trade_time_ms=clock.now_ms))
    held = window.snapshot()
    window.append(trade_factory(trade_time_ms=clock.now_ms))
    window.append(trade_factory(trade_time_ms=clock.now_ms))
    window.clear()
    assert len(held) == 1
    assert len(window) == 0


def test_window_should_validate_bounds() -> None:
    with pytest.raises(ValueError):
        TradeWindow("btcusdt", max_trades=0)
