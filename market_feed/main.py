from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, get_args

from market_feed.config.loader import load_app_config
from market_feed.config.models import AppConfig, LogLevel
from market_feed.core.enums import StreamStatus
from market_feed.data_feed.binance_stream import BinanceStreamSession, build_combined_stream_url
from market_feed.market.market_store import MarketStore, MarketView
from market_feed.telemetry import configure_logging

LOGGER = logging.getLogger(__name__)


class MarketFeedRuntime:
    """Wires one stream session into one market store.

    The runtime is the object handed to UI bindings: it exposes the mutators
    (``connect``, ``disconnect``, ``select_instrument``) and the read surface
    (``status``, ``view()``, ``store``). It also owns the prune timer that
    keeps windows of quiet instruments shrinking between trades.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        store: MarketStore | None = None,
        session: BinanceStreamSession | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.store = store or MarketStore.from_config(config)
        self.session = session or _build_session(config)
        self._logger = logger or LOGGER
        self._prune_stop = threading.Event()
        self._prune_thread: Optional[threading.Thread] = None
        self.session.on_frame(self.store.ingest_frame)
        self.session.on_status(self._handle_status)

    # ------------------------------------------------------------------
    # Consumer surface
    # ------------------------------------------------------------------
    @property
    def status(self) -> StreamStatus:
        return self.session.status

    def connect(self) -> None:
        self.session.connect()

    def disconnect(self) -> None:
        self.session.disconnect()

    def select_instrument(self, symbol: str) -> None:
        self.store.select_instrument(symbol)

    def view(self) -> MarketView:
        return self.store.view()

    # ------------------------------------------------------------------
    # Prune timer
    # ------------------------------------------------------------------
    def start_pruning(self) -> None:
        if self._prune_thread is not None and self._prune_thread.is_alive():
            return
        self._prune_stop = threading.Event()
        self._prune_thread = threading.Thread(
            target=self._prune_loop,
            args=(self._prune_stop, self.config.feed.window.prune_interval_sec),
            name="trade-window-prune",
            daemon=True,
        )
        self._prune_thread.start()

    def stop_pruning(self, timeout: float = 5.0) -> None:
        thread = self._prune_thread
        if thread is None:
            return
        self._prune_stop.set()
        thread.join(timeout)
        self._prune_thread = None

    def close(self) -> None:
        self.stop_pruning()
        self.disconnect()

    def _prune_loop(self, stop: threading.Event, interval_sec: float) -> None:
        while not stop.wait(interval_sec):
            self.store.prune_all()

    def _handle_status(self, status: StreamStatus) -> None:
        self.store.set_connected(status is StreamStatus.OPEN)
        if status is StreamStatus.ERROR:
            self._logger.error("Market stream unavailable, manual reconnect required")
        else:
            self._logger.info("Market stream status changed", extra={"status": status.value})


def _build_session(config: AppConfig) -> BinanceStreamSession:
    stream_cfg = config.feed.feed
    url = build_combined_stream_url(config.instruments, base_url=stream_cfg.base_url)
    return BinanceStreamSession(
        url,
        max_retries=stream_cfg.max_reconnect_attempts,
        retry_delay_sec=stream_cfg.reconnect_delay_sec,
        recv_timeout_sec=stream_cfg.recv_timeout_sec,
    )


def _status_payload(runtime: MarketFeedRuntime) -> Dict[str, Any]:
    view = runtime.view()
    ticker = view.focused_ticker
    return {
        "status": runtime.status.value,
        "version": view.version,
        "focused": view.focused_symbol,
        "last_price": ticker.last_price if ticker else None,
        "change_pct": ticker.price_change_percent if ticker else None,
        "focused_trades": len(view.focused_trades),
        "tickers": len(view.tickers_in_config_order),
        "dropped_frames": runtime.store.dropped_frames,
    }


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stream Binance tickers and trades into memory.")
    parser.add_argument("--config-dir", type=Path, default=Path("config"))
    parser.add_argument(
        "--log-level",
        default=None,
        type=str.upper,
        choices=list(get_args(LogLevel)),
        help="Overrides telemetry.log_level",
    )
    parser.add_argument("--focus", default=None, help="Instrument focused at start-up")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    args = _parse_args(argv)
    config = load_app_config(
        feed_path=args.config_dir / "feed.yml",
        instruments_path=args.config_dir / "instruments.yml",
    )
    telemetry = config.feed.telemetry
    logger = configure_logging(
        log_dir=Path(telemetry.logs_dir),
        level=args.log_level or telemetry.log_level,
    )
    logger.info(
        "Bootstrapping market feed",
        extra={"instruments": [instrument.symbol for instrument in config.instruments]},
    )

    runtime = MarketFeedRuntime(config, logger=logger.getChild("runtime"))
    if args.focus:
        runtime.select_instrument(args.focus)

    stop_event = threading.Event()

    def _request_stop(signum: int, _: object) -> None:
        logger.info("Received signal", extra={"signal": signum})
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    runtime.connect()
    runtime.start_pruning()
    try:
        while not stop_event.wait(telemetry.status_interval_sec):
            logger.info("Market feed status", extra=_status_payload(runtime))
    except KeyboardInterrupt:  # pragma: no cover - manual exit
        logger.info("Interrupted by user")
    finally:
        runtime.close()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # pragma: no cover - top-level safety
        print(f"Fatal error: {exc}", file=sys.stderr)
        raise
