"""Binance combined-stream websocket transport.

One :class:`BinanceStreamSession` owns a single multiplexed connection to
``wss://stream.binance.com:9443/stream?streams=...`` carrying the ``@ticker``
and ``@trade`` channels of every configured instrument. The session is a pure
transport: it hands raw text frames to registered listeners and reports
connectivity through :class:`StreamStatus`; decoding is the normalizer's job.

Reconnects follow a fixed-interval capped retry: after an unexpected close
the session waits ``retry_delay_sec`` and tries again, at most
``max_retries`` times in a row. When the budget is spent the status becomes
``ERROR`` and the session stays down until ``connect()`` is called again.

The receive loop runs on a daemon thread so ``connect()`` never blocks the
caller. Nothing is opened on construction.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable, List, Optional

import websocket

from market_feed.config.models import DEFAULT_STREAM_BASE_URL, Instrument
from market_feed.core.enums import StreamStatus, StreamType

LOGGER = logging.getLogger(__name__)

FrameListener = Callable[[str], None]
StatusListener = Callable[[StreamStatus], None]
SocketFactory = Callable[[], Any]


def build_stream_url(
    instruments: Iterable[Instrument],
    stream_type: StreamType,
    *,
    base_url: str = DEFAULT_STREAM_BASE_URL,
) -> str:
    """Return a combined-stream URL with one ``stream_type`` channel per instrument."""

    streams = "/".join(f"{instrument.symbol}{stream_type.suffix}" for instrument in instruments)
    return f"{base_url}/stream?streams={streams}"


def build_combined_stream_url(
    instruments: Iterable[Instrument],
    *,
    base_url: str = DEFAULT_STREAM_BASE_URL,
) -> str:
    """Return the URL subscribing ticker and trade channels for ``instruments``.

    All ticker channels come first, then all trade channels, in configuration
    order.
    """

    pairs = list(instruments)
    channels = [
        f"{instrument.symbol}{stream_type.suffix}"
        for stream_type in (StreamType.TICKER, StreamType.TRADE)
        for instrument in pairs
    ]
    return f"{base_url}/stream?streams={'/'.join(channels)}"


def _default_socket_factory() -> websocket.WebSocket:
    # close() is called from the caller's thread while recv() blocks on the reader.
    return websocket.WebSocket(enable_multithread=True)


class BinanceStreamSession:
    """Threaded websocket session with listener fan-out and capped reconnect.

    Parameters
    ----------
    url:
        Combined-stream URL, usually from :func:`build_combined_stream_url`.
    max_retries:
        Consecutive reconnect attempts allowed after an unexpected close. The
        counter resets once a connection opens.
    retry_delay_sec:
        Fixed pause before every reconnect attempt.
    recv_timeout_sec:
        Optional socket timeout; a timeout is not a failure, it only lets the
        reader re-check for shutdown.
    socket_factory:
        Returns an unconnected object with the ``websocket.WebSocket``
        surface (``connect``/``recv``/``close``/``settimeout``). Tests pass
        fakes here.
    """

    def __init__(
        self,
        url: str,
        *,
        max_retries: int = 3,
        retry_delay_sec: float = 1.0,
        recv_timeout_sec: float | None = None,
        socket_factory: SocketFactory | None = None,
    ) -> None:
        self._url = url
        self._max_retries = max_retries
        self._retry_delay_sec = retry_delay_sec
        self._recv_timeout_sec = recv_timeout_sec
        self._socket_factory = socket_factory or _default_socket_factory
        self._frame_listeners: List[FrameListener] = []
        self._status_listeners: List[StatusListener] = []
        self._lock = threading.RLock()
        self._status = StreamStatus.CLOSED
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._socket: Any = None

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------
    def on_frame(self, listener: FrameListener) -> None:
        """Register ``listener`` for every inbound text frame."""

        self._frame_listeners.append(listener)

    def on_status(self, listener: StatusListener) -> None:
        """Register ``listener`` for every status transition."""

        self._status_listeners.append(listener)

    @property
    def url(self) -> str:
        return self._url

    @property
    def status(self) -> StreamStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status is StreamStatus.OPEN

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def connect(self) -> None:
        """Start the reader thread; a no-op while one is already running."""

        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                LOGGER.debug("connect() ignored, session already %s", self._status.value)
                return
            self._stop = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop,),
                name="binance-stream",
                daemon=True,
            )
            self._set_status(StreamStatus.CONNECTING)
            self._thread.start()

    def disconnect(self, timeout: float = 5.0) -> None:
        """Close the connection and stop retrying; a no-op when already down."""

        with self._lock:
            thread = self._thread
            if thread is None or not thread.is_alive():
                return
            self._stop.set()
            self._set_status(StreamStatus.CLOSING)
            self._close_socket()
        if thread is threading.current_thread():
            return
        thread.join(timeout)
        if thread.is_alive():
            # The reader finishes the shutdown itself once it exits.
            LOGGER.warning("Stream reader did not stop within %.1fs", timeout)
            return
        self._mark_closed(thread)

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the reader thread to finish; return True if it did."""

        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    # ------------------------------------------------------------------
    # Reader thread
    # ------------------------------------------------------------------
    def _run(self, stop: threading.Event) -> None:
        try:
            self._read_until_stopped(stop)
        except Exception:
            LOGGER.exception("Stream reader crashed", extra={"url": self._url})
            self._transition(stop, StreamStatus.ERROR)
        finally:
            if stop.is_set():
                self._mark_closed(threading.current_thread())

    def _mark_closed(self, thread: threading.Thread) -> None:
        with self._lock:
            if self._thread is not thread:
                return
            self._thread = None
            self._set_status(StreamStatus.CLOSED)
        LOGGER.info("Stream disconnected", extra={"url": self._url})

    def _read_until_stopped(self, stop: threading.Event) -> None:
        attempts = 0
        while not stop.is_set():
            ws = self._open_socket(stop)
            if ws is not None:
                attempts = 0
                self._transition(stop, StreamStatus.OPEN)
                LOGGER.info("Stream connected", extra={"url": self._url})
                self._pump(ws, stop)
            if stop.is_set():
                break
            if attempts >= self._max_retries:
                self._transition(stop, StreamStatus.ERROR)
                LOGGER.error(
                    "Failed to reconnect after %s retries, giving up",
                    self._max_retries,
                    extra={"url": self._url},
                )
                break
            attempts += 1
            self._transition(stop, StreamStatus.CONNECTING)
            LOGGER.warning(
                "Reconnecting in %.1fs (attempt %s/%s)",
                self._retry_delay_sec,
                attempts,
                self._max_retries,
            )
            if stop.wait(self._retry_delay_sec):
                break

    def _open_socket(self, stop: threading.Event) -> Any:
        ws = self._socket_factory()
        try:
            ws.connect(self._url)
            if self._recv_timeout_sec is not None:
                ws.settimeout(self._recv_timeout_sec)
        except (websocket.WebSocketException, OSError) as exc:
            LOGGER.warning("Stream connect failed: %s", exc, extra={"url": self._url})
            return None
        except Exception:
            # Malformed URLs surface as ValueError and are not retried.
            ws.close()
            raise
        with self._lock:
            if stop.is_set():
                ws.close()
                return None
            self._socket = ws
        return ws

    def _pump(self, ws: Any, stop: threading.Event) -> None:
        try:
            while not stop.is_set():
                try:
                    frame = ws.recv()
                except websocket.WebSocketTimeoutException:
                    continue
                if not frame:
                    continue
                if isinstance(frame, (bytes, bytearray)):
                    frame = frame.decode("utf-8", errors="replace")
                self._emit_frame(frame)
        except (websocket.WebSocketException, OSError) as exc:
            if not stop.is_set():
                LOGGER.warning("Stream closed unexpectedly: %s", exc, extra={"url": self._url})
        finally:
            with self._lock:
                if self._socket is ws:
                    self._socket = None
            ws.close()

    def _close_socket(self) -> None:
        ws, self._socket = self._socket, None
        if ws is None:
            return
        try:
            ws.close()
        except (websocket.WebSocketException, OSError) as exc:  # pragma: no cover - close races
            LOGGER.debug("Ignoring error while closing socket: %s", exc)

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------
    def _transition(self, stop: threading.Event, status: StreamStatus) -> None:
        with self._lock:
            # Once disconnect() owns the session the reader must not report.
            if stop.is_set():
                return
            self._set_status(status)

    def _set_status(self, status: StreamStatus) -> None:
        # Called with the lock held so listeners observe transitions in order.
        if self._status is status:
            return
        self._status = status
        self._emit_status(status)

    def _emit_status(self, status: StreamStatus) -> None:
        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception:
                LOGGER.exception("Status listener failed", extra={"status": status.value})

    def _emit_frame(self, frame: str) -> None:
        for listener in list(self._frame_listeners):
            try:
                listener(frame)
            except Exception:
                LOGGER.exception("Frame listener failed")


__all__ = [
    "BinanceStreamSession",
    "build_combined_stream_url",
    "build_stream_url",
]
