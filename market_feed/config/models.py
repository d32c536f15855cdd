"""Typed configuration models for the market feed.

The config subsystem relies on pydantic to validate YAML files and to
provide strongly-typed objects to the rest of the runtime. The instrument
list is static for the life of the process: it decides which channels are
subscribed, which instrument is focused by default and the order of the
configuration-ordered listing.
"""
from __future__ import annotations

from typing import List, Literal, Tuple

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator, model_validator

DEFAULT_STREAM_BASE_URL = "wss://stream.binance.com:9443"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Instrument(BaseModel):
    """Static descriptor of one tracked trading pair."""

    symbol: str = Field(..., min_length=3)
    display_name: str
    base_asset: str
    quote_asset: str

    model_config = ConfigDict(frozen=True)

    @field_validator("symbol")
    @classmethod
    def _lower_symbol(cls, value: str) -> str:
        return value.strip().lower()


def _pair(base: str, quote: str = "USDT") -> Instrument:
    return Instrument(
        symbol=f"{base}{quote}",
        display_name=f"{base}/{quote}",
        base_asset=base,
        quote_asset=quote,
    )


DEFAULT_INSTRUMENTS: Tuple[Instrument, ...] = tuple(
    _pair(base) for base in ("BTC", "ETH", "BNB", "SOL", "XRP", "ADA", "DOGE", "AVAX")
)


class StreamConfig(BaseModel):
    """Websocket endpoint and the fixed-interval reconnect policy."""

    base_url: str = DEFAULT_STREAM_BASE_URL
    max_reconnect_attempts: int = Field(3, ge=0)
    reconnect_delay_sec: float = Field(1.0, ge=0)
    recv_timeout_sec: float | None = Field(None, gt=0)


class TradeWindowConfig(BaseModel):
    """Bounds of the per-instrument rolling trade window."""

    duration_sec: PositiveInt = 60
    max_trades: PositiveInt = 500
    prune_interval_sec: float = Field(5.0, gt=0, description="Cadence of the idle-instrument sweep")

    @property
    def duration_ms(self) -> int:
        return self.duration_sec * 1000


class TelemetryConfig(BaseModel):
    """Logging switches."""

    log_level: LogLevel = Field("INFO")
    logs_dir: str = Field("data/logs")
    status_interval_sec: PositiveInt = 30

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value


class FeedConfig(BaseModel):
    """Contents of feed.yml."""

    feed: StreamConfig = Field(default_factory=StreamConfig)
    window: TradeWindowConfig = Field(default_factory=TradeWindowConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)


class AppConfig(BaseModel):
    """Runtime config composed of feed settings and the instrument set."""

    feed: FeedConfig = Field(default_factory=FeedConfig)
    instruments: List[Instrument] = Field(default_factory=lambda: list(DEFAULT_INSTRUMENTS))

    @model_validator(mode="after")
    def _check_instruments(self) -> "AppConfig":
        if not self.instruments:
            raise ValueError("at least one instrument must be configured")
        symbols = [instrument.symbol for instrument in self.instruments]
        if len(set(symbols)) != len(symbols):
            raise ValueError(f"duplicate instrument symbols: {symbols}")
        return self
