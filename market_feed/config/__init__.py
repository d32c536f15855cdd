"""Configuration loading and validation package."""

from .loader import load_app_config, load_feed_config, load_instruments_config
from .models import (
    DEFAULT_INSTRUMENTS,
    AppConfig,
    FeedConfig,
    Instrument,
    StreamConfig,
    TelemetryConfig,
    TradeWindowConfig,
)

__all__ = [
    "DEFAULT_INSTRUMENTS",
    "AppConfig",
    "FeedConfig",
    "Instrument",
    "StreamConfig",
    "TelemetryConfig",
    "TradeWindowConfig",
    "load_app_config",
    "load_feed_config",
    "load_instruments_config",
]
