"""YAML loaders for the config subsystem.

Each helper here consumes one YAML file, validates it via models.py and
returns typed objects to the caller.
"""
from __future__ import annotations

from pathlib import Path
from typing import List, Mapping, Sequence

import yaml

from market_feed.core.errors import ConfigurationError

from .models import DEFAULT_INSTRUMENTS, AppConfig, FeedConfig, Instrument

_DEFAULT_CONFIG_DIR = Path("config")


def _read_yaml(path: Path) -> Mapping:
    """Read a YAML file and return a mapping (empty dict if file is blank)."""

    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"YAML root must be a mapping in {path}")
    return data


def load_feed_config(path: Path | str = _DEFAULT_CONFIG_DIR / "feed.yml") -> FeedConfig:
    """Load feed.yml (stream endpoint, reconnect policy, window bounds, telemetry)."""

    data = _read_yaml(Path(path))
    return FeedConfig.model_validate(data)


def load_instruments_config(path: Path | str = _DEFAULT_CONFIG_DIR / "instruments.yml") -> List[Instrument]:
    """Load instruments.yml (ordered list of tracked pairs)."""

    data = _read_yaml(Path(path))
    raw_instruments = data.get("instruments")
    if raw_instruments is None:
        raise ConfigurationError("instruments.yml must contain `instruments: [...]`")
    if isinstance(raw_instruments, (str, bytes)) or not isinstance(raw_instruments, Sequence):
        raise ConfigurationError("`instruments` must be a list")
    return [Instrument.model_validate(entry) for entry in raw_instruments]


def load_app_config(
    *,
    feed_path: Path | str = _DEFAULT_CONFIG_DIR / "feed.yml",
    instruments_path: Path | str = _DEFAULT_CONFIG_DIR / "instruments.yml",
) -> AppConfig:
    """Load and aggregate all config sections into a single AppConfig.

    A missing instruments file falls back to :data:`DEFAULT_INSTRUMENTS`; a
    missing feed file is an error since it carries the endpoint.
    """

    feed = load_feed_config(feed_path)
    if Path(instruments_path).exists():
        instruments = load_instruments_config(instruments_path)
    else:
        instruments = list(DEFAULT_INSTRUMENTS)
    return AppConfig(feed=feed, instruments=instruments)
