"""Top-level package for the live market-data feed.

The package ingests the Binance combined public stream and keeps a bounded,
queryable in-memory picture of it: one 24h ticker snapshot per instrument and
a rolling window of recent trades. Subpackages stay import-safe so that UI
bindings and tests can pull in just the pieces they need.
"""

__all__: list[str] = []
