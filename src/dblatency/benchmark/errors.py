"""Exceptions raised by the benchmark harness."""

from __future__ import annotations


class StrategyError(Exception):
    """A query strategy could not complete (network, auth or query error)."""

    def __init__(self, strategy_id: str, message: str) -> None:
        super().__init__(f"{strategy_id}: {message}")
        self.strategy_id = strategy_id


class ConfigurationError(ValueError):
    """Invalid run configuration or settings; raised before any sample."""
