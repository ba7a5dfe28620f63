"""Sampling harness for database connectivity strategies.

This package measures query latency with:
- Cold/warm detection per strategy and process
- Strictly sequential sampling with incremental results
- Mean latency with and without the connection-setup sample
"""

from __future__ import annotations

from dblatency.benchmark.errors import ConfigurationError, StrategyError
from dblatency.benchmark.runner import (
    BenchmarkController,
    BenchmarkSettings,
    RunConfiguration,
    RunResult,
    Sample,
    SampleRunner,
    load_settings,
)
from dblatency.benchmark.stats import LatencySummary, summarize
from dblatency.benchmark.strategies import QueryResult, QueryStrategy, build_strategies
from dblatency.benchmark.warmth import PROCESS_TRACKER, WarmthTracker

__all__ = [
    "PROCESS_TRACKER",
    "BenchmarkController",
    "BenchmarkSettings",
    "ConfigurationError",
    "LatencySummary",
    "QueryResult",
    "QueryStrategy",
    "RunConfiguration",
    "RunResult",
    "Sample",
    "SampleRunner",
    "StrategyError",
    "WarmthTracker",
    "build_strategies",
    "load_settings",
    "summarize",
]
