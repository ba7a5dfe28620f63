"""dblatency: database latency benchmarks for serverless connectivity strategies."""

from __future__ import annotations

from dblatency.benchmark.cli import main

__all__ = ["main"]
