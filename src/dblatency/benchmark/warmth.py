"""Per-strategy warmth tracking.

A strategy is "warm" once one of its invocations has completed in this
process. The state lives for the lifetime of the process and is never reset:
a fresh execution environment starts cold, which is exactly what cold-start
measurements need. Independent processes (e.g. separate serverless
instances) keep independent trackers, so "cold" is a per-instance notion.
"""

from __future__ import annotations

import time
from collections.abc import Callable


class WarmthTracker:
    """Records, per strategy id, when it first became warm."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._warm_since: dict[str, float] = {}

    def is_warm(self, strategy_id: str) -> bool:
        """Return True if `mark_warm` was called for this id before."""
        return strategy_id in self._warm_since

    def mark_warm(self, strategy_id: str) -> None:
        """Mark a strategy warm, refreshing its timestamp."""
        self._warm_since[strategy_id] = self._clock()

    def warmed_at(self, strategy_id: str) -> float | None:
        """Timestamp of the last successful invocation, or None."""
        return self._warm_since.get(strategy_id)


# Shared by everything running in this process.
PROCESS_TRACKER = WarmthTracker()
