"""Aggregate statistics for latency samples.

Provides the two figures shown for every strategy:
- Mean latency over all valid samples
- Mean latency once the connection is established (first sample excluded)

Failed samples are absent (None) and are skipped, never counted as zero.
"""

from __future__ import annotations

import statistics
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dblatency.benchmark.runner import Sample

# Sample fields that carry a latency in milliseconds
LATENCY_FIELDS = ("query_duration_ms", "total_elapsed_ms")


@dataclass(frozen=True)
class LatencySummary:
    """Summary of one strategy's samples.

    Attributes:
        mean: Arithmetic mean over all valid samples (0.0 if none).
        mean_excluding_first: Mean without the first valid sample, i.e. the
            steady-state latency after connecting. Equal to `mean` when
            fewer than two samples are valid.
        valid_count: Number of samples that were not absent.
    """

    mean: float
    mean_excluding_first: float
    valid_count: int


def latency_values(
    samples: Sequence[Sample | None], field: str = "query_duration_ms"
) -> list[float]:
    """Extract one latency field from the valid samples, in order.

    Args:
        samples: Samples in attempt order; None marks a failed attempt.
        field: Either "query_duration_ms" or "total_elapsed_ms".

    Returns:
        The field values of the non-absent samples.
    """
    if field not in LATENCY_FIELDS:
        raise ValueError(f"Unknown latency field: {field!r}")
    return [getattr(s, field) for s in samples if s is not None]


def summarize(
    samples: Sequence[Sample | None], field: str = "query_duration_ms"
) -> LatencySummary:
    """Compute mean and mean-after-first for a run.

    The first *valid* sample is the one dropped, so a run whose very first
    attempt failed still excludes the connection-setup sample that followed.

    Args:
        samples: Samples in attempt order; None marks a failed attempt.
        field: Which latency to aggregate.

    Returns:
        LatencySummary for the selected field.
    """
    values = latency_values(samples, field)
    if not values:
        return LatencySummary(mean=0.0, mean_excluding_first=0.0, valid_count=0)

    mean = statistics.fmean(values)
    after_first = statistics.fmean(values[1:]) if len(values) > 1 else mean
    return LatencySummary(
        mean=mean, mean_excluding_first=after_first, valid_count=len(values)
    )


def format_summary(label: str, summary: LatencySummary, was_cold: bool) -> str:
    """Format the legend line of one strategy.

    Returns:
        Two lines like
        "Neon pg (TCP): 12.34ms avg (8.10ms avg after connecting)" and
        "  * Cold start - includes connection establishment".
    """
    line = f"{label}: {summary.mean:.2f}ms avg"
    if was_cold and summary.valid_count > 1:
        line += f" ({summary.mean_excluding_first:.2f}ms avg after connecting)"

    if was_cold:
        note = "  * Cold start - includes connection establishment"
    else:
        note = "  * Warm compute - reusing connection pool"
    return f"{line}\n{note}"
