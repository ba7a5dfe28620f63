"""Benchmark orchestration and execution.

Provides the sampling harness that coordinates:
- Loading benchmark settings
- Timing single strategy invocations (samples) and tracking cold starts
- Running strictly sequential series of samples, publishing each step
- Formatting the collected series for display
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from dblatency.benchmark.errors import ConfigurationError
from dblatency.benchmark.stats import format_summary, summarize
from dblatency.benchmark.strategies import (
    MAX_REPETITIONS,
    MIN_REPETITIONS,
    STRATEGY_LABELS,
    QueryStrategy,
)
from dblatency.benchmark.warmth import PROCESS_TRACKER, WarmthTracker

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL_ENV = "NEON_DATABASE_URL"


@dataclass
class BenchmarkSettings:
    """Connection settings for the strategies.

    Attributes:
        database_url: Postgres connection string (falls back to the
            environment variable named by `database_url_env`).
        database_url_env: Environment variable holding the connection string.
        http_endpoint: SQL-over-HTTP endpoint (derived from the URL if unset).
        websocket_endpoint: SQL-over-WebSocket endpoint.
        pool_min_size: Minimum size of the TCP connection pool.
        pool_max_size: Maximum size of the TCP connection pool.
        timeout: Client-side timeout of each strategy, in seconds.
        strategies: Strategy ids enabled by default.
    """

    database_url: str | None = None
    database_url_env: str = DEFAULT_DATABASE_URL_ENV
    http_endpoint: str | None = None
    websocket_endpoint: str | None = None
    pool_min_size: int = 1
    pool_max_size: int = 4
    timeout: float = 30.0
    strategies: list[str] = field(default_factory=lambda: list(STRATEGY_LABELS))

    def __post_init__(self) -> None:
        if not self.database_url:
            self.database_url = os.environ.get(self.database_url_env) or None

    @classmethod
    def from_env(cls) -> BenchmarkSettings:
        """Settings with every value at its default."""
        return cls()


def load_settings(config_path: Path) -> BenchmarkSettings:
    """Load benchmark settings from YAML.

    Args:
        config_path: Path to a settings file such as config/latency.yaml.

    Returns:
        BenchmarkSettings with unspecified values at their defaults.

    Raises:
        ConfigurationError: If the file is not a mapping or names an
            unknown strategy.
    """
    with Path(config_path).open() as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path}: expected a mapping")

    strategies = data.get("strategies")
    if strategies is None:
        strategies = list(STRATEGY_LABELS)
    if not isinstance(strategies, list):
        raise ConfigurationError(f"{config_path}: strategies must be a list")
    unknown = [str(s) for s in strategies if s not in STRATEGY_LABELS]
    if unknown:
        raise ConfigurationError(
            f"{config_path}: unknown strategies: {', '.join(unknown)}"
        )

    pool = data.get("pool") or {}
    if not isinstance(pool, dict):
        raise ConfigurationError(f"{config_path}: pool must be a mapping")

    try:
        pool_min_size = int(pool.get("min_size", 1))
        pool_max_size = int(pool.get("max_size", 4))
        timeout = float(data.get("timeout", 30.0))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{config_path}: {e}") from e

    return BenchmarkSettings(
        database_url=data.get("database_url"),
        database_url_env=data.get("database_url_env", DEFAULT_DATABASE_URL_ENV),
        http_endpoint=data.get("http_endpoint"),
        websocket_endpoint=data.get("websocket_endpoint"),
        pool_min_size=pool_min_size,
        pool_max_size=pool_max_size,
        timeout=timeout,
        strategies=list(strategies),
    )


@dataclass(frozen=True)
class Sample:
    """One timed invocation of a strategy.

    Attributes:
        query_duration_ms: Time spent running the queries inside the strategy.
        total_elapsed_ms: Time observed around the whole invocation.
        invocation_is_cold: Whether no connection was established yet.
    """

    query_duration_ms: float
    total_elapsed_ms: float
    invocation_is_cold: bool

    def as_dict(self) -> dict[str, float | bool]:
        """Shape used by presentation layers."""
        return {
            "queryDuration": self.query_duration_ms,
            "elapsed": self.total_elapsed_ms,
            "invocationIsCold": self.invocation_is_cold,
        }


@dataclass(frozen=True)
class RunConfiguration:
    """Parameters of one run.

    Attributes:
        strategy: Strategy id (e.g. "tcp-pool").
        queries_per_sample: Sequential queries per sample, 1 to 5.
        sample_count: Number of samples in the run.
    """

    strategy: str
    queries_per_sample: int = 1
    sample_count: int = 50

    @property
    def params(self) -> tuple[int, int]:
        """Values that must match across runs for series to be comparable."""
        return self.queries_per_sample, self.sample_count

    def validate(self, known_strategies: Mapping[str, object]) -> None:
        """Check the configuration before anything runs.

        Raises:
            ConfigurationError: If no known strategy is selected or the
                counts are out of range.
        """
        if not self.strategy:
            raise ConfigurationError("No strategy selected")
        if self.strategy not in known_strategies:
            raise ConfigurationError(f"Unknown strategy: {self.strategy!r}")
        for name in ("queries_per_sample", "sample_count"):
            value = getattr(self, name)
            # bool is an int subclass but never a valid count
            if not isinstance(value, int) or isinstance(value, bool):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
        if not MIN_REPETITIONS <= self.queries_per_sample <= MAX_REPETITIONS:
            raise ConfigurationError(
                f"queries_per_sample must be between {MIN_REPETITIONS} and "
                f"{MAX_REPETITIONS}, got {self.queries_per_sample}"
            )
        if self.sample_count < 1:
            raise ConfigurationError(
                f"sample_count must be positive, got {self.sample_count}"
            )


@dataclass(frozen=True)
class RunResult:
    """Snapshot of a run, published after every sample.

    Attributes:
        config: Configuration of the run.
        samples: Samples in attempt order; None marks a failed attempt.
        first_invocation_was_cold: Cold flag of the first sample.
    """

    config: RunConfiguration
    samples: tuple[Sample | None, ...] = ()
    first_invocation_was_cold: bool = False

    @property
    def complete(self) -> bool:
        return len(self.samples) == self.config.sample_count


@dataclass
class RunProgress:
    """Progress callback information.

    Attributes:
        strategy: Strategy being sampled.
        completed: Number of samples taken so far.
        total: Number of samples in the run.
        sample: The latest sample, or None if it failed.
    """

    strategy: str
    completed: int
    total: int
    sample: Sample | None


# Type for progress callbacks
ProgressCallback = Callable[[RunProgress], None]


class SampleRunner:
    """Times single strategy invocations and tracks their warmth."""

    def __init__(
        self,
        tracker: WarmthTracker | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.tracker = tracker if tracker is not None else PROCESS_TRACKER
        self.clock = clock

    def run(self, strategy: QueryStrategy, repetitions: int) -> Sample | None:
        """Invoke a strategy once.

        Never raises: a failed invocation yields None and leaves the
        strategy's warmth untouched.

        Args:
            strategy: Strategy to invoke.
            repetitions: Sequential queries to run.

        Returns:
            The Sample, or None if the invocation failed.
        """
        strategy_id = strategy.strategy_id
        # Warmth as it was before this call
        was_cold = not self.tracker.is_warm(strategy_id)

        start = self.clock()
        try:
            result = strategy.execute(repetitions)
        except Exception as e:
            logger.warning("Sample for %s failed: %s", strategy_id, e)
            return None
        end = self.clock()

        self.tracker.mark_warm(strategy_id)
        return Sample(
            query_duration_ms=result.query_duration_ms,
            total_elapsed_ms=(end - start) * 1000,
            invocation_is_cold=was_cold or result.connection_is_new,
        )


class BenchmarkController:
    """Runs sequential series of samples and keeps them for comparison.

    Series are kept per strategy so several strategies can be compared
    attempt by attempt, as long as they share the same parameters.
    """

    def __init__(
        self,
        strategies: Mapping[str, QueryStrategy],
        sample_runner: SampleRunner | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self.strategies = strategies
        self.sample_runner = sample_runner or SampleRunner()
        self.progress_callback = progress_callback
        self.results: dict[str, tuple[Sample | None, ...]] = {}
        self.cold_starts: dict[str, bool] = {}
        self.last_params: tuple[int, int] | None = None

    def start_run(self, config: RunConfiguration) -> Iterator[RunResult]:
        """Start a run and return the stream of its snapshots.

        The configuration is validated and previous results are cleared
        immediately; samples are taken as the stream is consumed, one per
        snapshot, each only after the previous one has completed.

        Raises:
            ConfigurationError: If the configuration is invalid.
        """
        config.validate(self.strategies)

        if self.last_params is not None and self.last_params != config.params:
            logger.info(
                "Parameters changed from %s to %s, clearing all results",
                self.last_params,
                config.params,
            )
            self.results.clear()
            self.cold_starts.clear()
        self.last_params = config.params

        # Rerun: only this strategy's series is replaced
        self.results.pop(config.strategy, None)
        self.cold_starts.pop(config.strategy, None)

        return self._iterate(config)

    def _iterate(self, config: RunConfiguration) -> Iterator[RunResult]:
        strategy = self.strategies[config.strategy]
        samples: list[Sample | None] = []
        first_was_cold = False

        for i in range(config.sample_count):
            sample = self.sample_runner.run(strategy, config.queries_per_sample)
            samples.append(sample)

            if i == 0 and sample is not None:
                first_was_cold = sample.invocation_is_cold
                self.cold_starts[config.strategy] = first_was_cold

            snapshot = RunResult(
                config=config,
                samples=tuple(samples),
                first_invocation_was_cold=first_was_cold,
            )
            self.results[config.strategy] = snapshot.samples

            if self.progress_callback:
                self.progress_callback(
                    RunProgress(
                        strategy=config.strategy,
                        completed=i + 1,
                        total=config.sample_count,
                        sample=sample,
                    )
                )
            yield snapshot

        failed = samples.count(None)
        if failed:
            logger.warning(
                "%s: %d of %d samples failed", config.strategy, failed, len(samples)
            )

    def run(self, config: RunConfiguration) -> RunResult:
        """Run to completion and return the final snapshot."""
        snapshot = RunResult(config=config)
        for snapshot in self.start_run(config):
            pass
        return snapshot


def _settings_line(queries_per_sample: int, sample_count: int) -> str:
    if queries_per_sample == 1:
        waterfall = "Single query (no waterfall)"
    else:
        waterfall = f"{queries_per_sample} serial queries"
    return f"Settings: {waterfall} - {sample_count} samples"


def format_results_table(
    results: Mapping[str, tuple[Sample | None, ...]],
    cold_starts: Mapping[str, bool],
    params: tuple[int, int],
) -> str:
    """Format collected series as attempt-indexed tables.

    Two sections are produced: processing time (time spent running the
    queries) and end-to-end time (as seen by the caller).

    Args:
        results: Samples per strategy id.
        cold_starts: Whether each strategy's run started cold.
        params: (queries_per_sample, sample_count) shared by all series.

    Returns:
        Formatted table string.
    """
    queries_per_sample, sample_count = params
    ordered = [s for s in STRATEGY_LABELS if s in results]
    ordered += [s for s in results if s not in STRATEGY_LABELS]
    labels = {s: STRATEGY_LABELS.get(s, s) for s in ordered}
    width = max([22, *(len(label) + 2 for label in labels.values())])

    sections = [
        ("query_duration_ms", "LATENCY DISTRIBUTION (processing time)"),
        ("total_elapsed_ms", "LATENCY DISTRIBUTION (end-to-end)"),
    ]

    lines = []
    for latency_field, title in sections:
        lines.append("=" * 100)
        lines.append(title)
        lines.append(_settings_line(queries_per_sample, sample_count))
        lines.append("=" * 100)

        header = f"{'Attempt':<10}"
        for strategy_id in ordered:
            header += f" {labels[strategy_id]:>{width}}"
        lines.append(header)
        lines.append("-" * (10 + (width + 1) * len(ordered)))

        for i in range(sample_count):
            row = f"{'#' + str(i + 1):<10}"
            for strategy_id in ordered:
                series = results[strategy_id]
                sample = series[i] if i < len(series) else None
                if sample is not None:
                    value = getattr(sample, latency_field)
                    row += f" {f'{value:.1f}ms':>{width}}"
                else:
                    row += f" {'-':>{width}}"
            lines.append(row)

        lines.append("")
        for strategy_id in ordered:
            summary = summarize(results[strategy_id], latency_field)
            lines.append(
                format_summary(
                    labels[strategy_id], summary, cold_starts.get(strategy_id, False)
                )
            )
        lines.append("")

    return "\n".join(lines)
