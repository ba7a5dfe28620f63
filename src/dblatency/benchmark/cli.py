"""Command-line interface for the latency benchmarks.

Provides the `dblatency` command with subcommands for:
- Running benchmarks against one or more strategies
- Showing available strategies and their configuration status
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from dblatency.benchmark.errors import ConfigurationError
from dblatency.benchmark.runner import (
    BenchmarkController,
    BenchmarkSettings,
    RunConfiguration,
    RunProgress,
    format_results_table,
    load_settings,
)
from dblatency.benchmark.strategies import (
    STRATEGY_LABELS,
    build_strategies,
    missing_setting,
)

# Default paths
DEFAULT_CONFIG_PATH = (
    Path(__file__).parent.parent.parent.parent / "config" / "latency.yaml"
)

LOG_LEVEL = (os.getenv("DBLATENCY_LOG_LEVEL", "WARNING") or "WARNING").upper()
LOG_FORMAT = os.getenv(
    "DBLATENCY_LOG_FORMAT",
    "%(levelname)s %(asctime)s [%(name)s:%(lineno)d] %(message)s",
)


def _load_settings(args: argparse.Namespace) -> BenchmarkSettings:
    """Settings from --config, the default file, or the environment."""
    if args.config:
        return load_settings(Path(args.config))
    if DEFAULT_CONFIG_PATH.exists():
        return load_settings(DEFAULT_CONFIG_PATH)
    return BenchmarkSettings.from_env()


def cmd_run(args: argparse.Namespace) -> int:
    """Run benchmarks."""
    requested = [s.strip() for s in args.strategy.split(",") if s.strip()]
    if not requested:
        print("Error: No strategy selected")
        return 1

    try:
        settings = _load_settings(args)
        strategies = build_strategies(settings, only=requested)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return 1

    # Progress callback
    def progress(p: RunProgress) -> None:
        if p.sample is None:
            status = "failed"
        else:
            status = f"{p.sample.query_duration_ms:.1f}ms"
        print(
            f"  [{p.strategy}] sample {p.completed}/{p.total} ({status})",
            end="\r",
            flush=True,
        )

    controller = BenchmarkController(
        strategies,
        progress_callback=progress if not args.quiet else None,
    )

    print("Database Latency Benchmark")
    print("=" * 60)
    print(f"Strategies: {', '.join(requested)}")
    print(f"Queries per sample: {args.queries}")
    print(f"Samples: {args.samples}")
    print()

    try:
        for strategy_id in requested:
            print(f"Running: {STRATEGY_LABELS.get(strategy_id, strategy_id)}")
            config = RunConfiguration(
                strategy=strategy_id,
                queries_per_sample=args.queries,
                sample_count=args.samples,
            )
            controller.run(config)
            # Clear progress line
            print(" " * 60, end="\r")
    except ConfigurationError as e:
        print(f"Error: {e}")
        return 1
    finally:
        for strategy in strategies.values():
            strategy.close()

    print()
    print(
        format_results_table(
            controller.results,
            controller.cold_starts,
            (args.queries, args.samples),
        )
    )
    return 0


def cmd_strategies(args: argparse.Namespace) -> int:
    """Show available strategies."""
    try:
        settings = _load_settings(args)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return 1

    print("Available Strategies")
    print("=" * 70)
    print(f"{'Name':<12} {'Label':<24} {'Enabled':<9} Status")
    print("-" * 70)

    for strategy_id, label in STRATEGY_LABELS.items():
        enabled = "yes" if strategy_id in settings.strategies else "no"
        missing = missing_setting(strategy_id, settings)
        status = "configured" if missing is None else f"not configured ({missing})"
        print(f"{strategy_id:<12} {label:<24} {enabled:<9} {status}")

    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="dblatency",
        description="Database latency benchmarks for serverless connectivity strategies",
    )
    parser.add_argument(
        "--config",
        help="Path to settings file (default: config/latency.yaml)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run command
    run_parser = subparsers.add_parser("run", help="Run benchmarks")
    run_parser.add_argument(
        "--strategy",
        required=True,
        help="Comma-separated list of strategies (tcp-pool,http,websocket,http-orm)",
    )
    run_parser.add_argument(
        "--queries",
        type=int,
        choices=[1, 2, 5],
        default=1,
        help="Serial queries per sample (default: 1, no waterfall)",
    )
    run_parser.add_argument(
        "--samples",
        type=int,
        choices=[10, 25, 50],
        default=50,
        help="Number of samples per strategy (default: 50)",
    )
    run_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress progress output",
    )
    run_parser.set_defaults(func=cmd_run)

    # strategies command
    strategies_parser = subparsers.add_parser(
        "strategies", help="Show available strategies"
    )
    strategies_parser.set_defaults(func=cmd_strategies)

    return parser


def main() -> int:
    """Main entry point."""
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)

    parser = create_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
