"""Unit tests for dblatency.benchmark.cli module."""

from __future__ import annotations

from pathlib import Path

import pytest

from dblatency.benchmark import cli


@pytest.fixture(autouse=True)
def _no_database_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NEON_DATABASE_URL", raising=False)


class TestParser:
    """Tests for the argument parser."""

    def test_run_defaults(self) -> None:
        """Test default query and sample counts of the run command."""
        args = cli.create_parser().parse_args(["run", "--strategy", "tcp-pool"])

        assert args.queries == 1
        assert args.samples == 50
        assert args.func is cli.cmd_run

    def test_rejects_unsupported_query_count(self) -> None:
        """Test that only 1, 2 or 5 queries per sample are accepted."""
        with pytest.raises(SystemExit):
            cli.create_parser().parse_args(
                ["run", "--strategy", "http", "--queries", "3"]
            )

    def test_rejects_unsupported_sample_count(self) -> None:
        """Test that only 10, 25 or 50 samples are accepted."""
        with pytest.raises(SystemExit):
            cli.create_parser().parse_args(
                ["run", "--strategy", "http", "--samples", "100"]
            )


class TestCommands:
    """Tests for command handlers."""

    def test_run_without_database_url(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test that a missing database URL fails before running."""
        config = tmp_path / "latency.yaml"
        config.write_text("strategies: [http]\n")
        args = cli.create_parser().parse_args(
            ["--config", str(config), "run", "--strategy", "http"]
        )

        assert args.func(args) == 1
        assert "NEON_DATABASE_URL" in capsys.readouterr().out

    def test_run_with_empty_strategy(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that the run command needs at least one strategy."""
        args = cli.create_parser().parse_args(["run", "--strategy", ","])

        assert args.func(args) == 1
        assert "No strategy selected" in capsys.readouterr().out

    def test_strategies(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test listing strategies with their configuration status."""
        config = tmp_path / "latency.yaml"
        config.write_text(
            "database_url: postgresql://u:p@db.example.com/app\n"
            "strategies: [tcp-pool, http]\n"
        )
        args = cli.create_parser().parse_args(["--config", str(config), "strategies"])

        assert args.func(args) == 0
        out = capsys.readouterr().out
        assert "tcp-pool" in out
        assert "not configured (set websocket_endpoint)" in out
