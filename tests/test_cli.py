"""CLI tests that run without provisioning infrastructure."""

from __future__ import annotations

import pytest
from rich.console import Console
from typer.testing import CliRunner

from bulkbench import cli
from bulkbench.run.reporter import BenchmarkMetric
from bulkbench.run.runner import ScenarioOutcome

runner = CliRunner()


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    """Keep rich from wrapping table cells at the runner's default width."""
    monkeypatch.setattr(cli, "console", Console(width=200))


class TestList:
    def test_list_shows_every_scenario(self) -> None:
        result = runner.invoke(cli.app, ["list"])

        assert result.exit_code == 0, result.output
        for name in ("restore-big", "restore-2tb", "backup-2tb"):
            assert name in result.output

    def test_list_applies_config_overrides(self, tmp_path) -> None:
        config_file = tmp_path / "bulkbench.yaml"
        config_file.write_text("scenarios:\n  restore-big:\n    prefix: nightly\n")

        result = runner.invoke(cli.app, ["list", "-c", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "nightly" in result.output

    def test_invalid_config_exits_nonzero(self, tmp_path) -> None:
        config_file = tmp_path / "bulkbench.yaml"
        config_file.write_text("scenarios:\n  restore-huge: {}\n")

        result = runner.invoke(cli.app, ["list", "-c", str(config_file)])

        assert result.exit_code == 1
        assert "restore-huge" in result.output

    def test_invalid_cluster_override_exits_nonzero(self, tmp_path) -> None:
        config_file = tmp_path / "bulkbench.yaml"
        config_file.write_text("scenarios:\n  restore-2tb:\n    nodes: 0\n")

        result = runner.invoke(cli.app, ["list", "-c", str(config_file)])

        assert result.exit_code == 1
        assert "nodes must be positive" in result.output


class TestRun:
    def test_unknown_scenario(self) -> None:
        result = runner.invoke(cli.app, ["run", "restore-huge"])

        assert result.exit_code == 1
        assert "Unknown scenario" in result.output

    def test_fixed_archive_rejects_iterations(self, tmp_path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(cli.app, ["run", "restore-2tb", "-n", "2"])

        assert result.exit_code == 1
        assert "[precondition] iterations must be 1 (got 2)" in result.output
        assert not (tmp_path / "results").exists()

    def test_passing_run_prints_metric(self, monkeypatch) -> None:
        calls = []

        def fake_run_scenario(name, iterations, config, log_dir=None):
            calls.append((name, iterations, log_dir))
            return ScenarioOutcome(
                scenario=name,
                iterations=iterations,
                prefix="restore",
                metric=BenchmarkMetric(iterations=iterations, bytes_per_op=100, elapsed_s=2.0),
            )

        monkeypatch.setattr(cli, "run_scenario", fake_run_scenario)

        result = runner.invoke(
            cli.app, ["run", "restore-big", "-n", "1000", "--log-dir", "logs"]
        )

        assert result.exit_code == 0, result.output
        assert calls == [("restore-big", 1000, "logs")]
        assert "0.05 MB/s" in result.output
        assert "restore-big passed" in result.output


class TestDestroy:
    def test_destroy_without_state(self, tmp_path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(cli.app, ["destroy", "-p", "restore"])

        assert result.exit_code == 1
        assert "No Terraform state" in result.output
