"""Run one scenario end to end: preconditions, cluster, timed body, results."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from ..config import BulkbenchConfig
from ..infra.cluster import ClusterFactory
from ..infra.manager import make_terraform_cluster
from ..scenarios import create_scenario
from ..systems.sql import Connect, connect
from ..util import Timer, save_json
from .lifecycle import BenchmarkCluster
from .reporter import BenchmarkFatal, BenchmarkMetric, BenchmarkReporter, Failure


@dataclass
class ScenarioOutcome:
    """Pass/fail result of a scenario run and its metric, if it got that far."""

    scenario: str
    iterations: int
    prefix: str | None
    metric: BenchmarkMetric | None
    failures: list[Failure] = field(default_factory=list)
    total_elapsed_s: float = 0.0
    results_path: Path | None = None

    @property
    def passed(self) -> bool:
        return not self.failures

    def as_dict(self) -> dict[str, Any]:
        return {
            "scenario": self.scenario,
            "iterations": self.iterations,
            "prefix": self.prefix,
            "passed": self.passed,
            "metric": self.metric.as_dict() if self.metric else None,
            "failures": [f.as_dict() for f in self.failures],
            "total_elapsed_s": self.total_elapsed_s,
            "timestamp": datetime.now().isoformat(),
        }


def run_scenario(
    name: str,
    iterations: int,
    config: BulkbenchConfig | None = None,
    cluster_factory: ClusterFactory = make_terraform_cluster,
    connect_fn: Connect = connect,
    environ: Mapping[str, str] | None = None,
    log_dir: Path | str | None = None,
    output_callback: Callable[[str], None] | None = None,
    save_results: bool = True,
) -> ScenarioOutcome:
    """Run scenario ``name`` with the given iteration count.

    Fatal failures stop the run; they are recorded in the returned outcome
    rather than raised.
    """
    config = config or BulkbenchConfig()
    scenario = create_scenario(name, config.overrides_for(name), environ)
    reporter = BenchmarkReporter(name, iterations, output_callback=output_callback)
    prefix: str | None = None

    with Timer(f"scenario {name}") as total:
        try:
            spec = scenario.check_preconditions(iterations, reporter)
            prefix = spec.prefix

            with BenchmarkCluster(
                spec,
                reporter,
                environment=config.environment,
                settings=config.harness,
                cluster_factory=cluster_factory,
                connect_fn=connect_fn,
                log_dir=log_dir,
                output_callback=output_callback,
            ) as cluster:
                cluster.start()
                scenario.run(cluster, reporter, iterations)
        except BenchmarkFatal:
            # Already recorded on the reporter
            pass

    outcome = ScenarioOutcome(
        scenario=name,
        iterations=iterations,
        prefix=prefix,
        metric=reporter.metric(),
        failures=list(reporter.failures),
        total_elapsed_s=total.elapsed,
    )

    if save_results and prefix is not None:
        path = Path(config.environment.results_dir) / prefix / f"{name}.json"
        save_json(outcome.as_dict(), path)
        outcome.results_path = path

    return outcome
