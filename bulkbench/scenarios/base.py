"""Base class for timed bulk-operation scenarios."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from jinja2 import Environment, FileSystemLoader
from pydantic import ValidationError

from ..common.enums import FailureStage
from ..config import ClusterSpec, ScenarioOverrides
from ..storage.uri import CredentialsError

if TYPE_CHECKING:
    from ..run.lifecycle import BenchmarkCluster
    from ..run.reporter import BenchmarkReporter

TEMPLATE_DIR = Path(__file__).parent / "templates"


class Scenario(ABC):
    """A named, timed workload run against a ready cluster.

    Subclasses describe the cluster they need through ``cluster_defaults``,
    resolve external locations in ``prepare`` and put the timed statement in
    ``run``. Only the statement itself may sit inside ``reporter.timed()``.
    """

    # CLI name
    name: str = ""
    # Used as the first path segment of every URI the scenario writes to
    path_name: str = ""
    description: str = ""
    # Scenarios that move a fixed archive only make sense once per run
    required_iterations: int | None = None
    cluster_defaults: dict[str, Any] = {}

    def __init__(
        self,
        overrides: ScenarioOverrides | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self.overrides = overrides or ScenarioOverrides()
        self.environ = os.environ if environ is None else environ
        self.template_env: Environment | None = None

    def get_template_env(self) -> Environment:
        """Get the scenario's jinja2 template environment"""
        if not self.template_env:
            self.template_env = Environment(
                loader=FileSystemLoader(TEMPLATE_DIR),
                trim_blocks=True,
                lstrip_blocks=True,
            )
        return self.template_env

    def render(self, template_name: str, **context: Any) -> str:
        return self.get_template_env().get_template(template_name).render(**context)

    def cluster_spec(self) -> ClusterSpec:
        """Built-in cluster shape with any configured overrides applied."""
        values = dict(self.cluster_defaults)
        for key in ("nodes", "prefix", "disk_size_gb", "store_url", "skip_cluster_init"):
            value = getattr(self.overrides, key)
            if value is not None:
                values[key] = value
        return ClusterSpec(**values)

    def check_preconditions(
        self, iterations: int, reporter: BenchmarkReporter
    ) -> ClusterSpec:
        """Fail the run before anything is provisioned if it cannot succeed.

        Returns the cluster the scenario will run against.
        """
        if iterations < 1:
            reporter.fatal(
                f"iterations must be positive (got {iterations})",
                FailureStage.PRECONDITION,
            )
        if self.required_iterations is not None and iterations != self.required_iterations:
            reporter.fatal(
                f"iterations must be {self.required_iterations} (got {iterations})",
                FailureStage.PRECONDITION,
            )
        try:
            spec = self.cluster_spec()
        except ValidationError as e:
            reporter.fatal(
                f"invalid cluster for {self.name}: {e}", FailureStage.PRECONDITION
            )
        try:
            self.prepare(iterations)
        except CredentialsError as e:
            reporter.fatal(str(e), FailureStage.PRECONDITION)
        return spec

    def prepare(self, iterations: int) -> None:
        """Resolve external locations and credentials. Override as needed."""

    @abstractmethod
    def run(
        self,
        cluster: BenchmarkCluster,
        reporter: BenchmarkReporter,
        iterations: int,
    ) -> None:
        """Execute the workload against a started cluster."""
