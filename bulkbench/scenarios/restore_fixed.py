"""Restore a fixed, externally hosted 2TB backup."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..systems.sql import reported_data_size
from ..util import format_bytes
from .base import Scenario

if TYPE_CHECKING:
    from ..run.lifecycle import BenchmarkCluster
    from ..run.reporter import BenchmarkReporter

RESTORE_2TB_SOURCE = "gs://cockroach-test/2t-backup"


class Restore2TB(Scenario):
    name = "restore-2tb"
    path_name = "BenchmarkRestore2TB"
    description = "Restore the fixed 2TB datablocks backup"
    required_iterations = 1
    # GCE local SSDs are 375GB each, so the data is spread over 15 nodes
    cluster_defaults = {"nodes": 15, "disk_size_gb": 250, "prefix": "restore2tb"}

    @property
    def source_uri(self) -> str:
        return self.overrides.source_uri or RESTORE_2TB_SOURCE

    def run(
        self,
        cluster: BenchmarkCluster,
        reporter: BenchmarkReporter,
        iterations: int,
    ) -> None:
        with cluster.sql(0) as runner:
            runner.create_database("datablocks")

            reporter.log(f"starting restore from {self.source_uri}")
            with reporter.timed():
                row = runner.query_row("RESTORE datablocks.* FROM %s", (self.source_uri,))
            data_size = reported_data_size(row)
            reporter.set_bytes(data_size)
            reporter.log(f"restored {format_bytes(data_size)}")
