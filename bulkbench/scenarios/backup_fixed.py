"""Back up a cluster seeded with a fixed 2TB store archive."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..common.enums import StorageScheme
from ..config import DestinationConfig
from ..storage.uri import ArchiveLocation, destination_location
from ..systems.sql import reported_data_size
from ..util import format_bytes
from .base import Scenario

if TYPE_CHECKING:
    from ..run.lifecycle import BenchmarkCluster
    from ..run.reporter import BenchmarkReporter

BULK_ARCHIVE_STORE_URL = "gs://cockroach-test/bulkops/10nodes-2t-50000ranges"
BACKUP_DESTINATION = DestinationConfig(scheme=StorageScheme.GS, host="cockroach-test")


class Backup2TB(Scenario):
    name = "backup-2tb"
    path_name = "BenchmarkBackup2TB"
    description = "Back up the datablocks database of a 2TB seeded cluster"
    required_iterations = 1
    # The archived stores already form a cluster, so no node bootstraps a new one
    cluster_defaults = {
        "nodes": 10,
        "disk_size_gb": 250,
        "prefix": "backup2tb",
        "store_url": BULK_ARCHIVE_STORE_URL,
        "skip_cluster_init": True,
    }

    destination: ArchiveLocation

    def prepare(self, iterations: int) -> None:
        self.destination = destination_location(
            self.overrides.destination or BACKUP_DESTINATION, self.environ
        )

    def run(
        self,
        cluster: BenchmarkCluster,
        reporter: BenchmarkReporter,
        iterations: int,
    ) -> None:
        location = self.destination.timestamped(self.path_name, iterations)

        with cluster.sql(0) as runner:
            reporter.log(f"starting backup to {location}")
            with reporter.timed():
                row = runner.query_row(
                    "BACKUP DATABASE datablocks TO %s", (location.uri(),)
                )
            data_size = reported_data_size(row)
            reporter.set_bytes(data_size)
            reporter.log(f"backed up {format_bytes(data_size)}")
