"""Restore a generated bank table of one row per iteration."""

from __future__ import annotations

import random
import string
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..common.enums import StorageScheme
from ..config import DestinationConfig
from ..storage.uri import ArchiveLocation, destination_location
from ..systems.sql import SQLRunner, reported_data_size
from ..util import format_bytes
from .base import Scenario

if TYPE_CHECKING:
    from ..run.lifecycle import BenchmarkCluster
    from ..run.reporter import BenchmarkReporter

ROW_PAYLOAD_SIZE = 100
BANK_DATABASE = "bench"
BANK_TABLE = "bank"
BANK_INSERT = f"INSERT INTO {BANK_DATABASE}.{BANK_TABLE} VALUES (%s, %s, %s)"

_PAYLOAD_ALPHABET = string.ascii_letters + string.digits


@dataclass
class ImportScript:
    """A bank table definition and its rows, assembled in memory."""

    create_table: str
    rows: list[tuple[int, int, str]] = field(default_factory=list)

    @property
    def payload_bytes(self) -> int:
        return sum(len(payload) for _, _, payload in self.rows)


def random_payload(rng: random.Random, size: int) -> str:
    return "".join(rng.choices(_PAYLOAD_ALPHABET, k=size))


def load_backup(runner: SQLRunner, script: ImportScript, location: ArchiveLocation) -> int:
    """Load ``script`` into the bank table and back it up to ``location``.

    Returns the data size the backup reports.
    """
    runner.exec(script.create_table)
    if script.rows:
        runner.exec_many(BANK_INSERT, script.rows)
    row = runner.query_row(
        f"BACKUP TABLE {BANK_DATABASE}.{BANK_TABLE} TO %s", (location.uri(),)
    )
    return reported_data_size(row)


class RestoreBig(Scenario):
    """Creates a backup of ``iterations`` generated rows, then times restoring it.

    The backup goes to Azure by default, which needs AZURE_CONTAINER,
    AZURE_ACCOUNT_NAME and AZURE_ACCOUNT_KEY in the environment.
    """

    name = "restore-big"
    path_name = "BenchmarkRestoreBig"
    description = "Restore a generated bank table (one row per iteration)"
    cluster_defaults = {"nodes": 3, "disk_size_gb": 250, "prefix": "restore"}

    destination: ArchiveLocation

    def prepare(self, iterations: int) -> None:
        destination = self.overrides.destination or DestinationConfig(
            scheme=StorageScheme.AZURE
        )
        self.destination = destination_location(destination, self.environ)

    @property
    def payload_size(self) -> int:
        return self.overrides.row_payload_size or ROW_PAYLOAD_SIZE

    def build_import_script(self, rows: int, rng: random.Random) -> ImportScript:
        script = ImportScript(
            create_table=self.render(
                "bank_create_table.sql", database=BANK_DATABASE, table=BANK_TABLE
            )
        )
        for i in range(rows):
            script.rows.append((i, 0, random_payload(rng, self.payload_size)))
        return script

    def run(
        self,
        cluster: BenchmarkCluster,
        reporter: BenchmarkReporter,
        iterations: int,
    ) -> None:
        seed = self.overrides.seed
        if seed is None:
            seed = random.SystemRandom().randrange(2**63)
        reporter.log(f"random seed: {seed}")
        rng = random.Random(seed)

        with cluster.sql(0) as runner:
            runner.create_database(BANK_DATABASE)

            location = self.destination.timestamped(self.path_name, iterations)
            script = self.build_import_script(iterations, rng)
            data_size = load_backup(runner, script, location)

            db_name = f"bank{iterations}"
            runner.create_database(db_name)

            reporter.log(f"starting restore to {db_name}")
            with reporter.timed():
                runner.exec(
                    f"RESTORE TABLE {BANK_DATABASE}.* FROM %s WITH into_db = %s",
                    (location.uri(), db_name),
                )
            reporter.set_bytes(data_size // iterations)
            reporter.log(f"restored {format_bytes(data_size)}")
