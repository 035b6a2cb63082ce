"""Common enums used across the bulkbench harness."""

from enum import Enum


class StorageScheme(str, Enum):
    """Object-store scheme backing an archive or backup location.

    - GS: Google Cloud Storage (``gs://bucket/...``)
    - S3: Amazon S3 (``s3://bucket/...``)
    - AZURE: Azure Blob Storage (``azure://container/...``)
    - NODELOCAL: a directory on the node itself, useful for smoke runs
    """

    GS = "gs"
    S3 = "s3"
    AZURE = "azure"
    NODELOCAL = "nodelocal"

    def __str__(self) -> str:
        return self.value


class FailureStage(str, Enum):
    """Stage of a benchmark run a recorded failure belongs to."""

    PRECONDITION = "precondition"
    PROVISIONING = "provisioning"
    SEEDING = "seeding"
    HEALTH = "health"
    SETUP = "setup"
    BENCHMARK = "benchmark"
    TEARDOWN = "teardown"
    PANIC = "panic"

    def __str__(self) -> str:
        return self.value
