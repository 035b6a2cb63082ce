"""Lifecycle of the ephemeral cluster a benchmark runs against.

``BenchmarkCluster.start`` walks a fixed sequence of stages:

1. acquire a cluster handle for the resource prefix
2. configure flags and provisioning variables
3. resize to the requested node count
4. seed from an archive, if one is configured: stop every node, copy every
   node's store in parallel, restart every node
5. wait for gossip to converge on the full node count
6. assert cluster health
7. apply cluster settings through node 0

Any stage failure is fatal. ``close`` destroys whatever was acquired and is
safe to call at any point, including more than once. Use the cluster as a
context manager so ``close`` runs on every exit path.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from types import TracebackType

from ..common.enums import FailureStage
from ..config import ClusterSpec, EnvironmentConfig, HarnessSettings
from ..infra.cluster import ClusterError, ClusterFactory, ClusterHandle
from ..infra.gossip import wait_for_peers
from ..infra.manager import make_terraform_cluster
from ..storage.uri import archive_copy_command
from ..systems.sql import Connect, SQLRunner, connect
from .fanout import FanOutResult, fan_out, first_error
from .reporter import BenchmarkFatal, BenchmarkReporter

# Errors a cluster handle may raise; local filesystem errors during
# provisioning count as cluster failures
CLUSTER_FAILURES = (ClusterError, OSError)


class BenchmarkCluster:
    """Provisions, seeds and tears down the cluster for one benchmark run."""

    def __init__(
        self,
        spec: ClusterSpec,
        reporter: BenchmarkReporter,
        environment: EnvironmentConfig | None = None,
        settings: HarnessSettings | None = None,
        cluster_factory: ClusterFactory = make_terraform_cluster,
        connect_fn: Connect = connect,
        log_dir: Path | str | None = None,
        output_callback: Callable[[str], None] | None = None,
    ):
        self.spec = spec
        self.reporter = reporter
        self.environment = environment or EnvironmentConfig()
        self.settings = settings or HarnessSettings()
        self.cluster_factory = cluster_factory
        self.connect_fn = connect_fn
        self.log_dir = log_dir
        self._output_callback = output_callback

        # None until acquired, and again once closed
        self.cluster: ClusterHandle | None = None
        # Results of the last seeding fan-out, kept for reporting
        self.seed_results: list[FanOutResult] = []

    def _log(self, message: str) -> None:
        if self._output_callback:
            self._output_callback(message)
        else:
            print(message)

    def __enter__(self) -> BenchmarkCluster:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool:
        recovered = False
        if isinstance(exc_val, Exception) and not isinstance(exc_val, BenchmarkFatal):
            self.reporter.error(
                f"recovered from {exc_val!r} to destroy cluster", FailureStage.PANIC
            )
            recovered = True

        self.close(failure_in_flight=exc_val is not None)
        return recovered

    def start(self) -> None:
        spec = self.spec

        try:
            self.cluster = self.cluster_factory(
                spec.prefix, self.environment, self.settings
            )
        except (ClusterError, OSError, ValueError) as e:
            self.reporter.fatal(
                f"error acquiring cluster '{spec.prefix}': {e}",
                FailureStage.PROVISIONING,
            )
        cluster = self.cluster

        cluster.add_flag(f"--max-offset={self.settings.max_offset}")
        cluster.set_var("join_all", str(spec.skip_cluster_init).lower())
        if spec.disk_size_gb != 0:
            cluster.set_var("cockroach_disk_size", str(spec.disk_size_gb))

        self._log(f"creating cluster with {spec.nodes} node(s)")
        try:
            cluster.resize(spec.nodes)
        except CLUSTER_FAILURES as e:
            self.reporter.fatal(str(e), FailureStage.PROVISIONING)

        if spec.seeds_from_archive:
            self._seed_from_archive(cluster)

        result = wait_for_peers(
            cluster,
            spec.nodes,
            timeout_seconds=self.settings.gossip_timeout_s,
            poll_interval=self.settings.gossip_poll_interval_s,
        )
        if not result.ready:
            self.reporter.fatal(result.message, FailureStage.HEALTH)

        try:
            cluster.assert_healthy()
        except CLUSTER_FAILURES as e:
            self.reporter.fatal(str(e), FailureStage.HEALTH)

        with self.sql(0, stage=FailureStage.SETUP) as runner:
            for name, value in self.settings.cluster_settings.items():
                runner.set_cluster_setting(name, value)

        self._log("initial cluster is up")

    def _seed_from_archive(self, cluster: ClusterHandle) -> None:
        """Replace every node's store with its archived copy."""
        # Nothing may hold the data directory open while it is overwritten
        self._log("stopping cluster")
        for node in range(cluster.num_nodes()):
            try:
                cluster.kill(node)
            except CLUSTER_FAILURES as e:
                self.reporter.fatal(
                    f"error stopping node {node}: {e}", FailureStage.SEEDING
                )

        self._log(f"downloading archived stores from {self.spec.store_url} in parallel")

        def download(node: int) -> None:
            cmd = archive_copy_command(
                self.spec.store_url, node, self.settings.data_dir
            )
            print(f"exec on node {node}: {cmd}")
            cluster.exec(node, cmd)

        self.seed_results = fan_out(
            cluster.num_nodes(),
            download,
            phase_name=f"{self.spec.prefix} store download",
            log_dir=self.log_dir,
        )
        failed = first_error(self.seed_results)
        if failed is not None:
            # Already-copied nodes stay stopped; the run is over either way
            self.reporter.fatal(
                f"error downloading store {failed.node}: {failed.error}",
                FailureStage.SEEDING,
            )

        self._log("restarting cluster with archived store(s)")
        for node in range(cluster.num_nodes()):
            try:
                cluster.restart(node)
            except CLUSTER_FAILURES as e:
                self.reporter.fatal(
                    f"error restarting node {node}: {e}", FailureStage.SEEDING
                )

    def sql(self, node: int = 0, stage: FailureStage = FailureStage.BENCHMARK) -> SQLRunner:
        """Open a SQL runner against ``node``; use it as a context manager."""
        if self.cluster is None:
            raise RuntimeError("cluster has not been started")
        return SQLRunner.open(
            self.cluster.pg_url(node), self.reporter, stage, connect_fn=self.connect_fn
        )

    def close(self, failure_in_flight: bool = False) -> None:
        """Destroy the cluster if one was acquired.

        The handle is dropped before destroying, so a second call is a no-op.
        A destroy failure is recorded; it only raises when it is the first
        failure of the run.
        """
        cluster, self.cluster = self.cluster, None
        if cluster is None:
            return

        self._log("shutting down cluster")
        try:
            cluster.destroy()
        except CLUSTER_FAILURES as e:
            message = f"error destroying cluster '{self.spec.prefix}': {e}"
            if failure_in_flight or self.reporter.failed:
                self.reporter.error(message, FailureStage.TEARDOWN)
            else:
                self.reporter.fatal(message, FailureStage.TEARDOWN)
