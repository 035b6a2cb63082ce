"""Shared fakes for cluster and SQL access."""

from __future__ import annotations

import threading
import time
from typing import Any

import psycopg
import pytest

from bulkbench.config import EnvironmentConfig, HarnessSettings
from bulkbench.infra.cluster import ClusterError
from bulkbench.run.reporter import BenchmarkReporter


def query_text(query: Any) -> str:
    return query if isinstance(query, str) else repr(query)


class FakeCluster:
    """Records every call; ``fail`` maps an operation to the nodes it fails on."""

    def __init__(
        self,
        fail: dict[str, set[int] | bool] | None = None,
        peers: int | None = None,
        exec_delay: dict[int, float] | None = None,
        error: type[Exception] = ClusterError,
    ):
        self.fail = fail or {}
        self.error = error
        self.peers = peers
        self.exec_delay = exec_delay or {}
        self.calls: list[tuple[Any, ...]] = []
        self.flags: list[str] = []
        self.vars: dict[str, str] = {}
        self.nodes = 0
        self._lock = threading.Lock()

    def _record(self, *call: Any) -> None:
        with self._lock:
            self.calls.append(call)

    def _maybe_fail(self, op: str, node: int | None = None) -> None:
        target = self.fail.get(op)
        if target is True or (node is not None and target and node in target):
            raise self.error(f"{op} failed" + (f" on node {node}" if node is not None else ""))

    def ops(self, name: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == name]

    def add_flag(self, flag: str) -> None:
        self._record("add_flag", flag)
        self.flags.append(flag)

    def set_var(self, key: str, value: str) -> None:
        self._record("set_var", key, value)
        self.vars[key] = value

    def resize(self, nodes: int) -> None:
        self._record("resize", nodes)
        self._maybe_fail("resize")
        self.nodes = nodes

    def num_nodes(self) -> int:
        return self.nodes

    def kill(self, node: int) -> None:
        self._record("kill", node)
        self._maybe_fail("kill", node)

    def restart(self, node: int) -> None:
        self._record("restart", node)
        self._maybe_fail("restart", node)

    def exec(self, node: int, command: str) -> None:
        time.sleep(self.exec_delay.get(node, 0))
        self._record("exec", node, command)
        self._maybe_fail("exec", node)

    def pg_url(self, node: int) -> str:
        return f"postgresql://root@node{node}:26257/?sslmode=disable"

    def gossip_peers(self, node: int, timeout: float | None = None) -> int:
        self._record("gossip_peers", node, timeout)
        return self.nodes if self.peers is None else self.peers

    def assert_healthy(self) -> None:
        self._record("assert_healthy")
        self._maybe_fail("assert_healthy")

    def destroy(self) -> None:
        self._record("destroy")
        self._maybe_fail("destroy")


class FakeCursor:
    def __init__(self, connection: FakeConnection):
        self.connection = connection
        self._row: tuple[Any, ...] | None = None

    def __enter__(self) -> FakeCursor:
        return self

    def __exit__(self, *exc: Any) -> None:
        pass

    def execute(self, query: Any, params: Any = None) -> None:
        text = query_text(query)
        self.connection.executed.append((query, params))
        for fragment, delay in self.connection.delays.items():
            if fragment in text:
                time.sleep(delay)
        for fragment in self.connection.fail_on:
            if fragment in text:
                raise psycopg.Error(f"injected failure for {fragment}")
        self._row = None
        for fragment, row in self.connection.rows.items():
            if fragment in text:
                self._row = row

    def executemany(self, query: Any, rows: Any) -> None:
        rows = list(rows)
        self.connection.executed_many.append((query, rows))
        text = query_text(query)
        for fragment, delay in self.connection.delays.items():
            if fragment in text:
                time.sleep(delay)

    def fetchone(self) -> tuple[Any, ...] | None:
        return self._row


class FakeConnection:
    def __init__(
        self,
        rows: dict[str, tuple[Any, ...]] | None = None,
        fail_on: list[str] | None = None,
        delays: dict[str, float] | None = None,
    ):
        self.rows = rows or {}
        self.fail_on = fail_on or []
        self.delays = delays or {}
        self.executed: list[tuple[Any, Any]] = []
        self.executed_many: list[tuple[Any, list[Any]]] = []
        self.closed = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def close(self) -> None:
        self.closed = True

    def statements(self) -> list[str]:
        return [query_text(q) for q, _ in self.executed]


class FakeConnector:
    """``connect_fn`` handing out one shared fake connection per call."""

    def __init__(self, connection: FakeConnection | None = None):
        self.connection = connection or FakeConnection()
        self.urls: list[str] = []

    def __call__(self, url: str) -> FakeConnection:
        self.urls.append(url)
        return self.connection


class FactoryRecorder:
    """``ClusterFactory`` returning a prepared fake and remembering its calls."""

    def __init__(self, cluster: FakeCluster | None = None, error: Exception | None = None):
        self.cluster = cluster or FakeCluster()
        self.error = error
        self.prefixes: list[str] = []

    def __call__(
        self, prefix: str, environment: EnvironmentConfig, settings: HarnessSettings
    ) -> FakeCluster:
        self.prefixes.append(prefix)
        if self.error:
            raise self.error
        return self.cluster


@pytest.fixture
def reporter() -> BenchmarkReporter:
    return BenchmarkReporter("test", 1)


@pytest.fixture
def settings() -> HarnessSettings:
    return HarnessSettings(gossip_timeout_s=0.05, gossip_poll_interval_s=0)


@pytest.fixture
def environment(tmp_path) -> EnvironmentConfig:
    return EnvironmentConfig(results_dir=str(tmp_path / "results"))
