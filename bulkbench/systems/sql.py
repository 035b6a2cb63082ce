"""SQL access to the cluster under test.

Statements run through psycopg with server-side placeholders (``%s``) for
values. Names that cannot be bound as parameters, such as database
identifiers and cluster setting names, are composed with ``psycopg.sql``.
Every failure is recorded as fatal on the run's reporter, mirroring how a
test's SQL helper fails the test.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import Any

import psycopg
from psycopg import sql

from ..common.enums import FailureStage
from ..run.reporter import BenchmarkReporter

Query = str | sql.Composable
Connect = Callable[[str], Any]


def connect(url: str) -> psycopg.Connection:
    """Open an autocommit connection; BACKUP/RESTORE cannot run in a transaction."""
    return psycopg.connect(url, autocommit=True)


def _describe(query: Query) -> str:
    if isinstance(query, str):
        return " ".join(query.split())
    return repr(query)


class SQLRunner:
    """Wraps a connection so that any statement error fails the run."""

    def __init__(
        self,
        connection: Any,
        reporter: BenchmarkReporter,
        stage: FailureStage = FailureStage.BENCHMARK,
    ):
        self.connection = connection
        self.reporter = reporter
        self.stage = stage

    @classmethod
    def open(
        cls,
        url: str,
        reporter: BenchmarkReporter,
        stage: FailureStage = FailureStage.BENCHMARK,
        connect_fn: Connect = connect,
    ) -> SQLRunner:
        try:
            connection = connect_fn(url)
        except psycopg.Error as e:
            reporter.fatal(f"error connecting to {url}: {e}", stage)
        return cls(connection, reporter, stage)

    def __enter__(self) -> SQLRunner:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self.connection.close()

    def exec(self, query: Query, params: Sequence[Any] | None = None) -> None:
        try:
            with self.connection.cursor() as cur:
                cur.execute(query, params)
        except psycopg.Error as e:
            self.reporter.fatal(f"error executing '{_describe(query)}': {e}", self.stage)

    def exec_many(self, query: Query, rows: Iterable[Sequence[Any]]) -> None:
        try:
            with self.connection.cursor() as cur:
                cur.executemany(query, rows)
        except psycopg.Error as e:
            self.reporter.fatal(f"error executing '{_describe(query)}': {e}", self.stage)

    def query_row(
        self, query: Query, params: Sequence[Any] | None = None
    ) -> tuple[Any, ...]:
        try:
            with self.connection.cursor() as cur:
                cur.execute(query, params)
                row = cur.fetchone()
        except psycopg.Error as e:
            self.reporter.fatal(f"error querying '{_describe(query)}': {e}", self.stage)
        if row is None:
            self.reporter.fatal(f"no rows returned by '{_describe(query)}'", self.stage)
        return tuple(row)

    def create_database(self, name: str) -> None:
        self.exec(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(name)))

    def set_cluster_setting(self, name: str, value: bool | int | str) -> None:
        # SET CLUSTER SETTING does not accept placeholders
        self.exec(
            sql.SQL("SET CLUSTER SETTING {} = {}").format(
                sql.SQL(name), sql.Literal(value)
            )
        )


def reported_data_size(row: Sequence[Any]) -> int:
    """Byte count from a BACKUP/RESTORE result row.

    The byte count is the last column of the job summary row.
    """
    if not row:
        raise ValueError("empty BACKUP/RESTORE result row")
    return int(row[-1])
