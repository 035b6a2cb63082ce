"""Failure recording and throughput accounting for a single benchmark run."""

from __future__ import annotations

import contextlib
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any, NoReturn

from ..common.enums import FailureStage
from ..util import Timer


class BenchmarkFatal(Exception):
    """A recorded failure that halts the current run.

    Raised by ``BenchmarkReporter.fatal`` after the failure has been recorded,
    so handlers further up only need to stop, not report again.
    """

    def __init__(self, message: str, stage: FailureStage):
        super().__init__(message)
        self.stage = stage


@dataclass
class Failure:
    stage: FailureStage
    message: str
    fatal: bool

    def as_dict(self) -> dict[str, Any]:
        return {"stage": str(self.stage), "message": self.message, "fatal": self.fatal}


@dataclass
class BenchmarkMetric:
    """Bytes processed and wall time of the timed window only."""

    iterations: int
    bytes_per_op: int
    elapsed_s: float

    @property
    def total_bytes(self) -> int:
        return self.bytes_per_op * self.iterations

    @property
    def ns_per_op(self) -> float:
        if self.iterations == 0:
            return 0.0
        return self.elapsed_s * 1e9 / self.iterations

    @property
    def throughput_mb_s(self) -> float:
        if self.elapsed_s <= 0:
            return 0.0
        return self.total_bytes / 1e6 / self.elapsed_s

    def as_dict(self) -> dict[str, Any]:
        return {
            "iterations": self.iterations,
            "bytes_per_op": self.bytes_per_op,
            "elapsed_s": self.elapsed_s,
            "ns_per_op": self.ns_per_op,
            "throughput_mb_s": self.throughput_mb_s,
        }


@dataclass
class BenchmarkReporter:
    """Collects failures and the timed window of one scenario run.

    ``fatal`` records and raises; ``error`` records and lets the caller carry
    on. Any recorded failure fails the run.
    """

    scenario: str
    iterations: int
    output_callback: Callable[[str], None] | None = None
    failures: list[Failure] = field(default_factory=list)
    bytes_per_op: int = 0
    elapsed_s: float = 0.0
    _timed: bool = False

    @property
    def failed(self) -> bool:
        return bool(self.failures)

    def log(self, message: str) -> None:
        if self.output_callback:
            self.output_callback(message)
        else:
            print(message)

    def error(self, message: str, stage: FailureStage) -> None:
        self.failures.append(Failure(stage, message, fatal=False))
        self.log(f"ERROR [{stage}] {message}")

    def fatal(self, message: str, stage: FailureStage) -> NoReturn:
        """Record a fatal failure and raise ``BenchmarkFatal``."""
        self.failures.append(Failure(stage, message, fatal=True))
        self.log(f"FATAL [{stage}] {message}")
        raise BenchmarkFatal(message, stage)

    def set_bytes(self, bytes_per_op: int) -> None:
        self.bytes_per_op = int(bytes_per_op)

    @contextlib.contextmanager
    def timed(self) -> Iterator[Timer]:
        """Measure the enclosed block as the benchmark's timed window.

        Only the last window counts; setup must happen before entering it.
        """
        with Timer(f"{self.scenario} timed window") as timer:
            yield timer
        self.elapsed_s = timer.elapsed
        self._timed = True

    def metric(self) -> BenchmarkMetric | None:
        if not self._timed:
            return None
        return BenchmarkMetric(
            iterations=self.iterations,
            bytes_per_op=self.bytes_per_op,
            elapsed_s=self.elapsed_s,
        )
