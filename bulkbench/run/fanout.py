"""Per-node parallel fan-out with per-task output capture.

``fan_out`` runs one operation per node on a pool sized to the node count.
Workers are never cancelled: every operation runs to completion and reports
exactly one result, even after another node has already failed, so no
half-finished background work outlives the call.
"""

from __future__ import annotations

import contextlib
import re
import sys
import threading
import time
import traceback
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TextIO

# Used by debug.py to tag debug output with the task running in this thread
_current_executor: ParallelExecutor | None = None


def get_current_task_name() -> str | None:
    """Return the name of the fan-out task running in the calling thread."""
    if _current_executor is None:
        return None
    return getattr(_current_executor._thread_local, "current_task", None)


@dataclass
class TaskOutcome:
    """Outcome of one task; ``order`` is its position in completion order."""

    name: str
    result: Any = None
    error: Exception | None = None
    elapsed_s: float = 0.0
    order: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FanOutResult:
    """Outcome of the operation run against one node."""

    node: int
    error: Exception | None = None
    elapsed_s: float = 0.0
    order: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


class _DispatchStream:
    """Stand-in for sys.stdout/sys.stderr while a phase runs.

    Writes from a worker thread land in that worker's buffer; writes from any
    other thread pass through to the original stream.
    """

    def __init__(self, executor: ParallelExecutor, original: TextIO, label: str):
        self._executor = executor
        self._original = original
        self._label = label
        self._pending: dict[str, str] = {}
        self._lock = threading.Lock()

    def write(self, data: str) -> int:
        task = self._executor.get_current_task_name()
        if task is None:
            return self._original.write(data)

        with self._lock:
            text = self._pending.get(task, "") + data
            *lines, self._pending[task] = text.split("\n")

        for line in lines:
            self._emit(task, line)
        return len(data)

    def flush_task(self, task: str) -> None:
        with self._lock:
            pending = self._pending.pop(task, "")
        if pending:
            self._emit(task, pending)

    def flush(self) -> None:
        self._original.flush()

    def _emit(self, task: str, line: str) -> None:
        content = line.rstrip("\r")
        if self._label == "stderr" and content:
            content = f"[stderr] {content}"
        self._executor._record_line(task, content)


class ParallelExecutor:
    """Thread pool that tags and captures each task's output."""

    # Per-task cap on buffered lines
    MAX_BUFFER_LINES = 50000

    def __init__(self, max_workers: int):
        if max_workers < 1:
            raise ValueError(f"max_workers must be positive (got {max_workers})")
        self.max_workers = max_workers

        self.output_buffers: dict[str, list[str]] = {}
        self.outcomes: dict[str, TaskOutcome] = {}

        self._state_lock = threading.Lock()
        self._print_lock = threading.Lock()
        self._thread_local = threading.local()
        self._completed = 0
        self._stdout_original: TextIO = sys.stdout
        self._streams: list[_DispatchStream] = []

    def execute_parallel(
        self,
        tasks: dict[str, Callable[[], Any]],
        phase_name: str,
        log_dir: Path | str | None = None,
    ) -> dict[str, TaskOutcome]:
        """Run every task to completion and return one outcome per task."""
        global _current_executor

        if not tasks:
            return {}

        self.output_buffers = {name: [] for name in tasks}
        self.outcomes = {}
        self._completed = 0
        self._stdout_original = sys.stdout

        stdout_stream = _DispatchStream(self, sys.stdout, "stdout")
        stderr_stream = _DispatchStream(self, sys.stderr, "stderr")
        self._streams = [stdout_stream, stderr_stream]

        self._print_line("")
        self._print_line(f"== {phase_name} ==")

        _current_executor = self
        try:
            with (
                contextlib.redirect_stdout(stdout_stream),  # type: ignore[type-var]
                contextlib.redirect_stderr(stderr_stream),  # type: ignore[type-var]
                ThreadPoolExecutor(max_workers=self.max_workers) as pool,
            ):
                futures = {
                    pool.submit(self._wrap_task, name, task): name
                    for name, task in tasks.items()
                }
                for future in as_completed(futures):
                    outcome = future.result()
                    with self._state_lock:
                        outcome.order = self._completed
                        self._completed += 1
                        self.outcomes[outcome.name] = outcome
        finally:
            _current_executor = None
            self._streams = []

        log_paths = self._write_logs(phase_name, log_dir)
        self._print_summary(phase_name, log_paths)

        return {name: self.outcomes[name] for name in tasks}

    def get_current_task_name(self) -> str | None:
        return getattr(self._thread_local, "current_task", None)

    def _wrap_task(self, name: str, task: Callable[[], Any]) -> TaskOutcome:
        """Run one task, turning any exception into its outcome."""
        self._thread_local.current_task = name
        start = time.perf_counter()
        outcome = TaskOutcome(name=name)
        try:
            self._record_line(name, "Task started")
            outcome.result = task()
            self._record_line(name, "[status] Completed")
        except Exception as exc:
            outcome.error = exc
            for line in traceback.format_exc().strip().splitlines():
                self._record_line(name, f"[stderr] {line}")
            self._record_line(name, f"[status] Failed: {exc}")
        finally:
            for stream in self._streams:
                stream.flush_task(name)
            outcome.elapsed_s = time.perf_counter() - start
            self._thread_local.current_task = None
        return outcome

    def _record_line(self, name: str, message: str) -> None:
        clean = message.rstrip("\n\r")
        with self._state_lock:
            buffer = self.output_buffers.setdefault(name, [])
            if len(buffer) < self.MAX_BUFFER_LINES:
                buffer.append(clean)
            elif len(buffer) == self.MAX_BUFFER_LINES:
                buffer.append(
                    f"[WARNING: Output buffer limit reached ({self.MAX_BUFFER_LINES} lines), truncating further output]"
                )
        self._print_line(f"[{name}] {clean}" if clean else f"[{name}]")

    def _write_logs(
        self, phase_name: str, base_log_dir: Path | str | None
    ) -> dict[str, Path]:
        if not base_log_dir:
            return {}

        log_paths: dict[str, Path] = {}
        phase_dir = Path(base_log_dir) / self._slugify(phase_name)
        try:
            phase_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self._print_line(f"Warning: Failed to create log directory: {e}")
            return {}

        for name, lines in self.output_buffers.items():
            path = phase_dir / f"{self._slugify(name)}.log"
            try:
                path.write_text(
                    "\n".join(lines) + "\n" if lines else "", encoding="utf-8"
                )
                log_paths[name] = path
            except OSError as e:
                self._print_line(f"Warning: Failed to write log for {name}: {e}")

        return log_paths

    def _print_summary(self, phase_name: str, log_paths: dict[str, Path]) -> None:
        self._print_line(f"== {phase_name} Summary ==")
        for name, outcome in self.outcomes.items():
            status = "Completed" if outcome.ok else f"Failed: {outcome.error}"[:200]
            self._print_line(f"- {name}: {status} ({outcome.elapsed_s:.1f}s)")
            path = log_paths.get(name)
            if path:
                self._print_line(f"  log: {path}")
        self._print_line("")

    def _print_line(self, text: str) -> None:
        with self._print_lock:
            self._stdout_original.write(text + "\n")
            self._stdout_original.flush()

    @staticmethod
    def _slugify(value: str) -> str:
        slug = re.sub(r"[^a-zA-Z0-9]+", "-", value).strip("-").lower()
        return slug or "task"


def fan_out(
    node_count: int,
    operation: Callable[[int], Any],
    phase_name: str = "fan-out",
    log_dir: Path | str | None = None,
) -> list[FanOutResult]:
    """Run ``operation(i)`` for every node concurrently and join them all.

    Returns exactly ``node_count`` results ordered by node index. A failing
    node never stops the others.
    """
    if node_count < 1:
        raise ValueError(f"node_count must be positive (got {node_count})")

    def bind(node: int) -> Callable[[], Any]:
        return lambda: operation(node)

    tasks = {f"node{i}": bind(i) for i in range(node_count)}
    outcomes = ParallelExecutor(max_workers=node_count).execute_parallel(
        tasks, phase_name, log_dir=log_dir
    )

    return [
        FanOutResult(
            node=i,
            error=outcomes[f"node{i}"].error,
            elapsed_s=outcomes[f"node{i}"].elapsed_s,
            order=outcomes[f"node{i}"].order,
        )
        for i in range(node_count)
    ]


def first_error(results: list[FanOutResult]) -> FanOutResult | None:
    """Return the earliest-completed failed result, if any."""
    failed = [r for r in results if not r.ok]
    if not failed:
        return None
    return min(failed, key=lambda r: r.order)
