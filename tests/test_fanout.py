import threading
import time

import pytest

from bulkbench.run.fanout import (
    ParallelExecutor,
    fan_out,
    first_error,
    get_current_task_name,
)


@pytest.mark.parametrize("node_count", [1, 3, 8])
def test_fan_out_returns_one_result_per_node(node_count):
    seen = []
    lock = threading.Lock()

    def op(node):
        with lock:
            seen.append(node)

    results = fan_out(node_count, op, "Copy")

    assert [r.node for r in results] == list(range(node_count))
    assert all(r.ok for r in results)
    assert sorted(seen) == list(range(node_count))
    assert sorted(r.order for r in results) == list(range(node_count))
    assert first_error(results) is None


def test_fan_out_runs_all_nodes_concurrently():
    barrier = threading.Barrier(4, timeout=5)

    # Deadlocks (and times out) unless all four run at once
    results = fan_out(4, lambda node: barrier.wait(), "Barrier")

    assert all(r.ok for r in results)


def test_failures_do_not_cancel_other_nodes():
    finished = []
    lock = threading.Lock()

    def op(node):
        if node == 0:
            raise RuntimeError("copy failed on node 0")
        time.sleep(0.1)
        with lock:
            finished.append(node)

    results = fan_out(3, op, "Copy")

    assert sorted(finished) == [1, 2]
    failed = first_error(results)
    assert failed is not None
    assert failed.node == 0
    assert isinstance(failed.error, RuntimeError)


def test_first_error_is_earliest_completed_failure():
    node2_failed = threading.Event()

    def op(node):
        if node == 2:
            node2_failed.set()
            raise RuntimeError("first")
        if node == 0:
            node2_failed.wait(timeout=5)
            time.sleep(0.2)
            raise RuntimeError("second")

    results = fan_out(3, op, "Copy")

    failed = first_error(results)
    assert failed is not None
    assert failed.node == 2
    assert str(failed.error) == "first"
    assert [r.ok for r in results] == [False, True, False]


def test_fan_out_rejects_empty_cluster():
    with pytest.raises(ValueError):
        fan_out(0, lambda node: None)


def test_worker_output_is_captured_per_node(tmp_path):
    def op(node):
        print(f"copying store {node}")
        assert get_current_task_name() == f"node{node}"

    results = fan_out(2, op, "Store Download", log_dir=tmp_path)

    assert all(r.ok for r in results)
    log_dir = tmp_path / "store-download"
    assert "copying store 0" in (log_dir / "node0.log").read_text()
    assert "copying store 1" in (log_dir / "node1.log").read_text()
    assert "copying store 0" not in (log_dir / "node1.log").read_text()


def test_failure_traceback_lands_in_log(tmp_path):
    def op(node):
        raise RuntimeError("gsutil exited 1")

    fan_out(1, op, "Failure Phase", log_dir=tmp_path)

    content = (tmp_path / "failure-phase" / "node0.log").read_text()
    assert "RuntimeError" in content
    assert "gsutil exited 1" in content


def test_task_name_cleared_outside_workers():
    fan_out(1, lambda node: None)
    assert get_current_task_name() is None


def test_executor_returns_outcomes_in_task_order():
    executor = ParallelExecutor(max_workers=2)

    outcomes = executor.execute_parallel(
        {"b": lambda: "B", "a": lambda: "A"}, "Named Tasks"
    )

    assert list(outcomes) == ["b", "a"]
    assert outcomes["a"].result == "A"
    assert outcomes["b"].result == "B"
