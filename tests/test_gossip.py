import time

import pytest

from bulkbench.infra.cluster import ClusterError
from bulkbench.infra.gossip import (
    WaitStatus,
    count_gossip_peers,
    wait_for_condition,
    wait_for_peers,
)
from tests.conftest import FakeCluster


def test_count_gossip_peers():
    payload = {
        "infoStatus": {
            "infos": {
                "node:1": {},
                "node:2": {},
                "node:3": {},
                "store:1": {},
                "cluster-id": {},
            }
        }
    }

    assert count_gossip_peers(payload) == 3
    assert count_gossip_peers({"infos": {"node:7": {}}}) == 1
    assert count_gossip_peers({}) == 0


def test_wait_retries_until_ready():
    answers = iter([(False, "1 of 3"), (False, "2 of 3"), (True, "3 of 3")])

    result = wait_for_condition(lambda: next(answers), timeout_seconds=5, poll_interval=0)

    assert result.ready
    assert result.attempts == 3
    assert result.message == "3 of 3"


def test_cluster_error_counts_as_failed_check():
    calls = []

    def check():
        calls.append(1)
        if len(calls) == 1:
            raise ClusterError("connection refused")
        return True, "up"

    result = wait_for_condition(check, timeout_seconds=5, poll_interval=0)

    assert result.ready
    assert result.attempts == 2


def test_other_errors_propagate():
    def check():
        raise KeyError("bug")

    with pytest.raises(KeyError):
        wait_for_condition(check, timeout_seconds=5, poll_interval=0)


def test_wait_times_out():
    result = wait_for_condition(
        lambda: (False, "still 1 peer"),
        timeout_seconds=0.05,
        poll_interval=0.01,
        description="3 gossip peers",
    )

    assert result.status == WaitStatus.TIMEOUT
    assert "3 gossip peers" in result.message
    assert "still 1 peer" in result.message


def test_wait_for_peers_checks_every_node():
    cluster = FakeCluster()
    cluster.resize(3)

    result = wait_for_peers(cluster, 3, timeout_seconds=1, poll_interval=0)

    assert result.ready
    assert [c[1] for c in cluster.ops("gossip_peers")] == [0, 1, 2]


def test_wait_for_peers_reports_lagging_node():
    cluster = FakeCluster(peers=2)
    cluster.resize(3)

    result = wait_for_peers(cluster, 3, timeout_seconds=0.02, poll_interval=0.01)

    assert not result.ready
    assert "3 gossip peers" in result.message
    assert cluster.ops("gossip_peers")[0][1] == 0


def test_slow_check_counts_toward_timeout():
    def check():
        time.sleep(0.05)
        return False, "still converging"

    result = wait_for_condition(check, timeout_seconds=0.03, poll_interval=0)

    assert not result.ready
    assert result.attempts == 1
    assert result.elapsed_seconds >= 0.05


def test_wait_for_peers_bounds_each_request():
    cluster = FakeCluster(peers=1)
    cluster.resize(2)

    result = wait_for_peers(cluster, 2, timeout_seconds=0.05, poll_interval=0.01)

    assert not result.ready
    timeouts = [c[2] for c in cluster.ops("gossip_peers")]
    assert timeouts
    assert all(0 < t <= 0.05 for t in timeouts)
