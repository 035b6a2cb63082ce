"""Wait for a cluster's gossip network to converge."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..debug import debug_print
from .cluster import ClusterError, ClusterHandle


class WaitStatus(Enum):
    """Status of a wait operation."""

    READY = "ready"
    TIMEOUT = "timeout"


@dataclass
class WaitResult:
    """Result of a wait operation."""

    status: WaitStatus
    message: str
    elapsed_seconds: float
    attempts: int

    @property
    def ready(self) -> bool:
        return self.status == WaitStatus.READY


def wait_for_condition(
    check_fn: Callable[[], tuple[bool, str]],
    timeout_seconds: float,
    poll_interval: float = 1.0,
    description: str = "condition",
) -> WaitResult:
    """Poll ``check_fn`` until it reports success or the timeout passes.

    ``check_fn`` returns ``(success, message)``; a ``ClusterError`` or
    ``OSError`` raised by it counts as a failed check, since nodes refuse
    connections while they come up. Elapsed time includes the check itself.
    """
    start_time = time.monotonic()
    attempts = 0

    while True:
        attempts += 1
        try:
            success, message = check_fn()
        except (ClusterError, OSError) as e:
            success, message = False, str(e)
        elapsed = time.monotonic() - start_time

        if success:
            return WaitResult(WaitStatus.READY, message, elapsed, attempts)

        debug_print(f"waiting for {description}: {message}")
        if elapsed >= timeout_seconds:
            return WaitResult(
                WaitStatus.TIMEOUT,
                f"Timeout after {int(elapsed)}s waiting for {description}: {message}",
                elapsed,
                attempts,
            )

        time.sleep(poll_interval)


def count_gossip_peers(payload: dict[str, Any]) -> int:
    """Count node descriptors in a ``/_status/gossip/local`` response."""
    infos = payload.get("infoStatus", payload).get("infos") or {}
    return sum(1 for key in infos if key.startswith("node:"))


def wait_for_peers(
    cluster: ClusterHandle,
    expected_peers: int,
    timeout_seconds: float,
    poll_interval: float = 1.0,
) -> WaitResult:
    """Wait until every node sees exactly ``expected_peers`` gossip peers.

    Each status request is bounded by the time left before ``timeout_seconds``.
    """
    deadline = time.monotonic() + timeout_seconds

    def check() -> tuple[bool, str]:
        for node in range(cluster.num_nodes()):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False, f"no time left to query node {node}"
            peers = cluster.gossip_peers(node, timeout=remaining)
            if peers != expected_peers:
                return False, f"node {node} sees {peers} of {expected_peers} peers"
        return True, f"all nodes see {expected_peers} peers"

    return wait_for_condition(
        check,
        timeout_seconds=timeout_seconds,
        poll_interval=poll_interval,
        description=f"{expected_peers} gossip peers",
    )
