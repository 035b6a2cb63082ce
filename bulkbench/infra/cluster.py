"""Contract between the benchmark lifecycle and a provisioned cluster.

Nodes are addressed by index, ``0 <= node < num_nodes()``. Node 0 is the
node SQL connections go to.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..config import EnvironmentConfig, HarnessSettings


class ClusterError(Exception):
    """Raised when an operation against the provisioned cluster fails."""


class ClusterHandle(Protocol):
    """Operations the lifecycle needs from a set of provisioned nodes."""

    def add_flag(self, flag: str) -> None:
        """Add a command-line flag passed to every database process."""
        ...

    def set_var(self, key: str, value: str) -> None:
        """Set a provisioning variable applied on the next resize."""
        ...

    def resize(self, nodes: int) -> None: ...

    def num_nodes(self) -> int: ...

    def kill(self, node: int) -> None: ...

    def restart(self, node: int) -> None: ...

    def exec(self, node: int, command: str) -> None: ...

    def pg_url(self, node: int) -> str: ...

    def gossip_peers(self, node: int, timeout: float | None = None) -> int:
        """Number of nodes visible in ``node``'s gossip network.

        ``timeout`` bounds the request in seconds.
        """
        ...

    def assert_healthy(self) -> None: ...

    def destroy(self) -> None: ...


# Builds a handle scoped to a resource prefix
ClusterFactory = Callable[
    [str, "EnvironmentConfig", "HarnessSettings"], ClusterHandle
]
