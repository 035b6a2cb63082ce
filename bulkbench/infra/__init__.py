"""Infrastructure management modules."""

from .cluster import ClusterError, ClusterFactory, ClusterHandle
from .gossip import WaitResult, WaitStatus, wait_for_peers
from .manager import (
    CloudInstanceManager,
    InfraManager,
    InfraResult,
    TerraformCluster,
    make_terraform_cluster,
)

__all__ = [
    "ClusterError",
    "ClusterFactory",
    "ClusterHandle",
    "CloudInstanceManager",
    "InfraManager",
    "InfraResult",
    "TerraformCluster",
    "WaitResult",
    "WaitStatus",
    "make_terraform_cluster",
    "wait_for_peers",
]
