"""Cluster manifest definition and application."""

from src.deployer.cluster.kube import (
    ClusterApplier,
    ClusterApplyError,
    KubectlApplier,
    dns_label,
)

__all__ = [
    "ClusterApplier",
    "ClusterApplyError",
    "KubectlApplier",
    "dns_label",
]
