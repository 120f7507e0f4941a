"""Cluster client contract used by the orchestrator."""
from typing import Protocol

from xuanwu.modules.deployments.schemas import PodStatus
from .manifests import NetworkDescriptor, WorkloadDescriptor


class ClusterClient(Protocol):
    """Protocol for cluster backend implementations."""

    async def apply(self, workload: WorkloadDescriptor, network: NetworkDescriptor) -> None: ...
    async def get_pod_status(self, namespace: str, name: str) -> list[PodStatus]: ...
    async def get_logs(self, namespace: str, pod_name: str, tail_lines: int | None = None) -> str: ...
    async def scale(self, namespace: str, name: str, replicas: int) -> None: ...
    async def delete(self, namespace: str, name: str) -> None: ...
