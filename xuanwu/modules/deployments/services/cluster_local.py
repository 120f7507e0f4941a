"""Simulated cluster client for local development."""
import asyncio
from datetime import datetime, timezone
from uuid import uuid4

from xuanwu.core.logging import get_logger
from xuanwu.modules.deployments.errors import ClusterError
from xuanwu.modules.deployments.schemas import PodStatus
from .manifests import NetworkDescriptor, WorkloadDescriptor

logger = get_logger(__name__)


class LocalClusterClient:
    """
    In-memory stand-in for a cluster.

    Applied workloads are kept in memory and get one running pod per
    replica, so the whole deployment pipeline can be exercised without
    a cluster.
    """

    def __init__(self, apply_delay: float = 0.0):
        """Initialize the simulated cluster."""
        self.apply_delay = apply_delay
        self.workloads: dict[tuple[str, str], WorkloadDescriptor] = {}
        self.services: dict[tuple[str, str], NetworkDescriptor] = {}
        self._pods: dict[tuple[str, str], list[PodStatus]] = {}
        self._started_at: dict[str, datetime] = {}

    async def apply(self, workload: WorkloadDescriptor, network: NetworkDescriptor) -> None:
        """Record the workload and (re)create its pods."""
        if self.apply_delay:
            await asyncio.sleep(self.apply_delay)

        key = (workload.namespace, workload.name)
        self.workloads[key] = workload
        self.services[(network.namespace, network.name)] = network
        self._pods[key] = [self._new_pod(workload.name) for _ in range(workload.replicas)]
        logger.info(
            "Applied workload",
            name=workload.name,
            namespace=workload.namespace,
            image=workload.containers[0].image,
        )

    def _new_pod(self, name: str) -> PodStatus:
        pod = PodStatus(name=f"{name}-{uuid4().hex[:9]}", phase="Running", ready=True)
        self._started_at[pod.name] = datetime.now(timezone.utc)
        return pod

    def _require(self, namespace: str, name: str) -> WorkloadDescriptor:
        workload = self.workloads.get((namespace, name))
        if workload is None:
            raise ClusterError(f"Workload {namespace}/{name} not found")
        return workload

    async def get_pod_status(self, namespace: str, name: str) -> list[PodStatus]:
        return [pod.model_copy() for pod in self._pods.get((namespace, name), [])]

    async def get_logs(self, namespace: str, pod_name: str, tail_lines: int | None = None) -> str:
        for (pod_namespace, name), pods in self._pods.items():
            if pod_namespace != namespace or pod_name not in {p.name for p in pods}:
                continue
            workload = self.workloads[(pod_namespace, name)]
            started = self._started_at[pod_name].strftime("%Y-%m-%dT%H:%M:%SZ")
            lines = [
                f"[{started}] [INFO] Starting application...",
                f"[{started}] [INFO] Server started on port {workload.container_port}",
                f"[{started}] [INFO] Application is ready to serve requests",
            ]
            if tail_lines is not None:
                lines = lines[-tail_lines:] if tail_lines > 0 else []
            return "\n".join(lines)
        raise ClusterError(f"Pod {namespace}/{pod_name} not found")

    async def scale(self, namespace: str, name: str, replicas: int) -> None:
        workload = self._require(namespace, name)
        self.workloads[(namespace, name)] = workload.model_copy(update={"replicas": replicas})

        pods = self._pods.setdefault((namespace, name), [])
        while len(pods) > replicas:
            self._started_at.pop(pods.pop().name, None)
        while len(pods) < replicas:
            pods.append(self._new_pod(name))
        logger.info("Scaled workload", name=name, namespace=namespace, replicas=replicas)

    async def delete(self, namespace: str, name: str) -> None:
        key = (namespace, name)
        self.workloads.pop(key, None)
        self.services.pop(key, None)
        for pod in self._pods.pop(key, []):
            self._started_at.pop(pod.name, None)
        logger.info("Deleted workload", name=name, namespace=namespace)
