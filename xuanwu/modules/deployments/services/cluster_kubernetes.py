"""Kubernetes cluster client for production environments."""
import asyncio
from typing import Any

from kubernetes import client, config as k8s_config
from kubernetes.client.rest import ApiException

from xuanwu.core.logging import get_logger
from xuanwu.modules.deployments.errors import ClusterError
from xuanwu.modules.deployments.schemas import PodStatus
from .manifests import LABEL_NAME, NetworkDescriptor, WorkloadDescriptor

logger = get_logger(__name__)


def load_kubernetes_config() -> None:
    """Load in-cluster config, falling back to kubeconfig for local development."""
    try:
        k8s_config.load_incluster_config()
    except k8s_config.ConfigException:
        k8s_config.load_kube_config()


class KubernetesClusterClient:
    """
    Cluster client backed by the Kubernetes API.

    Uses Kubernetes API for:
    - Namespace, Deployment and Service creation (create, or patch when present)
    - Pod status and log retrieval
    - Scaling and removal of an application's workload
    """

    def __init__(
        self,
        core_api: client.CoreV1Api | None = None,
        apps_api: client.AppsV1Api | None = None,
    ):
        """Initialize the client; API objects are created from the loaded config when omitted."""
        if core_api is None or apps_api is None:
            load_kubernetes_config()
        self.core_api = core_api or client.CoreV1Api()
        self.apps_api = apps_api or client.AppsV1Api()

    async def apply(self, workload: WorkloadDescriptor, network: NetworkDescriptor) -> None:
        """
        Apply the workload and its service.

        Creates the namespace when missing, then creates each resource or
        patches it when it already exists.

        Raises:
            ClusterError: If the Kubernetes API rejects a request
        """
        await self._ensure_namespace(workload.namespace, workload.labels)

        await self._create_or_patch(
            kind="Deployment",
            create=self.apps_api.create_namespaced_deployment,
            patch=self.apps_api.patch_namespaced_deployment,
            name=workload.name,
            namespace=workload.namespace,
            body=workload.to_manifest(),
        )
        await self._create_or_patch(
            kind="Service",
            create=self.core_api.create_namespaced_service,
            patch=self.core_api.patch_namespaced_service,
            name=network.name,
            namespace=network.namespace,
            body=network.to_manifest(),
        )

    async def _ensure_namespace(self, namespace: str, labels: dict[str, str]) -> None:
        """Create the namespace if it does not exist yet."""
        body = {
            "apiVersion": "v1",
            "kind": "Namespace",
            "metadata": {
                "name": namespace,
                "labels": {"app.kubernetes.io/managed-by": labels.get("app.kubernetes.io/managed-by", "")},
            },
        }
        try:
            await asyncio.to_thread(self.core_api.create_namespace, body=body)
            logger.info("Created namespace", namespace=namespace)
        except ApiException as e:
            if e.status != 409:
                raise ClusterError(f"Failed to create namespace {namespace}: {e.reason}")

    async def _create_or_patch(
        self,
        kind: str,
        create,
        patch,
        name: str,
        namespace: str,
        body: dict[str, Any],
    ) -> None:
        try:
            await asyncio.to_thread(create, namespace=namespace, body=body)
            logger.info(f"Created {kind}", name=name, namespace=namespace)
        except ApiException as e:
            if e.status != 409:
                raise ClusterError(f"Failed to create {kind} {namespace}/{name}: {e.reason}")
            # Already exists, update it in place
            try:
                await asyncio.to_thread(patch, name=name, namespace=namespace, body=body)
                logger.info(f"Patched {kind}", name=name, namespace=namespace)
            except ApiException as patch_error:
                raise ClusterError(
                    f"Failed to update {kind} {namespace}/{name}: {patch_error.reason}"
                )

    async def get_pod_status(self, namespace: str, name: str) -> list[PodStatus]:
        """
        List the pods of a workload.

        Returns:
            list: Pod name, phase, readiness and restart count
        """
        try:
            pods = await asyncio.to_thread(
                self.core_api.list_namespaced_pod,
                namespace=namespace,
                label_selector=f"{LABEL_NAME}={name}",
            )
        except ApiException as e:
            raise ClusterError(f"Failed to list pods for {namespace}/{name}: {e.reason}")

        statuses = []
        for pod in pods.items:
            containers = pod.status.container_statuses or []
            statuses.append(
                PodStatus(
                    name=pod.metadata.name,
                    phase=pod.status.phase or "Unknown",
                    ready=bool(containers) and all(c.ready for c in containers),
                    restarts=sum(c.restart_count or 0 for c in containers),
                )
            )
        return statuses

    async def get_logs(self, namespace: str, pod_name: str, tail_lines: int | None = None) -> str:
        """Read a pod's log output."""
        kwargs: dict[str, Any] = {"name": pod_name, "namespace": namespace}
        if tail_lines is not None:
            kwargs["tail_lines"] = tail_lines
        try:
            return await asyncio.to_thread(self.core_api.read_namespaced_pod_log, **kwargs)
        except ApiException as e:
            raise ClusterError(f"Failed to read logs of {namespace}/{pod_name}: {e.reason}")

    async def scale(self, namespace: str, name: str, replicas: int) -> None:
        """Set the replica count of a workload."""
        try:
            await asyncio.to_thread(
                self.apps_api.patch_namespaced_deployment_scale,
                name=name,
                namespace=namespace,
                body={"spec": {"replicas": replicas}},
            )
        except ApiException as e:
            raise ClusterError(f"Failed to scale {namespace}/{name}: {e.reason}")

    async def delete(self, namespace: str, name: str) -> None:
        """Delete a workload and its service; missing resources are ignored."""
        for kind, delete in (
            ("Deployment", self.apps_api.delete_namespaced_deployment),
            ("Service", self.core_api.delete_namespaced_service),
        ):
            try:
                await asyncio.to_thread(delete, name=name, namespace=namespace)
                logger.info(f"Deleted {kind}", name=name, namespace=namespace)
            except ApiException as e:
                if e.status != 404:
                    raise ClusterError(f"Failed to delete {kind} {namespace}/{name}: {e.reason}")
