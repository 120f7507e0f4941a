"""Workload and network manifest synthesis.

Turns an application, its project, a built image and the application's
build configuration into the two descriptors that run it on the cluster:

- a workload descriptor (rendered as an ``apps/v1`` Deployment)
- a network-exposure descriptor (rendered as a ``v1`` ClusterIP Service)

Both carry the same label set so they can be correlated. The service
targets the container's *named* port, so the container port can change
without touching the service.
"""
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from xuanwu.core.config import Settings
from xuanwu.modules.projects.schemas import PORT_KEY, ApplicationResponse, ProjectResponse

_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9-]")

DEFAULT_PORT = 8080
SERVICE_PORT = 80
PORT_NAME = "http"

LABEL_NAME = "app.kubernetes.io/name"
LABEL_INSTANCE = "app.kubernetes.io/instance"
LABEL_MANAGED_BY = "app.kubernetes.io/managed-by"
LABEL_PART_OF = "app.kubernetes.io/part-of"


def sanitize_name(name: str) -> str:
    """
    Derive a cluster resource name from a display name.

    Lowercases the name and replaces every character outside ``[a-z0-9-]``
    with ``-``. Applying it twice gives the same result.
    """
    sanitized = _INVALID_NAME_CHARS.sub("-", name.lower())
    return sanitized or "app"


def resolve_port(build_config: Mapping[str, str] | None) -> int:
    """Container port from the build configuration, falling back to 8080."""
    raw = (build_config or {}).get(PORT_KEY)
    if raw is None:
        return DEFAULT_PORT
    try:
        port = int(str(raw).strip())
    except ValueError:
        return DEFAULT_PORT
    return port if 1 <= port <= 65535 else DEFAULT_PORT


# =============================================================================
# Descriptor Models
# =============================================================================

class ResourceQuantities(BaseModel):
    """CPU and memory quantities."""
    cpu: str
    memory: str


class ResourceRequirements(BaseModel):
    """Container resource requests and limits."""
    requests: ResourceQuantities
    limits: ResourceQuantities


class Probe(BaseModel):
    """HTTP health probe against the named container port."""
    path: str
    initial_delay_seconds: int
    period_seconds: int
    port: str = PORT_NAME

    def to_manifest(self) -> dict[str, Any]:
        return {
            "httpGet": {"path": self.path, "port": self.port},
            "initialDelaySeconds": self.initial_delay_seconds,
            "periodSeconds": self.period_seconds,
        }


class ContainerPort(BaseModel):
    name: str = PORT_NAME
    container_port: int
    protocol: str = "TCP"


class EnvVar(BaseModel):
    name: str
    value: str


class ContainerSpec(BaseModel):
    """The application container."""
    name: str
    image: str
    ports: list[ContainerPort]
    env: list[EnvVar]
    resources: ResourceRequirements
    liveness_probe: Probe
    readiness_probe: Probe

    def to_manifest(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "image": self.image,
            "ports": [
                {"name": p.name, "containerPort": p.container_port, "protocol": p.protocol}
                for p in self.ports
            ],
            "env": [{"name": e.name, "value": e.value} for e in self.env],
            "resources": self.resources.model_dump(),
            "livenessProbe": self.liveness_probe.to_manifest(),
            "readinessProbe": self.readiness_probe.to_manifest(),
        }


class WorkloadDescriptor(BaseModel):
    """Declarative description of the containerized process to run."""
    kind: str = "Workload"
    name: str
    namespace: str
    labels: dict[str, str]
    selector: dict[str, str]
    replicas: int = 1
    containers: list[ContainerSpec]
    image_pull_secrets: list[str] = []

    @property
    def container_port(self) -> int:
        return self.containers[0].ports[0].container_port

    def to_manifest(self) -> dict[str, Any]:
        """Render as a Kubernetes apps/v1 Deployment."""
        pod_spec: dict[str, Any] = {
            "containers": [c.to_manifest() for c in self.containers],
        }
        if self.image_pull_secrets:
            pod_spec["imagePullSecrets"] = [{"name": s} for s in self.image_pull_secrets]

        return {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {
                "name": self.name,
                "namespace": self.namespace,
                "labels": dict(self.labels),
            },
            "spec": {
                "replicas": self.replicas,
                "selector": {"matchLabels": dict(self.selector)},
                "template": {
                    "metadata": {"labels": dict(self.labels)},
                    "spec": pod_spec,
                },
            },
        }


class ServicePort(BaseModel):
    name: str = PORT_NAME
    port: int = SERVICE_PORT
    target_port: str = PORT_NAME
    protocol: str = "TCP"


class NetworkDescriptor(BaseModel):
    """Declarative description of how the workload is reached inside the cluster."""
    name: str
    namespace: str
    labels: dict[str, str]
    selector: dict[str, str]
    ports: list[ServicePort]
    cluster_domain: str = "cluster.local"

    @property
    def address(self) -> str:
        """Resolvable in-cluster DNS name of the service."""
        return f"{self.name}.{self.namespace}.svc.{self.cluster_domain}"

    def to_manifest(self) -> dict[str, Any]:
        """Render as a Kubernetes v1 ClusterIP Service."""
        return {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {
                "name": self.name,
                "namespace": self.namespace,
                "labels": dict(self.labels),
            },
            "spec": {
                "type": "ClusterIP",
                "selector": dict(self.selector),
                "ports": [
                    {
                        "name": p.name,
                        "port": p.port,
                        "targetPort": p.target_port,
                        "protocol": p.protocol,
                    }
                    for p in self.ports
                ],
            },
        }


# =============================================================================
# Synthesizer
# =============================================================================

class ManifestDefaults(BaseModel):
    """Fixed values applied to every synthesized workload."""
    managed_by: str = "xuanwu-factory"
    cluster_domain: str = "cluster.local"
    image_pull_secret: str | None = "registry-secret"
    resources: ResourceRequirements = ResourceRequirements(
        requests=ResourceQuantities(cpu="100m", memory="128Mi"),
        limits=ResourceQuantities(cpu="500m", memory="512Mi"),
    )
    liveness_probe: Probe = Probe(path="/health", initial_delay_seconds=30, period_seconds=10)
    readiness_probe: Probe = Probe(path="/ready", initial_delay_seconds=5, period_seconds=5)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ManifestDefaults":
        return cls(
            managed_by=settings.MANAGED_BY,
            cluster_domain=settings.CLUSTER_DOMAIN,
            image_pull_secret=settings.IMAGE_PULL_SECRET or None,
            resources=ResourceRequirements(
                requests=ResourceQuantities(
                    cpu=settings.DEFAULT_CPU_REQUEST, memory=settings.DEFAULT_MEMORY_REQUEST
                ),
                limits=ResourceQuantities(
                    cpu=settings.DEFAULT_CPU_LIMIT, memory=settings.DEFAULT_MEMORY_LIMIT
                ),
            ),
        )


class ManifestSynthesizer:
    """Builds workload and network descriptors for an application."""

    def __init__(self, defaults: ManifestDefaults | None = None):
        self.defaults = defaults or ManifestDefaults()

    def labels(self, application: ApplicationResponse, project: ProjectResponse) -> dict[str, str]:
        """Label set shared by both descriptors."""
        return {
            LABEL_NAME: sanitize_name(application.name),
            LABEL_INSTANCE: str(application.id),
            LABEL_MANAGED_BY: self.defaults.managed_by,
            LABEL_PART_OF: project.name,
        }

    def synthesize(
        self,
        application: ApplicationResponse,
        project: ProjectResponse,
        image_ref: str,
        build_config: Mapping[str, str] | None = None,
    ) -> tuple[WorkloadDescriptor, NetworkDescriptor]:
        """
        Derive the workload and network descriptors.

        Args:
            application: Application being deployed
            project: Owning project (provides the namespace)
            image_ref: Image reference produced by the build
            build_config: Build configuration; PORT selects the container
                port, every other entry becomes an environment variable

        Returns:
            tuple: (workload descriptor, network descriptor)
        """
        name = sanitize_name(application.name)
        labels = self.labels(application, project)
        selector = {LABEL_NAME: labels[LABEL_NAME], LABEL_INSTANCE: labels[LABEL_INSTANCE]}

        env = [
            EnvVar(name=key, value=str(value))
            for key, value in (build_config or {}).items()
            if key != PORT_KEY
        ]

        container = ContainerSpec(
            name=name,
            image=image_ref,
            ports=[ContainerPort(container_port=resolve_port(build_config))],
            env=env,
            resources=self.defaults.resources.model_copy(deep=True),
            liveness_probe=self.defaults.liveness_probe.model_copy(),
            readiness_probe=self.defaults.readiness_probe.model_copy(),
        )

        workload = WorkloadDescriptor(
            name=name,
            namespace=project.namespace,
            labels=labels,
            selector=selector,
            containers=[container],
            image_pull_secrets=[self.defaults.image_pull_secret] if self.defaults.image_pull_secret else [],
        )

        network = NetworkDescriptor(
            name=name,
            namespace=project.namespace,
            labels=dict(labels),
            selector=dict(selector),
            ports=[ServicePort()],
            cluster_domain=self.defaults.cluster_domain,
        )

        return workload, network
