"""Deployment services."""
from .orchestrator import DeploymentOrchestrator, StageTimeouts
from .store import DeploymentStore, InMemoryDeploymentStore, SqlDeploymentStore
from .applications import ApplicationLookup, SqlApplicationLookup
from .image_builder import ImageBuilder, LocalImageBuilder, RegistryConfig
from .cluster import ClusterClient
from .cluster_local import LocalClusterClient
from .cluster_kubernetes import KubernetesClusterClient
from .manifests import ManifestDefaults, ManifestSynthesizer

__all__ = [
    "DeploymentOrchestrator",
    "StageTimeouts",
    "DeploymentStore",
    "InMemoryDeploymentStore",
    "SqlDeploymentStore",
    "ApplicationLookup",
    "SqlApplicationLookup",
    "ImageBuilder",
    "LocalImageBuilder",
    "RegistryConfig",
    "ClusterClient",
    "LocalClusterClient",
    "KubernetesClusterClient",
    "ManifestDefaults",
    "ManifestSynthesizer",
]
