"""Wiring of the deployment orchestrator and its collaborators."""
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from xuanwu.core.config import Settings
from xuanwu.core.events import NotificationHub
from xuanwu.core.logging import get_logger
from xuanwu.core.runtime import RuntimeMode, detect_runtime
from xuanwu.modules.deployments.schemas import DeploymentRecord
from xuanwu.modules.deployments.services.applications import SqlApplicationLookup
from xuanwu.modules.deployments.services.cluster import ClusterClient
from xuanwu.modules.deployments.services.image_builder import LocalImageBuilder, RegistryConfig
from xuanwu.modules.deployments.services.manifests import ManifestDefaults, ManifestSynthesizer
from xuanwu.modules.deployments.services.orchestrator import DeploymentOrchestrator, StageTimeouts
from xuanwu.modules.deployments.services.store import SqlDeploymentStore

logger = get_logger(__name__)


def create_cluster_client(settings: Settings, mode: RuntimeMode) -> ClusterClient:
    """Create the cluster client for the runtime mode."""
    if mode == RuntimeMode.KUBERNETES:
        from xuanwu.modules.deployments.services.cluster_kubernetes import KubernetesClusterClient
        return KubernetesClusterClient()
    else:
        from xuanwu.modules.deployments.services.cluster_local import LocalClusterClient
        return LocalClusterClient(apply_delay=settings.LOCAL_APPLY_DELAY_SECONDS)


def build_orchestrator(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    mode: RuntimeMode | None = None,
) -> DeploymentOrchestrator:
    """
    Assemble an orchestrator from settings.

    Args:
        settings: Application settings
        session_factory: Session factory for the record store and application lookup
        mode: Runtime mode; detected from settings when omitted

    Returns:
        DeploymentOrchestrator: Ready to accept deployments
    """
    mode = mode or detect_runtime(settings.RUNTIME_MODE)
    logger.info("Building deployment orchestrator", runtime_mode=mode.value)

    return DeploymentOrchestrator(
        store=SqlDeploymentStore(session_factory),
        applications=SqlApplicationLookup(session_factory),
        builder=LocalImageBuilder(
            RegistryConfig.from_settings(settings),
            build_delay=settings.LOCAL_BUILD_DELAY_SECONDS,
        ),
        cluster=create_cluster_client(settings, mode),
        synthesizer=ManifestSynthesizer(ManifestDefaults.from_settings(settings)),
        hub=NotificationHub[DeploymentRecord](key_func=lambda record: str(record.id)),
        timeouts=StageTimeouts.from_settings(settings),
        pod_poll_interval=settings.POD_POLL_INTERVAL_SECONDS,
        allow_concurrent=settings.ALLOW_CONCURRENT_DEPLOYMENTS,
    )


def get_orchestrator(request: Request) -> DeploymentOrchestrator:
    """FastAPI dependency returning the orchestrator created at startup."""
    return request.app.state.orchestrator
