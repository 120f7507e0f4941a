"""
Shared pytest fixtures.

Environment defaults are set before any xuanwu import so the settings
object picks up a SQLite database and the local runtime.
"""
import os
import tempfile
from uuid import uuid4

os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), f'xuanwu-test-{os.getpid()}.db')}",
)
os.environ.setdefault("RUNTIME_MODE", "local")
os.environ.setdefault("LOCAL_BUILD_DELAY_SECONDS", "0")
os.environ.setdefault("LOCAL_APPLY_DELAY_SECONDS", "0")
os.environ.setdefault("POD_POLL_INTERVAL_SECONDS", "0.01")

import pytest
import pytest_asyncio

from xuanwu.core.events import NotificationHub
from xuanwu.modules.deployments.services.cluster_local import LocalClusterClient
from xuanwu.modules.deployments.services.image_builder import LocalImageBuilder, RegistryConfig
from xuanwu.modules.deployments.services.orchestrator import DeploymentOrchestrator
from xuanwu.modules.deployments.services.store import InMemoryDeploymentStore
from xuanwu.modules.projects.schemas import ApplicationResponse, BuildType, ProjectResponse
from tests.helpers import FakeApplicationLookup, FakeClock


@pytest.fixture
def project() -> ProjectResponse:
    return ProjectResponse(id=uuid4(), name="Shop", namespace="shop")


@pytest.fixture
def application(project) -> ApplicationResponse:
    return ApplicationResponse(
        id=uuid4(),
        project_id=project.id,
        name="My Service",
        repository_url="https://git.example.com/shop/my-service.git",
        branch="main",
        build_type=BuildType.DOCKERFILE,
        build_config={"PORT": "9090", "LOG_LEVEL": "debug"},
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryDeploymentStore:
    return InMemoryDeploymentStore()


@pytest.fixture
def cluster() -> LocalClusterClient:
    return LocalClusterClient()


@pytest.fixture
def builder() -> LocalImageBuilder:
    return LocalImageBuilder(RegistryConfig(host="registry.test", namespace="team"))


@pytest.fixture
def hub() -> NotificationHub:
    return NotificationHub(key_func=lambda record: str(record.id))


@pytest_asyncio.fixture
async def orchestrator(store, application, project, builder, cluster, hub, clock):
    """Orchestrator over in-memory and simulated collaborators."""
    orchestrator = DeploymentOrchestrator(
        store=store,
        applications=FakeApplicationLookup((application, project)),
        builder=builder,
        cluster=cluster,
        hub=hub,
        pod_poll_interval=0.01,
        clock=clock,
    )
    yield orchestrator
    await orchestrator.shutdown()
