"""
Tests for the HTTP API.

Runs the application with its lifespan against the SQLite test database
and the local runtime (simulated builder and cluster).
"""
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from fastapi import status
from httpx import ASGITransport, AsyncClient

from xuanwu.core.database import engine
from xuanwu.core.init_db import drop_tables
from xuanwu.main import app
from xuanwu.modules.deployments.routes import deployment_events
from xuanwu.modules.deployments.schemas import DeploymentStatus, DeploymentUpdate
from xuanwu.modules.deployments.services.store import InMemoryDeploymentStore

pytestmark = pytest.mark.integration

API = "/api/v1"


@pytest_asyncio.fixture
async def async_client():
    await drop_tables()
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client
    await engine.dispose()


@pytest.fixture
def orchestrator(async_client):
    return app.state.orchestrator


async def create_project(client: AsyncClient, namespace: str = "shop") -> dict:
    response = await client.post(f"{API}/projects", json={"name": "Shop", "namespace": namespace})
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


async def create_application(client: AsyncClient, project_id: str, **overrides) -> dict:
    payload = {
        "name": "My Service",
        "repository_url": "https://git.example.com/shop/my-service.git",
        "build_type": "nodejs",
        "build_config": {"PORT": "9090", "LOG_LEVEL": "debug"},
    }
    payload.update(overrides)
    response = await client.post(f"{API}/projects/{project_id}/applications", json=payload)
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


async def deploy(client: AsyncClient, orchestrator, application_id: str, version: str = "1.0.0") -> dict:
    response = await client.post(f"{API}/applications/{application_id}/deployments", json={"version": version})
    assert response.status_code == status.HTTP_202_ACCEPTED
    record = response.json()
    await orchestrator.wait(UUID(record["id"]))
    return record


class TestServiceEndpoints:
    """Test health, info and metrics endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, async_client: AsyncClient):
        response = await async_client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_root(self, async_client: AsyncClient):
        response = await async_client.get("/")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["runtime_mode"] == "local"

    @pytest.mark.asyncio
    async def test_metrics(self, async_client: AsyncClient):
        await async_client.get("/health")

        response = await async_client.get("/metrics")

        assert response.status_code == status.HTTP_200_OK

    @pytest.mark.asyncio
    async def test_correlation_id_is_echoed(self, async_client: AsyncClient):
        response = await async_client.get(f"{API}/projects", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        assert "X-Response-Time" in response.headers


class TestProjectRoutes:
    """Test project and application registration."""

    @pytest.mark.asyncio
    async def test_create_and_list_projects(self, async_client: AsyncClient):
        project = await create_project(async_client)

        listed = (await async_client.get(f"{API}/projects")).json()
        fetched = (await async_client.get(f"{API}/projects/{project['id']}")).json()

        assert listed["total"] == 1
        assert listed["items"][0]["namespace"] == "shop"
        assert fetched["id"] == project["id"]

    @pytest.mark.asyncio
    async def test_duplicate_namespace(self, async_client: AsyncClient):
        await create_project(async_client)

        response = await async_client.post(f"{API}/projects", json={"name": "Other", "namespace": "shop"})

        assert response.status_code == status.HTTP_409_CONFLICT

    @pytest.mark.asyncio
    async def test_invalid_namespace(self, async_client: AsyncClient):
        response = await async_client.post(f"{API}/projects", json={"name": "Shop", "namespace": "Shop_Prod"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.asyncio
    async def test_create_application(self, async_client: AsyncClient):
        project = await create_project(async_client)
        application = await create_application(async_client, project["id"])

        listed = (await async_client.get(f"{API}/projects/{project['id']}/applications")).json()
        fetched = (await async_client.get(f"{API}/applications/{application['id']}")).json()

        assert listed["total"] == 1
        assert fetched["build_type"] == "nodejs"
        assert fetched["branch"] == "main"
        assert fetched["build_config"] == {"PORT": "9090", "LOG_LEVEL": "debug"}

    @pytest.mark.asyncio
    async def test_invalid_port_is_rejected(self, async_client: AsyncClient):
        project = await create_project(async_client)

        response = await async_client.post(
            f"{API}/projects/{project['id']}/applications",
            json={
                "name": "api",
                "repository_url": "https://git.example.com/shop/api.git",
                "build_config": {"PORT": "99999"},
            },
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.asyncio
    async def test_unknown_project(self, async_client: AsyncClient):
        response = await async_client.get(f"{API}/projects/{uuid4()}")

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestDeploymentRoutes:
    """Test deployment lifecycle endpoints."""

    @pytest.mark.asyncio
    async def test_deploy_application(self, async_client: AsyncClient, orchestrator):
        project = await create_project(async_client)
        application = await create_application(async_client, project["id"])

        record = await deploy(async_client, orchestrator, application["id"])
        final = (await async_client.get(f"{API}/deployments/{record['id']}")).json()

        assert record["status"] == "pending"
        assert final["status"] == "deployed"
        assert final["image_url"].endswith("/my-service:1.0.0")
        assert final["completed_at"] is not None
        assert "service available at my-service.shop.svc.cluster.local" in final["deploy_logs"]

    @pytest.mark.asyncio
    async def test_deployment_history(self, async_client: AsyncClient, orchestrator):
        project = await create_project(async_client)
        application = await create_application(async_client, project["id"])
        first = await deploy(async_client, orchestrator, application["id"], "1.0.0")
        second = await deploy(async_client, orchestrator, application["id"], "1.1.0")

        history = (await async_client.get(f"{API}/applications/{application['id']}/deployments")).json()

        assert history["total"] == 2
        assert [d["id"] for d in history["items"]] == [second["id"], first["id"]]

    @pytest.mark.asyncio
    async def test_deploy_unknown_application(self, async_client: AsyncClient):
        response = await async_client.post(f"{API}/applications/{uuid4()}/deployments", json={"version": "1.0.0"})

        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.asyncio
    async def test_empty_version_is_rejected(self, async_client: AsyncClient):
        project = await create_project(async_client)
        application = await create_application(async_client, project["id"])

        response = await async_client.post(
            f"{API}/applications/{application['id']}/deployments", json={"version": ""}
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.asyncio
    async def test_deployment_in_progress(self, async_client: AsyncClient, orchestrator):
        project = await create_project(async_client)
        application = await create_application(async_client, project["id"])
        orchestrator.builder.build_delay = 5

        first = await async_client.post(
            f"{API}/applications/{application['id']}/deployments", json={"version": "1.0.0"}
        )
        second = await async_client.post(
            f"{API}/applications/{application['id']}/deployments", json={"version": "1.0.1"}
        )

        assert first.status_code == status.HTTP_202_ACCEPTED
        assert second.status_code == status.HTTP_409_CONFLICT

    @pytest.mark.asyncio
    async def test_unknown_deployment(self, async_client: AsyncClient):
        response = await async_client.get(f"{API}/deployments/{uuid4()}")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.asyncio
    async def test_rollback(self, async_client: AsyncClient, orchestrator):
        project = await create_project(async_client)
        application = await create_application(async_client, project["id"])
        target = await deploy(async_client, orchestrator, application["id"], "1.0.0")
        await deploy(async_client, orchestrator, application["id"], "1.1.0")

        response = await async_client.post(
            f"{API}/applications/{application['id']}/rollback", json={"deployment_id": target["id"]}
        )
        assert response.status_code == status.HTTP_202_ACCEPTED
        await orchestrator.wait(UUID(response.json()["id"]))
        final = (await async_client.get(f"{API}/deployments/{response.json()['id']}")).json()

        assert final["status"] == "rolled_back"
        assert final["version"] == "1.0.0"
        assert final["image_url"].endswith("/my-service:1.0.0")

    @pytest.mark.asyncio
    async def test_rollback_to_unknown_deployment(self, async_client: AsyncClient):
        project = await create_project(async_client)
        application = await create_application(async_client, project["id"])

        response = await async_client.post(
            f"{API}/applications/{application['id']}/rollback", json={"deployment_id": str(uuid4())}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.asyncio
    async def test_event_stream_of_finished_deployment(self, async_client: AsyncClient, orchestrator):
        project = await create_project(async_client)
        application = await create_application(async_client, project["id"])
        record = await deploy(async_client, orchestrator, application["id"])

        response = await async_client.get(f"{API}/deployments/{record['id']}/events")

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"].startswith("text/event-stream")
        assert "event: deployed" in response.text
        assert orchestrator.hub.subscriber_count(record["id"]) == 0

    @pytest.mark.asyncio
    async def test_event_stream_of_unknown_deployment(self, async_client: AsyncClient, orchestrator):
        deployment_id = str(uuid4())

        response = await async_client.get(f"{API}/deployments/{deployment_id}/events")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert orchestrator.hub.subscriber_count(deployment_id) == 0


class AdvancingStore(InMemoryDeploymentStore):
    """Store whose first read races with a running deployment moving to building."""

    def __init__(self, hub):
        super().__init__()
        self.hub = hub
        self.raced = False

    async def get(self, deployment_id):
        if not self.raced:
            self.raced = True
            record = await self.update(
                deployment_id,
                DeploymentUpdate(status=DeploymentStatus.BUILDING, build_logs="Starting build"),
            )
            await self.hub.publish(record)
        return await super().get(deployment_id)


class TestDeploymentEventStream:
    """Test the event stream of a deployment that is still running."""

    @pytest.mark.asyncio
    async def test_updates_during_initial_read_are_sent_once(self, hub):
        store = AdvancingStore(hub)
        record = await store.create(uuid4(), "1.0.0", datetime(2024, 1, 1, tzinfo=timezone.utc))
        request = MagicMock()
        request.is_disconnected = AsyncMock(return_value=False)

        response = await deployment_events(record.id, request, SimpleNamespace(store=store, hub=hub))
        failed = await store.update(
            record.id,
            DeploymentUpdate(
                status=DeploymentStatus.FAILED,
                completed_at=datetime(2024, 1, 1, 0, 1, tzinfo=timezone.utc),
                deploy_logs="build stage failed",
            ),
        )
        await hub.publish(failed)

        events = [event["event"] async for event in response.body_iterator]

        assert events == ["building", "failed"]
        assert hub.subscriber_count(str(record.id)) == 0


class TestWorkloadRoutes:
    """Test pod inspection, scaling and removal."""

    @pytest.mark.asyncio
    async def test_pods_and_logs(self, async_client: AsyncClient, orchestrator):
        project = await create_project(async_client)
        application = await create_application(async_client, project["id"])
        await deploy(async_client, orchestrator, application["id"])

        pods = (await async_client.get(f"{API}/applications/{application['id']}/pods")).json()
        pod_name = pods["pods"][0]["name"]
        logs = (await async_client.get(
            f"{API}/applications/{application['id']}/pods/{pod_name}/logs", params={"tail_lines": 2}
        )).json()

        assert pods["namespace"] == "shop"
        assert pods["workload"] == "my-service"
        assert pods["pods"][0]["phase"] == "Running"
        assert logs["pod"] == pod_name
        assert len(logs["logs"].splitlines()) == 2

    @pytest.mark.asyncio
    async def test_logs_of_unknown_pod(self, async_client: AsyncClient):
        project = await create_project(async_client)
        application = await create_application(async_client, project["id"])

        response = await async_client.get(f"{API}/applications/{application['id']}/pods/missing/logs")

        assert response.status_code == status.HTTP_502_BAD_GATEWAY

    @pytest.mark.asyncio
    async def test_scale_and_delete(self, async_client: AsyncClient, orchestrator):
        project = await create_project(async_client)
        application = await create_application(async_client, project["id"])
        await deploy(async_client, orchestrator, application["id"])

        scaled = await async_client.post(f"{API}/applications/{application['id']}/scale", json={"replicas": 3})
        pods = (await async_client.get(f"{API}/applications/{application['id']}/pods")).json()

        assert scaled.status_code == status.HTTP_200_OK
        assert scaled.json() == {"namespace": "shop", "workload": "my-service", "replicas": 3}
        assert len(pods["pods"]) == 3

        deleted = await async_client.delete(f"{API}/applications/{application['id']}/workload")
        pods = (await async_client.get(f"{API}/applications/{application['id']}/pods")).json()

        assert deleted.status_code == status.HTTP_204_NO_CONTENT
        assert pods["pods"] == []

    @pytest.mark.asyncio
    async def test_scale_out_of_range(self, async_client: AsyncClient):
        project = await create_project(async_client)
        application = await create_application(async_client, project["id"])

        response = await async_client.post(f"{API}/applications/{application['id']}/scale", json={"replicas": 500})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
