"""API routes for the deployments module."""
import asyncio
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sse_starlette.sse import EventSourceResponse

from xuanwu.core.logging import get_logger
from xuanwu.modules.deployments.dependencies import get_orchestrator
from xuanwu.modules.deployments.errors import (
    ApplicationNotFoundError,
    ClusterError,
    DeploymentError,
    DeploymentInProgressError,
    DeploymentNotFoundError,
    InvalidRollbackTargetError,
    ProjectNotFoundError,
)
from xuanwu.modules.deployments.lifecycle import is_ahead
from xuanwu.modules.deployments.schemas import (
    DeploymentCreate,
    DeploymentListResponse,
    DeploymentRecord,
    PodListResponse,
    PodLogsResponse,
    RollbackRequest,
    ScaleRequest,
)
from xuanwu.modules.deployments.services.manifests import sanitize_name
from xuanwu.modules.deployments.services.orchestrator import DeploymentOrchestrator

logger = get_logger(__name__)

router = APIRouter(tags=["Deployments"])

# Seconds between keepalive messages on an idle event stream
KEEPALIVE_SECONDS = 30.0


def to_http_exception(error: DeploymentError) -> HTTPException:
    """Translate a deployment error into an HTTP error response."""
    if isinstance(error, (ApplicationNotFoundError, ProjectNotFoundError, DeploymentNotFoundError)):
        return HTTPException(status_code=404, detail=error.message)
    if isinstance(error, InvalidRollbackTargetError):
        return HTTPException(status_code=400, detail=error.message)
    if isinstance(error, DeploymentInProgressError):
        return HTTPException(status_code=409, detail=error.message)
    if isinstance(error, ClusterError):
        return HTTPException(status_code=502, detail=error.message)
    return HTTPException(status_code=500, detail=error.message)


async def _workload_location(orchestrator: DeploymentOrchestrator, application_id: UUID) -> tuple[str, str]:
    """Get (namespace, workload name) of an application."""
    application, project = await orchestrator.applications.get_application(application_id)
    return project.namespace, sanitize_name(application.name)


# =============================================================================
# Deployment Routes
# =============================================================================

@router.get("/applications/{application_id}/deployments", response_model=DeploymentListResponse)
async def list_deployments(
    application_id: UUID,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
):
    """List an application's deployments, newest first."""
    try:
        await orchestrator.applications.get_application(application_id)
        items = await orchestrator.store.list_by_application(application_id)
    except DeploymentError as e:
        raise to_http_exception(e)

    return DeploymentListResponse(items=items, total=len(items))


@router.post("/applications/{application_id}/deployments", response_model=DeploymentRecord, status_code=202)
async def start_deployment(
    application_id: UUID,
    data: DeploymentCreate,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
):
    """
    Start deploying a version of an application.

    Returns the pending deployment immediately; follow its progress with
    GET /deployments/{id} or the /deployments/{id}/events stream.
    """
    try:
        return await orchestrator.start_deployment(application_id, data.version)
    except DeploymentError as e:
        raise to_http_exception(e)


@router.post("/applications/{application_id}/rollback", response_model=DeploymentRecord, status_code=202)
async def rollback_deployment(
    application_id: UUID,
    data: RollbackRequest,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
):
    """Redeploy the image of an earlier successful deployment."""
    try:
        return await orchestrator.rollback(application_id, data.deployment_id)
    except DeploymentError as e:
        raise to_http_exception(e)


@router.get("/deployments/{deployment_id}", response_model=DeploymentRecord)
async def get_deployment(
    deployment_id: UUID,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
):
    """Get a specific deployment by ID."""
    try:
        return await orchestrator.store.get(deployment_id)
    except DeploymentError as e:
        raise to_http_exception(e)


@router.get("/deployments/{deployment_id}/events")
async def deployment_events(
    deployment_id: UUID,
    request: Request,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
):
    """
    Server-Sent Events stream of a deployment's status updates.

    The current record is sent first, then every update until the
    deployment reaches a terminal status.
    """
    queue, unsubscribe = orchestrator.hub.subscribe_queue(str(deployment_id))
    try:
        current = await orchestrator.store.get(deployment_id)
    except DeploymentError as e:
        unsubscribe()
        raise to_http_exception(e)

    async def generate():
        try:
            record = current
            yield {"id": str(record.id), "event": record.status.value, "data": record.model_dump_json()}

            while not record.is_terminal:
                if await request.is_disconnected():
                    break

                try:
                    update = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield {"event": "keepalive", "data": ""}
                    continue

                # Updates queued while the current record was read may already be in it
                if not is_ahead(update, record):
                    continue
                record = update
                yield {"id": str(record.id), "event": record.status.value, "data": record.model_dump_json()}
        finally:
            unsubscribe()

    return EventSourceResponse(generate())


# =============================================================================
# Workload Routes
# =============================================================================

@router.get("/applications/{application_id}/pods", response_model=PodListResponse)
async def list_pods(
    application_id: UUID,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
):
    """Get the pods of an application's workload."""
    try:
        namespace, name = await _workload_location(orchestrator, application_id)
        pods = await orchestrator.cluster.get_pod_status(namespace, name)
    except DeploymentError as e:
        raise to_http_exception(e)

    return PodListResponse(namespace=namespace, workload=name, pods=pods)


@router.get("/applications/{application_id}/pods/{pod_name}/logs", response_model=PodLogsResponse)
async def get_pod_logs(
    application_id: UUID,
    pod_name: str,
    tail_lines: int | None = Query(None, ge=0, le=10000),
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
):
    """Get the logs of one pod of an application's workload."""
    try:
        namespace, _ = await _workload_location(orchestrator, application_id)
        logs = await orchestrator.cluster.get_logs(namespace, pod_name, tail_lines=tail_lines)
    except DeploymentError as e:
        raise to_http_exception(e)

    return PodLogsResponse(pod=pod_name, logs=logs)


@router.post("/applications/{application_id}/scale")
async def scale_workload(
    application_id: UUID,
    data: ScaleRequest,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
):
    """Scale an application's workload."""
    try:
        namespace, name = await _workload_location(orchestrator, application_id)
        await orchestrator.cluster.scale(namespace, name, data.replicas)
    except DeploymentError as e:
        raise to_http_exception(e)

    logger.info("Workload scaled", application_id=str(application_id), replicas=data.replicas)
    return {"namespace": namespace, "workload": name, "replicas": data.replicas}


@router.delete("/applications/{application_id}/workload", status_code=204)
async def delete_workload(
    application_id: UUID,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
):
    """Remove an application's workload and service from the cluster."""
    try:
        namespace, name = await _workload_location(orchestrator, application_id)
        await orchestrator.cluster.delete(namespace, name)
    except DeploymentError as e:
        raise to_http_exception(e)

    logger.info("Workload deleted", application_id=str(application_id), namespace=namespace, workload=name)
    return Response(status_code=204)
