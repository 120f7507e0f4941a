"""Deployment orchestrator.

Drives one deployment through its stages:

1. build: the image builder produces and pushes an image
2. deploy: the workload and network descriptors are applied to the cluster
3. verify: the cluster is polled until a pod of the workload is running

Each stage first records what it is about to do, then calls its
collaborator, then records the outcome. Every record change is persisted
through the store and only then published through the notification hub,
so observers never see a state the store does not hold.
"""
import asyncio
from collections.abc import Callable, Coroutine
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from xuanwu.core.config import Settings
from xuanwu.core.events import NotificationHub, Observer, Unsubscribe
from xuanwu.core.logging import get_logger
from xuanwu.modules.deployments.errors import (
    DeploymentError,
    DeploymentInProgressError,
    DeploymentStoreError,
    InvalidDeploymentUpdateError,
    InvalidRollbackTargetError,
    StageTimeoutError,
)
from xuanwu.modules.deployments.schemas import DeploymentRecord, DeploymentStatus, DeploymentUpdate
from xuanwu.modules.projects.schemas import ApplicationResponse, ProjectResponse
from .applications import ApplicationLookup
from .cluster import ClusterClient
from .image_builder import ImageBuilder
from .manifests import ManifestSynthesizer, sanitize_name
from .store import DeploymentStore

logger = get_logger(__name__)

Clock = Callable[[], datetime]

ROLLBACK_SOURCE_STATUSES = frozenset({DeploymentStatus.DEPLOYED, DeploymentStatus.ROLLED_BACK})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def append_line(logs: str | None, line: str) -> str:
    """Append a line to a log field, keeping everything already written."""
    return f"{logs}\n{line}" if logs else line


class StageTimeouts(BaseModel):
    """Per-stage deadlines in seconds; None disables a deadline."""
    build: float | None = 1800
    deploy: float | None = 300
    verify: float | None = 300

    @classmethod
    def from_settings(cls, settings: Settings) -> "StageTimeouts":
        return cls(
            build=settings.BUILD_TIMEOUT_SECONDS,
            deploy=settings.DEPLOY_TIMEOUT_SECONDS,
            verify=settings.VERIFY_TIMEOUT_SECONDS,
        )


class _Run:
    """Mutable state of one in-flight deployment."""

    def __init__(self, record: DeploymentRecord, application: ApplicationResponse, project: ProjectResponse):
        self.record = record
        self.application = application
        self.project = project
        self.stage = "build"


class DeploymentOrchestrator:
    """
    Runs deployments in background tasks and reports their progress.

    By default an application has at most one deployment in flight; a
    second request raises DeploymentInProgressError until the first one
    reaches a terminal status.
    """

    def __init__(
        self,
        store: DeploymentStore,
        applications: ApplicationLookup,
        builder: ImageBuilder,
        cluster: ClusterClient,
        synthesizer: ManifestSynthesizer | None = None,
        hub: NotificationHub[DeploymentRecord] | None = None,
        *,
        timeouts: StageTimeouts | None = None,
        pod_poll_interval: float = 2.0,
        allow_concurrent: bool = False,
        clock: Clock = utc_now,
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Durable deployment record store
            applications: Resolves applications and their projects
            builder: Produces images
            cluster: Applies and inspects workloads
            synthesizer: Builds workload and network descriptors
            hub: Publishes record changes to observers
            timeouts: Per-stage deadlines
            pod_poll_interval: Seconds between pod status checks while verifying
            allow_concurrent: Allow several in-flight deployments per application
            clock: Source of timestamps for records and log lines
        """
        self.store = store
        self.applications = applications
        self.builder = builder
        self.cluster = cluster
        self.synthesizer = synthesizer or ManifestSynthesizer()
        self.hub = hub or NotificationHub(key_func=lambda record: str(record.id))
        self.timeouts = timeouts or StageTimeouts()
        self.pod_poll_interval = pod_poll_interval
        self.allow_concurrent = allow_concurrent
        self._clock = clock

        self._tasks: dict[UUID, asyncio.Task] = {}
        self._active: dict[UUID, UUID] = {}  # application id -> deployment id
        self._application_locks: dict[UUID, asyncio.Lock] = {}

    # =========================================================================
    # Public operations
    # =========================================================================

    async def start_deployment(
        self,
        application_id: UUID,
        version: str,
        observer: Observer | None = None,
    ) -> DeploymentRecord:
        """
        Start deploying a version of an application.

        The pending record is returned as soon as it is persisted; the
        pipeline runs in a background task. An observer passed here (or
        subscribed right after this call returns) receives every update,
        starting with the pending record.

        Raises:
            ApplicationNotFoundError: If the application does not exist
            ProjectNotFoundError: If the owning project does not exist
            DeploymentInProgressError: If the application is already being deployed
        """
        application, project = await self.applications.get_application(application_id)

        async with self._application_lock(application.id):
            self._ensure_idle(application.id)
            record = await self.store.create(application.id, version, self._clock())
            run = _Run(record, application, project)
            self._spawn(run, self._execute_deployment(run), observer)

        logger.info(
            "Deployment started",
            deployment_id=str(record.id),
            application_id=str(application.id),
            version=version,
        )
        return record

    async def rollback(
        self,
        application_id: UUID,
        target_deployment_id: UUID,
        observer: Observer | None = None,
    ) -> DeploymentRecord:
        """
        Redeploy the image of an earlier deployment.

        A new record is created for the target's version. The build stage
        is skipped; on success the new record ends as rolled_back.

        Raises:
            ApplicationNotFoundError: If the application does not exist
            DeploymentNotFoundError: If the target deployment does not exist
            InvalidRollbackTargetError: If the target cannot be redeployed
            DeploymentInProgressError: If the application is already being deployed
        """
        application, project = await self.applications.get_application(application_id)
        target = await self.store.get(target_deployment_id)

        if target.application_id != application.id:
            raise InvalidRollbackTargetError(
                f"Deployment {target.id} does not belong to application {application.id}"
            )
        if target.status not in ROLLBACK_SOURCE_STATUSES or not target.image_url:
            raise InvalidRollbackTargetError(
                f"Deployment {target.id} is {target.status.value} and has no image to roll back to"
            )

        async with self._application_lock(application.id):
            self._ensure_idle(application.id)
            record = await self.store.create(application.id, target.version, self._clock())
            run = _Run(record, application, project)
            self._spawn(run, self._execute_rollback(run, target), observer)

        logger.info(
            "Rollback started",
            deployment_id=str(record.id),
            application_id=str(application.id),
            target_deployment_id=str(target.id),
            image=target.image_url,
        )
        return record

    def subscribe_to_deployment(self, deployment_id: UUID, observer: Observer) -> Unsubscribe:
        """Observe every future update of a deployment."""
        return self.hub.subscribe(str(deployment_id), observer)

    def is_running(self, deployment_id: UUID) -> bool:
        """Whether the deployment's pipeline is still executing."""
        task = self._tasks.get(deployment_id)
        return task is not None and not task.done()

    async def wait(self, deployment_id: UUID) -> DeploymentRecord:
        """Wait for a deployment's pipeline to finish and return its final record."""
        task = self._tasks.get(deployment_id)
        if task is not None:
            await asyncio.wait({task})
        return await self.store.get(deployment_id)

    async def shutdown(self) -> None:
        """Cancel every in-flight pipeline; each records itself as failed."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        if not tasks:
            return

        logger.info("Cancelling in-flight deployments", count=len(tasks))
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # =========================================================================
    # Task bookkeeping
    # =========================================================================

    def _application_lock(self, application_id: UUID) -> asyncio.Lock:
        if application_id not in self._application_locks:
            self._application_locks[application_id] = asyncio.Lock()
        return self._application_locks[application_id]

    def _release_application_lock(self, application_id: UUID) -> None:
        lock = self._application_locks.get(application_id)
        if lock is not None and not lock.locked() and application_id not in self._active:
            del self._application_locks[application_id]

    def _ensure_idle(self, application_id: UUID) -> None:
        if self.allow_concurrent:
            return
        active = self._active.get(application_id)
        if active is not None and self.is_running(active):
            raise DeploymentInProgressError(application_id, active)

    def _spawn(
        self,
        run: _Run,
        pipeline: Coroutine[Any, Any, None],
        observer: Observer | None,
    ) -> None:
        deployment_id = run.record.id
        application_id = run.application.id
        unsubscribe = self.hub.subscribe(str(deployment_id), observer) if observer else None

        task = asyncio.create_task(self._run(run, pipeline, unsubscribe), name=f"deployment-{deployment_id}")
        self._tasks[deployment_id] = task
        self._active[application_id] = deployment_id

        def finished(_: asyncio.Task) -> None:
            self._tasks.pop(deployment_id, None)
            if self._active.get(application_id) == deployment_id:
                del self._active[application_id]
            self._release_application_lock(application_id)

        task.add_done_callback(finished)

    async def _run(
        self,
        run: _Run,
        pipeline: Coroutine[Any, Any, None],
        unsubscribe: Unsubscribe | None,
    ) -> None:
        """Execute a pipeline and turn every way it can end into a final record."""
        try:
            await self.hub.publish(run.record)
            await pipeline
        except asyncio.CancelledError:
            await self._fail(run, "deployment cancelled")
            raise
        except (DeploymentStoreError, InvalidDeploymentUpdateError):
            logger.exception(
                "Deployment aborted, record could not be persisted",
                deployment_id=str(run.record.id),
                stage=run.stage,
            )
        except Exception as e:
            message = e.message if isinstance(e, DeploymentError) else str(e)
            await self._fail(run, message or type(e).__name__)
        finally:
            pipeline.close()
            if unsubscribe:
                unsubscribe()

    # =========================================================================
    # Pipelines
    # =========================================================================

    async def _execute_deployment(self, run: _Run) -> None:
        application = run.application

        run.stage = "build"
        await self._record(
            run,
            status=DeploymentStatus.BUILDING,
            build_line=self._line(
                f"Starting build of {application.repository_url}@{application.branch} "
                f"({application.build_type.value})"
            ),
        )
        image = await self._within(
            "build",
            self.timeouts.build,
            self.builder.build(
                application.repository_url,
                application.branch,
                application.build_type,
                image_name=sanitize_name(application.name),
                version=run.record.version,
                dockerfile_path=application.dockerfile_path,
                build_config=application.build_config,
            ),
        )
        await self._record(
            run,
            status=DeploymentStatus.DEPLOYING,
            image_url=image,
            build_line=self._line(f"Build completed, image pushed to {image}"),
        )

        await self._deploy_and_verify(run, image, DeploymentStatus.DEPLOYED, "Deployment successful")

    async def _execute_rollback(self, run: _Run, target: DeploymentRecord) -> None:
        run.stage = "deploy"
        await self._record(
            run,
            status=DeploymentStatus.DEPLOYING,
            image_url=target.image_url,
            deploy_line=self._line(
                f"Rolling back to deployment {target.id} (version {target.version}, image {target.image_url})"
            ),
        )

        await self._deploy_and_verify(run, target.image_url, DeploymentStatus.ROLLED_BACK, "Rollback successful")

    async def _deploy_and_verify(
        self,
        run: _Run,
        image: str,
        final_status: DeploymentStatus,
        success_message: str,
    ) -> None:
        workload, network = self.synthesizer.synthesize(
            run.application, run.project, image, run.application.build_config
        )

        run.stage = "deploy"
        await self._record(
            run,
            deploy_line=self._line(f"Applying workload {workload.name} to namespace {workload.namespace}"),
        )
        await self._within("deploy", self.timeouts.deploy, self.cluster.apply(workload, network))
        await self._record(
            run,
            deploy_line=self._line(f"Workload {workload.name} and service {network.name} applied"),
        )

        run.stage = "verify"
        await self._record(run, deploy_line=self._line(f"Waiting for a running pod of {workload.name}"))
        pod = await self._within(
            "verify",
            self.timeouts.verify,
            self._wait_for_running_pod(workload.namespace, workload.name),
        )
        await self._record(run, deploy_line=self._line(f"Pod {pod.name} is running"))

        await self._record(
            run,
            status=final_status,
            completed_at=self._clock(),
            deploy_line=self._line(f"{success_message}, service available at {network.address}"),
        )
        logger.info(
            "Deployment finished",
            deployment_id=str(run.record.id),
            status=final_status.value,
            image=image,
        )

    async def _wait_for_running_pod(self, namespace: str, name: str):
        while True:
            for pod in await self.cluster.get_pod_status(namespace, name):
                if pod.is_running:
                    return pod
            await asyncio.sleep(self.pod_poll_interval)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _line(self, message: str, level: str = "INFO") -> str:
        return f"[{self._clock().isoformat()}] [{level}] {message}"

    async def _within(self, stage: str, timeout: float | None, awaitable):
        """Await a stage's collaborator call under the stage deadline."""
        if timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError:
            raise StageTimeoutError(stage, timeout)

    async def _record(
        self,
        run: _Run,
        build_line: str | None = None,
        deploy_line: str | None = None,
        **changes: Any,
    ) -> None:
        """Persist a change to the run's record, then publish the stored record."""
        if build_line is not None:
            changes["build_logs"] = append_line(run.record.build_logs, build_line)
        if deploy_line is not None:
            changes["deploy_logs"] = append_line(run.record.deploy_logs, deploy_line)

        run.record = await self.store.update(run.record.id, DeploymentUpdate(**changes))
        await self.hub.publish(run.record)

    async def _fail(self, run: _Run, message: str) -> None:
        logger.error(
            "Deployment failed",
            deployment_id=str(run.record.id),
            stage=run.stage,
            error=message,
        )
        if run.record.is_terminal:
            return
        try:
            await self._record(
                run,
                status=DeploymentStatus.FAILED,
                completed_at=self._clock(),
                deploy_line=self._line(f"{run.stage} stage failed: {message}", level="ERROR"),
            )
        except DeploymentError:
            logger.exception("Failed to record deployment failure", deployment_id=str(run.record.id))
