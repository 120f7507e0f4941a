"""Deployment record store implementations.

Every update goes through ``lifecycle.apply_update`` while holding a lock
for the deployment's id, so writes to one deployment are serialized and
writes to different deployments run concurrently.
"""
import asyncio
from datetime import datetime
from typing import Protocol
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from xuanwu.modules.deployments.errors import DeploymentNotFoundError, DeploymentStoreError
from xuanwu.modules.deployments.lifecycle import apply_update
from xuanwu.modules.deployments.models import Deployment
from xuanwu.modules.deployments.schemas import DeploymentRecord, DeploymentStatus, DeploymentUpdate


class DeploymentStore(Protocol):
    """Protocol for durable deployment record storage."""

    async def create(self, application_id: UUID, version: str, started_at: datetime) -> DeploymentRecord: ...
    async def update(self, deployment_id: UUID, changes: DeploymentUpdate) -> DeploymentRecord: ...
    async def get(self, deployment_id: UUID) -> DeploymentRecord: ...
    async def list_by_application(self, application_id: UUID) -> list[DeploymentRecord]: ...


class _PerIdLocks:
    """One asyncio.Lock per deployment id, dropped once the deployment is final."""

    def __init__(self):
        self._locks: dict[UUID, asyncio.Lock] = {}

    def get(self, deployment_id: UUID) -> asyncio.Lock:
        if deployment_id not in self._locks:
            self._locks[deployment_id] = asyncio.Lock()
        return self._locks[deployment_id]

    def discard(self, deployment_id: UUID) -> None:
        self._locks.pop(deployment_id, None)


class InMemoryDeploymentStore:
    """Deployment store kept in process memory."""

    def __init__(self):
        self._records: dict[UUID, DeploymentRecord] = {}
        self._locks = _PerIdLocks()

    async def create(self, application_id: UUID, version: str, started_at: datetime) -> DeploymentRecord:
        record = DeploymentRecord(
            id=uuid4(),
            application_id=application_id,
            version=version,
            status=DeploymentStatus.PENDING,
            started_at=started_at,
        )
        self._records[record.id] = record
        return record.model_copy()

    async def update(self, deployment_id: UUID, changes: DeploymentUpdate) -> DeploymentRecord:
        async with self._locks.get(deployment_id):
            current = self._records.get(deployment_id)
            if current is None:
                raise DeploymentNotFoundError(deployment_id)
            updated = apply_update(current, changes)
            self._records[deployment_id] = updated

        if updated.is_terminal:
            self._locks.discard(deployment_id)
        return updated.model_copy()

    async def get(self, deployment_id: UUID) -> DeploymentRecord:
        record = self._records.get(deployment_id)
        if record is None:
            raise DeploymentNotFoundError(deployment_id)
        return record.model_copy()

    async def list_by_application(self, application_id: UUID) -> list[DeploymentRecord]:
        records = [r for r in self._records.values() if r.application_id == application_id]
        records.sort(key=lambda r: r.started_at, reverse=True)
        return [r.model_copy() for r in records]


class SqlDeploymentStore:
    """Deployment store backed by the SQLAlchemy ``deployments`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._locks = _PerIdLocks()

    async def create(self, application_id: UUID, version: str, started_at: datetime) -> DeploymentRecord:
        deployment = Deployment(
            id=uuid4(),
            application_id=application_id,
            version=version,
            status=DeploymentStatus.PENDING.value,
            started_at=started_at,
        )
        try:
            async with self._session_factory() as session:
                session.add(deployment)
                await session.commit()
        except SQLAlchemyError as e:
            raise DeploymentStoreError(f"Failed to create deployment: {e}")

        return DeploymentRecord(
            id=deployment.id,
            application_id=application_id,
            version=version,
            status=DeploymentStatus.PENDING,
            started_at=started_at,
        )

    async def update(self, deployment_id: UUID, changes: DeploymentUpdate) -> DeploymentRecord:
        async with self._locks.get(deployment_id):
            try:
                async with self._session_factory() as session:
                    deployment = await session.get(Deployment, deployment_id)
                    if deployment is None:
                        raise DeploymentNotFoundError(deployment_id)

                    updated = apply_update(DeploymentRecord.model_validate(deployment), changes)

                    deployment.status = updated.status.value
                    deployment.build_logs = updated.build_logs
                    deployment.deploy_logs = updated.deploy_logs
                    deployment.image_url = updated.image_url
                    deployment.completed_at = updated.completed_at
                    await session.commit()
            except SQLAlchemyError as e:
                raise DeploymentStoreError(f"Failed to update deployment {deployment_id}: {e}")

        if updated.is_terminal:
            self._locks.discard(deployment_id)
        return updated

    async def get(self, deployment_id: UUID) -> DeploymentRecord:
        try:
            async with self._session_factory() as session:
                deployment = await session.get(Deployment, deployment_id)
        except SQLAlchemyError as e:
            raise DeploymentStoreError(f"Failed to load deployment {deployment_id}: {e}")

        if deployment is None:
            raise DeploymentNotFoundError(deployment_id)
        return DeploymentRecord.model_validate(deployment)

    async def list_by_application(self, application_id: UUID) -> list[DeploymentRecord]:
        query = (
            select(Deployment)
            .where(Deployment.application_id == application_id)
            .order_by(Deployment.started_at.desc())
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                deployments = result.scalars().all()
        except SQLAlchemyError as e:
            raise DeploymentStoreError(f"Failed to list deployments of application {application_id}: {e}")

        return [DeploymentRecord.model_validate(d) for d in deployments]
