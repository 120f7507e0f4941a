"""Application lookup used to validate deployment requests."""
from typing import Protocol
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from xuanwu.modules.deployments.errors import (
    ApplicationNotFoundError,
    DeploymentStoreError,
    ProjectNotFoundError,
)
from xuanwu.modules.projects.models import Application, Project
from xuanwu.modules.projects.schemas import ApplicationResponse, ProjectResponse


class ApplicationLookup(Protocol):
    """Resolves an application and its owning project."""

    async def get_application(self, application_id: UUID) -> tuple[ApplicationResponse, ProjectResponse]: ...


class SqlApplicationLookup:
    """Application lookup backed by the projects tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_application(self, application_id: UUID) -> tuple[ApplicationResponse, ProjectResponse]:
        """
        Load an application together with its project.

        Raises:
            ApplicationNotFoundError: If the application does not exist
            ProjectNotFoundError: If the owning project does not exist
        """
        try:
            async with self._session_factory() as session:
                application = await session.get(Application, application_id)
                if application is None:
                    raise ApplicationNotFoundError(application_id)
                project = await session.get(Project, application.project_id)
                if project is None:
                    raise ProjectNotFoundError(application.project_id)
                return (
                    ApplicationResponse.model_validate(application),
                    ProjectResponse.model_validate(project),
                )
        except SQLAlchemyError as e:
            raise DeploymentStoreError(f"Failed to load application {application_id}: {e}")
