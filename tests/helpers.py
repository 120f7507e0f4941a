"""Test doubles shared across test modules."""
from datetime import datetime, timedelta, timezone
from uuid import UUID

from xuanwu.modules.deployments.errors import ApplicationNotFoundError
from xuanwu.modules.projects.schemas import ApplicationResponse, ProjectResponse


class FakeClock:
    """Clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


class FakeApplicationLookup:
    """Application lookup over fixed objects."""

    def __init__(self, *pairs: tuple[ApplicationResponse, ProjectResponse]):
        self.applications = {application.id: (application, project) for application, project in pairs}

    async def get_application(self, application_id: UUID):
        if application_id not in self.applications:
            raise ApplicationNotFoundError(application_id)
        return self.applications[application_id]
