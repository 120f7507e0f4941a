"""Exceptions raised by the deployment orchestration engine."""
from uuid import UUID


class DeploymentError(Exception):
    """Base class for deployment errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


# =============================================================================
# Input errors (raised before any deployment record exists)
# =============================================================================

class ApplicationNotFoundError(DeploymentError):
    """The application to deploy does not exist."""

    def __init__(self, application_id: UUID | str):
        super().__init__(f"Application not found: {application_id}")
        self.application_id = application_id


class ProjectNotFoundError(DeploymentError):
    """The application's owning project does not exist."""

    def __init__(self, project_id: UUID | str):
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id


class DeploymentNotFoundError(DeploymentError):
    """No deployment record with the given id."""

    def __init__(self, deployment_id: UUID | str):
        super().__init__(f"Deployment not found: {deployment_id}")
        self.deployment_id = deployment_id


class DeploymentInProgressError(DeploymentError):
    """Another deployment of the same application is still running."""

    def __init__(self, application_id: UUID | str, deployment_id: UUID | str):
        super().__init__(
            f"Deployment {deployment_id} is still in progress for application {application_id}"
        )
        self.application_id = application_id
        self.deployment_id = deployment_id


class InvalidRollbackTargetError(DeploymentError):
    """The requested rollback target cannot be redeployed."""


# =============================================================================
# Store errors (fatal to a run)
# =============================================================================

class DeploymentStoreError(DeploymentError):
    """Persisting or loading a deployment record failed."""


class InvalidDeploymentUpdateError(DeploymentError):
    """An update would break the deployment lifecycle invariants."""


# =============================================================================
# Collaborator errors (recorded as a failed deployment)
# =============================================================================

class ImageBuildError(DeploymentError):
    """The image builder could not produce an image."""


class ClusterError(DeploymentError):
    """A cluster operation failed."""


class StageTimeoutError(DeploymentError):
    """A pipeline stage exceeded its deadline."""

    def __init__(self, stage: str, timeout: float):
        super().__init__(f"{stage} stage exceeded its deadline of {timeout:g}s")
        self.stage = stage
        self.timeout = timeout
