"""Pydantic schemas for the deployments module."""
from datetime import datetime
from enum import Enum
from uuid import UUID
from pydantic import BaseModel, Field


class DeploymentStatus(str, Enum):
    """Lifecycle status of a deployment."""
    PENDING = "pending"
    BUILDING = "building"
    DEPLOYING = "deploying"
    DEPLOYED = "deployed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


TERMINAL_STATUSES = frozenset(
    {DeploymentStatus.DEPLOYED, DeploymentStatus.FAILED, DeploymentStatus.ROLLED_BACK}
)


# =============================================================================
# Deployment Record Schemas
# =============================================================================

class DeploymentRecord(BaseModel):
    """Persisted state of one deployment."""
    id: UUID
    application_id: UUID
    version: str
    status: DeploymentStatus
    build_logs: str | None = None
    deploy_logs: str | None = None
    image_url: str | None = None
    started_at: datetime
    completed_at: datetime | None = None

    class Config:
        from_attributes = True

    @property
    def is_terminal(self) -> bool:
        """Whether the deployment reached a final status."""
        return self.status in TERMINAL_STATUSES


class DeploymentUpdate(BaseModel):
    """Partial update of a deployment record; only explicitly set fields apply."""
    status: DeploymentStatus | None = None
    build_logs: str | None = None
    deploy_logs: str | None = None
    image_url: str | None = None
    completed_at: datetime | None = None


class DeploymentListResponse(BaseModel):
    """Schema for a list of deployments."""
    items: list[DeploymentRecord]
    total: int


# =============================================================================
# Request Schemas
# =============================================================================

class DeploymentCreate(BaseModel):
    """Schema for starting a deployment."""
    version: str = Field(min_length=1, max_length=255)


class RollbackRequest(BaseModel):
    """Schema for rolling an application back to an earlier deployment."""
    deployment_id: UUID


class ScaleRequest(BaseModel):
    """Schema for scaling an application's workload."""
    replicas: int = Field(ge=0, le=100)


# =============================================================================
# Cluster Schemas
# =============================================================================

class PodStatus(BaseModel):
    """Observed state of one pod."""
    name: str
    phase: str  # Pending, Running, Succeeded, Failed, Unknown
    ready: bool = False
    restarts: int = 0

    @property
    def is_running(self) -> bool:
        return self.phase == "Running"


class PodListResponse(BaseModel):
    """Schema for the pods of an application's workload."""
    namespace: str
    workload: str
    pods: list[PodStatus]


class PodLogsResponse(BaseModel):
    """Schema for pod log output."""
    pod: str
    logs: str
