"""Pydantic schemas for the projects module."""
from datetime import datetime
from enum import Enum
from uuid import UUID
from pydantic import BaseModel, Field, field_validator

# Build configuration key holding the container port
PORT_KEY = "PORT"


class BuildType(str, Enum):
    """How an application's image is produced."""
    DOCKERFILE = "dockerfile"
    JAVA17 = "java17"
    JAVA21 = "java21"
    PYTHON = "python"
    NODEJS = "nodejs"


# =============================================================================
# Project Schemas
# =============================================================================

class ProjectCreate(BaseModel):
    """Schema for creating a project."""
    name: str = Field(min_length=1, max_length=255)
    namespace: str = Field(min_length=1, max_length=63, pattern=r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
    description: str | None = None


class ProjectResponse(BaseModel):
    """Schema for project response."""
    id: UUID
    name: str
    namespace: str
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class ProjectListResponse(BaseModel):
    """Schema for project list."""
    items: list[ProjectResponse]
    total: int


# =============================================================================
# Application Schemas
# =============================================================================

class ApplicationCreate(BaseModel):
    """Schema for registering an application in a project."""
    name: str = Field(min_length=1, max_length=255)
    repository_url: str = Field(min_length=1)
    branch: str = "main"
    build_type: BuildType = BuildType.DOCKERFILE
    dockerfile_path: str | None = None
    build_config: dict[str, str] | None = None

    @field_validator("build_config")
    @classmethod
    def validate_port(cls, value: dict[str, str] | None) -> dict[str, str] | None:
        """Reject a PORT entry that is not a usable TCP port."""
        if value and PORT_KEY in value:
            port = value[PORT_KEY]
            if not port.isdigit() or not 1 <= int(port) <= 65535:
                raise ValueError(f"{PORT_KEY} must be an integer between 1 and 65535, got {port!r}")
        return value


class ApplicationResponse(BaseModel):
    """Schema for application response."""
    id: UUID
    project_id: UUID
    name: str
    repository_url: str
    branch: str
    build_type: BuildType
    dockerfile_path: str | None = None
    build_config: dict[str, str] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class ApplicationListResponse(BaseModel):
    """Schema for application list."""
    items: list[ApplicationResponse]
    total: int
