"""Database models for the projects module."""
import uuid

from sqlalchemy import Column, String, TIMESTAMP, Index, ForeignKey, Text, JSON, Uuid
from sqlalchemy.sql import func
from xuanwu.core.database import Base


class Project(Base):
    """Projects grouping applications into one cluster namespace."""

    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    namespace = Column(String(63), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class Application(Base):
    """Applications built from a source repository and deployed to the cluster."""

    __tablename__ = "applications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    repository_url = Column(String(1024), nullable=False)
    branch = Column(String(255), nullable=False, server_default="main")
    build_type = Column(String(20), nullable=False, server_default="dockerfile")  # dockerfile, java17, java21, python, nodejs
    dockerfile_path = Column(String(1024), nullable=True)
    build_config = Column(JSON, nullable=True)  # Ordered string -> string mapping
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_applications_project", "project_id"),
    )
