"""Database models for the deployments module."""
import uuid

from sqlalchemy import Column, String, TIMESTAMP, Index, ForeignKey, Text, Uuid
from xuanwu.core.database import Base


class Deployment(Base):
    """Deployment records, one per deployment request."""

    __tablename__ = "deployments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    application_id = Column(Uuid, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False)
    version = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, server_default="pending")  # pending, building, deploying, deployed, failed, rolled_back
    build_logs = Column(Text, nullable=True)
    deploy_logs = Column(Text, nullable=True)
    image_url = Column(String(1024), nullable=True)
    started_at = Column(TIMESTAMP(timezone=True), nullable=False)
    completed_at = Column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_deployments_application", "application_id"),
        Index("idx_deployments_status", "status"),
        Index("idx_deployments_started_at", "started_at"),
    )
