from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKeyConstraint
import uuid
from .base import Base


class VersionComment(Base):
    """Reviewer annotation attached to a version"""
    __tablename__ = "version_comments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    entity_id = Column(String(64), nullable=False, index=True)
    version_number = Column(Integer, nullable=False)
    author_id = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        ForeignKeyConstraint(
            ["entity_id", "version_number"],
            ["entity_versions.entity_id", "entity_versions.version_number"],
            ondelete="CASCADE",
        ),
    )
