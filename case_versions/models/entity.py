from sqlalchemy import Column, String, Integer, DateTime
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin


class VersionedEntity(Base, TimestampMixin):
    """Head pointer for a versioned case study"""
    __tablename__ = "versioned_entities"

    entity_id = Column(String(64), primary_key=True)
    head_version_number = Column(Integer, nullable=False, default=1)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    versions = relationship("EntityVersion", back_populates="entity", passive_deletes=True)
