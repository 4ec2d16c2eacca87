from sqlalchemy import Column, String, Text, ForeignKey, Integer, DateTime, Enum as SQLEnum, Index
from sqlalchemy.orm import relationship
import enum
from .base import Base, JSONDocument


class StorageState(str, enum.Enum):
    """How a version's content is held"""
    ACTIVE = "active"
    ARCHIVED = "archived"
    COMPRESSED = "compressed"


class EntityVersion(Base):
    """Immutable snapshot of a case study at one point in time"""
    __tablename__ = "entity_versions"

    entity_id = Column(
        String(64), ForeignKey("versioned_entities.entity_id", ondelete="CASCADE"), primary_key=True
    )
    version_number = Column(Integer, primary_key=True)
    snapshot = Column(JSONDocument, nullable=True)  # NULL only while compressed
    delta = Column(JSONDocument, nullable=True)  # positional diff from delta_parent to this version
    delta_parent = Column(Integer, nullable=True)
    baseline_ref = Column(Integer, nullable=True)  # full snapshot the delta chain ends at
    author_id = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    change_summary = Column(JSONDocument, nullable=False, default=list)
    comment = Column(Text, nullable=True)
    storage_state = Column(
        SQLEnum(StorageState, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=StorageState.ACTIVE,
    )
    content_hash = Column(String(64), nullable=False)
    commit_token = Column(String(64), nullable=False)
    reverted_from = Column(Integer, nullable=True)

    # Relationships
    entity = relationship("VersionedEntity", back_populates="versions")

    __table_args__ = (
        Index("ix_entity_versions_commit_token", "entity_id", "commit_token"),
        Index("ix_entity_versions_state", "entity_id", "storage_state"),
    )

    @property
    def is_full(self) -> bool:
        return self.snapshot is not None
