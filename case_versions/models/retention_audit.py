from sqlalchemy import Column, String, Text, Integer, DateTime, Enum as SQLEnum
import uuid
import enum
from .base import Base


class RetentionAction(str, enum.Enum):
    PURGE = "purge"
    REBASELINE = "rebaseline"
    ENTITY_PURGE = "entity_purge"


class RetentionAuditEntry(Base):
    """Audit trail of destructive retention steps; survives the entity it describes"""
    __tablename__ = "retention_audit_log"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    entity_id = Column(String(64), nullable=False, index=True)
    version_number = Column(Integer, nullable=True)
    action = Column(SQLEnum(RetentionAction, values_callable=lambda e: [m.value for m in e]), nullable=False)
    detail = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
