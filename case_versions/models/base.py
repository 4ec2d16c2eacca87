from sqlalchemy.orm import declarative_base
from sqlalchemy import JSON, Column, DateTime, func, Boolean

Base = declarative_base()

# JSON documents, stored as text so mapping key order survives (JSONB would
# reorder keys). Python None is stored as SQL NULL.
JSONDocument = JSON(none_as_null=True)


class TimestampMixin:
    """Mixin to add created_at and updated_at timestamps to models"""
    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now(), nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
