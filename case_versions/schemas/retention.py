from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import timedelta


class RetentionPolicy(BaseModel):
    """All limits are optional and independent; an empty policy is a no-op"""
    max_active_versions: Optional[int] = Field(None, ge=1)
    max_age: Optional[timedelta] = None
    compress_after: Optional[timedelta] = None
    purge_after: Optional[timedelta] = None

    def is_empty(self) -> bool:
        return (
            self.max_active_versions is None
            and self.max_age is None
            and self.compress_after is None
            and self.purge_after is None
        )


class RetentionReport(BaseModel):
    entity_id: str
    archived: List[int] = []
    compressed: List[int] = []
    purged: List[int] = []
    rebaselined: List[int] = []
    failures: List[str] = []
    completed: bool = True
