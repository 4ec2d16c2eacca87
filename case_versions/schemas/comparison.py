from pydantic import BaseModel, Field
from typing import Any, List, Optional


class TextSegment(BaseModel):
    type: str = Field(..., description="unchanged, added or deleted")
    text: str


class DiffEntryResponse(BaseModel):
    path: str
    change_type: str
    old_value: Any = None
    new_value: Any = None
    text_segments: Optional[List[TextSegment]] = None


class ComparisonStats(BaseModel):
    total_changes: int
    added: int
    removed: int
    modified: int
    change_percentage: float = Field(..., description="Share of top-level sections touched, 0-100.")


class ComparisonResponse(BaseModel):
    entity_id: str
    version_a: int
    version_b: int
    changes: List[DiffEntryResponse]
    stats: ComparisonStats
