from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime
from case_versions.models.version import EntityVersion, StorageState


class VersionCreate(BaseModel):
    snapshot: Dict[str, Any]
    comment: Optional[str] = Field(None, max_length=2000)
    expected_version_number: int = Field(..., ge=0, description="Head the caller edited from; 0 creates the entity.")


class RevertRequest(BaseModel):
    target_version_number: int = Field(..., ge=1)
    expected_version_number: int = Field(..., ge=1)


class VersionSummary(BaseModel):
    entity_id: str
    version_number: int
    author_id: str
    created_at: datetime
    change_summary: List[str]
    comment: Optional[str] = None
    storage_state: StorageState
    baseline_ref: Optional[int] = None
    reverted_from: Optional[int] = None

    class Config:
        from_attributes = True


class VersionResponse(VersionSummary):
    snapshot: Dict[str, Any]
    content_hash: str
    is_current: bool

    @classmethod
    def from_version(cls, version: EntityVersion, snapshot: Dict[str, Any], head: int) -> "VersionResponse":
        return cls(
            entity_id=version.entity_id,
            version_number=version.version_number,
            author_id=version.author_id,
            created_at=version.created_at,
            change_summary=list(version.change_summary or []),
            comment=version.comment,
            storage_state=version.storage_state,
            baseline_ref=version.baseline_ref,
            reverted_from=version.reverted_from,
            snapshot=snapshot,
            content_hash=version.content_hash,
            is_current=version.version_number == head,
        )


class VersionListResponse(BaseModel):
    versions: List[VersionSummary]
    next_cursor: Optional[int] = None
    page_size: int
    include_archived: bool


class VersionStats(BaseModel):
    entity_id: str
    head_version_number: int
    total_versions: int
    unique_authors: int
    first_version_date: Optional[datetime] = None
    last_version_date: Optional[datetime] = None
    days_since_first_version: int = 0
    average_versions_per_day: float = 0.0
    active_versions: int = 0
    archived_versions: int = 0
    compressed_versions: int = 0
