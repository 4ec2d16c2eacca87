from pydantic import BaseModel, Field
from datetime import datetime


class VersionCommentCreate(BaseModel):
    body: str = Field(..., min_length=1, max_length=5000)


class VersionCommentResponse(BaseModel):
    id: str
    entity_id: str
    version_number: int
    author_id: str
    body: str
    created_at: datetime

    class Config:
        from_attributes = True
