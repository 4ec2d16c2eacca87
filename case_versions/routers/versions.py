from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from case_versions.core.database import get_db
from case_versions.core.auth import get_current_author
from case_versions.core.exceptions import handle_database_errors
from case_versions.schemas.auth import TokenData
from case_versions.schemas.comparison import ComparisonResponse
from case_versions.schemas.comment import VersionCommentCreate, VersionCommentResponse
from case_versions.schemas.retention import RetentionPolicy, RetentionReport
from case_versions.schemas.version import (
    RevertRequest,
    VersionCreate,
    VersionListResponse,
    VersionResponse,
    VersionStats,
)
from case_versions.services.version_service import version_service
from typing import List, Optional

router = APIRouter()


@router.post("/{entity_id}/versions", response_model=VersionResponse, status_code=status.HTTP_201_CREATED)
@handle_database_errors
async def create_version(
    entity_id: str,
    version_in: VersionCreate,
    current_author: TokenData = Depends(get_current_author),
    db: AsyncSession = Depends(get_db)
):
    """Commit a new snapshot on top of `expected_version_number`"""
    return await version_service.create_version(
        db,
        entity_id=entity_id,
        snapshot=version_in.snapshot,
        author_id=current_author.author_id,
        comment=version_in.comment,
        expected_version_number=version_in.expected_version_number,
    )


@router.get("/{entity_id}/versions", response_model=VersionListResponse)
@handle_database_errors
async def list_versions(
    entity_id: str,
    cursor: Optional[int] = Query(None, ge=1, description="Version number the previous page ended at"),
    page_size: Optional[int] = Query(None, ge=1),
    include_archived: bool = False,
    current_author: TokenData = Depends(get_current_author),
    db: AsyncSession = Depends(get_db)
):
    """Version history, newest first"""
    return await version_service.list_versions(
        db, entity_id=entity_id, cursor=cursor, page_size=page_size, include_archived=include_archived
    )


@router.get("/{entity_id}/versions/compare", response_model=ComparisonResponse)
@handle_database_errors
async def compare_versions(
    entity_id: str,
    a: int = Query(..., ge=1),
    b: int = Query(..., ge=1),
    current_author: TokenData = Depends(get_current_author),
    db: AsyncSession = Depends(get_db)
):
    """Structural diff from version `a` to version `b`"""
    return await version_service.compare_versions(db, entity_id=entity_id, version_a=a, version_b=b)


@router.get("/{entity_id}/versions/{version_number}", response_model=VersionResponse)
@handle_database_errors
async def get_version(
    entity_id: str,
    version_number: int,
    current_author: TokenData = Depends(get_current_author),
    db: AsyncSession = Depends(get_db)
):
    """A single version with its full snapshot, reconstructed if compressed"""
    return await version_service.get_version(db, entity_id=entity_id, version_number=version_number)


@router.post("/{entity_id}/revert", response_model=VersionResponse, status_code=status.HTTP_201_CREATED)
@handle_database_errors
async def revert(
    entity_id: str,
    revert_in: RevertRequest,
    current_author: TokenData = Depends(get_current_author),
    db: AsyncSession = Depends(get_db)
):
    """Commit an old version's snapshot as the new head"""
    return await version_service.revert(
        db,
        entity_id=entity_id,
        target_version_number=revert_in.target_version_number,
        author_id=current_author.author_id,
        expected_version_number=revert_in.expected_version_number,
    )


@router.post("/{entity_id}/retention", response_model=RetentionReport)
@handle_database_errors
async def apply_retention_policy(
    entity_id: str,
    policy: RetentionPolicy,
    current_author: TokenData = Depends(get_current_author),
    db: AsyncSession = Depends(get_db)
):
    """Run one retention sweep for this case study"""
    return await version_service.apply_retention_policy(db, entity_id=entity_id, policy=policy)


@router.get("/{entity_id}/stats", response_model=VersionStats)
@handle_database_errors
async def get_version_stats(
    entity_id: str,
    current_author: TokenData = Depends(get_current_author),
    db: AsyncSession = Depends(get_db)
):
    return await version_service.get_version_stats(db, entity_id=entity_id)


@router.post(
    "/{entity_id}/versions/{version_number}/comments",
    response_model=VersionCommentResponse,
    status_code=status.HTTP_201_CREATED
)
@handle_database_errors
async def add_comment(
    entity_id: str,
    version_number: int,
    comment_in: VersionCommentCreate,
    current_author: TokenData = Depends(get_current_author),
    db: AsyncSession = Depends(get_db)
):
    return await version_service.add_comment(
        db,
        entity_id=entity_id,
        version_number=version_number,
        author_id=current_author.author_id,
        body=comment_in.body,
    )


@router.get("/{entity_id}/versions/{version_number}/comments", response_model=List[VersionCommentResponse])
@handle_database_errors
async def list_comments(
    entity_id: str,
    version_number: int,
    current_author: TokenData = Depends(get_current_author),
    db: AsyncSession = Depends(get_db)
):
    return await version_service.list_comments(db, entity_id=entity_id, version_number=version_number)


@router.delete("/{entity_id}")
@handle_database_errors
async def delete_case_study(
    entity_id: str,
    current_author: TokenData = Depends(get_current_author),
    db: AsyncSession = Depends(get_db)
):
    """Soft delete a case study; its history is kept for audit"""
    await version_service.delete_entity(db, entity_id=entity_id)
    return {"success": True, "message": "Case study deleted; history preserved"}


@router.delete("/{entity_id}/history", response_model=RetentionReport)
@handle_database_errors
async def purge_history(
    entity_id: str,
    current_author: TokenData = Depends(get_current_author),
    db: AsyncSession = Depends(get_db)
):
    """Remove all history of a deleted case study once audit retention allows it"""
    return await version_service.purge_entity_history(db, entity_id=entity_id)
