import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

from case_versions.core.config import settings
from case_versions.core.deadline import Deadline
from case_versions.core.exceptions import ValidationError
from case_versions.core.notifications import NotificationQueue, VersionEvent, notification_queue
from case_versions.crud.entity import entity_crud
from case_versions.crud.version import version_crud
from case_versions.crud.version_comment import version_comment_crud
from case_versions.models.version import EntityVersion, StorageState
from case_versions.models.version_comment import VersionComment
from case_versions.schemas.comparison import ComparisonResponse
from case_versions.schemas.retention import RetentionPolicy, RetentionReport
from case_versions.schemas.version import VersionListResponse, VersionResponse, VersionStats, VersionSummary
from case_versions.services.comparison_service import ComparisonService, comparison_service
from case_versions.services.diff_engine import DiffEngine, diff_engine
from case_versions.services.reconstruction import Reconstructor, reconstructor
from case_versions.services.retention_manager import RetentionManager, retention_manager
from case_versions.services.revert_coordinator import RevertCoordinator, revert_coordinator
from case_versions.services.snapshot_manager import SnapshotManager, snapshot_manager
from case_versions.utils.utils import Clock, as_utc, utcnow

logger = logging.getLogger(__name__)


class VersionService:
    """Operations exposed to the rest of the CMS"""

    def __init__(
        self,
        *,
        manager: SnapshotManager = snapshot_manager,
        reverter: RevertCoordinator = revert_coordinator,
        retention: RetentionManager = retention_manager,
        engine: DiffEngine = diff_engine,
        rebuilder: Reconstructor = reconstructor,
        comparison: ComparisonService = comparison_service,
        notifications: Optional[NotificationQueue] = notification_queue,
        clock: Clock = utcnow,
    ):
        self.manager = manager
        self.reverter = reverter
        self.retention = retention
        self.engine = engine
        self.rebuilder = rebuilder
        self.comparison = comparison
        self.notifications = notifications
        self.clock = clock

    async def create_version(
        self,
        db: AsyncSession,
        *,
        entity_id: str,
        snapshot: dict,
        author_id: str,
        comment: Optional[str],
        expected_version_number: int
    ) -> VersionResponse:
        if expected_version_number < 0:
            raise ValidationError("expected_version_number must be 0 or greater")
        version = await self.manager.commit(
            db, entity_id, snapshot, author_id, comment, expected_version_number
        )
        return VersionResponse.from_version(version, version.snapshot, version.version_number)

    async def list_versions(
        self,
        db: AsyncSession,
        *,
        entity_id: str,
        cursor: Optional[int] = None,
        page_size: Optional[int] = None,
        include_archived: bool = False
    ) -> VersionListResponse:
        page_size = page_size or settings.default_page_size
        if page_size < 1 or page_size > settings.max_page_size:
            raise ValidationError(f"page_size must be between 1 and {settings.max_page_size}")

        await entity_crud.get_entity(db, entity_id=entity_id)
        states = None if include_archived else [StorageState.ACTIVE]
        # One extra row tells us whether another page exists
        rows = await version_crud.list_page(
            db, entity_id=entity_id, before=cursor, limit=page_size + 1, states=states
        )
        has_more = len(rows) > page_size
        rows = rows[:page_size]

        return VersionListResponse(
            versions=[VersionSummary.model_validate(row) for row in rows],
            next_cursor=rows[-1].version_number if has_more else None,
            page_size=page_size,
            include_archived=include_archived,
        )

    async def get_version(self, db: AsyncSession, *, entity_id: str, version_number: int) -> VersionResponse:
        entity = await entity_crud.get_entity(db, entity_id=entity_id)
        version = await version_crud.get_version(db, entity_id=entity_id, version_number=version_number)
        snapshot = await self.rebuilder.materialize(db, version)
        return VersionResponse.from_version(version, snapshot, entity.head_version_number)

    async def compare_versions(
        self,
        db: AsyncSession,
        *,
        entity_id: str,
        version_a: int,
        version_b: int,
        timeout_seconds: Optional[float] = None
    ) -> ComparisonResponse:
        """Reconstruct both versions to full form, then diff them"""
        await entity_crud.get_entity(db, entity_id=entity_id)
        snapshot_a = await self.rebuilder.materialize_number(db, entity_id, version_a)
        snapshot_b = await self.rebuilder.materialize_number(db, entity_id, version_b)

        deadline = Deadline.after(
            timeout_seconds if timeout_seconds is not None else settings.diff_timeout_seconds,
            label=f"comparison of {entity_id} v{version_a}..v{version_b}",
        )
        entries = self.engine.diff(snapshot_a, snapshot_b, deadline=deadline)
        logger.debug(f"Compared {entity_id} v{version_a}..v{version_b}: {len(entries)} changes in {deadline.get_latency_ms()}ms")

        return ComparisonResponse(
            entity_id=entity_id,
            version_a=version_a,
            version_b=version_b,
            changes=self.comparison.describe(entries),
            stats=self.comparison.stats(entries, snapshot_a, snapshot_b),
        )

    async def revert(
        self,
        db: AsyncSession,
        *,
        entity_id: str,
        target_version_number: int,
        author_id: str,
        expected_version_number: int
    ) -> VersionResponse:
        version = await self.reverter.revert(
            db, entity_id, target_version_number, author_id, expected_version_number
        )
        return VersionResponse.from_version(version, version.snapshot, version.version_number)

    async def apply_retention_policy(
        self,
        db: AsyncSession,
        *,
        entity_id: str,
        policy: RetentionPolicy,
        deadline: Optional[Deadline] = None
    ) -> RetentionReport:
        return await self.retention.apply(db, entity_id, policy, deadline=deadline)

    async def add_comment(
        self, db: AsyncSession, *, entity_id: str, version_number: int, author_id: str, body: str
    ) -> VersionComment:
        await entity_crud.get_entity(db, entity_id=entity_id)
        await version_crud.get_version(db, entity_id=entity_id, version_number=version_number)
        comment = await version_comment_crud.add(db, VersionComment(
            entity_id=entity_id,
            version_number=version_number,
            author_id=author_id,
            body=body,
            created_at=self.clock(),
        ))
        await db.commit()

        if self.notifications is not None:
            self.notifications.publish(VersionEvent(
                event_type="version.commented",
                entity_id=entity_id,
                version_number=version_number,
                author_id=author_id,
                payload={"comment_id": comment.id, "body": body},
            ))
        return comment

    async def list_comments(
        self, db: AsyncSession, *, entity_id: str, version_number: int
    ) -> List[VersionComment]:
        await entity_crud.get_entity(db, entity_id=entity_id)
        await version_crud.get_version(db, entity_id=entity_id, version_number=version_number)
        return await version_comment_crud.list_for_version(
            db, entity_id=entity_id, version_number=version_number
        )

    async def get_version_stats(self, db: AsyncSession, *, entity_id: str) -> VersionStats:
        entity = await entity_crud.get_entity(db, entity_id=entity_id)
        total, authors, first, last = await version_crud.aggregate(
            db,
            func.count(EntityVersion.version_number),
            func.count(func.distinct(EntityVersion.author_id)),
            func.min(EntityVersion.created_at),
            func.max(EntityVersion.created_at),
            filters={"entity_id": entity_id},
        )
        by_state = {}
        for state in StorageState:
            by_state[state] = await version_crud.count(
                db, filters={"entity_id": entity_id, "storage_state": state}
            )

        first, last = as_utc(first), as_utc(last)
        days = (self.clock() - first).days if first else 0
        average = round(total / max(days, 1), 1) if total else 0.0

        return VersionStats(
            entity_id=entity_id,
            head_version_number=entity.head_version_number,
            total_versions=total,
            unique_authors=authors,
            first_version_date=first,
            last_version_date=last,
            days_since_first_version=days,
            average_versions_per_day=average,
            active_versions=by_state[StorageState.ACTIVE],
            archived_versions=by_state[StorageState.ARCHIVED],
            compressed_versions=by_state[StorageState.COMPRESSED],
        )

    async def delete_entity(self, db: AsyncSession, *, entity_id: str) -> None:
        """Soft delete; versions stay until the audit retention floor allows a purge"""
        await entity_crud.soft_delete(db, entity_id=entity_id, now=self.clock())
        await db.commit()
        logger.info(f"🗃️ Soft-deleted {entity_id}; history preserved")

    async def purge_entity_history(self, db: AsyncSession, *, entity_id: str) -> RetentionReport:
        return await self.retention.purge_entity_history(db, entity_id)


version_service = VersionService()
