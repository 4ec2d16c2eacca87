"""
Commit path for new versions.

A commit validates the snapshot, reserves the next version number through the
concurrency guard, diffs the snapshot against the current head to build the
change summary, and writes the version row in the same transaction as the head
advance. Transient storage errors are retried here, and only here.
"""
import asyncio
import copy
import logging
import uuid
from typing import Any, Dict, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from case_versions.core.config import settings
from case_versions.core.exceptions import InvalidSnapshot, StorageFailure, VersionConflict
from case_versions.core.notifications import NotificationQueue, VersionEvent, notification_queue
from case_versions.crud.version import version_crud
from case_versions.models.version import EntityVersion, StorageState
from case_versions.services.concurrency_guard import ConcurrencyGuard, concurrency_guard
from case_versions.services.diff_engine import DiffEngine, diff_engine, top_level_paths
from case_versions.services.reconstruction import Reconstructor, reconstructor
from case_versions.services.snapshot_validator import SnapshotValidator, snapshot_validator
from case_versions.utils.tree import content_hash
from case_versions.utils.utils import Clock, utcnow

logger = logging.getLogger(__name__)


class SnapshotManager:
    def __init__(
        self,
        *,
        guard: ConcurrencyGuard = concurrency_guard,
        engine: DiffEngine = diff_engine,
        validator: SnapshotValidator = snapshot_validator,
        rebuilder: Reconstructor = reconstructor,
        notifications: Optional[NotificationQueue] = notification_queue,
        clock: Clock = utcnow,
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
    ):
        self.guard = guard
        self.engine = engine
        self.validator = validator
        self.rebuilder = rebuilder
        self.notifications = notifications
        self.clock = clock
        self.max_retries = max_retries if max_retries is not None else settings.commit_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.commit_retry_backoff_seconds

    async def commit(
        self,
        db: AsyncSession,
        entity_id: str,
        snapshot: Dict[str, Any],
        author_id: str,
        comment: Optional[str],
        expected_version_number: int,
        *,
        commit_token: Optional[str] = None,
        reverted_from: Optional[int] = None
    ) -> EntityVersion:
        errors = self.validator.validate(snapshot)
        if errors:
            raise InvalidSnapshot(errors)

        document = copy.deepcopy(snapshot)
        token = commit_token or uuid.uuid4().hex
        attempt = 0

        while True:
            try:
                version = await self._commit_once(
                    db, entity_id, document, author_id, comment, expected_version_number, token, reverted_from
                )
                break
            except StorageFailure as exc:
                await db.rollback()
                landed = await self._find_landed(db, entity_id, token)
                if landed is not None:
                    logger.info(f"♻️ Commit {token} for {entity_id} had already landed as v{landed.version_number}")
                    version = landed
                    break
                if attempt >= self.max_retries:
                    logger.error(f"💀 Commit for {entity_id} failed after {attempt + 1} attempts: {exc.detail}")
                    raise
                delay = self.backoff_seconds * (2 ** attempt)
                attempt += 1
                logger.warning(f"🔄 Retrying commit for {entity_id} in {delay:.2f}s (attempt {attempt})")
                await asyncio.sleep(delay)

        logger.info(f"💾 Committed {entity_id} v{version.version_number} ({', '.join(version.change_summary) or 'no changes'})")
        self._notify(version)
        return version

    async def _commit_once(
        self,
        db: AsyncSession,
        entity_id: str,
        document: Dict[str, Any],
        author_id: str,
        comment: Optional[str],
        expected_version_number: int,
        token: str,
        reverted_from: Optional[int],
    ) -> EntityVersion:
        try:
            version_number = await self.guard.check_and_advance(db, entity_id, expected_version_number)

            previous: Dict[str, Any] = {}
            if version_number > 1:
                head = await version_crud.get_version(
                    db, entity_id=entity_id, version_number=version_number - 1
                )
                previous = await self.rebuilder.materialize(db, head)

            changes = self.engine.diff(previous, document)
            version = await version_crud.append(db, version=EntityVersion(
                entity_id=entity_id,
                version_number=version_number,
                snapshot=document,
                author_id=author_id,
                created_at=self.clock(),
                change_summary=top_level_paths(changes),
                comment=comment,
                storage_state=StorageState.ACTIVE,
                content_hash=content_hash(document),
                commit_token=token,
                reverted_from=reverted_from,
            ))
            await db.commit()
            return version
        except VersionConflict:
            raise
        except IntegrityError:
            # Another writer holds this version number; report the true head
            await db.rollback()
            raise VersionConflict(current_head=await self.guard.current_head(db, entity_id))
        except (OperationalError, DBAPIError) as e:
            raise StorageFailure(f"Commit for {entity_id} failed: {str(e)}")

    async def _find_landed(self, db: AsyncSession, entity_id: str, token: str) -> Optional[EntityVersion]:
        try:
            return await version_crud.find_by_commit_token(db, entity_id=entity_id, commit_token=token)
        except (OperationalError, DBAPIError):
            await db.rollback()
            return None

    def _notify(self, version: EntityVersion) -> None:
        if self.notifications is None:
            return
        try:
            self.notifications.publish(VersionEvent(
                event_type="version.created",
                entity_id=version.entity_id,
                version_number=version.version_number,
                author_id=version.author_id,
                payload={"change_summary": list(version.change_summary), "comment": version.comment},
            ))
        except Exception as e:
            logger.error(f"❌ Could not queue notification for {version.entity_id}: {str(e)}")


snapshot_manager = SnapshotManager()
