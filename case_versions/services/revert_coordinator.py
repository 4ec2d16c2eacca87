import logging

from sqlalchemy.ext.asyncio import AsyncSession

from case_versions.crud.entity import entity_crud
from case_versions.crud.version import version_crud
from case_versions.models.version import EntityVersion
from case_versions.services.reconstruction import Reconstructor, reconstructor
from case_versions.services.snapshot_manager import SnapshotManager, snapshot_manager

logger = logging.getLogger(__name__)


class RevertCoordinator:
    """Restores an old state by committing it as a brand-new head version.

    The old version is only read; it is never re-activated or rewritten. The
    commit goes through the same optimistic check as any edit, so a revert that
    races a concurrent edit fails with VersionConflict.
    """

    def __init__(self, manager: SnapshotManager = snapshot_manager, rebuilder: Reconstructor = reconstructor):
        self.manager = manager
        self.rebuilder = rebuilder

    async def revert(
        self,
        db: AsyncSession,
        entity_id: str,
        target_version_number: int,
        author_id: str,
        expected_version_number: int
    ) -> EntityVersion:
        await entity_crud.get_entity(db, entity_id=entity_id)
        target = await version_crud.get_version(
            db, entity_id=entity_id, version_number=target_version_number
        )
        snapshot = await self.rebuilder.materialize(db, target)
        # End the read transaction before the write starts
        await db.commit()

        logger.info(f"⏪ Reverting {entity_id} to v{target_version_number} on top of v{expected_version_number}")
        return await self.manager.commit(
            db,
            entity_id,
            snapshot,
            author_id,
            f"reverted from version {target_version_number}",
            expected_version_number,
            reverted_from=target_version_number,
        )


revert_coordinator = RevertCoordinator()
