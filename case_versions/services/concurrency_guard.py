import logging
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from case_versions.core.exceptions import NotFoundError, VersionConflict
from case_versions.crud.entity import entity_crud
from case_versions.utils.utils import Clock, utcnow

logger = logging.getLogger(__name__)


class ConcurrencyGuard:
    """Optimistic lock on an entity's head version number.

    `check_and_advance` is the only place the head moves. It runs inside the
    caller's transaction, so the reservation becomes visible together with the
    version row, or not at all if the transaction rolls back.
    """

    def __init__(self, clock: Clock = utcnow):
        self.clock = clock

    async def check_and_advance(self, db: AsyncSession, entity_id: str, expected_version_number: int) -> int:
        now = self.clock()

        if expected_version_number == 0:
            try:
                await entity_crud.create_entity(db, entity_id=entity_id, now=now)
            except IntegrityError:
                await db.rollback()
                raise await self._conflict(db, entity_id)
            return 1

        advanced = await entity_crud.compare_and_advance(
            db, entity_id=entity_id, expected=expected_version_number, now=now
        )
        if not advanced:
            await db.rollback()
            raise await self._conflict(db, entity_id)
        return expected_version_number + 1

    async def current_head(self, db: AsyncSession, entity_id: str) -> int:
        entity = await entity_crud.get_entity(db, entity_id=entity_id)
        return entity.head_version_number

    async def _conflict(self, db: AsyncSession, entity_id: str) -> VersionConflict:
        # Unknown or soft-deleted entities raise NotFoundError from here
        head = await self.current_head(db, entity_id)
        await db.rollback()
        logger.info(f"⚔️ Version conflict on {entity_id}: head is {head}")
        return VersionConflict(current_head=head)


concurrency_guard = ConcurrencyGuard()
