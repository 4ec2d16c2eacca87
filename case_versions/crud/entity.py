from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update, and_
from .base import CRUDBase
from case_versions.models.entity import VersionedEntity
from case_versions.core.exceptions import NotFoundError


class CRUDEntity(CRUDBase[VersionedEntity]):
    async def get_entity(
        self, db: AsyncSession, *, entity_id: str, include_deleted: bool = False, raise_if_not_found: bool = True
    ) -> Optional[VersionedEntity]:
        """Get an entity's head record"""
        entity = await self.get_one(db, filters={"entity_id": entity_id}, include_deleted=include_deleted)

        if raise_if_not_found and entity is None:
            raise NotFoundError(f"Case study {entity_id}")

        return entity

    async def create_entity(self, db: AsyncSession, *, entity_id: str, now: datetime) -> VersionedEntity:
        """Insert the head record for a new entity at version 1"""
        return await self.add(db, VersionedEntity(
            entity_id=entity_id,
            head_version_number=1,
            created_at=now,
            updated_at=now,
            is_deleted=False,
        ))

    async def compare_and_advance(
        self, db: AsyncSession, *, entity_id: str, expected: int, now: datetime
    ) -> bool:
        """Move the head from `expected` to `expected + 1` in one conditional UPDATE"""
        result = await db.execute(
            update(VersionedEntity)
            .where(
                and_(
                    VersionedEntity.entity_id == entity_id,
                    VersionedEntity.head_version_number == expected,
                    VersionedEntity.is_deleted == False
                )
            )
            .values(head_version_number=expected + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def soft_delete(self, db: AsyncSession, *, entity_id: str, now: datetime) -> bool:
        """Soft delete an entity; its history stays in place"""
        result = await db.execute(
            update(VersionedEntity)
            .where(
                and_(
                    VersionedEntity.entity_id == entity_id,
                    VersionedEntity.is_deleted == False
                )
            )
            .values(is_deleted=True, deleted_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            raise NotFoundError(f"Case study {entity_id}")

        return True


entity_crud = CRUDEntity(VersionedEntity)
