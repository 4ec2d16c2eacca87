from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update, and_
from .base import CRUDBase
from case_versions.models.version import EntityVersion, StorageState
from case_versions.core.exceptions import NotFoundError


class CRUDVersion(CRUDBase[EntityVersion]):
    """Append-only store of version rows keyed by (entity_id, version_number)"""

    async def get_version(
        self, db: AsyncSession, *, entity_id: str, version_number: int, raise_if_not_found: bool = True
    ) -> Optional[EntityVersion]:
        """Get a specific version of an entity"""
        version = await self.get_one(
            db, filters={"entity_id": entity_id, "version_number": version_number}
        )

        if raise_if_not_found and version is None:
            raise NotFoundError(f"Version {version_number} of {entity_id}")

        return version

    async def find_by_commit_token(
        self, db: AsyncSession, *, entity_id: str, commit_token: str
    ) -> Optional[EntityVersion]:
        return await self.get_one(db, filters={"entity_id": entity_id, "commit_token": commit_token})

    async def append(self, db: AsyncSession, *, version: EntityVersion) -> EntityVersion:
        """Stage a new immutable version in the caller's transaction"""
        return await self.add(db, version)

    async def list_page(
        self,
        db: AsyncSession,
        *,
        entity_id: str,
        before: Optional[int] = None,
        limit: int = 20,
        states: Optional[Sequence[StorageState]] = None
    ) -> List[EntityVersion]:
        """Versions in descending number order, strictly below `before` when given"""
        filters: Dict[str, Any] = {"entity_id": entity_id}
        if before is not None:
            filters["version_number"] = {"lt": before}
        if states is not None:
            filters["storage_state"] = list(states)
        return await self.get_multi(
            db, filters=filters, order_by=["version_number"], order_desc=True, limit=limit
        )

    async def list_all(self, db: AsyncSession, *, entity_id: str) -> List[EntityVersion]:
        """Every surviving version of an entity, oldest first"""
        return await self.get_multi(
            db, filters={"entity_id": entity_id}, order_by=["version_number"], order_desc=False
        )

    async def dependents_of(self, db: AsyncSession, *, entity_id: str, version_number: int) -> List[EntityVersion]:
        """Compressed versions whose delta applies on top of `version_number`"""
        return await self.get_multi(
            db,
            filters={"entity_id": entity_id, "delta_parent": version_number},
            order_by=["version_number"],
            order_desc=False,
        )

    async def archive(
        self, db: AsyncSession, *, entity_id: str, version_numbers: Sequence[int]
    ) -> int:
        """Move still-active versions to archived; already-moved rows are left alone"""
        if not version_numbers:
            return 0
        result = await db.execute(
            update(EntityVersion)
            .where(
                and_(
                    EntityVersion.entity_id == entity_id,
                    EntityVersion.version_number.in_(list(version_numbers)),
                    EntityVersion.storage_state == StorageState.ACTIVE
                )
            )
            .values(storage_state=StorageState.ARCHIVED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def compress(
        self,
        db: AsyncSession,
        *,
        entity_id: str,
        version_number: int,
        delta: List[Dict[str, Any]],
        delta_parent: int,
        baseline_ref: int
    ) -> bool:
        """Swap an archived full snapshot for a delta; False if the row already moved"""
        result = await db.execute(
            update(EntityVersion)
            .where(
                and_(
                    EntityVersion.entity_id == entity_id,
                    EntityVersion.version_number == version_number,
                    EntityVersion.storage_state == StorageState.ARCHIVED
                )
            )
            .values(
                storage_state=StorageState.COMPRESSED,
                snapshot=None,
                delta=delta,
                delta_parent=delta_parent,
                baseline_ref=baseline_ref,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def rebaseline(
        self, db: AsyncSession, *, entity_id: str, version_number: int, snapshot: Dict[str, Any]
    ) -> None:
        """Give a compressed version back its full snapshot"""
        await db.execute(
            update(EntityVersion)
            .where(
                and_(
                    EntityVersion.entity_id == entity_id,
                    EntityVersion.version_number == version_number
                )
            )
            .values(
                storage_state=StorageState.ARCHIVED,
                snapshot=snapshot,
                delta=None,
                delta_parent=None,
                baseline_ref=None,
            )
            .execution_options(synchronize_session=False)
        )

    async def repoint_baseline(
        self, db: AsyncSession, *, entity_id: str, below: int, old_baseline: int, new_baseline: int
    ) -> int:
        """Re-point compressed versions under `below` from one baseline to another"""
        result = await db.execute(
            update(EntityVersion)
            .where(
                and_(
                    EntityVersion.entity_id == entity_id,
                    EntityVersion.version_number < below,
                    EntityVersion.baseline_ref == old_baseline
                )
            )
            .values(baseline_ref=new_baseline)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def purge(self, db: AsyncSession, *, entity_id: str, version_number: int) -> int:
        return await self.remove_by_filters(
            db, filters={"entity_id": entity_id, "version_number": version_number}
        )

    async def references_to(self, db: AsyncSession, *, entity_id: str, version_number: int) -> int:
        """How many surviving versions still depend on `version_number`"""
        as_parent = await self.count(db, filters={"entity_id": entity_id, "delta_parent": version_number})
        as_baseline = await self.count(db, filters={"entity_id": entity_id, "baseline_ref": version_number})
        return as_parent + as_baseline


version_crud = CRUDVersion(EntityVersion)
