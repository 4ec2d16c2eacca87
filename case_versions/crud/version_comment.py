from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from .base import CRUDBase
from case_versions.models.version_comment import VersionComment


class CRUDVersionComment(CRUDBase[VersionComment]):
    async def list_for_version(
        self, db: AsyncSession, *, entity_id: str, version_number: int
    ) -> List[VersionComment]:
        """Comments on a version, oldest first"""
        return await self.get_multi(
            db,
            filters={"entity_id": entity_id, "version_number": version_number},
            order_by=["created_at"],
            order_desc=False,
        )


version_comment_crud = CRUDVersionComment(VersionComment)
