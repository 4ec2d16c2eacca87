from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from .base import CRUDBase
from case_versions.models.retention_audit import RetentionAuditEntry, RetentionAction


class CRUDRetentionAudit(CRUDBase[RetentionAuditEntry]):
    async def record(
        self,
        db: AsyncSession,
        *,
        entity_id: str,
        action: RetentionAction,
        now: datetime,
        version_number: Optional[int] = None,
        detail: Optional[str] = None
    ) -> RetentionAuditEntry:
        return await self.add(db, RetentionAuditEntry(
            entity_id=entity_id,
            version_number=version_number,
            action=action,
            detail=detail,
            created_at=now,
        ))

    async def list_for_entity(self, db: AsyncSession, *, entity_id: str) -> List[RetentionAuditEntry]:
        return await self.get_multi(
            db, filters={"entity_id": entity_id}, order_by=["created_at"], order_desc=False
        )


retention_audit_crud = CRUDRetentionAudit(RetentionAuditEntry)
