"""
Retention policy enforcement.

A sweep runs three phases over one entity: archive, compress, purge. Every
step inside a phase is its own transaction and is safe to repeat, so a sweep
that is interrupted (cancelled, timed out, or crashed) can simply be run again.

Compressed versions are stored as reverse deltas: each one holds the positional
diff from the next newer surviving version back to itself. The head always
keeps its full snapshot, so every chain ends at a full baseline.
"""
import logging
from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from case_versions.core.config import settings
from case_versions.core.deadline import Deadline
from case_versions.core.exceptions import OperationCancelled, RetentionViolation, VersionEngineError
from case_versions.crud.entity import entity_crud
from case_versions.crud.retention_audit import retention_audit_crud
from case_versions.crud.version import version_crud
from case_versions.crud.version_comment import version_comment_crud
from case_versions.models.entity import VersionedEntity
from case_versions.models.retention_audit import RetentionAction
from case_versions.models.version import EntityVersion, StorageState
from case_versions.schemas.retention import RetentionPolicy, RetentionReport
from case_versions.services.diff_engine import DiffEngine, diff_engine
from case_versions.services.reconstruction import Reconstructor, apply_delta, build_delta, reconstructor
from case_versions.utils.tree import canonical_json, content_hash
from case_versions.utils.utils import Clock, as_utc, utcnow

logger = logging.getLogger(__name__)


class RetentionManager:
    def __init__(
        self,
        *,
        engine: DiffEngine = diff_engine,
        rebuilder: Reconstructor = reconstructor,
        clock: Clock = utcnow,
        max_chain_length: Optional[int] = None,
        audit_retention_days: Optional[int] = None,
    ):
        self.engine = engine
        self.rebuilder = rebuilder
        self.clock = clock
        self.max_chain_length = max_chain_length if max_chain_length is not None else settings.max_delta_chain_length
        self.audit_retention = timedelta(
            days=audit_retention_days if audit_retention_days is not None else settings.audit_retention_days
        )

    async def apply(
        self,
        db: AsyncSession,
        entity_id: str,
        policy: RetentionPolicy,
        *,
        now=None,
        deadline: Optional[Deadline] = None
    ) -> RetentionReport:
        now = now or self.clock()
        entity = await entity_crud.get_entity(db, entity_id=entity_id, include_deleted=True)
        head = entity.head_version_number
        purge_allowed = self._purge_allowed(entity, now)
        await db.commit()

        report = RetentionReport(entity_id=entity_id)
        if policy.is_empty():
            return report

        phases = [
            ("archive", self._archive),
            ("compress", self._compress),
        ]
        if purge_allowed:
            phases.append(("purge", self._purge))
        elif policy.purge_after is not None:
            logger.info(f"🗄️ Skipping purge for {entity_id}: deleted history is under audit retention")

        for name, phase in phases:
            try:
                await phase(db, entity_id, head, policy, now, deadline, report)
            except OperationCancelled as e:
                await db.rollback()
                report.completed = False
                logger.warning(f"⏸️ Retention sweep for {entity_id} stopped during {name}: {e.detail}")
                return report
            except (VersionEngineError, SQLAlchemyError, ValueError) as e:
                await db.rollback()
                detail = getattr(e, "detail", None) or str(e)
                report.failures.append(f"{name}: {detail}")
                report.completed = False
                logger.error(f"❌ Retention {name} step failed for {entity_id}: {detail}")

        logger.info(
            f"🧹 Retention for {entity_id}: archived={report.archived} compressed={report.compressed} "
            f"purged={report.purged} rebaselined={report.rebaselined}"
        )
        return report

    # --- archive -----------------------------------------------------------

    async def _archive(self, db, entity_id, head, policy, now, deadline, report):
        if policy.max_active_versions is None and policy.max_age is None:
            return
        versions = await version_crud.list_all(db, entity_id=entity_id)
        newest_first = sorted(versions, key=lambda v: v.version_number, reverse=True)

        targets = set()
        if policy.max_active_versions is not None:
            targets.update(v.version_number for v in newest_first[policy.max_active_versions:])
        if policy.max_age is not None:
            cutoff = now - policy.max_age
            targets.update(v.version_number for v in versions if as_utc(v.created_at) < cutoff)

        targets.discard(head)
        active = sorted(
            v.version_number for v in versions
            if v.version_number in targets and v.storage_state == StorageState.ACTIVE
        )
        if deadline is not None:
            deadline.check()

        await version_crud.archive(db, entity_id=entity_id, version_numbers=active)
        await db.commit()
        report.archived.extend(active)

    # --- compress ----------------------------------------------------------

    async def _compress(self, db, entity_id, head, policy, now, deadline, report):
        if policy.compress_after is None:
            return
        cutoff = now - policy.compress_after
        versions = await version_crud.list_all(db, entity_id=entity_id)
        candidates = [
            v.version_number for v in versions
            if v.storage_state == StorageState.ARCHIVED
            and v.is_full
            and v.version_number != head
            and as_utc(v.created_at) < cutoff
        ]
        await db.commit()

        # Newest first: each delta is taken against an already-settled newer version
        for version_number in reversed(candidates):
            if deadline is not None:
                deadline.check()
            if await self._compress_one(db, entity_id, version_number):
                report.compressed.append(version_number)
        report.compressed.sort()

    async def _compress_one(self, db: AsyncSession, entity_id: str, version_number: int) -> bool:
        version = await version_crud.get_version(
            db, entity_id=entity_id, version_number=version_number, raise_if_not_found=False
        )
        if version is None or version.storage_state != StorageState.ARCHIVED or not version.is_full:
            await db.rollback()
            return False

        parent = await self._next_newer(db, entity_id, version_number)
        if parent is None:
            await db.rollback()
            return False

        chain = await self.rebuilder.load_chain(db, parent)
        # Chains that end here today will run on through this version afterwards
        longest = len(chain) + await self._longest_chain_onto(db, entity_id, version_number)
        if longest > self.max_chain_length:
            logger.info(f"🔗 Keeping {entity_id} v{version_number} full: chain limit {self.max_chain_length} reached")
            await db.rollback()
            return False

        parent_document = await self.rebuilder.materialize(db, parent)
        delta = build_delta(self.engine, parent_document, version.snapshot)
        rebuilt = apply_delta(parent_document, delta)
        if canonical_json(rebuilt) != canonical_json(version.snapshot) or content_hash(rebuilt) != version.content_hash:
            logger.warning(f"⚠️ Delta for {entity_id} v{version_number} does not reproduce it; keeping full snapshot")
            await db.rollback()
            return False

        compressed = await version_crud.compress(
            db,
            entity_id=entity_id,
            version_number=version_number,
            delta=delta,
            delta_parent=parent.version_number,
            baseline_ref=chain[-1].version_number,
        )
        if compressed:
            # Older chains that ended here now continue through this version
            await version_crud.repoint_baseline(
                db,
                entity_id=entity_id,
                below=version_number,
                old_baseline=version_number,
                new_baseline=chain[-1].version_number,
            )
        await db.commit()
        return compressed

    async def _longest_chain_onto(self, db: AsyncSession, entity_id: str, version_number: int) -> int:
        """Delta links in the longest chain that currently ends at `version_number`"""
        oldest = await version_crud.get_multi(
            db,
            filters={"entity_id": entity_id, "baseline_ref": version_number},
            order_by=["version_number"],
            order_desc=False,
            limit=1,
        )
        if not oldest:
            return 0
        return len(await self.rebuilder.load_chain(db, oldest[0])) - 1

    async def _next_newer(self, db: AsyncSession, entity_id: str, version_number: int) -> Optional[EntityVersion]:
        newer = await version_crud.get_multi(
            db,
            filters={"entity_id": entity_id, "version_number": {"gt": version_number}},
            order_by=["version_number"],
            order_desc=False,
            limit=1,
        )
        return newer[0] if newer else None

    # --- purge -------------------------------------------------------------

    async def _purge(self, db, entity_id, head, policy, now, deadline, report):
        if policy.purge_after is None:
            return
        cutoff = now - policy.purge_after
        versions = await version_crud.list_all(db, entity_id=entity_id)
        candidates = [
            v.version_number for v in versions
            if v.version_number != head and as_utc(v.created_at) < cutoff
        ]
        await db.commit()

        # Oldest first: older versions are the ones whose deltas sit on top of newer ones
        for version_number in candidates:
            if deadline is not None:
                deadline.check()
            purged, rebaselined = await self._purge_one(db, entity_id, version_number, now)
            report.rebaselined.extend(rebaselined)
            if purged:
                report.purged.append(version_number)

    async def _purge_one(
        self, db: AsyncSession, entity_id: str, version_number: int, now
    ) -> Tuple[bool, List[int]]:
        version = await version_crud.get_version(
            db, entity_id=entity_id, version_number=version_number, raise_if_not_found=False
        )
        if version is None:
            await db.rollback()
            return False, []

        rebaselined = []
        for dependent in await version_crud.dependents_of(db, entity_id=entity_id, version_number=version_number):
            await self._rebaseline(db, dependent, now)
            rebaselined.append(dependent.version_number)

        remaining = await version_crud.references_to(db, entity_id=entity_id, version_number=version_number)
        if remaining:
            raise RetentionViolation(
                f"Version {version_number} of {entity_id} is still referenced by {remaining} compressed version(s)"
            )

        await version_comment_crud.remove_by_filters(
            db, filters={"entity_id": entity_id, "version_number": version_number}
        )
        await version_crud.purge(db, entity_id=entity_id, version_number=version_number)
        await retention_audit_crud.record(
            db,
            entity_id=entity_id,
            version_number=version_number,
            action=RetentionAction.PURGE,
            now=now,
            detail=f"storage_state={version.storage_state.value}",
        )
        await db.commit()
        logger.info(f"🗑️ Purged {entity_id} v{version_number}")
        return True, rebaselined

    async def _rebaseline(self, db: AsyncSession, dependent: EntityVersion, now) -> None:
        """Materialize `dependent` as a full snapshot so it no longer needs its parent"""
        entity_id = dependent.entity_id
        old_baseline = dependent.baseline_ref
        document = await self.rebuilder.materialize(db, dependent)
        if content_hash(document) != dependent.content_hash:
            raise RetentionViolation(f"Re-baseline of {entity_id} v{dependent.version_number} failed verification")

        await version_crud.rebaseline(
            db, entity_id=entity_id, version_number=dependent.version_number, snapshot=document
        )
        if old_baseline is not None:
            await version_crud.repoint_baseline(
                db,
                entity_id=entity_id,
                below=dependent.version_number,
                old_baseline=old_baseline,
                new_baseline=dependent.version_number,
            )
        await retention_audit_crud.record(
            db,
            entity_id=entity_id,
            version_number=dependent.version_number,
            action=RetentionAction.REBASELINE,
            now=now,
            detail=f"previous baseline={old_baseline}",
        )

    # --- entity deletion ---------------------------------------------------

    def _purge_allowed(self, entity: VersionedEntity, now) -> bool:
        if not entity.is_deleted:
            return True
        return now >= as_utc(entity.deleted_at) + self.audit_retention

    async def purge_entity_history(self, db: AsyncSession, entity_id: str, *, now=None) -> RetentionReport:
        """Remove every version of a soft-deleted entity once its audit retention has passed"""
        now = now or self.clock()
        entity = await entity_crud.get_entity(db, entity_id=entity_id, include_deleted=True)
        if not entity.is_deleted:
            raise RetentionViolation(f"Case study {entity_id} must be deleted before its history is purged")
        if not self._purge_allowed(entity, now):
            until = as_utc(entity.deleted_at) + self.audit_retention
            raise RetentionViolation(f"History of {entity_id} is under audit retention until {until.isoformat()}")

        numbers = [v.version_number for v in await version_crud.list_all(db, entity_id=entity_id)]
        await version_comment_crud.remove_by_filters(db, filters={"entity_id": entity_id})
        await version_crud.remove_by_filters(db, filters={"entity_id": entity_id})
        await entity_crud.remove_by_filters(db, filters={"entity_id": entity_id})
        await retention_audit_crud.record(
            db,
            entity_id=entity_id,
            action=RetentionAction.ENTITY_PURGE,
            now=now,
            detail=f"{len(numbers)} versions removed",
        )
        await db.commit()
        logger.info(f"🗑️ Purged entire history of {entity_id} ({len(numbers)} versions)")
        return RetentionReport(entity_id=entity_id, purged=numbers)


retention_manager = RetentionManager()
