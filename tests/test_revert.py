"""Tests for RevertCoordinator."""
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from case_versions.core.exceptions import NotFoundError, VersionConflict
from case_versions.crud.version import version_crud
from case_versions.models.version import StorageState
from case_versions.schemas.retention import RetentionPolicy
from case_versions.services.retention_manager import RetentionManager
from case_versions.services.revert_coordinator import RevertCoordinator
from case_versions.services.snapshot_manager import SnapshotManager

from .conftest import T0, commit_history


class TestRevert:
    @pytest.mark.asyncio
    async def test__revert__commits_old_snapshot_as_new_head(
        self, db_session: AsyncSession, manager: SnapshotManager, reverter: RevertCoordinator
    ) -> None:
        await commit_history(manager, db_session, "case-1", [{"title": "A"}, {"title": "B"}])

        version = await reverter.revert(db_session, "case-1", 1, "author-9", 2)

        assert version.version_number == 3
        assert version.snapshot == {"title": "A"}
        assert version.comment == "reverted from version 1"
        assert version.reverted_from == 1
        assert version.author_id == "author-9"
        assert version.change_summary == ["title"]

    @pytest.mark.asyncio
    async def test__revert__leaves_history_untouched(
        self, db_session: AsyncSession, manager: SnapshotManager, reverter: RevertCoordinator
    ) -> None:
        originals = await commit_history(manager, db_session, "case-1", [{"title": "A"}, {"title": "B"}])
        hashes = [v.content_hash for v in originals]

        await reverter.revert(db_session, "case-1", 1, "author-1", 2)

        versions = await version_crud.list_all(db_session, entity_id="case-1")
        assert [v.content_hash for v in versions[:2]] == hashes
        assert versions[2].content_hash == hashes[0]

    @pytest.mark.asyncio
    async def test__revert__racing_an_edit_conflicts(
        self, db_session: AsyncSession, manager: SnapshotManager, reverter: RevertCoordinator
    ) -> None:
        await commit_history(manager, db_session, "case-1", [{"title": "A"}, {"title": "B"}, {"title": "C"}])

        with pytest.raises(VersionConflict) as exc_info:
            await reverter.revert(db_session, "case-1", 1, "author-1", 2)

        assert exc_info.value.current_head == 3
        versions = await version_crud.list_all(db_session, entity_id="case-1")
        assert len(versions) == 3

    @pytest.mark.asyncio
    async def test__revert__unknown_target(
        self, db_session: AsyncSession, manager: SnapshotManager, reverter: RevertCoordinator
    ) -> None:
        await commit_history(manager, db_session, "case-1", [{"title": "A"}])

        with pytest.raises(NotFoundError):
            await reverter.revert(db_session, "case-1", 9, "author-1", 1)

    @pytest.mark.asyncio
    async def test__revert__to_compressed_version(
        self,
        db_session: AsyncSession,
        manager: SnapshotManager,
        reverter: RevertCoordinator,
        retention: RetentionManager,
    ) -> None:
        snapshots = [
            {"title": f"Draft {n}", "tags": ["pilot"] * (n % 3), "client": {"name": "Acme", "seats": n}}
            for n in range(1, 11)
        ]
        originals = await commit_history(manager, db_session, "case-1", snapshots)
        original = originals[0]
        expected_snapshot = dict(original.snapshot)
        expected_hash = original.content_hash
        policy = RetentionPolicy(max_active_versions=3, compress_after=timedelta(0))
        await retention.apply(db_session, "case-1", policy, now=T0 + timedelta(days=1))
        first = await version_crud.get_version(db_session, entity_id="case-1", version_number=1)
        assert first.storage_state == StorageState.COMPRESSED

        version = await reverter.revert(db_session, "case-1", 1, "author-1", 10)

        assert version.version_number == 11
        assert version.reverted_from == 1
        assert version.snapshot == expected_snapshot
        assert list(version.snapshot) == list(expected_snapshot)
        assert version.content_hash == expected_hash

    @pytest.mark.asyncio
    async def test__revert__unknown_entity(
        self, db_session: AsyncSession, reverter: RevertCoordinator
    ) -> None:
        with pytest.raises(NotFoundError):
            await reverter.revert(db_session, "missing", 1, "author-1", 1)
