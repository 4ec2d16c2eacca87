"""Tests for the background RetentionSweeper."""
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from case_versions.core.retention_sweeper import RetentionSweeper
from case_versions.crud.version import version_crud
from case_versions.models.version import StorageState
from case_versions.schemas.retention import RetentionPolicy
from case_versions.services.retention_manager import RetentionManager
from case_versions.services.snapshot_manager import SnapshotManager

from .conftest import commit_history


class TestRetentionSweeper:
    @pytest.mark.asyncio
    async def test__sweep_once__applies_policy_to_every_entity(
        self, session_factory: async_sessionmaker, manager: SnapshotManager, retention: RetentionManager
    ) -> None:
        async with session_factory() as db:
            await commit_history(manager, db, "case-a", [{"title": f"A{i}"} for i in range(4)])
            await commit_history(manager, db, "case-b", [{"title": f"B{i}"} for i in range(2)])
        sweeper = RetentionSweeper(
            session_factory, manager=retention, policy=RetentionPolicy(max_active_versions=1), interval_seconds=60
        )

        reports = await sweeper.sweep_once()

        assert {r.entity_id: r.archived for r in reports} == {"case-a": [1, 2, 3], "case-b": [1]}
        assert sweeper.get_stats()["entities_swept"] == 2
        async with session_factory() as db:
            versions = await version_crud.list_all(db, entity_id="case-a")
        assert [v.storage_state for v in versions] == [StorageState.ARCHIVED] * 3 + [StorageState.ACTIVE]

    @pytest.mark.asyncio
    async def test__start__disabled_without_interval_or_policy(
        self, session_factory: async_sessionmaker, retention: RetentionManager
    ) -> None:
        no_interval = RetentionSweeper(
            session_factory, manager=retention, policy=RetentionPolicy(max_age=timedelta(days=30)), interval_seconds=0
        )
        no_policy = RetentionSweeper(session_factory, manager=retention, policy=RetentionPolicy(), interval_seconds=60)

        await no_interval.start()
        await no_policy.start()

        assert not no_interval.is_running
        assert not no_policy.is_running

    @pytest.mark.asyncio
    async def test__stop__cancels_running_worker(
        self, session_factory: async_sessionmaker, retention: RetentionManager
    ) -> None:
        sweeper = RetentionSweeper(
            session_factory, manager=retention, policy=RetentionPolicy(max_active_versions=5), interval_seconds=3600
        )

        await sweeper.start()
        assert sweeper.is_running

        await sweeper.stop()
        assert not sweeper.is_running
        assert sweeper.worker_task is None
