"""Tests for VersionService: history listing, comparison, comments and stats."""
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from case_versions.core.exceptions import NotFoundError, OperationCancelled, ValidationError
from case_versions.core.notifications import NotificationQueue, RecordingSink
from case_versions.models.version import StorageState
from case_versions.schemas.retention import RetentionPolicy
from case_versions.services.version_service import VersionService

from .conftest import T0


async def _history(service: VersionService, db: AsyncSession, count: int, entity_id: str = "case-1") -> None:
    for n in range(count):
        await service.create_version(
            db,
            entity_id=entity_id,
            snapshot={"title": f"T{n + 1}", "summary": "same"},
            author_id=f"author-{n % 2}",
            comment=None,
            expected_version_number=n,
        )


class TestCreateAndGet:
    @pytest.mark.asyncio
    async def test__create_version__returns_current_head(self, db_session: AsyncSession, service: VersionService) -> None:
        response = await service.create_version(
            db_session,
            entity_id="case-1",
            snapshot={"title": "A"},
            author_id="author-1",
            comment="first",
            expected_version_number=0,
        )

        assert response.version_number == 1
        assert response.is_current
        assert response.snapshot == {"title": "A"}
        assert response.comment == "first"

    @pytest.mark.asyncio
    async def test__create_version__negative_expected_is_rejected(
        self, db_session: AsyncSession, service: VersionService
    ) -> None:
        with pytest.raises(ValidationError):
            await service.create_version(
                db_session, entity_id="case-1", snapshot={"title": "A"}, author_id="a",
                comment=None, expected_version_number=-1,
            )

    @pytest.mark.asyncio
    async def test__get_version__old_version_is_not_current(
        self, db_session: AsyncSession, service: VersionService
    ) -> None:
        await _history(service, db_session, 3)

        response = await service.get_version(db_session, entity_id="case-1", version_number=1)

        assert response.snapshot == {"title": "T1", "summary": "same"}
        assert not response.is_current

    @pytest.mark.asyncio
    async def test__get_version__reconstructs_compressed_versions(
        self, db_session: AsyncSession, service: VersionService
    ) -> None:
        await _history(service, db_session, 5)
        await service.apply_retention_policy(
            db_session, entity_id="case-1",
            policy=RetentionPolicy(max_active_versions=1, compress_after=timedelta(0)),
        )

        response = await service.get_version(db_session, entity_id="case-1", version_number=2)

        assert response.storage_state == StorageState.COMPRESSED
        assert response.snapshot == {"title": "T2", "summary": "same"}
        assert response.baseline_ref == 5

    @pytest.mark.asyncio
    async def test__get_version__missing(self, db_session: AsyncSession, service: VersionService) -> None:
        await _history(service, db_session, 1)

        with pytest.raises(NotFoundError):
            await service.get_version(db_session, entity_id="case-1", version_number=2)


class TestListVersions:
    @pytest.mark.asyncio
    async def test__list_versions__pages_newest_first(self, db_session: AsyncSession, service: VersionService) -> None:
        await _history(service, db_session, 5)

        first = await service.list_versions(db_session, entity_id="case-1", page_size=2)
        second = await service.list_versions(db_session, entity_id="case-1", page_size=2, cursor=first.next_cursor)
        third = await service.list_versions(db_session, entity_id="case-1", page_size=2, cursor=second.next_cursor)

        assert [v.version_number for v in first.versions] == [5, 4]
        assert first.next_cursor == 4
        assert [v.version_number for v in second.versions] == [3, 2]
        assert [v.version_number for v in third.versions] == [1]
        assert third.next_cursor is None

    @pytest.mark.asyncio
    async def test__list_versions__hides_archived_by_default(
        self, db_session: AsyncSession, service: VersionService
    ) -> None:
        await _history(service, db_session, 5)
        await service.apply_retention_policy(
            db_session, entity_id="case-1", policy=RetentionPolicy(max_active_versions=2)
        )

        active = await service.list_versions(db_session, entity_id="case-1")
        everything = await service.list_versions(db_session, entity_id="case-1", include_archived=True)

        assert [v.version_number for v in active.versions] == [5, 4]
        assert [v.version_number for v in everything.versions] == [5, 4, 3, 2, 1]
        assert everything.versions[-1].storage_state == StorageState.ARCHIVED

    @pytest.mark.asyncio
    async def test__list_versions__page_size_bounds(self, db_session: AsyncSession, service: VersionService) -> None:
        await _history(service, db_session, 1)

        with pytest.raises(ValidationError):
            await service.list_versions(db_session, entity_id="case-1", page_size=1000)

    @pytest.mark.asyncio
    async def test__list_versions__unknown_entity(self, db_session: AsyncSession, service: VersionService) -> None:
        with pytest.raises(NotFoundError):
            await service.list_versions(db_session, entity_id="missing")


class TestCompare:
    @pytest.mark.asyncio
    async def test__compare_versions__title_change(self, db_session: AsyncSession, service: VersionService) -> None:
        await _history(service, db_session, 2)

        result = await service.compare_versions(db_session, entity_id="case-1", version_a=1, version_b=2)

        assert [(c.path, c.change_type, c.old_value, c.new_value) for c in result.changes] == [
            ("title", "modified", "T1", "T2")
        ]
        assert result.changes[0].text_segments is not None
        assert result.stats.total_changes == 1
        assert result.stats.modified == 1
        assert result.stats.change_percentage == 50.0

    @pytest.mark.asyncio
    async def test__compare_versions__same_version_is_empty(
        self, db_session: AsyncSession, service: VersionService
    ) -> None:
        await _history(service, db_session, 2)

        result = await service.compare_versions(db_session, entity_id="case-1", version_a=2, version_b=2)

        assert result.changes == []
        assert result.stats.change_percentage == 0.0

    @pytest.mark.asyncio
    async def test__compare_versions__zero_budget_cancels(
        self, db_session: AsyncSession, service: VersionService
    ) -> None:
        await _history(service, db_session, 2)

        with pytest.raises(OperationCancelled):
            await service.compare_versions(
                db_session, entity_id="case-1", version_a=1, version_b=2, timeout_seconds=0
            )

    @pytest.mark.asyncio
    async def test__compare_versions__stable_after_compression(
        self, db_session: AsyncSession, service: VersionService
    ) -> None:
        """A compressed version keeps its key order, so comparisons list paths in the same order."""
        snapshots = [{"title": "A", "x": 1, "y": 1}, {"title": "B", "y": 2}, {"title": "C", "y": 3}]
        for expected, snapshot in enumerate(snapshots):
            await service.create_version(
                db_session, entity_id="case-1", snapshot=snapshot, author_id="author-1",
                comment=None, expected_version_number=expected,
            )
        before = await service.compare_versions(db_session, entity_id="case-1", version_a=1, version_b=2)

        await service.apply_retention_policy(
            db_session, entity_id="case-1",
            policy=RetentionPolicy(max_active_versions=1, compress_after=timedelta(0)),
        )
        after = await service.compare_versions(db_session, entity_id="case-1", version_a=1, version_b=2)
        first = await service.get_version(db_session, entity_id="case-1", version_number=1)

        assert first.storage_state == StorageState.COMPRESSED
        assert list(first.snapshot) == ["title", "x", "y"]
        assert [c.path for c in after.changes] == [c.path for c in before.changes]


class TestCommentsAndStats:
    @pytest.mark.asyncio
    async def test__add_comment__listed_and_published(
        self,
        db_session: AsyncSession,
        service: VersionService,
        notifications: NotificationQueue,
        sink: RecordingSink,
    ) -> None:
        await _history(service, db_session, 2)

        comment = await service.add_comment(
            db_session, entity_id="case-1", version_number=1, author_id="reviewer", body="Check the numbers"
        )
        comments = await service.list_comments(db_session, entity_id="case-1", version_number=1)
        await notifications.drain()

        assert [c.id for c in comments] == [comment.id]
        assert comments[0].body == "Check the numbers"
        assert sink.events[-1].event_type == "version.commented"
        assert sink.events[-1].version_number == 1

    @pytest.mark.asyncio
    async def test__add_comment__unknown_version(self, db_session: AsyncSession, service: VersionService) -> None:
        await _history(service, db_session, 1)

        with pytest.raises(NotFoundError):
            await service.add_comment(db_session, entity_id="case-1", version_number=4, author_id="r", body="x")

    @pytest.mark.asyncio
    async def test__list_comments__deleted_entity(self, db_session: AsyncSession, service: VersionService) -> None:
        await _history(service, db_session, 1)
        await service.add_comment(db_session, entity_id="case-1", version_number=1, author_id="r", body="x")

        await service.delete_entity(db_session, entity_id="case-1")

        with pytest.raises(NotFoundError):
            await service.list_comments(db_session, entity_id="case-1", version_number=1)

    @pytest.mark.asyncio
    async def test__get_version_stats(self, db_session: AsyncSession, service: VersionService, clock) -> None:
        await _history(service, db_session, 4)
        clock.set(T0 + timedelta(days=2))

        stats = await service.get_version_stats(db_session, entity_id="case-1")

        assert stats.total_versions == 4
        assert stats.unique_authors == 2
        assert stats.head_version_number == 4
        assert stats.active_versions == 4
        assert stats.days_since_first_version == 1
        assert stats.average_versions_per_day == 4.0


class TestDeletion:
    @pytest.mark.asyncio
    async def test__delete_entity__hides_it_but_keeps_history(
        self, db_session: AsyncSession, service: VersionService
    ) -> None:
        await _history(service, db_session, 2)

        await service.delete_entity(db_session, entity_id="case-1")

        with pytest.raises(NotFoundError):
            await service.get_version(db_session, entity_id="case-1", version_number=1)
        with pytest.raises(NotFoundError):
            await service.create_version(
                db_session, entity_id="case-1", snapshot={"title": "C"}, author_id="a",
                comment=None, expected_version_number=2,
            )
        report = await service.apply_retention_policy(
            db_session, entity_id="case-1", policy=RetentionPolicy(purge_after=timedelta(0))
        )
        assert report.purged == []
