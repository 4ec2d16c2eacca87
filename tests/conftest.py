"""Shared fixtures: a file-backed SQLite database and services wired to a fake clock."""
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from case_versions.core.database import build_engine, build_session_factory, init_db
from case_versions.core.notifications import NotificationQueue, RecordingSink
from case_versions.services.concurrency_guard import ConcurrencyGuard
from case_versions.services.retention_manager import RetentionManager
from case_versions.services.revert_coordinator import RevertCoordinator
from case_versions.services.snapshot_manager import SnapshotManager
from case_versions.services.version_service import VersionService

T0 = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Advances one second per reading; tests can move it anywhere, including backwards."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(seconds=1)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    db_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'versions.db'}")
    await init_db(db_engine)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return build_session_factory(engine)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def notifications(sink: RecordingSink) -> NotificationQueue:
    return NotificationQueue(sink=sink, max_retries=1)


@pytest.fixture
def manager(clock: FakeClock, notifications: NotificationQueue) -> SnapshotManager:
    return SnapshotManager(
        guard=ConcurrencyGuard(clock=clock),
        notifications=notifications,
        clock=clock,
        max_retries=3,
        backoff_seconds=0.0,
    )


@pytest.fixture
def reverter(manager: SnapshotManager) -> RevertCoordinator:
    return RevertCoordinator(manager=manager)


@pytest.fixture
def retention(clock: FakeClock) -> RetentionManager:
    return RetentionManager(clock=clock, max_chain_length=50, audit_retention_days=365)


@pytest.fixture
def service(
    manager: SnapshotManager,
    reverter: RevertCoordinator,
    retention: RetentionManager,
    notifications: NotificationQueue,
    clock: FakeClock,
) -> VersionService:
    return VersionService(
        manager=manager,
        reverter=reverter,
        retention=retention,
        notifications=notifications,
        clock=clock,
    )


async def commit_history(manager: SnapshotManager, db: AsyncSession, entity_id: str, snapshots, author_id="author-1"):
    """Commit each snapshot in turn on top of the previous head."""
    versions = []
    for expected, snapshot in enumerate(snapshots):
        versions.append(await manager.commit(db, entity_id, snapshot, author_id, None, expected))
    return versions
