"""Shared fixtures: a real temporary-file SQLite database and the collaborators on top."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from recrate.application.services import (
    AlbumResolver,
    EnrichmentDispatcher,
    ProvenanceLogger,
)
from recrate.application.workers import PersistentJobQueue
from recrate.config import DatabaseSettings, QueueSettings, Settings
from recrate.domain.dtos import AlbumSnapshot, ArtistCredit
from recrate.domain.entities import Album, Collection
from recrate.domain.ports import IJobQueue
from recrate.infrastructure.persistence import CollectionRepository, Database


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a throwaway SQLite file (no .env, no env overrides)."""
    return Settings(
        _env_file=None,
        database=DatabaseSettings(
            url=f"sqlite+aiosqlite:///{tmp_path / 'recrate-test.db'}",
            sqlite_busy_timeout=30.0,
        ),
    )


# Hey future me - a FILE database, not :memory:. Concurrency tests need several real
# connections that see each other's commits, which an in-memory DB can't give us.
@pytest.fixture
async def db(settings: Settings) -> AsyncGenerator[Database, None]:
    database = Database(settings)
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
def job_queue(db: Database) -> PersistentJobQueue:
    return PersistentJobQueue(db.session_factory)


@pytest.fixture
def provenance(db: Database) -> ProvenanceLogger:
    return ProvenanceLogger(db.session_factory)


@pytest.fixture
def dispatcher(job_queue: PersistentJobQueue) -> EnrichmentDispatcher:
    return EnrichmentDispatcher(job_queue, QueueSettings())


@pytest.fixture
def failing_queue() -> AsyncMock:
    """A job queue whose every enqueue blows up."""
    queue = AsyncMock(spec=IJobQueue)
    queue.enqueue.side_effect = RuntimeError("queue unavailable")
    return queue


SnapshotFactory = Callable[..., AlbumSnapshot]


def _make_snapshot(
    title: str = "OK Computer",
    artist: str = "Radiohead",
    release_date: date | None = date(1997, 5, 21),
    **kwargs: Any,
) -> AlbumSnapshot:
    return AlbumSnapshot(
        title=title,
        artists=[ArtistCredit(name=artist)],
        release_date=release_date,
        **kwargs,
    )


@pytest.fixture
def make_snapshot() -> SnapshotFactory:
    """Factory for user-style album submissions with one primary artist."""
    return _make_snapshot


@pytest.fixture
def seed_album(db: Database) -> Callable[..., Awaitable[Album]]:
    """Create (or find) an album through the real resolver and commit it."""

    async def _seed(snapshot: AlbumSnapshot | None = None) -> Album:
        async with db.session_scope() as session:
            resolution = await AlbumResolver(session).find_or_create(
                snapshot or _make_snapshot(), caller="test-seed"
            )
        return resolution.album

    return _seed


@pytest.fixture
def seed_collection(db: Database) -> Callable[..., Awaitable[Collection]]:
    async def _seed(user_id: str = "user-1", name: str = "Favourites") -> Collection:
        async with db.session_scope() as session:
            return await CollectionRepository(session).create(user_id, name)

    return _seed
