"""Integration tests for resolve_or_create, the job queue and provenance storage.

Hey future me - these run against a real SQLite FILE with several connections, so the
UNIQUE constraints (and BEGIN IMMEDIATE) are doing the actual work, not mocks.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from recrate.application.services import ProvenanceLogger
from recrate.application.workers import JobStatus, JobType, PersistentJobQueue
from recrate.domain.dtos import ArtistSnapshot, BackoffPolicy, JobOptions
from recrate.domain.entities import (
    ArtistRole,
    EntityType,
    ProvenanceCategory,
    ProvenanceEntry,
    ProvenanceStatus,
)
from recrate.domain.exceptions import UnresolvedRaceError
from recrate.infrastructure.persistence import (
    AlbumRepository,
    ArtistRepository,
    Database,
    resolve_or_create,
)
from recrate.infrastructure.persistence.models import ArtistModel, ProvenanceLogModel


class TestResolveOrCreateAgainstSqlite:
    """Test the race handling with real constraints."""

    async def test_lost_race_rereads_winner(self, db: Database) -> None:
        async with db.session_scope() as session:
            winner = await ArtistRepository(session).add(
                ArtistSnapshot(name="Portishead"), "portishead"
            )

        lookups = 0

        async with db.session_scope() as session:
            artists = ArtistRepository(session)

            # first lookup "misses" like a racer that read before the winner committed
            async def lookup():
                nonlocal lookups
                lookups += 1
                if lookups == 1:
                    return None
                return await artists.get_by_name_key("portishead")

            result = await resolve_or_create(
                session,
                lookup,
                lambda: artists.add(ArtistSnapshot(name="Portishead"), "portishead"),
                key="artist:Portishead",
            )

        assert result.created is False
        assert result.value.id == winner.id
        assert lookups == 2
        async with db.session_scope() as session:
            count = await session.scalar(select(func.count()).select_from(ArtistModel))
        assert count == 1

    async def test_outer_transaction_survives_lost_race(self, db: Database) -> None:
        """The savepoint rollback must not undo earlier writes in the same transaction."""
        async with db.session_scope() as session:
            await ArtistRepository(session).add(ArtistSnapshot(name="Tricky"), "tricky")

        async with db.session_scope() as session:
            artists = ArtistRepository(session)
            await artists.add(ArtistSnapshot(name="Massive Attack"), "massive attack")
            lookups = 0

            async def lookup():
                nonlocal lookups
                lookups += 1
                if lookups == 1:
                    return None
                return await artists.get_by_name_key("tricky")

            await resolve_or_create(
                session,
                lookup,
                lambda: artists.add(ArtistSnapshot(name="Tricky"), "tricky"),
                key="artist:Tricky",
            )

        async with db.session_scope() as session:
            assert await ArtistRepository(session).get_by_name_key("massive attack")

    async def test_unresolved_race(self, db: Database) -> None:
        async with db.session_scope() as session:
            await ArtistRepository(session).add(ArtistSnapshot(name="Air"), "air")

        async def never_found():
            return None

        with pytest.raises(UnresolvedRaceError):
            async with db.session_scope() as session:
                artists = ArtistRepository(session)
                await resolve_or_create(
                    session,
                    never_found,
                    lambda: artists.add(ArtistSnapshot(name="Air"), "air"),
                    key="artist:Air",
                )

    async def test_foreign_key_violation_propagates(self, db: Database) -> None:
        async def never_found():
            return None

        with pytest.raises(IntegrityError):
            async with db.session_scope() as session:
                albums = AlbumRepository(session)
                await resolve_or_create(
                    session,
                    never_found,
                    lambda: albums.add_credit(
                        "cnosuchalbum0000000000000",
                        "cnosuchartist000000000000",
                        ArtistRole.PRIMARY,
                        0,
                    ),
                    key="credit",
                )

    async def test_concurrent_creators_produce_one_row(self, db: Database) -> None:
        async def create_once() -> bool:
            async with db.session_scope() as session:
                artists = ArtistRepository(session)
                result = await resolve_or_create(
                    session,
                    lambda: artists.get_by_name_key("boards of canada"),
                    lambda: artists.add(
                        ArtistSnapshot(name="Boards of Canada"), "boards of canada"
                    ),
                    key="artist:boc",
                )
            return result.created

        results = await asyncio.gather(*(create_once() for _ in range(6)))

        assert results.count(True) == 1
        async with db.session_scope() as session:
            count = await session.scalar(select(func.count()).select_from(ArtistModel))
        assert count == 1


class TestPersistentJobQueue:
    """Test job storage and serving order."""

    async def test_enqueue_and_get(self, job_queue: PersistentJobQueue) -> None:
        job_id = await job_queue.enqueue(
            JobType.CACHE_ALBUM_COVER_ART.value,
            {"album_id": "a1"},
            JobOptions(priority=10, attempts=3, backoff=BackoffPolicy(delay_ms=2000), request_id="r1"),
        )

        job = await job_queue.get_job(job_id)

        assert job is not None
        assert job.status == JobStatus.PENDING
        assert job.payload == {"album_id": "a1"}
        assert job.max_retries == 3
        assert job.backoff == BackoffPolicy(delay_ms=2000)
        assert job.request_id == "r1"

    async def test_pending_served_by_priority_then_age(
        self, job_queue: PersistentJobQueue
    ) -> None:
        low_first = await job_queue.enqueue("cache:album-cover-art", {}, JobOptions(priority=10))
        high_first = await job_queue.enqueue("check:album-enrichment", {}, JobOptions(priority=5))
        high_second = await job_queue.enqueue("check:artist-enrichment", {}, JobOptions(priority=5))

        pending = await job_queue.list_pending()

        assert [job.id for job in pending] == [high_first, high_second, low_first]

    async def test_filter_by_type(self, job_queue: PersistentJobQueue) -> None:
        await job_queue.enqueue("cache:album-cover-art", {}, JobOptions(priority=10))
        check = await job_queue.enqueue("check:album-enrichment", {}, JobOptions(priority=5))

        pending = await job_queue.list_pending(job_type="check:album-enrichment")

        assert [job.id for job in pending] == [check]


class TestProvenanceStorage:
    """Test the provenance read side against stored rows."""

    async def test_job_tree_is_chronological(self, provenance: ProvenanceLogger) -> None:
        await provenance.log(
            ProvenanceEntry(EntityType.ALBUM, "a1", "collection:album-added", job_id="root",
                            category=ProvenanceCategory.USER_ACTION)
        )
        await provenance.log(
            ProvenanceEntry(EntityType.ALBUM, "a1", "album:created", parent_job_id="root")
        )
        await provenance.log(
            ProvenanceEntry(EntityType.ARTIST, "r1", "artist:created", parent_job_id="root")
        )
        await provenance.log(ProvenanceEntry(EntityType.ALBUM, "other", "album:created"))

        tree = await provenance.get_job_tree("root")

        assert [r.operation for r in tree] == [
            "collection:album-added",
            "album:created",
            "artist:created",
        ]
        assert tree[0].is_root_job and tree[0].root_job_id == "root"
        assert all(not r.is_root_job and r.parent_job_id == "root" for r in tree[1:])

    async def test_history_newest_first(self, provenance: ProvenanceLogger) -> None:
        await provenance.log(ProvenanceEntry(EntityType.ALBUM, "a1", "album:created"))
        await provenance.log(ProvenanceEntry(EntityType.ALBUM, "a1", "enrich:musicbrainz"))

        history = await provenance.get_history(EntityType.ALBUM, "a1")
        latest = await provenance.get_latest_attempt(EntityType.ALBUM, "a1")

        assert [r.operation for r in history] == ["enrich:musicbrainz", "album:created"]
        assert history[0].category == ProvenanceCategory.ENRICHED
        assert latest is not None and latest.operation == "enrich:musicbrainz"

    async def test_recent_failure_and_retry_count(self, provenance: ProvenanceLogger) -> None:
        assert not await provenance.has_recent_failure(EntityType.ALBUM, "a1")
        assert await provenance.get_retry_count(EntityType.ALBUM, "a1") == 0

        await provenance.log(
            ProvenanceEntry(
                EntityType.ALBUM,
                "a1",
                "enrich:musicbrainz",
                status=ProvenanceStatus.FAILURE,
                error_message="timeout",
                retry_count=2,
            )
        )

        assert await provenance.has_recent_failure(EntityType.ALBUM, "a1")
        assert await provenance.get_retry_count(EntityType.ALBUM, "a1") == 2
        history = await provenance.get_history(EntityType.ALBUM, "a1")
        assert history[0].category == ProvenanceCategory.FAILED

    async def test_no_data_window(self, db: Database, provenance: ProvenanceLogger) -> None:
        await provenance.log(
            ProvenanceEntry(
                EntityType.ARTIST,
                "r1",
                "enrich:discogs",
                status=ProvenanceStatus.NO_DATA_AVAILABLE,
            )
        )
        assert await provenance.has_recent_no_data(EntityType.ARTIST, "r1")

        # age the row past the 90 day window
        async with db.session_scope() as session:
            await session.execute(
                update(ProvenanceLogModel).values(
                    created_at=datetime.now(UTC) - timedelta(days=91)
                )
            )

        assert not await provenance.has_recent_no_data(EntityType.ARTIST, "r1")
        assert await provenance.has_recent_no_data(EntityType.ARTIST, "r1", within_days=120)
