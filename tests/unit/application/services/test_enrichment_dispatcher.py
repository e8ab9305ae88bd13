"""Tests for EnrichmentDispatcher."""

from unittest.mock import AsyncMock

import pytest

from recrate.application.services.enrichment_dispatcher import EnrichmentDispatcher
from recrate.application.workers.job_queue import JobType
from recrate.config import QueueSettings
from recrate.domain.dtos import BackoffType
from recrate.domain.entities import Album, Artist, CallerContext, SideEffectStatus
from recrate.domain.ports import IJobQueue


@pytest.fixture
def queue() -> AsyncMock:
    mock = AsyncMock(spec=IJobQueue)
    mock.enqueue.side_effect = lambda job_type, payload, options: f"job-{job_type}"
    return mock


@pytest.fixture
def dispatcher(queue: AsyncMock) -> EnrichmentDispatcher:
    return EnrichmentDispatcher(queue, QueueSettings())


@pytest.fixture
def album() -> Album:
    return Album(id="calbum000000000000000001", title="Kid A")


@pytest.fixture
def artist() -> Artist:
    return Artist(id="cartist00000000000000001", name="Radiohead")


def _calls_by_type(queue: AsyncMock) -> dict[str, tuple]:
    return {call.args[0]: call.args for call in queue.enqueue.await_args_list}


class TestDispatchAlbum:
    """Test album enrichment dispatch."""

    async def test_existing_album_gets_no_jobs(
        self, dispatcher: EnrichmentDispatcher, queue: AsyncMock, album: Album
    ) -> None:
        outcomes = await dispatcher.dispatch_if_created(
            album, False, CallerContext("collection_add")
        )

        queue.enqueue.assert_not_awaited()
        assert len(outcomes) == 1
        assert outcomes[0].status == SideEffectStatus.SKIPPED

    async def test_new_album_queues_check_and_cover_art(
        self, dispatcher: EnrichmentDispatcher, queue: AsyncMock, album: Album
    ) -> None:
        outcomes = await dispatcher.dispatch_if_created(
            album, True, CallerContext("collection_add", request_id="req-1"), "root-1"
        )

        assert [o.status for o in outcomes] == [SideEffectStatus.APPLIED] * 2
        calls = _calls_by_type(queue)
        assert set(calls) == {
            JobType.CHECK_ALBUM_ENRICHMENT.value,
            JobType.CACHE_ALBUM_COVER_ART.value,
        }

        _, check_payload, check_options = calls[JobType.CHECK_ALBUM_ENRICHMENT.value]
        assert check_options.priority == 5
        assert check_options.attempts == 3
        assert check_options.backoff is None
        assert check_options.request_id == "req-1"
        assert check_options.parent_job_id == "root-1"
        assert check_payload == {
            "album_id": album.id,
            "source": "collection_add",
            "priority": "high",
            "request_id": "req-1",
            "parent_job_id": "root-1",
        }

        _, cover_payload, cover_options = calls[JobType.CACHE_ALBUM_COVER_ART.value]
        assert cover_options.priority == 10
        assert cover_options.attempts == 3
        assert cover_options.backoff is not None
        assert cover_options.backoff.type == BackoffType.EXPONENTIAL
        assert cover_options.backoff.delay_ms == 2000
        assert cover_options.request_id == "cache-cover-req-1"
        assert cover_payload["priority"] == "low"

    async def test_cover_art_served_after_metadata_check(
        self, dispatcher: EnrichmentDispatcher, queue: AsyncMock, album: Album
    ) -> None:
        """Lower priority value = served sooner."""
        await dispatcher.dispatch_if_created(album, True, CallerContext("x"))
        calls = _calls_by_type(queue)
        assert (
            calls[JobType.CHECK_ALBUM_ENRICHMENT.value][2].priority
            < calls[JobType.CACHE_ALBUM_COVER_ART.value][2].priority
        )

    async def test_default_request_id_derived_from_album(
        self, dispatcher: EnrichmentDispatcher, queue: AsyncMock, album: Album
    ) -> None:
        await dispatcher.dispatch_if_created(album, True, CallerContext("x"))
        options = _calls_by_type(queue)[JobType.CHECK_ALBUM_ENRICHMENT.value][2]
        assert options.request_id == f"album-created-{album.id}"

    async def test_one_failed_enqueue_does_not_stop_the_other(
        self, dispatcher: EnrichmentDispatcher, queue: AsyncMock, album: Album
    ) -> None:
        # Hey future me - first enqueue explodes, second must still happen
        queue.enqueue.side_effect = [RuntimeError("redis down"), "job-2"]

        outcomes = await dispatcher.dispatch_if_created(album, True, CallerContext("x"))

        assert queue.enqueue.await_count == 2
        assert outcomes[0].status == SideEffectStatus.FAILED
        assert "redis down" in (outcomes[0].reason or "")
        assert outcomes[1].status == SideEffectStatus.APPLIED
        assert outcomes[1].reference == "job-2"


class TestDispatchArtist:
    async def test_new_artist_queues_one_check(
        self, dispatcher: EnrichmentDispatcher, queue: AsyncMock, artist: Artist
    ) -> None:
        outcomes = await dispatcher.dispatch_if_created(
            artist, True, CallerContext("collection_add", request_id="req-9"), "root-9"
        )

        assert len(outcomes) == 1
        job_type, payload, options = queue.enqueue.await_args.args
        assert job_type == JobType.CHECK_ARTIST_ENRICHMENT.value
        assert payload["artist_id"] == artist.id
        assert options.priority == 5
        assert options.attempts == 3
        assert options.request_id == f"req-9-artist-{artist.id}"
        assert options.parent_job_id == "root-9"

    async def test_existing_artist_gets_no_jobs(
        self, dispatcher: EnrichmentDispatcher, queue: AsyncMock, artist: Artist
    ) -> None:
        await dispatcher.dispatch_if_created(artist, False, CallerContext("x"))
        queue.enqueue.assert_not_awaited()


async def test_every_job_type_has_a_producer(
    dispatcher: EnrichmentDispatcher, queue: AsyncMock, album: Album, artist: Artist
) -> None:
    """No declared job type is left without a dispatch path."""
    await dispatcher.dispatch_if_created(album, True, CallerContext("x"))
    await dispatcher.dispatch_if_created(artist, True, CallerContext("x"))

    assert set(_calls_by_type(queue)) == {job_type.value for job_type in JobType}


async def test_unknown_entity_type_is_a_programming_error(
    dispatcher: EnrichmentDispatcher,
) -> None:
    with pytest.raises(TypeError):
        await dispatcher.dispatch_if_created("not-an-entity", True, CallerContext("x"))  # type: ignore[arg-type]
