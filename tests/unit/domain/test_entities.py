"""Tests for domain entities and DTOs."""

from datetime import date

import pytest

from recrate.domain.dtos import (
    AlbumSnapshot,
    ArtistCredit,
    BackoffPolicy,
    BackoffType,
    JobOptions,
)
from recrate.domain.entities import (
    Album,
    AlbumArtistCredit,
    Artist,
    ArtistRole,
    CollectionMembership,
    DailyChallengeInfo,
    RecordSource,
    SideEffectOutcome,
    SideEffectStatus,
)


class TestAlbum:
    """Test Album entity."""

    def test_empty_title_rejected(self) -> None:
        with pytest.raises(ValueError, match="title"):
            Album(id="c1", title="   ")

    def test_negative_track_count_rejected(self) -> None:
        with pytest.raises(ValueError, match="track_count"):
            Album(id="c1", title="Album", track_count=-1)

    def test_primary_artist_prefers_primary_role_then_position(self) -> None:
        album = Album(
            id="c1",
            title="Collab",
            artists=[
                AlbumArtistCredit("a3", "Guest", ArtistRole.FEATURED, 0),
                AlbumArtistCredit("a2", "Second", ArtistRole.PRIMARY, 2),
                AlbumArtistCredit("a1", "First", ArtistRole.PRIMARY, 1),
            ],
        )
        assert album.primary_artist_name == "First"

    def test_external_ids_only_set_values(self) -> None:
        album = Album(id="c1", title="A", musicbrainz_id="mb", deezer_id=None)
        assert album.external_ids == {"musicbrainz_id": "mb"}


class TestArtist:
    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValueError):
            Artist(id="c1", name="")


class TestCollectionMembership:
    @pytest.mark.parametrize("rating", [0, 11, -3])
    def test_rating_out_of_range_rejected(self, rating: int) -> None:
        with pytest.raises(ValueError, match="personal_rating"):
            CollectionMembership(id="m", collection_id="c", album_id="a", personal_rating=rating)

    @pytest.mark.parametrize("rating", [1, 10, None])
    def test_rating_in_range_accepted(self, rating: int | None) -> None:
        membership = CollectionMembership(
            id="m", collection_id="c", album_id="a", personal_rating=rating
        )
        assert membership.personal_rating == rating


class TestAlbumSnapshot:
    """Test AlbumSnapshot helpers used by the dedup chain."""

    def test_release_year(self) -> None:
        assert AlbumSnapshot(title="A", release_date=date(1997, 5, 21)).release_year == 1997
        assert AlbumSnapshot(title="A").release_year is None

    def test_primary_artist_falls_back_to_first_credit(self) -> None:
        snapshot = AlbumSnapshot(
            title="A",
            artists=[
                ArtistCredit(name="Later", role=ArtistRole.FEATURED, position=1),
                ArtistCredit(name="Earlier", role=ArtistRole.FEATURED, position=0),
            ],
        )
        assert snapshot.primary_artist_name == "Earlier"

    def test_external_ids_in_dedup_priority_order(self) -> None:
        snapshot = AlbumSnapshot(
            title="A", discogs_id="4", deezer_id="3", spotify_id="2", musicbrainz_id="1"
        )
        assert list(snapshot.external_ids) == [
            "musicbrainz_id",
            "spotify_id",
            "deezer_id",
            "discogs_id",
        ]

    def test_credit_to_snapshot_carries_source_and_ids(self) -> None:
        credit = ArtistCredit(name="Björk", musicbrainz_id="mb-1")
        snapshot = credit.to_snapshot(RecordSource.MUSICBRAINZ)
        assert snapshot.name == "Björk"
        assert snapshot.musicbrainz_id == "mb-1"
        assert snapshot.source == RecordSource.MUSICBRAINZ


class TestBackoffPolicy:
    def test_exponential_delays(self) -> None:
        policy = BackoffPolicy(type=BackoffType.EXPONENTIAL, delay_ms=2000)
        assert [policy.delay_for_attempt(n) for n in (1, 2, 3)] == [2000, 4000, 8000]

    def test_fixed_delays(self) -> None:
        policy = BackoffPolicy(type=BackoffType.FIXED, delay_ms=500)
        assert [policy.delay_for_attempt(n) for n in (1, 2, 3)] == [500, 500, 500]

    def test_attempt_zero_has_no_delay(self) -> None:
        assert BackoffPolicy().delay_for_attempt(0) == 0

    def test_job_options_to_dict(self) -> None:
        options = JobOptions(priority=10, attempts=3, backoff=BackoffPolicy(delay_ms=2000))
        assert options.to_dict()["backoff"] == {"type": "exponential", "delay_ms": 2000}
        assert JobOptions().to_dict()["backoff"] is None


class TestSideEffectOutcome:
    def test_factories(self) -> None:
        assert SideEffectOutcome.applied("provenance", "job-1").ok
        assert SideEffectOutcome.skipped("enrichment", "exists").ok
        failed = SideEffectOutcome.failed("provenance", "boom")
        assert not failed.ok
        assert failed.status == SideEffectStatus.FAILED
        assert failed.reason == "boom"


def test_public_challenge_info_has_no_album_field() -> None:
    """The answer must never leak through the public info type."""
    fields = DailyChallengeInfo.__dataclass_fields__
    assert "album_id" not in fields
    assert "album" not in fields
