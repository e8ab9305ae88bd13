"""Integration tests for daily challenge get-or-create and the curated rotation."""

import asyncio
from dataclasses import fields
from datetime import UTC, date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from recrate.application.services import DailyChallengeService
from recrate.config import DailyChallengeSettings
from recrate.domain.entities import Album, DailyChallengeInfo
from recrate.domain.exceptions import EntityNotFoundException, NoCuratedCandidatesError
from recrate.infrastructure.persistence import Database
from recrate.infrastructure.persistence.models import CuratedChallengeModel, DailyChallengeModel
from recrate.infrastructure.persistence.repositories import CuratedChallengeRepository

EPOCH = date(2025, 1, 1)


@pytest.fixture
def service(db: Database) -> DailyChallengeService:
    return DailyChallengeService(db, DailyChallengeSettings(epoch=EPOCH, max_attempts=6))


@pytest.fixture
async def curated(service: DailyChallengeService, seed_album, make_snapshot) -> list[Album]:
    """Five curated albums at sequences 0..4."""
    albums = []
    for title in ("A", "B", "C", "D", "E"):
        album = await seed_album(make_snapshot(title=f"Album {title}"))
        await service.add_curated_album(album.id)
        albums.append(album)
    return albums


class TestCuratedRotation:
    async def test_albums_appended_in_order(
        self, service: DailyChallengeService, curated: list[Album]
    ) -> None:
        candidate, added = await service.add_curated_album(curated[2].id)

        assert added is False
        assert candidate.sequence == 2

    async def test_lost_insert_race_returns_existing(
        self, db: Database, service: DailyChallengeService, curated: list[Album], mocker
    ) -> None:
        """A concurrent admin add won between our lookup and our INSERT."""
        original = CuratedChallengeRepository.get_by_album
        lookups = 0

        async def miss_first_lookup(self, album_id: str):  # type: ignore[no-untyped-def]
            nonlocal lookups
            lookups += 1
            if lookups == 1:
                return None
            return await original(self, album_id)

        mocker.patch.object(CuratedChallengeRepository, "get_by_album", miss_first_lookup)

        candidate, added = await service.add_curated_album(curated[1].id)

        assert added is False
        assert candidate.sequence == 1
        assert lookups == 2
        async with db.session_scope() as session:
            count = await session.scalar(select(func.count()).select_from(CuratedChallengeModel))
        assert count == 5

    async def test_concurrent_adds_of_one_album(
        self, db: Database, service: DailyChallengeService, seed_album
    ) -> None:
        album = await seed_album()

        results = await asyncio.gather(*(service.add_curated_album(album.id) for _ in range(5)))

        assert [added for _, added in results].count(True) == 1
        assert {candidate.id for candidate, _ in results} == {results[0][0].id}
        async with db.session_scope() as session:
            count = await session.scalar(select(func.count()).select_from(CuratedChallengeModel))
        assert count == 1

    async def test_unknown_album_rejected(self, service: DailyChallengeService) -> None:
        with pytest.raises(EntityNotFoundException):
            await service.add_curated_album("cnosuchalbum0000000000000")


class TestGetOrCreate:
    """Test one-challenge-per-day creation and selection."""

    @pytest.mark.parametrize(
        ("day", "expected_index"),
        [
            (EPOCH, 0),
            (EPOCH + timedelta(days=3), 3),
            (EPOCH + timedelta(days=7), 2),
            (EPOCH - timedelta(days=30), 0),
        ],
    )
    async def test_rotation_by_day(
        self,
        service: DailyChallengeService,
        curated: list[Album],
        day: date,
        expected_index: int,
    ) -> None:
        result = await service.get_or_create_daily_challenge(day)

        assert result.album.id == curated[expected_index].id
        assert result.challenge.date == datetime(day.year, day.month, day.day, tzinfo=UTC)
        assert result.challenge.max_attempts == 6

    async def test_idempotent_per_day(
        self, db: Database, service: DailyChallengeService, curated: list[Album]
    ) -> None:
        morning = datetime(2025, 3, 1, 0, 0, 1, tzinfo=UTC)
        evening = datetime(2025, 3, 1, 23, 59, 59, tzinfo=UTC)

        first = await service.get_or_create_daily_challenge(morning)
        second = await service.get_or_create_daily_challenge(evening)

        assert second.challenge.id == first.challenge.id
        async with db.session_scope() as session:
            count = await session.scalar(select(func.count()).select_from(DailyChallengeModel))
        assert count == 1

    async def test_timezone_normalized_to_utc_day(
        self, service: DailyChallengeService, curated: list[Album]
    ) -> None:
        # 23:30 at UTC-5 on Jan 1st is already Jan 2nd in UTC
        local = datetime(2025, 1, 1, 23, 30, tzinfo=timezone(timedelta(hours=-5)))

        result = await service.get_or_create_daily_challenge(local)

        assert result.challenge.date.date() == date(2025, 1, 2)
        assert result.album.id == curated[1].id

    async def test_concurrent_first_requests_create_one_row(
        self, db: Database, service: DailyChallengeService, curated: list[Album]
    ) -> None:
        day = date(2025, 6, 1)

        results = await asyncio.gather(
            *(service.get_or_create_daily_challenge(day) for _ in range(8))
        )

        assert len({r.challenge.id for r in results}) == 1
        async with db.session_scope() as session:
            count = await session.scalar(select(func.count()).select_from(DailyChallengeModel))
        assert count == 1

    async def test_existing_challenge_survives_rotation_change(
        self,
        service: DailyChallengeService,
        curated: list[Album],
        seed_album,
        make_snapshot,
    ) -> None:
        day = EPOCH + timedelta(days=7)
        before = await service.get_or_create_daily_challenge(day)

        extra = await seed_album(make_snapshot(title="Album F"))
        await service.add_curated_album(extra.id)
        after = await service.get_or_create_daily_challenge(day)

        assert after.album.id == before.album.id

    async def test_today_uses_current_utc_day(
        self, service: DailyChallengeService, curated: list[Album]
    ) -> None:
        today = await service.get_today_challenge()
        explicit = await service.get_or_create_daily_challenge(today.challenge.date)

        assert explicit.challenge.id == today.challenge.id
        assert today.challenge.date.date() == datetime.now(UTC).date()

    async def test_empty_rotation(self, service: DailyChallengeService) -> None:
        with pytest.raises(NoCuratedCandidatesError):
            await service.get_or_create_daily_challenge(EPOCH)

        assert not await service.challenge_exists_for_date(EPOCH)


class TestChallengeInfo:
    async def test_info_hides_answer(
        self, service: DailyChallengeService, curated: list[Album]
    ) -> None:
        info = await service.get_daily_challenge_info(EPOCH)

        assert isinstance(info, DailyChallengeInfo)
        assert "album_id" not in {f.name for f in fields(info)}
        assert info.total_plays == 0
        assert info.avg_attempts is None

    async def test_exists_does_not_create(
        self, service: DailyChallengeService, curated: list[Album]
    ) -> None:
        assert not await service.challenge_exists_for_date(EPOCH)

        await service.get_or_create_daily_challenge(EPOCH)

        assert await service.challenge_exists_for_date(datetime(2025, 1, 1, 18, tzinfo=UTC))


class TestPins:
    async def test_pin_overrides_rotation(
        self, service: DailyChallengeService, curated: list[Album]
    ) -> None:
        day = date(2025, 2, 14)

        normalized = await service.pin_album_for_date(day, curated[4].id, pinned_by="admin")
        result = await service.get_or_create_daily_challenge(day)

        assert normalized == datetime(2025, 2, 14, tzinfo=UTC)
        assert result.album.id == curated[4].id

    async def test_pin_works_with_empty_rotation(
        self, service: DailyChallengeService, seed_album
    ) -> None:
        album = await seed_album()
        await service.pin_album_for_date(EPOCH, album.id)

        result = await service.get_or_create_daily_challenge(EPOCH)

        assert result.album.id == album.id

    async def test_pin_does_not_rewrite_existing_challenge(
        self, service: DailyChallengeService, curated: list[Album]
    ) -> None:
        before = await service.get_or_create_daily_challenge(EPOCH)

        await service.pin_album_for_date(EPOCH, curated[3].id)
        after = await service.get_or_create_daily_challenge(EPOCH)

        assert after.album.id == before.album.id == curated[0].id

    async def test_unpin(self, service: DailyChallengeService, curated: list[Album]) -> None:
        day = date(2025, 1, 3)
        await service.pin_album_for_date(day, curated[0].id)

        assert await service.unpin_date(day) is True
        assert await service.unpin_date(day) is False

        result = await service.get_or_create_daily_challenge(day)
        assert result.album.id == curated[2].id

    async def test_pin_unknown_album(self, service: DailyChallengeService) -> None:
        with pytest.raises(EntityNotFoundException):
            await service.pin_album_for_date(EPOCH, "cnosuchalbum0000000000000")
