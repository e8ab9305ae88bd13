"""Daily Challenge Service - one challenge per UTC day, created on first request.

Hey future me - creation goes through resolve_or_create keyed on the UNIQUE
challenge_date. Ten requests hitting "today" at 00:00:01 produce exactly one row;
the losers of the INSERT race just read the winner. No locks!

DailyChallengeWithAlbum contains the ANSWER. Only hand DailyChallengeInfo to clients.
"""

import logging
from datetime import UTC, date, datetime

from recrate.application.services.daily_selection import (
    select_album_for_date,
    to_utc_midnight,
    utc_day,
)
from recrate.config import DailyChallengeSettings
from recrate.domain.entities import (
    CuratedCandidate,
    DailyChallenge,
    DailyChallengeInfo,
    DailyChallengeWithAlbum,
)
from recrate.domain.exceptions import EntityNotFoundException
from recrate.infrastructure.persistence.database import Database
from recrate.infrastructure.persistence.idempotent import resolve_or_create
from recrate.infrastructure.persistence.repositories import (
    AlbumRepository,
    CuratedChallengeRepository,
    DailyChallengeRepository,
)

logger = logging.getLogger(__name__)


class DailyChallengeService:
    """Get-or-create daily challenges and manage the curated rotation."""

    def __init__(self, database: Database, settings: DailyChallengeSettings) -> None:
        self._db = database
        self._settings = settings

    async def get_or_create_daily_challenge(
        self, when: date | datetime | None = None
    ) -> DailyChallengeWithAlbum:
        """Get the challenge for a date (default: now), creating it on first request.

        Internal use only - the result includes the answer album.

        Raises:
            NoCuratedCandidatesError: No curated albums (and no pin) for a new day
            SequenceGapError: Curated rotation has a hole at the computed position
        """
        day = utc_day(when or datetime.now(UTC))

        async with self._db.session_scope() as session:
            challenges = DailyChallengeRepository(session)
            catalog = CuratedChallengeRepository(session)

            async def create() -> DailyChallenge:
                selection = await select_album_for_date(day, catalog, self._settings.epoch)
                return await challenges.add(
                    day, selection.album_id, self._settings.max_attempts
                )

            resolution = await resolve_or_create(
                session,
                lambda: challenges.get_by_date(day),
                create,
                key=f"daily-challenge:{day.isoformat()}",
            )
            challenge = resolution.value

            album = await AlbumRepository(session).get_summary(challenge.album_id)
            if album is None:
                raise EntityNotFoundException("Album", challenge.album_id)

        if resolution.created:
            logger.info("Created daily challenge for %s", day.isoformat())
        return DailyChallengeWithAlbum(challenge=challenge, album=album)

    async def get_today_challenge(self) -> DailyChallengeWithAlbum:
        """Today's challenge (UTC)."""
        return await self.get_or_create_daily_challenge(datetime.now(UTC))

    async def get_daily_challenge_info(
        self, when: date | datetime | None = None
    ) -> DailyChallengeInfo:
        """Public challenge info. Creates the challenge if needed, never exposes the album."""
        challenge = (await self.get_or_create_daily_challenge(when)).challenge
        return DailyChallengeInfo(
            id=challenge.id,
            date=challenge.date,
            max_attempts=challenge.max_attempts,
            total_plays=challenge.total_plays,
            total_wins=challenge.total_wins,
            avg_attempts=challenge.avg_attempts,
        )

    async def challenge_exists_for_date(self, when: date | datetime) -> bool:
        """Check for a challenge without creating one."""
        async with self._db.session_scope() as session:
            return await DailyChallengeRepository(session).exists_for_date(utc_day(when))

    # =========================================================================
    # Admin: pins and curated rotation
    # =========================================================================

    async def pin_album_for_date(
        self, when: date | datetime, album_id: str, pinned_by: str | None = None
    ) -> datetime:
        """Force an album for a day. Returns the normalized day.

        Hey future me - a pin only affects days whose challenge doesn't exist yet.
        Already-created challenges are never rewritten (players may have played it).
        """
        day = utc_day(when)
        async with self._db.session_scope() as session:
            if await AlbumRepository(session).get_by_id(album_id) is None:
                raise EntityNotFoundException("Album", album_id)
            await CuratedChallengeRepository(session).set_pin(day, album_id, pinned_by)
            if await DailyChallengeRepository(session).exists_for_date(day):
                logger.warning(
                    "Pinned album %s for %s, but that day's challenge already exists",
                    album_id,
                    day.isoformat(),
                )
        logger.info("Pinned album %s for %s", album_id, day.isoformat())
        return to_utc_midnight(day)

    async def unpin_date(self, when: date | datetime) -> bool:
        """Remove a day's pin. Returns False when there was none."""
        day = utc_day(when)
        async with self._db.session_scope() as session:
            removed = await CuratedChallengeRepository(session).remove_pin(day)
        if removed:
            logger.info("Removed pin for %s", day.isoformat())
        return removed

    async def add_curated_album(self, album_id: str) -> tuple[CuratedCandidate, bool]:
        """Append an album to the end of the curated rotation.

        Returns:
            (candidate, added) - added=False if the album was already curated

        Raises:
            EntityNotFoundException: Unknown album
            UnresolvedRaceError: Two DIFFERENT albums raced for the same sequence
                (PostgreSQL only, SQLite serializes writers); safe to retry
        """
        async with self._db.session_scope() as session:
            if await AlbumRepository(session).get_by_id(album_id) is None:
                raise EntityNotFoundException("Album", album_id)
            catalog = CuratedChallengeRepository(session)

            async def create() -> CuratedCandidate:
                return await catalog.add_curated(album_id, await catalog.next_sequence())

            resolution = await resolve_or_create(
                session,
                lambda: catalog.get_by_album(album_id),
                create,
                key=f"curated:{album_id}",
            )

        candidate = resolution.value
        if not resolution.created:
            return candidate, False
        logger.info(
            "Added album %s to curated rotation at sequence %d",
            album_id,
            candidate.sequence,
        )
        return candidate, True
