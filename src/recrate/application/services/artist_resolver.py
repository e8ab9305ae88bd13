"""Artist find-or-create with dedup and external id backfill.

Dedup order (first match wins):
    1. MusicBrainz ID
    2. Spotify ID
    3. Discogs ID
    4. natural key (name, case-folded + whitespace-collapsed)
    5. name (case-insensitive)

Runs inside the caller's transaction. Never commits.
"""

import logging
from dataclasses import dataclass, field
from typing import NamedTuple

from sqlalchemy.ext.asyncio import AsyncSession

from recrate.domain.dtos import ArtistSnapshot
from recrate.domain.entities import Artist, DedupMethod
from recrate.domain.value_objects import artist_natural_key
from recrate.infrastructure.persistence.idempotent import resolve_or_create
from recrate.infrastructure.persistence.repositories import ArtistRepository

logger = logging.getLogger(__name__)

_EXTERNAL_ID_METHODS = (
    ("musicbrainz_id", DedupMethod.MUSICBRAINZ_ID),
    ("spotify_id", DedupMethod.SPOTIFY_ID),
    ("discogs_id", DedupMethod.DISCOGS_ID),
)


@dataclass
class ArtistResolution:
    """Result of an artist find-or-create."""

    artist: Artist
    created: bool
    dedup_method: DedupMethod | None = None
    backfilled: list[str] = field(default_factory=list)


class _Match(NamedTuple):
    artist: Artist
    method: DedupMethod | None


class ArtistResolver:
    """Find an existing artist or create it exactly once."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._artists = ArtistRepository(session)

    async def _find_existing(self, snapshot: ArtistSnapshot) -> _Match | None:
        for field_name, method in _EXTERNAL_ID_METHODS:
            value = getattr(snapshot, field_name)
            if value:
                artist = await self._artists.get_by_external_id(field_name, value)
                if artist:
                    return _Match(artist, method)

        artist = await self._artists.get_by_name_key(artist_natural_key(snapshot.name))
        if artist:
            return _Match(artist, DedupMethod.NATURAL_KEY)

        artist = await self._artists.find_by_name(snapshot.name)
        if artist:
            return _Match(artist, DedupMethod.NAME)
        return None

    async def find_or_create(
        self, snapshot: ArtistSnapshot, *, caller: str = "unknown", backfill: bool = True
    ) -> ArtistResolution:
        """Resolve an artist snapshot to a canonical artist.

        Args:
            snapshot: Normalized artist data (name required)
            caller: Requester tag for logs
            backfill: Copy missing external ids onto a found artist

        Returns:
            ArtistResolution, created=True only when this call inserted the row
        """

        async def create() -> _Match:
            # natural key only guards artists that have nothing better to dedup on
            name_key = None if snapshot.external_ids else artist_natural_key(snapshot.name)
            artist = await self._artists.add(snapshot, name_key)
            return _Match(artist, None)

        resolution = await resolve_or_create(
            self._session,
            lambda: self._find_existing(snapshot),
            create,
            key=f"artist:{snapshot.name}",
        )
        match = resolution.value

        if resolution.created:
            logger.info(
                "Created artist '%s' (%s) via %s", match.artist.name, match.artist.id, caller
            )
            return ArtistResolution(artist=match.artist, created=True)

        backfilled: list[str] = []
        if backfill and snapshot.external_ids:
            backfilled = await self._artists.backfill_external_ids(
                match.artist.id, snapshot.external_ids
            )
            if backfilled:
                logger.info(
                    "Backfilled %s on artist '%s' via %s",
                    ", ".join(backfilled),
                    match.artist.name,
                    caller,
                )
                refreshed = await self._artists.get_by_id(match.artist.id)
                match = _Match(refreshed or match.artist, match.method)

        logger.debug(
            "Found artist '%s' via %s (dedup: %s)",
            match.artist.name,
            caller,
            match.method.value if match.method else None,
        )
        return ArtistResolution(
            artist=match.artist,
            created=False,
            dedup_method=match.method,
            backfilled=backfilled,
        )
