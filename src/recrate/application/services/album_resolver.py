"""Album find-or-create with multi-level dedup, backfill and artist linking.

Hey future me - this is the SINGLE place where albums get created. Collection adds,
identity resolution (MusicBrainz / Discogs ids) and imports all end up here.

Dedup order (first match wins):
    1. MusicBrainz ID
    2. Spotify ID
    3. Deezer ID
    4. Discogs ID
    5. natural key (title::primary-artist::year)
    6. title + primary artist + release year (+/- 1 year, case-insensitive)
    7. title + primary artist (case-insensitive, any year)

When an album is found, external ids the caller knows but the row lacks are
backfilled. Existing ids are never overwritten.

Runs inside the caller's transaction and never commits. Provenance and enrichment
happen AFTER commit, in the caller.
"""

import logging
from dataclasses import dataclass, field
from typing import NamedTuple

from sqlalchemy.ext.asyncio import AsyncSession

from recrate.application.services.artist_resolver import ArtistResolver
from recrate.domain.dtos import AlbumSnapshot
from recrate.domain.entities import Album, Artist, DedupMethod
from recrate.domain.exceptions import EntityNotFoundException, ValidationException
from recrate.domain.value_objects import album_natural_key
from recrate.infrastructure.persistence.idempotent import resolve_or_create
from recrate.infrastructure.persistence.repositories import (
    AlbumRepository,
    ArtistRepository,
)

logger = logging.getLogger(__name__)

_EXTERNAL_ID_METHODS = (
    ("musicbrainz_id", DedupMethod.MUSICBRAINZ_ID),
    ("spotify_id", DedupMethod.SPOTIFY_ID),
    ("deezer_id", DedupMethod.DEEZER_ID),
    ("discogs_id", DedupMethod.DISCOGS_ID),
)


@dataclass
class AlbumResolution:
    """Result of an album find-or-create."""

    album: Album
    created: bool
    dedup_method: DedupMethod | None = None
    artists_created: list[Artist] = field(default_factory=list)
    backfilled: list[str] = field(default_factory=list)


class _Match(NamedTuple):
    album: Album
    method: DedupMethod | None
    artists_created: list[Artist]


class AlbumResolver:
    """Find an existing album or create it (and its missing artists) exactly once."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._albums = AlbumRepository(session)
        self._artists = ArtistRepository(session)
        self._artist_resolver = ArtistResolver(session)

    async def _find_existing(self, snapshot: AlbumSnapshot) -> _Match | None:
        for field_name, method in _EXTERNAL_ID_METHODS:
            value = getattr(snapshot, field_name)
            if value:
                album = await self._albums.get_by_external_id(field_name, value)
                if album:
                    return _Match(album, method, [])

        primary = snapshot.primary_artist_name
        year = snapshot.release_year

        album = await self._albums.get_by_natural_key(
            album_natural_key(snapshot.title, primary, year)
        )
        if album:
            return _Match(album, DedupMethod.NATURAL_KEY, [])

        if not primary:
            return None

        if year is not None:
            album = await self._albums.find_by_title_and_artist(
                snapshot.title, primary, release_year=year
            )
            if album:
                return _Match(album, DedupMethod.TITLE_ARTIST_YEAR, [])

        album = await self._albums.find_by_title_and_artist(snapshot.title, primary)
        if album:
            return _Match(album, DedupMethod.TITLE_ARTIST, [])
        return None

    async def _create(self, snapshot: AlbumSnapshot, caller: str) -> _Match:
        natural_key = None
        if not snapshot.external_ids:
            natural_key = album_natural_key(
                snapshot.title, snapshot.primary_artist_name, snapshot.release_year
            )
        album_id = await self._albums.add(snapshot, natural_key)

        artists_created: list[Artist] = []
        linked: set[tuple[str, str]] = set()
        for index, credit in enumerate(snapshot.artists):
            if credit.artist_id:
                artist = await self._artists.get_by_id(credit.artist_id)
                if artist is None:
                    raise EntityNotFoundException("Artist", credit.artist_id)
            else:
                result = await self._artist_resolver.find_or_create(
                    credit.to_snapshot(snapshot.source), caller=caller
                )
                artist = result.artist
                if result.created:
                    artists_created.append(artist)

            # same artist credited twice in the same role (bad upstream data)
            if (artist.id, credit.role.value) in linked:
                continue
            linked.add((artist.id, credit.role.value))
            await self._albums.add_credit(
                album_id, artist.id, credit.role, credit.position or index
            )

        album = await self._albums.get_by_id(album_id)
        if album is None:
            raise EntityNotFoundException("Album", album_id)
        return _Match(album, None, artists_created)

    async def find_or_create(
        self, snapshot: AlbumSnapshot, *, caller: str = "unknown", backfill: bool = True
    ) -> AlbumResolution:
        """Resolve an album snapshot to a canonical album.

        Args:
            snapshot: Normalized album data (title required)
            caller: Requester tag for logs
            backfill: Copy missing external ids onto a found album

        Returns:
            AlbumResolution, created=True only when this call inserted the row

        Raises:
            ValidationException: Empty title
            EntityNotFoundException: A credit references an unknown local artist id
        """
        if not snapshot.title or not snapshot.title.strip():
            raise ValidationException("Album title cannot be empty")

        resolution = await resolve_or_create(
            self._session,
            lambda: self._find_existing(snapshot),
            lambda: self._create(snapshot, caller),
            key=f"album:{snapshot.title}",
        )
        match = resolution.value

        if resolution.created:
            logger.info(
                "Created album '%s' (%s) via %s, %d new artist(s)",
                match.album.title,
                match.album.id,
                caller,
                len(match.artists_created),
            )
            return AlbumResolution(
                album=match.album,
                created=True,
                artists_created=match.artists_created,
            )

        backfilled: list[str] = []
        if backfill and snapshot.external_ids:
            backfilled = await self._albums.backfill_external_ids(
                match.album.id, snapshot.external_ids
            )
            if backfilled:
                logger.info(
                    "Backfilled %s on album '%s' via %s",
                    ", ".join(backfilled),
                    match.album.title,
                    caller,
                )
                refreshed = await self._albums.get_by_id(match.album.id)
                match = _Match(refreshed or match.album, match.method, [])

        logger.debug(
            "Found album '%s' via %s (dedup: %s)",
            match.album.title,
            caller,
            match.method.value if match.method else None,
        )
        return AlbumResolution(
            album=match.album,
            created=False,
            dedup_method=match.method,
            backfilled=backfilled,
        )
