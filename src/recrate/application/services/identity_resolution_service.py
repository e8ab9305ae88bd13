"""Identity resolution - turn any album/artist identifier into a canonical record.

Hey future me - an id can arrive in three shapes and classify_identifier decides
which route we take:

    local        "cm3x..."       -> plain DB read, missing = EntityNotFoundException
    musicbrainz  UUID            -> DB read by musicbrainz_id, else fetch + create
    discogs      "123456"        -> DB read by discogs_id, else fetch + create

The external fetch happens OUTSIDE any DB transaction (short read session, fetch,
then a separate write transaction). Holding a transaction open across a slow
HTTP call would block every other writer on SQLite.

Fetch errors are NOT swallowed: NotFoundUpstreamError vs TransientFetchError tell
the caller "doesn't exist" vs "try again later".
"""

import logging
from dataclasses import dataclass, field

from recrate.application.services.album_resolver import AlbumResolver
from recrate.application.services.artist_resolver import ArtistResolver
from recrate.application.services.enrichment_dispatcher import EnrichmentDispatcher
from recrate.application.services.provenance_logger import ProvenanceLogger
from recrate.domain.entities import (
    Album,
    Artist,
    CallerContext,
    DedupMethod,
    EntityType,
    ProvenanceCategory,
    ProvenanceEntry,
    SideEffectOutcome,
)
from recrate.domain.exceptions import ConfigurationError, EntityNotFoundException
from recrate.domain.ports import IMetadataFetcher
from recrate.domain.value_objects import IdSource, classify_identifier, normalize_mbid
from recrate.infrastructure.persistence.database import Database
from recrate.infrastructure.persistence.repositories import (
    AlbumRepository,
    ArtistRepository,
)

logger = logging.getLogger(__name__)

_EXTERNAL_ID_FIELD = {
    IdSource.MUSICBRAINZ: "musicbrainz_id",
    IdSource.DISCOGS: "discogs_id",
}
_EXTERNAL_ID_METHOD = {
    IdSource.MUSICBRAINZ: DedupMethod.MUSICBRAINZ_ID,
    IdSource.DISCOGS: DedupMethod.DISCOGS_ID,
}


@dataclass
class AlbumResolutionResult:
    """Outcome of resolve_album."""

    album: Album
    created: bool
    source: IdSource
    dedup_method: DedupMethod | None = None
    artists_created: list[Artist] = field(default_factory=list)
    side_effects: list[SideEffectOutcome] = field(default_factory=list)


@dataclass
class ArtistResolutionResult:
    """Outcome of resolve_artist."""

    artist: Artist
    created: bool
    source: IdSource
    dedup_method: DedupMethod | None = None
    side_effects: list[SideEffectOutcome] = field(default_factory=list)


class IdentityResolutionService:
    """Resolve album/artist identifiers from any scheme to canonical records."""

    def __init__(
        self,
        database: Database,
        fetchers: dict[IdSource, IMetadataFetcher],
        provenance: ProvenanceLogger,
        dispatcher: EnrichmentDispatcher,
    ) -> None:
        self._db = database
        self._fetchers = fetchers
        self._provenance = provenance
        self._dispatcher = dispatcher

    def _fetcher_for(self, source: IdSource) -> IMetadataFetcher:
        fetcher = self._fetchers.get(source)
        if fetcher is None:
            raise ConfigurationError(f"No metadata fetcher configured for {source.value}")
        return fetcher

    # =========================================================================
    # Albums
    # =========================================================================

    async def resolve_album(
        self, identity: str, caller: CallerContext
    ) -> AlbumResolutionResult:
        """Resolve an album identifier to its canonical album.

        Raises:
            EntityNotFoundException: Local id that doesn't exist
            NotFoundUpstreamError: External id unknown to its source
            TransientFetchError: External source unreachable right now
            ConfigurationError: No fetcher registered for the id's scheme
        """
        identity = identity.strip()
        source = classify_identifier(identity)
        if source == IdSource.MUSICBRAINZ:
            identity = normalize_mbid(identity)

        async with self._db.session_scope() as session:
            albums = AlbumRepository(session)
            if source == IdSource.LOCAL:
                album = await albums.get_by_id(identity)
                if album is None:
                    raise EntityNotFoundException("Album", identity)
                return AlbumResolutionResult(
                    album=album,
                    created=False,
                    source=source,
                    dedup_method=DedupMethod.LOCAL_ID,
                )
            existing = await albums.get_by_external_id(_EXTERNAL_ID_FIELD[source], identity)

        if existing is not None:
            return AlbumResolutionResult(
                album=existing,
                created=False,
                source=source,
                dedup_method=_EXTERNAL_ID_METHOD[source],
            )

        snapshot = await self._fetcher_for(source).fetch_album(identity)
        # the id we were asked for must end up on the row, whatever the fetcher returned
        setattr(snapshot, _EXTERNAL_ID_FIELD[source], identity)

        async with self._db.session_scope() as session:
            resolution = await AlbumResolver(session).find_or_create(
                snapshot, caller=caller.caller
            )

        result = AlbumResolutionResult(
            album=resolution.album,
            created=resolution.created,
            source=source,
            dedup_method=resolution.dedup_method,
            artists_created=resolution.artists_created,
        )
        if resolution.created:
            result.side_effects = await self._after_album_created(
                resolution.album, resolution.artists_created, source, caller
            )
        return result

    async def _after_album_created(
        self,
        album: Album,
        artists_created: list[Artist],
        source: IdSource,
        caller: CallerContext,
    ) -> list[SideEffectOutcome]:
        root_job_id = f"album-created-{album.id}"
        context = CallerContext(
            caller=caller.caller,
            user_id=caller.user_id,
            request_id=caller.request_id or root_job_id,
        )
        outcomes = [
            await self._provenance.log(
                ProvenanceEntry(
                    entity_type=EntityType.ALBUM,
                    entity_id=album.id,
                    operation="album:created",
                    category=ProvenanceCategory.CREATED,
                    sources=[source.value.upper()],
                    job_id=root_job_id,
                    user_id=caller.user_id,
                    triggered_by=caller.caller,
                    metadata={"title": album.title, "identity_source": source.value},
                )
            )
        ]
        for artist in artists_created:
            outcomes.append(
                await self._provenance.log(
                    ProvenanceEntry(
                        entity_type=EntityType.ARTIST,
                        entity_id=artist.id,
                        operation="artist:created",
                        category=ProvenanceCategory.CREATED,
                        sources=[source.value.upper()],
                        parent_job_id=root_job_id,
                        root_job_id=root_job_id,
                        user_id=caller.user_id,
                        triggered_by=caller.caller,
                        metadata={"name": artist.name, "album_id": album.id},
                    )
                )
            )

        outcomes.extend(
            await self._dispatcher.dispatch_if_created(
                album, True, context, parent_job_id=root_job_id
            )
        )
        for artist in artists_created:
            outcomes.extend(
                await self._dispatcher.dispatch_if_created(
                    artist, True, context, parent_job_id=root_job_id
                )
            )
        return outcomes

    # =========================================================================
    # Artists
    # =========================================================================

    async def resolve_artist(
        self, identity: str, caller: CallerContext
    ) -> ArtistResolutionResult:
        """Resolve an artist identifier to its canonical artist.

        Same routing and error kinds as resolve_album.
        """
        identity = identity.strip()
        source = classify_identifier(identity)
        if source == IdSource.MUSICBRAINZ:
            identity = normalize_mbid(identity)

        async with self._db.session_scope() as session:
            artists = ArtistRepository(session)
            if source == IdSource.LOCAL:
                artist = await artists.get_by_id(identity)
                if artist is None:
                    raise EntityNotFoundException("Artist", identity)
                return ArtistResolutionResult(
                    artist=artist,
                    created=False,
                    source=source,
                    dedup_method=DedupMethod.LOCAL_ID,
                )
            existing = await artists.get_by_external_id(
                _EXTERNAL_ID_FIELD[source], identity
            )

        if existing is not None:
            return ArtistResolutionResult(
                artist=existing,
                created=False,
                source=source,
                dedup_method=_EXTERNAL_ID_METHOD[source],
            )

        snapshot = await self._fetcher_for(source).fetch_artist(identity)
        setattr(snapshot, _EXTERNAL_ID_FIELD[source], identity)

        async with self._db.session_scope() as session:
            resolution = await ArtistResolver(session).find_or_create(
                snapshot, caller=caller.caller
            )

        result = ArtistResolutionResult(
            artist=resolution.artist,
            created=resolution.created,
            source=source,
            dedup_method=resolution.dedup_method,
        )
        if resolution.created:
            root_job_id = f"artist-created-{resolution.artist.id}"
            result.side_effects.append(
                await self._provenance.log(
                    ProvenanceEntry(
                        entity_type=EntityType.ARTIST,
                        entity_id=resolution.artist.id,
                        operation="artist:created",
                        category=ProvenanceCategory.CREATED,
                        sources=[source.value.upper()],
                        job_id=root_job_id,
                        user_id=caller.user_id,
                        triggered_by=caller.caller,
                        metadata={"name": resolution.artist.name},
                    )
                )
            )
            result.side_effects.extend(
                await self._dispatcher.dispatch_if_created(
                    resolution.artist,
                    True,
                    CallerContext(
                        caller=caller.caller,
                        user_id=caller.user_id,
                        request_id=caller.request_id or root_job_id,
                    ),
                    parent_job_id=root_job_id,
                )
            )
        return result
