"""Add album to collection use case."""

import logging
from dataclasses import dataclass, field

from recrate.application.services.album_resolver import AlbumResolver
from recrate.application.services.enrichment_dispatcher import EnrichmentDispatcher
from recrate.application.services.provenance_logger import ProvenanceLogger
from recrate.application.use_cases import UseCase
from recrate.domain.dtos import AlbumSnapshot
from recrate.domain.entities import (
    Album,
    Artist,
    CallerContext,
    CollectionMembership,
    DataQuality,
    EntityType,
    ProvenanceCategory,
    ProvenanceEntry,
    SideEffectOutcome,
)
from recrate.domain.exceptions import (
    AuthorizationError,
    EntityNotFoundException,
    ValidationException,
)
from recrate.infrastructure.persistence.database import Database
from recrate.infrastructure.persistence.idempotent import resolve_or_create
from recrate.infrastructure.persistence.repositories import (
    AlbumRepository,
    CollectionRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class AddAlbumToCollectionRequest:
    """Request to add an album to a user's collection.

    Exactly one of album_id (existing album) or new_album (submission) is set.
    """

    user_id: str
    collection_id: str
    album_id: str | None = None
    new_album: AlbumSnapshot | None = None
    personal_rating: int | None = None
    personal_notes: str | None = None
    position: int | None = None
    caller: str = "collection_add"


@dataclass
class AddAlbumToCollectionResponse:
    """Response from adding an album to a collection."""

    membership: CollectionMembership
    album: Album
    album_created: bool
    already_in_collection: bool
    artists_created: list[Artist] = field(default_factory=list)
    side_effects: list[SideEffectOutcome] = field(default_factory=list)

    @property
    def created(self) -> bool:
        """Whether this call created the collection membership."""
        return not self.already_in_collection


class AddAlbumToCollectionUseCase(
    UseCase[AddAlbumToCollectionRequest, AddAlbumToCollectionResponse]
):
    """Use case for adding an album (existing or newly submitted) to a collection.

    This use case:
    1. Verifies the collection belongs to the user
    2. Resolves the album (existing id, or find-or-create from the submission)
    3. Finds or creates the membership - a second add returns the existing one
    4. Commits - everything above is ONE transaction
    5. Logs the provenance chain (best-effort)
    6. Queues enrichment for newly created album/artists only (best-effort)
    """

    # Hey future me: steps 5 and 6 run AFTER commit on purpose. If the queue is down
    # the user still gets their album in the collection; we just lose (for now) the
    # enrichment. Neither step can raise - they report SideEffectOutcome instead.

    def __init__(
        self,
        database: Database,
        provenance: ProvenanceLogger,
        dispatcher: EnrichmentDispatcher,
    ) -> None:
        """Initialize the use case with required dependencies.

        Args:
            database: Database (the use case owns the transaction)
            provenance: Provenance logger for the post-commit audit trail
            dispatcher: Enrichment dispatcher for post-commit job queueing
        """
        self._db = database
        self._provenance = provenance
        self._dispatcher = dispatcher

    @staticmethod
    def _validate(request: AddAlbumToCollectionRequest) -> None:
        if (request.album_id is None) == (request.new_album is None):
            raise ValidationException("Provide exactly one of album_id or new_album")
        if request.personal_rating is not None and not 1 <= request.personal_rating <= 10:
            raise ValidationException("personal_rating must be between 1 and 10")
        if request.position is not None and request.position < 0:
            raise ValidationException("position cannot be negative")

    async def execute(
        self, request: AddAlbumToCollectionRequest
    ) -> AddAlbumToCollectionResponse:
        """Execute the add-album-to-collection workflow.

        Raises:
            ValidationException: Bad request shape, rating out of 1-10
            AuthorizationError: Collection missing or not owned by the user
            EntityNotFoundException: album_id doesn't exist
        """
        self._validate(request)

        album_created = False
        artists_created: list[Artist] = []

        async with self._db.session_scope() as session:
            collections = CollectionRepository(session)
            if await collections.get_owned(request.collection_id, request.user_id) is None:
                raise AuthorizationError("Collection not found or access denied")

            if request.album_id is not None:
                album = await AlbumRepository(session).get_by_id(request.album_id)
                if album is None:
                    raise EntityNotFoundException("Album", request.album_id)
            else:
                assert request.new_album is not None
                resolution = await AlbumResolver(session).find_or_create(
                    request.new_album, caller=request.caller
                )
                album = resolution.album
                album_created = resolution.created
                artists_created = resolution.artists_created

            async def create_membership() -> CollectionMembership:
                position = request.position
                if position is None:
                    position = await collections.next_position(request.collection_id)
                return await collections.add_membership(
                    request.collection_id,
                    album.id,
                    request.personal_rating,
                    request.personal_notes,
                    position,
                )

            membership_resolution = await resolve_or_create(
                session,
                lambda: collections.get_membership(request.collection_id, album.id),
                create_membership,
                key=f"collection-album:{request.collection_id}:{album.id}",
            )

        membership = membership_resolution.value
        already_in_collection = not membership_resolution.created

        logger.info(
            "Album %s %s collection %s for user %s (album created: %s)",
            album.id,
            "already in" if already_in_collection else "added to",
            request.collection_id,
            request.user_id,
            album_created,
        )

        response = AddAlbumToCollectionResponse(
            membership=membership,
            album=album,
            album_created=album_created,
            already_in_collection=already_in_collection,
            artists_created=artists_created,
        )
        if not already_in_collection:
            response.side_effects = await self._after_commit(request, response)
        return response

    async def _after_commit(
        self,
        request: AddAlbumToCollectionRequest,
        response: AddAlbumToCollectionResponse,
    ) -> list[SideEffectOutcome]:
        membership = response.membership
        root_job_id = f"collection-add-{membership.id}"
        context = CallerContext(
            caller=request.caller, user_id=request.user_id, request_id=root_job_id
        )

        outcomes = [
            await self._provenance.log(
                ProvenanceEntry(
                    entity_type=EntityType.ALBUM,
                    entity_id=membership.album_id,
                    operation="collection:album-added",
                    category=ProvenanceCategory.USER_ACTION,
                    sources=["USER"],
                    job_id=root_job_id,
                    is_root_job=True,
                    user_id=request.user_id,
                    triggered_by=request.caller,
                    metadata={
                        "collection_id": membership.collection_id,
                        "collection_album_id": membership.id,
                        "album_created": response.album_created,
                        "artists_created": len(response.artists_created),
                    },
                )
            )
        ]

        if response.album_created:
            outcomes.append(
                await self._provenance.log(
                    ProvenanceEntry(
                        entity_type=EntityType.ALBUM,
                        entity_id=response.album.id,
                        operation="album:created",
                        category=ProvenanceCategory.CREATED,
                        sources=["USER"],
                        job_id=f"album-created-{response.album.id}",
                        parent_job_id=root_job_id,
                        root_job_id=root_job_id,
                        fields_enriched=["title"],
                        data_quality_after=DataQuality.LOW,
                        user_id=request.user_id,
                        triggered_by=request.caller,
                    )
                )
            )
        for artist in response.artists_created:
            outcomes.append(
                await self._provenance.log(
                    ProvenanceEntry(
                        entity_type=EntityType.ARTIST,
                        entity_id=artist.id,
                        operation="artist:created",
                        category=ProvenanceCategory.CREATED,
                        sources=["USER"],
                        job_id=f"artist-created-{artist.id}",
                        parent_job_id=root_job_id,
                        root_job_id=root_job_id,
                        fields_enriched=["name"],
                        data_quality_after=DataQuality.LOW,
                        user_id=request.user_id,
                        triggered_by=request.caller,
                    )
                )
            )

        outcomes.extend(
            await self._dispatcher.dispatch_if_created(
                response.album, response.album_created, context, parent_job_id=root_job_id
            )
        )
        for artist in response.artists_created:
            outcomes.extend(
                await self._dispatcher.dispatch_if_created(
                    artist, True, context, parent_job_id=root_job_id
                )
            )
        return outcomes
