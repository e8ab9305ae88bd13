"""Repository implementations for domain entities."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from recrate.domain.dtos import AlbumSnapshot, ArtistSnapshot
from recrate.domain.entities import (
    Album,
    AlbumArtistCredit,
    Artist,
    ArtistRole,
    ChallengeAlbumSummary,
    Collection,
    CollectionMembership,
    CuratedCandidate,
    DailyChallenge,
    DataQuality,
    EnrichmentStatus,
    EntityType,
    ProvenanceCategory,
    ProvenanceRecord,
    ProvenanceStatus,
    RecordSource,
)
from recrate.domain.ports import ICuratedCatalog
from recrate.domain.value_objects import normalize_mbid

from .idempotent import is_unique_violation
from .models import (
    AlbumArtistModel,
    AlbumModel,
    ArtistModel,
    ChallengePinModel,
    CollectionAlbumModel,
    CollectionModel,
    CuratedChallengeModel,
    DailyChallengeModel,
    ProvenanceLogModel,
    ensure_utc_aware,
)

logger = logging.getLogger(__name__)

ALBUM_EXTERNAL_ID_FIELDS = ("musicbrainz_id", "spotify_id", "deezer_id", "discogs_id")
ARTIST_EXTERNAL_ID_FIELDS = ("musicbrainz_id", "spotify_id", "discogs_id")


def _canonical_external_id(field: str, value: str | None) -> str | None:
    return normalize_mbid(value) if field == "musicbrainz_id" else value


async def _backfill_external_ids(
    session: AsyncSession,
    model: Any,
    fields: tuple[str, ...],
    external_ids: dict[str, str],
) -> list[str]:
    """Fill external id columns that are still empty. Never overwrites.

    Hey future me - backfilling can collide with ANOTHER row that already owns that
    id (bad upstream data, earlier duplicates). That's not worth failing the user's
    request for, so the savepoint rolls back and we keep the row as it was.
    """
    missing = {
        name: _canonical_external_id(name, value)
        for name, value in external_ids.items()
        if name in fields and value and getattr(model, name) is None
    }
    if not missing:
        return []

    try:
        async with session.begin_nested():
            for name, value in missing.items():
                setattr(model, name, value)
            await session.flush()
    except IntegrityError as e:
        if not is_unique_violation(e):
            raise
        await session.refresh(model)
        logger.warning(
            "Skipped external id backfill on %s %s, ids already owned by another row: %s",
            model.__tablename__,
            model.id,
            sorted(missing),
        )
        return []
    return sorted(missing)


class ArtistRepository:
    """SQLAlchemy implementation of Artist repository."""

    # Hey future me, each repo gets its AsyncSession injected. The session is NOT
    # committed here - that's the use case's job. add() flushes so that unique
    # violations surface right away inside resolve_or_create's savepoint.
    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    @staticmethod
    def _model_to_entity(model: ArtistModel) -> Artist:
        return Artist(
            id=model.id,
            name=model.name,
            musicbrainz_id=model.musicbrainz_id,
            discogs_id=model.discogs_id,
            spotify_id=model.spotify_id,
            image_url=model.image_url,
            country_code=model.country_code,
            source=RecordSource(model.source),
            data_quality=DataQuality(model.data_quality),
            enrichment_status=EnrichmentStatus(model.enrichment_status),
            created_at=ensure_utc_aware(model.created_at),
            updated_at=ensure_utc_aware(model.updated_at),
        )

    async def _get_model(self, artist_id: str) -> ArtistModel | None:
        return await self.session.get(ArtistModel, artist_id)

    async def get_by_id(self, artist_id: str) -> Artist | None:
        """Get an artist by local id."""
        model = await self._get_model(artist_id)
        return self._model_to_entity(model) if model else None

    async def get_by_external_id(self, field: str, value: str) -> Artist | None:
        """Get an artist by one of its external id columns."""
        if field not in ARTIST_EXTERNAL_ID_FIELDS:
            raise ValueError(f"Unknown artist external id field: {field}")
        stmt = select(ArtistModel).where(
            getattr(ArtistModel, field) == _canonical_external_id(field, value)
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._model_to_entity(model) if model else None

    async def get_by_name_key(self, name_key: str) -> Artist | None:
        stmt = select(ArtistModel).where(ArtistModel.name_key == name_key)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._model_to_entity(model) if model else None

    async def find_by_name(self, name: str) -> Artist | None:
        """Case-insensitive name match, oldest row first."""
        stmt = (
            select(ArtistModel)
            .where(func.lower(ArtistModel.name) == name.strip().lower())
            .order_by(ArtistModel.created_at, ArtistModel.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._model_to_entity(model) if model else None

    async def add(self, snapshot: ArtistSnapshot, name_key: str | None) -> Artist:
        """Insert a new LOW-quality, PENDING artist and flush."""
        model = ArtistModel(
            name=snapshot.name.strip(),
            name_key=name_key,
            musicbrainz_id=normalize_mbid(snapshot.musicbrainz_id),
            discogs_id=snapshot.discogs_id,
            spotify_id=snapshot.spotify_id,
            image_url=snapshot.image_url,
            country_code=snapshot.country_code,
            source=snapshot.source.value,
            data_quality=DataQuality.LOW.value,
            enrichment_status=EnrichmentStatus.PENDING.value,
        )
        self.session.add(model)
        await self.session.flush()
        return self._model_to_entity(model)

    async def backfill_external_ids(
        self, artist_id: str, external_ids: dict[str, str]
    ) -> list[str]:
        """Set missing external ids on an existing artist. Returns the fields set."""
        model = await self._get_model(artist_id)
        if model is None:
            return []
        return await _backfill_external_ids(
            self.session, model, ARTIST_EXTERNAL_ID_FIELDS, external_ids
        )


class AlbumRepository:
    """SQLAlchemy implementation of Album repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    def _model_to_entity(self, model: AlbumModel) -> Album:
        """Convert AlbumModel (with credits loaded) to Album entity.

        Hey future me - this is the ONE place that maps DB -> Entity!
        When you add fields to Album, UPDATE THIS FUNCTION!
        """
        return Album(
            id=model.id,
            title=model.title,
            musicbrainz_id=model.musicbrainz_id,
            discogs_id=model.discogs_id,
            spotify_id=model.spotify_id,
            deezer_id=model.deezer_id,
            release_date=model.release_date,
            release_type=model.release_type,
            track_count=model.track_count,
            cover_art_url=model.cover_art_url,
            source=RecordSource(model.source),
            data_quality=DataQuality(model.data_quality),
            enrichment_status=EnrichmentStatus(model.enrichment_status),
            artists=[
                AlbumArtistCredit(
                    artist_id=credit.artist_id,
                    name=credit.artist.name,
                    role=ArtistRole(credit.role),
                    position=credit.position,
                )
                for credit in model.credits
            ],
            created_at=ensure_utc_aware(model.created_at),
            updated_at=ensure_utc_aware(model.updated_at),
        )

    def _select(self) -> Any:
        # populate_existing: credits are inserted as separate rows, so an album
        # already in the identity map must pick them up on re-read
        return (
            select(AlbumModel)
            .options(selectinload(AlbumModel.credits).joinedload(AlbumArtistModel.artist))
            .execution_options(populate_existing=True)
        )

    async def _first(self, stmt: Any) -> Album | None:
        result = await self.session.execute(stmt)
        model = result.scalars().first()
        return self._model_to_entity(model) if model else None

    async def get_by_id(self, album_id: str) -> Album | None:
        """Get an album by local id."""
        return await self._first(self._select().where(AlbumModel.id == album_id))

    async def get_by_external_id(self, field: str, value: str) -> Album | None:
        """Get an album by one of its external id columns."""
        if field not in ALBUM_EXTERNAL_ID_FIELDS:
            raise ValueError(f"Unknown album external id field: {field}")
        return await self._first(
            self._select().where(
                getattr(AlbumModel, field) == _canonical_external_id(field, value)
            )
        )

    async def get_by_natural_key(self, natural_key: str) -> Album | None:
        return await self._first(
            self._select().where(AlbumModel.natural_key == natural_key)
        )

    async def find_by_title_and_artist(
        self,
        title: str,
        artist_name: str,
        release_year: int | None = None,
        year_tolerance: int = 1,
    ) -> Album | None:
        """Case-insensitive title + credited artist match, oldest row first.

        With a release year, only albums released within +/- year_tolerance match.
        """
        stmt = (
            self._select()
            .join(AlbumArtistModel, AlbumArtistModel.album_id == AlbumModel.id)
            .join(ArtistModel, ArtistModel.id == AlbumArtistModel.artist_id)
            .where(func.lower(AlbumModel.title) == title.strip().lower())
            .where(func.lower(ArtistModel.name) == artist_name.strip().lower())
            .order_by(AlbumModel.created_at, AlbumModel.id)
        )
        if release_year is not None:
            # date() only covers years 1..9999
            earliest = max(release_year - year_tolerance, date.min.year)
            latest = min(release_year + year_tolerance, date.max.year)
            stmt = stmt.where(
                AlbumModel.release_date >= date(earliest, 1, 1),
                AlbumModel.release_date <= date(latest, 12, 31),
            )
        return await self._first(stmt)

    async def add(self, snapshot: AlbumSnapshot, natural_key: str | None) -> str:
        """Insert a new LOW-quality, PENDING album row and flush. Returns its id.

        Credits are linked separately with add_credit().
        """
        model = AlbumModel(
            title=snapshot.title.strip(),
            natural_key=natural_key,
            musicbrainz_id=normalize_mbid(snapshot.musicbrainz_id),
            discogs_id=snapshot.discogs_id,
            spotify_id=snapshot.spotify_id,
            deezer_id=snapshot.deezer_id,
            release_date=snapshot.release_date,
            release_type=snapshot.release_type,
            track_count=snapshot.track_count,
            cover_art_url=snapshot.cover_art_url,
            source=snapshot.source.value,
            data_quality=DataQuality.LOW.value,
            enrichment_status=EnrichmentStatus.PENDING.value,
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def add_credit(
        self, album_id: str, artist_id: str, role: ArtistRole, position: int
    ) -> None:
        self.session.add(
            AlbumArtistModel(
                album_id=album_id,
                artist_id=artist_id,
                role=role.value,
                position=position,
            )
        )
        await self.session.flush()

    async def backfill_external_ids(
        self, album_id: str, external_ids: dict[str, str]
    ) -> list[str]:
        """Set missing external ids on an existing album. Returns the fields set."""
        model = await self.session.get(AlbumModel, album_id)
        if model is None:
            return []
        return await _backfill_external_ids(
            self.session, model, ALBUM_EXTERNAL_ID_FIELDS, external_ids
        )

    async def get_summary(self, album_id: str) -> ChallengeAlbumSummary | None:
        album = await self.get_by_id(album_id)
        if album is None:
            return None
        return ChallengeAlbumSummary(
            id=album.id,
            title=album.title,
            cover_art_url=album.cover_art_url,
            artists=album.artists,
        )


class CollectionRepository:
    """SQLAlchemy implementation of Collection repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    @staticmethod
    def _membership_to_entity(model: CollectionAlbumModel) -> CollectionMembership:
        return CollectionMembership(
            id=model.id,
            collection_id=model.collection_id,
            album_id=model.album_id,
            personal_rating=model.personal_rating,
            personal_notes=model.personal_notes,
            position=model.position,
            added_at=ensure_utc_aware(model.added_at),
        )

    async def create(self, user_id: str, name: str, is_public: bool = True) -> Collection:
        model = CollectionModel(user_id=user_id, name=name, is_public=is_public)
        self.session.add(model)
        await self.session.flush()
        return Collection(
            id=model.id,
            user_id=model.user_id,
            name=model.name,
            is_public=model.is_public,
            created_at=ensure_utc_aware(model.created_at),
        )

    async def get_owned(self, collection_id: str, user_id: str) -> Collection | None:
        """Get a collection only if it belongs to user_id."""
        stmt = select(CollectionModel).where(
            CollectionModel.id == collection_id, CollectionModel.user_id == user_id
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return Collection(
            id=model.id,
            user_id=model.user_id,
            name=model.name,
            is_public=model.is_public,
            created_at=ensure_utc_aware(model.created_at),
        )

    async def get_membership(
        self, collection_id: str, album_id: str
    ) -> CollectionMembership | None:
        stmt = select(CollectionAlbumModel).where(
            CollectionAlbumModel.collection_id == collection_id,
            CollectionAlbumModel.album_id == album_id,
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._membership_to_entity(model) if model else None

    async def next_position(self, collection_id: str) -> int:
        stmt = select(func.coalesce(func.max(CollectionAlbumModel.position), -1)).where(
            CollectionAlbumModel.collection_id == collection_id
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one()) + 1

    async def add_membership(
        self,
        collection_id: str,
        album_id: str,
        personal_rating: int | None,
        personal_notes: str | None,
        position: int,
    ) -> CollectionMembership:
        model = CollectionAlbumModel(
            collection_id=collection_id,
            album_id=album_id,
            personal_rating=personal_rating,
            personal_notes=personal_notes,
            position=position,
        )
        self.session.add(model)
        await self.session.flush()
        return self._membership_to_entity(model)

    async def count_memberships(self, collection_id: str) -> int:
        stmt = select(func.count()).where(
            CollectionAlbumModel.collection_id == collection_id
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())


class ProvenanceLogRepository:
    """Append-only provenance log storage. There is no update() and no delete()."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    @staticmethod
    def _model_to_record(model: ProvenanceLogModel) -> ProvenanceRecord:
        return ProvenanceRecord(
            id=model.id,
            entity_type=EntityType(model.entity_type),
            entity_id=model.entity_id,
            operation=model.operation,
            category=ProvenanceCategory(model.category),
            sources=tuple(model.sources or ()),
            status=ProvenanceStatus(model.status),
            job_id=model.job_id,
            parent_job_id=model.parent_job_id,
            root_job_id=model.root_job_id,
            is_root_job=model.is_root_job,
            created_at=ensure_utc_aware(model.created_at),
            fields_enriched=tuple(model.fields_enriched or ()),
            data_quality_before=(
                DataQuality(model.data_quality_before)
                if model.data_quality_before
                else None
            ),
            data_quality_after=(
                DataQuality(model.data_quality_after)
                if model.data_quality_after
                else None
            ),
            reason=model.reason,
            error_message=model.error_message,
            retry_count=model.retry_count,
            user_id=model.user_id,
            triggered_by=model.triggered_by,
            metadata=dict(model.log_metadata or {}),
        )

    async def add(self, **fields: Any) -> ProvenanceRecord:
        """Append one log line. Keyword names match ProvenanceLogModel columns."""
        model = ProvenanceLogModel(**fields)
        self.session.add(model)
        await self.session.flush()
        return self._model_to_record(model)

    def _entity_query(self, entity_type: EntityType, entity_id: str) -> Any:
        return select(ProvenanceLogModel).where(
            ProvenanceLogModel.entity_type == entity_type.value,
            ProvenanceLogModel.entity_id == entity_id,
        )

    async def get_history(
        self, entity_type: EntityType, entity_id: str, limit: int = 50
    ) -> list[ProvenanceRecord]:
        """Newest first."""
        stmt = (
            self._entity_query(entity_type, entity_id)
            .order_by(ProvenanceLogModel.created_at.desc(), ProvenanceLogModel.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [self._model_to_record(m) for m in result.scalars().all()]

    async def get_latest(
        self,
        entity_type: EntityType,
        entity_id: str,
        status: ProvenanceStatus | None = None,
    ) -> ProvenanceRecord | None:
        stmt = self._entity_query(entity_type, entity_id)
        if status is not None:
            stmt = stmt.where(ProvenanceLogModel.status == status.value)
        stmt = stmt.order_by(
            ProvenanceLogModel.created_at.desc(), ProvenanceLogModel.id.desc()
        ).limit(1)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._model_to_record(model) if model else None

    async def exists_since(
        self,
        entity_type: EntityType,
        entity_id: str,
        status: ProvenanceStatus,
        since: datetime,
    ) -> bool:
        stmt = (
            self._entity_query(entity_type, entity_id)
            .where(ProvenanceLogModel.status == status.value)
            .where(ProvenanceLogModel.created_at >= since)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def get_job_tree(self, root_job_id: str) -> list[ProvenanceRecord]:
        """All log lines sharing a root job, oldest first."""
        stmt = (
            select(ProvenanceLogModel)
            .where(ProvenanceLogModel.root_job_id == root_job_id)
            .order_by(ProvenanceLogModel.created_at, ProvenanceLogModel.id)
        )
        result = await self.session.execute(stmt)
        return [self._model_to_record(m) for m in result.scalars().all()]


class DailyChallengeRepository:
    """SQLAlchemy implementation of DailyChallenge repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    @staticmethod
    def _model_to_entity(model: DailyChallengeModel) -> DailyChallenge:
        return DailyChallenge(
            id=model.id,
            date=datetime.combine(model.challenge_date, datetime.min.time(), tzinfo=UTC),
            album_id=model.album_id,
            max_attempts=model.max_attempts,
            total_plays=model.total_plays,
            total_wins=model.total_wins,
            avg_attempts=model.avg_attempts,
            created_at=ensure_utc_aware(model.created_at),
        )

    async def get_by_date(self, day: date) -> DailyChallenge | None:
        stmt = select(DailyChallengeModel).where(DailyChallengeModel.challenge_date == day)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._model_to_entity(model) if model else None

    async def exists_for_date(self, day: date) -> bool:
        stmt = select(DailyChallengeModel.id).where(
            DailyChallengeModel.challenge_date == day
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def add(self, day: date, album_id: str, max_attempts: int) -> DailyChallenge:
        model = DailyChallengeModel(
            challenge_date=day,
            album_id=album_id,
            max_attempts=max_attempts,
            total_plays=0,
            total_wins=0,
        )
        self.session.add(model)
        await self.session.flush()
        return self._model_to_entity(model)


class CuratedChallengeRepository(ICuratedCatalog):
    """Curated rotation + admin pins, backing the daily selection algorithm."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get_pinned_album(self, day: date) -> str | None:
        stmt = select(ChallengePinModel.album_id).where(ChallengePinModel.pin_date == day)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    # Hey future me - this runs a COUNT on every selection. The curated table is small
    # and the result is cached per day in daily_challenges, so it only runs on the
    # first request of each day (or on info lookups for days without a challenge).
    async def count_curated(self) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(CuratedChallengeModel)
        )
        return int(result.scalar_one())

    async def get_curated_at(self, sequence: int) -> str | None:
        stmt = select(CuratedChallengeModel.album_id).where(
            CuratedChallengeModel.sequence == sequence
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_album(self, album_id: str) -> CuratedCandidate | None:
        stmt = select(CuratedChallengeModel).where(
            CuratedChallengeModel.album_id == album_id
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return CuratedCandidate(id=model.id, album_id=model.album_id, sequence=model.sequence)

    async def next_sequence(self) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.max(CuratedChallengeModel.sequence), -1))
        )
        return int(result.scalar_one()) + 1

    async def add_curated(self, album_id: str, sequence: int) -> CuratedCandidate:
        model = CuratedChallengeModel(album_id=album_id, sequence=sequence)
        self.session.add(model)
        await self.session.flush()
        return CuratedCandidate(id=model.id, album_id=model.album_id, sequence=model.sequence)

    async def set_pin(self, day: date, album_id: str, pinned_by: str | None) -> None:
        """Create or replace the pin for a day."""
        stmt = select(ChallengePinModel).where(ChallengePinModel.pin_date == day)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            self.session.add(
                ChallengePinModel(pin_date=day, album_id=album_id, pinned_by=pinned_by)
            )
        else:
            model.album_id = album_id
            model.pinned_by = pinned_by
        await self.session.flush()

    async def remove_pin(self, day: date) -> bool:
        stmt = select(ChallengePinModel).where(ChallengePinModel.pin_date == day)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return False
        await self.session.delete(model)
        await self.session.flush()
        return True
