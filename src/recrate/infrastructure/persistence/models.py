"""SQLAlchemy ORM models for recrate."""

import uuid
from datetime import UTC, date, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from recrate.domain.value_objects import new_entity_id


# Hey future me, utc_now() ensures ALL timestamps are UTC! Never use datetime.now()
# without timezone - naive datetimes break comparisons across servers.
def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! UTC datetimes come back naive.
# ALWAYS run DB datetimes through this before comparing with datetime.now(UTC).
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models.

    All models inherit from this to share one metadata registry.
    """

    pass


# =============================================================================
# CANONICAL ENTITIES
# Hey future me - the UNIQUE constraints below ARE the dedup guarantee. There are no
# application locks anywhere: two racing creators both try to INSERT and the loser
# gets an IntegrityError that resolve_or_create turns into a re-read. Do not drop
# a unique=True here without understanding that.
# =============================================================================


class ArtistModel(Base):
    """Canonical artist.

    name_key is only set when the artist was created WITHOUT any external id.
    Artists with external ids are deduped by those ids instead, so two different
    artists sharing a name (it happens a lot!) can both exist.
    """

    __tablename__ = "artists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_entity_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name_key: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    musicbrainz_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True, unique=True
    )
    discogs_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True, unique=True
    )
    spotify_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True, unique=True
    )
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    country_code: Mapped[str | None] = mapped_column(String(2), nullable=True)
    # Values of domain enums, stored as plain strings (SQLite compatibility)
    source: Mapped[str] = mapped_column(
        String(20), nullable=False, default="USER_SUBMITTED"
    )
    data_quality: Mapped[str] = mapped_column(String(10), nullable=False, default="LOW")
    enrichment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="PENDING", index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (Index("ix_artists_name_lower", func.lower(name)),)


class AlbumModel(Base):
    """Canonical album.

    natural_key (title::primary-artist::year) is only set when the album was created
    without any external id - that's the "at most one row per natural key when no
    external id is known" rule.
    """

    __tablename__ = "albums"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_entity_id)
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    natural_key: Mapped[str | None] = mapped_column(
        String(800), nullable=True, unique=True
    )
    musicbrainz_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True, unique=True
    )
    discogs_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True, unique=True
    )
    spotify_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True, unique=True
    )
    deezer_id: Mapped[str | None] = mapped_column(String(50), nullable=True, unique=True)
    release_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    release_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    track_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cover_art_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    source: Mapped[str] = mapped_column(
        String(20), nullable=False, default="USER_SUBMITTED"
    )
    data_quality: Mapped[str] = mapped_column(String(10), nullable=False, default="LOW")
    enrichment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="PENDING", index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    credits: Mapped[list["AlbumArtistModel"]] = relationship(
        "AlbumArtistModel",
        back_populates="album",
        cascade="all, delete-orphan",
        order_by="AlbumArtistModel.position",
    )

    __table_args__ = (Index("ix_albums_title_lower", func.lower(title)),)


class AlbumArtistModel(Base):
    """Artist credit on an album (ordered, with role)."""

    __tablename__ = "album_artists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_entity_id)
    album_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("albums.id", ondelete="CASCADE"), nullable=False
    )
    artist_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("artists.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="PRIMARY")
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    album: Mapped["AlbumModel"] = relationship("AlbumModel", back_populates="credits")
    artist: Mapped["ArtistModel"] = relationship("ArtistModel", lazy="joined")

    __table_args__ = (
        sa.UniqueConstraint("album_id", "artist_id", "role", name="uq_album_artist_role"),
        Index("ix_album_artists_artist_id", "artist_id"),
    )


# =============================================================================
# COLLECTIONS
# =============================================================================


class CollectionModel(Base):
    """A user-owned collection of albums."""

    __tablename__ = "collections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_entity_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )


class CollectionAlbumModel(Base):
    """Album membership in a collection. One row per (collection, album)."""

    __tablename__ = "collection_albums"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_entity_id)
    collection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("collections.id", ondelete="CASCADE"), nullable=False
    )
    album_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("albums.id", ondelete="CASCADE"), nullable=False
    )
    personal_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    personal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    added_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        sa.UniqueConstraint("collection_id", "album_id", name="uq_collection_album"),
        Index("ix_collection_albums_album_id", "album_id"),
    )


# =============================================================================
# PROVENANCE - append-only audit trail. Never UPDATE or DELETE these rows.
# =============================================================================


class ProvenanceLogModel(Base):
    """One provenance log line, threaded into a job tree via parent/root job ids."""

    __tablename__ = "provenance_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_entity_id)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    operation: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    sources: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    job_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    parent_job_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    root_job_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    is_root_job: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    fields_enriched: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )
    data_quality_before: Mapped[str | None] = mapped_column(String(10), nullable=True)
    data_quality_after: Mapped[str | None] = mapped_column(String(10), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    triggered_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # "metadata" is reserved on declarative classes, hence the attribute rename
    log_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        Index("ix_provenance_entity", "entity_type", "entity_id", "created_at"),
        Index("ix_provenance_status_created", "status", "created_at"),
    )


# =============================================================================
# DAILY CHALLENGE
# =============================================================================


class DailyChallengeModel(Base):
    """One challenge per UTC calendar day.

    Hey future me - the UNIQUE on challenge_date is what makes concurrent
    "first request of the day" calls safe. Don't add an app-level lock.
    """

    __tablename__ = "daily_challenges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_entity_id)
    challenge_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    album_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("albums.id"), nullable=False, index=True
    )
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    total_plays: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    avg_attempts: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )

    album: Mapped["AlbumModel"] = relationship("AlbumModel")


class CuratedChallengeModel(Base):
    """Ordered rotation of albums eligible as daily answers."""

    __tablename__ = "curated_challenges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_entity_id)
    album_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("albums.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )


class ChallengePinModel(Base):
    """Admin override: force a specific album for a specific day."""

    __tablename__ = "challenge_pins"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_entity_id)
    pin_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    album_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("albums.id", ondelete="CASCADE"), nullable=False
    )
    pinned_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )


# =============================================================================
# BACKGROUND JOBS - storage for the enrichment queue
# =============================================================================


class BackgroundJobModel(Base):
    """Persistent job storage for enrichment workers.

    Workers live outside this package; they pick pending jobs in
    (priority ASC, created_at ASC) order. Lower priority value = served sooner!
    """

    __tablename__ = "background_jobs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # Job type: check:album-enrichment, cache:album-cover-art, ...
    job_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # Status: pending, running, completed, failed
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Job payload as JSON text
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Retry policy
    retries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    backoff_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    backoff_delay_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Traceability
    request_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    parent_job_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )
    next_run_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        # Fast query for pending jobs ordered by priority
        Index("ix_jobs_pending", "status", "priority", "created_at"),
    )
