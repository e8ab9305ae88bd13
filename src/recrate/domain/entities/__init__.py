"""Domain entities."""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any


class DataQuality(str, Enum):
    """Data-quality tier of a canonical entity."""

    LOW = "LOW"  # minimal record, not yet enriched
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class EnrichmentStatus(str, Enum):
    """Progress of background enrichment for a canonical entity."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RecordSource(str, Enum):
    """Where a canonical record's initial data came from."""

    MUSICBRAINZ = "MUSICBRAINZ"
    DISCOGS = "DISCOGS"
    SPOTIFY = "SPOTIFY"
    DEEZER = "DEEZER"
    USER_SUBMITTED = "USER_SUBMITTED"


class ArtistRole(str, Enum):
    """Role of an artist on an album."""

    PRIMARY = "PRIMARY"
    FEATURED = "FEATURED"


class EntityType(str, Enum):
    """Entity kinds tracked by provenance and enrichment."""

    ALBUM = "ALBUM"
    ARTIST = "ARTIST"
    TRACK = "TRACK"


# Hey future me - the resolver reports HOW it found an existing record. None means
# the record was created. Useful in logs when dedup picks the "wrong" album.
class DedupMethod(str, Enum):
    """Which lookup matched an existing record."""

    LOCAL_ID = "local_id"
    MUSICBRAINZ_ID = "musicbrainz_id"
    SPOTIFY_ID = "spotify_id"
    DEEZER_ID = "deezer_id"
    DISCOGS_ID = "discogs_id"
    NATURAL_KEY = "natural_key"
    TITLE_ARTIST_YEAR = "title+artist+year"
    TITLE_ARTIST = "title+artist"
    NAME = "name"


@dataclass
class Artist:
    """Canonical artist record."""

    id: str
    name: str
    musicbrainz_id: str | None = None
    discogs_id: str | None = None
    spotify_id: str | None = None
    image_url: str | None = None
    country_code: str | None = None
    source: RecordSource = RecordSource.USER_SUBMITTED
    data_quality: DataQuality = DataQuality.LOW
    enrichment_status: EnrichmentStatus = EnrichmentStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Validate artist data."""
        if not self.name or not self.name.strip():
            raise ValueError("Artist name cannot be empty")

    @property
    def external_ids(self) -> dict[str, str]:
        """External ids that are set, keyed by column name."""
        ids = {
            "musicbrainz_id": self.musicbrainz_id,
            "discogs_id": self.discogs_id,
            "spotify_id": self.spotify_id,
        }
        return {key: value for key, value in ids.items() if value}


@dataclass
class AlbumArtistCredit:
    """An artist credited on an album."""

    artist_id: str
    name: str
    role: ArtistRole = ArtistRole.PRIMARY
    position: int = 0


@dataclass
class Album:
    """Canonical album record.

    Created once by the resolver, afterwards only mutated by enrichment jobs.
    """

    id: str
    title: str
    musicbrainz_id: str | None = None
    discogs_id: str | None = None
    spotify_id: str | None = None
    deezer_id: str | None = None
    release_date: date | None = None
    release_type: str | None = None
    track_count: int | None = None
    cover_art_url: str | None = None
    source: RecordSource = RecordSource.USER_SUBMITTED
    data_quality: DataQuality = DataQuality.LOW
    enrichment_status: EnrichmentStatus = EnrichmentStatus.PENDING
    artists: list[AlbumArtistCredit] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Validate album data."""
        if not self.title or not self.title.strip():
            raise ValueError("Album title cannot be empty")
        if self.track_count is not None and self.track_count < 0:
            raise ValueError("Album track_count cannot be negative")

    @property
    def release_year(self) -> int | None:
        return self.release_date.year if self.release_date else None

    @property
    def primary_artist_name(self) -> str | None:
        primaries = [a for a in self.artists if a.role == ArtistRole.PRIMARY]
        credits = sorted(primaries or self.artists, key=lambda a: a.position)
        return credits[0].name if credits else None

    @property
    def external_ids(self) -> dict[str, str]:
        """External ids that are set, keyed by column name."""
        ids = {
            "musicbrainz_id": self.musicbrainz_id,
            "spotify_id": self.spotify_id,
            "deezer_id": self.deezer_id,
            "discogs_id": self.discogs_id,
        }
        return {key: value for key, value in ids.items() if value}


@dataclass
class Collection:
    """A user-owned album collection."""

    id: str
    user_id: str
    name: str
    is_public: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class CollectionMembership:
    """An album inside a collection. Unique per (collection, album)."""

    id: str
    collection_id: str
    album_id: str
    personal_rating: int | None = None
    personal_notes: str | None = None
    position: int = 0
    added_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Validate membership data."""
        if self.personal_rating is not None and not 1 <= self.personal_rating <= 10:
            raise ValueError("personal_rating must be between 1 and 10")


# Hey future me - callers pass WHO is acting explicitly. Nothing in this package reads
# ambient request state (no "current user" globals, no session lookups).
@dataclass(frozen=True)
class CallerContext:
    """Who triggered an operation."""

    caller: str  # requester tag, e.g. "graphql:addAlbumToCollection"
    user_id: str | None = None
    request_id: str | None = None

    @classmethod
    def system(cls, caller: str) -> "CallerContext":
        return cls(caller=caller)


# =============================================================================
# Provenance
# =============================================================================


class ProvenanceCategory(str, Enum):
    """What kind of event a provenance record describes."""

    USER_ACTION = "USER_ACTION"
    CREATED = "CREATED"
    ENRICHED = "ENRICHED"
    CORRECTED = "CORRECTED"
    CACHED = "CACHED"
    FAILED = "FAILED"


class ProvenanceStatus(str, Enum):
    """Outcome recorded on a provenance record."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    NO_DATA_AVAILABLE = "NO_DATA_AVAILABLE"
    SKIPPED = "SKIPPED"


@dataclass
class ProvenanceEntry:
    """Input for one provenance log line.

    job_id / root_job_id / is_root_job are filled in by the logger when left
    empty: an entry without a parent is a root and its own root.
    """

    entity_type: EntityType
    entity_id: str
    operation: str
    sources: list[str] = field(default_factory=list)
    status: ProvenanceStatus = ProvenanceStatus.SUCCESS
    category: ProvenanceCategory | None = None
    job_id: str | None = None
    parent_job_id: str | None = None
    root_job_id: str | None = None
    is_root_job: bool | None = None
    fields_enriched: list[str] = field(default_factory=list)
    data_quality_before: DataQuality | None = None
    data_quality_after: DataQuality | None = None
    reason: str | None = None
    error_message: str | None = None
    retry_count: int = 0
    user_id: str | None = None
    triggered_by: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProvenanceRecord:
    """Immutable stored provenance log line."""

    id: str
    entity_type: EntityType
    entity_id: str
    operation: str
    category: ProvenanceCategory
    sources: tuple[str, ...]
    status: ProvenanceStatus
    job_id: str
    parent_job_id: str | None
    root_job_id: str
    is_root_job: bool
    created_at: datetime
    fields_enriched: tuple[str, ...] = ()
    data_quality_before: DataQuality | None = None
    data_quality_after: DataQuality | None = None
    reason: str | None = None
    error_message: str | None = None
    retry_count: int = 0
    user_id: str | None = None
    triggered_by: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Best-effort side effects
# =============================================================================


class SideEffectStatus(str, Enum):
    """Outcome of a post-commit side effect."""

    APPLIED = "applied"  # logged / enqueued
    SKIPPED = "skipped"  # nothing to do (e.g. entity already existed)
    FAILED = "failed"  # caught and warned about, never propagated


@dataclass(frozen=True)
class SideEffectOutcome:
    """Result of one best-effort side effect (provenance log, job enqueue)."""

    kind: str
    status: SideEffectStatus
    reason: str | None = None
    reference: str | None = None  # log job id or queue job id

    @classmethod
    def applied(cls, kind: str, reference: str | None = None) -> "SideEffectOutcome":
        return cls(kind=kind, status=SideEffectStatus.APPLIED, reference=reference)

    @classmethod
    def skipped(cls, kind: str, reason: str) -> "SideEffectOutcome":
        return cls(kind=kind, status=SideEffectStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, kind: str, reason: str) -> "SideEffectOutcome":
        return cls(kind=kind, status=SideEffectStatus.FAILED, reason=reason)

    @property
    def ok(self) -> bool:
        return self.status != SideEffectStatus.FAILED


# =============================================================================
# Daily challenge
# =============================================================================


@dataclass
class DailyChallenge:
    """One challenge per normalized UTC date."""

    id: str
    date: datetime  # UTC midnight
    album_id: str
    max_attempts: int = 6
    total_plays: int = 0
    total_wins: int = 0
    avg_attempts: float | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class ChallengeAlbumSummary:
    """Answer album details. Internal use only."""

    id: str
    title: str
    cover_art_url: str | None = None
    artists: list[AlbumArtistCredit] = field(default_factory=list)


@dataclass
class DailyChallengeWithAlbum:
    """Challenge plus its answer album. Never hand this to clients."""

    challenge: DailyChallenge
    album: ChallengeAlbumSummary


@dataclass(frozen=True)
class DailyChallengeInfo:
    """Public challenge info. Deliberately has no album id - that's the answer!"""

    id: str
    date: datetime
    max_attempts: int
    total_plays: int
    total_wins: int
    avg_attempts: float | None


@dataclass(frozen=True)
class CuratedCandidate:
    """An album in the curated daily rotation."""

    id: str
    album_id: str
    sequence: int


__all__ = [
    "Album",
    "AlbumArtistCredit",
    "Artist",
    "ArtistRole",
    "CallerContext",
    "ChallengeAlbumSummary",
    "Collection",
    "CollectionMembership",
    "CuratedCandidate",
    "DailyChallenge",
    "DailyChallengeInfo",
    "DailyChallengeWithAlbum",
    "DataQuality",
    "DedupMethod",
    "EnrichmentStatus",
    "EntityType",
    "ProvenanceCategory",
    "ProvenanceEntry",
    "ProvenanceRecord",
    "ProvenanceStatus",
    "RecordSource",
    "SideEffectOutcome",
    "SideEffectStatus",
]
