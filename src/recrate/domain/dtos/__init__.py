"""Data transfer objects.

Snapshots are normalized metadata records. External fetchers return them, and
the resolvers use them as creation input, so a MusicBrainz release and a user
submission go through the exact same create path.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from recrate.domain.entities import ArtistRole, RecordSource


@dataclass
class ArtistSnapshot:
    """Normalized artist metadata."""

    name: str
    musicbrainz_id: str | None = None
    discogs_id: str | None = None
    spotify_id: str | None = None
    image_url: str | None = None
    country_code: str | None = None
    source: RecordSource = RecordSource.USER_SUBMITTED

    @property
    def external_ids(self) -> dict[str, str]:
        ids = {
            "musicbrainz_id": self.musicbrainz_id,
            "spotify_id": self.spotify_id,
            "discogs_id": self.discogs_id,
        }
        return {key: value for key, value in ids.items() if value}


@dataclass
class ArtistCredit:
    """Artist credited on an album snapshot.

    artist_id short-circuits resolution when the caller already knows the local id.
    """

    name: str
    role: ArtistRole = ArtistRole.PRIMARY
    position: int = 0
    artist_id: str | None = None
    musicbrainz_id: str | None = None
    discogs_id: str | None = None
    spotify_id: str | None = None

    def to_snapshot(self, source: RecordSource) -> ArtistSnapshot:
        return ArtistSnapshot(
            name=self.name,
            musicbrainz_id=self.musicbrainz_id,
            discogs_id=self.discogs_id,
            spotify_id=self.spotify_id,
            source=source,
        )


@dataclass
class AlbumSnapshot:
    """Normalized album metadata."""

    title: str
    artists: list[ArtistCredit] = field(default_factory=list)
    release_date: date | None = None
    release_type: str | None = None
    track_count: int | None = None
    cover_art_url: str | None = None
    musicbrainz_id: str | None = None
    discogs_id: str | None = None
    spotify_id: str | None = None
    deezer_id: str | None = None
    source: RecordSource = RecordSource.USER_SUBMITTED

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
        """Set external ids in dedup priority order."""
        ids = {
            "musicbrainz_id": self.musicbrainz_id,
            "spotify_id": self.spotify_id,
            "deezer_id": self.deezer_id,
            "discogs_id": self.discogs_id,
        }
        return {key: value for key, value in ids.items() if value}


# =============================================================================
# Job queue contract
# =============================================================================


class BackoffType(str, Enum):
    """Retry delay strategy."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class BackoffPolicy:
    """Delay between retries. Exponential: delay_ms * 2 ** (attempt - 1)."""

    type: BackoffType = BackoffType.EXPONENTIAL
    delay_ms: int = 2000

    def delay_for_attempt(self, attempt: int) -> int:
        """Delay in ms before retry number ``attempt`` (1-based)."""
        if attempt < 1:
            return 0
        if self.type == BackoffType.FIXED:
            return self.delay_ms
        return self.delay_ms * 2 ** (attempt - 1)


@dataclass(frozen=True)
class JobOptions:
    """Enqueue options. Lower priority value = served sooner."""

    priority: int = 0
    attempts: int = 3
    backoff: BackoffPolicy | None = None
    request_id: str | None = None
    parent_job_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority": self.priority,
            "attempts": self.attempts,
            "backoff": (
                {"type": self.backoff.type.value, "delay_ms": self.backoff.delay_ms}
                if self.backoff
                else None
            ),
            "request_id": self.request_id,
            "parent_job_id": self.parent_job_id,
        }


__all__ = [
    "AlbumSnapshot",
    "ArtistCredit",
    "ArtistSnapshot",
    "BackoffPolicy",
    "BackoffType",
    "JobOptions",
]
