"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any

from recrate.domain.dtos import AlbumSnapshot, ArtistSnapshot, JobOptions
from recrate.domain.value_objects import IdSource


# Hey future me - one fetcher per external identity scheme (MusicBrainz = UUIDs,
# Discogs = numeric). Unlike most clients we DON'T return None on 404: the resolver
# must know "doesn't exist anywhere" (NotFoundUpstreamError) apart from "couldn't
# reach it right now" (TransientFetchError). Never swallow either one here.
class IMetadataFetcher(ABC):
    """Port for an external metadata source keyed by one identity scheme."""

    source: IdSource

    @abstractmethod
    async def fetch_album(self, external_id: str) -> AlbumSnapshot:
        """
        Fetch a normalized album snapshot.

        Args:
            external_id: Id in this fetcher's scheme

        Returns:
            Normalized album snapshot

        Raises:
            NotFoundUpstreamError: Source has no such album
            TransientFetchError: Network error, timeout, rate limit or 5xx
        """
        pass

    @abstractmethod
    async def fetch_artist(self, external_id: str) -> ArtistSnapshot:
        """
        Fetch a normalized artist snapshot.

        Raises:
            NotFoundUpstreamError: Source has no such artist
            TransientFetchError: Network error, timeout, rate limit or 5xx
        """
        pass


class IJobQueue(ABC):
    """Port for the background job queue (workers are someone else's problem)."""

    @abstractmethod
    async def enqueue(
        self, job_type: str, payload: dict[str, Any], options: JobOptions
    ) -> str:
        """
        Enqueue a job.

        Args:
            job_type: Job type name (e.g. "check:album-enrichment")
            payload: JSON-serializable job data
            options: Priority (lower = sooner), attempts, backoff, tracing ids

        Returns:
            Job handle (id)
        """
        pass


class ICuratedCatalog(ABC):
    """Port for the daily challenge rotation data (curated list + admin pins)."""

    @abstractmethod
    async def get_pinned_album(self, day: date) -> str | None:
        """Album id pinned for this UTC day, or None."""
        pass

    @abstractmethod
    async def count_curated(self) -> int:
        """Number of albums in the curated rotation."""
        pass

    @abstractmethod
    async def get_curated_at(self, sequence: int) -> str | None:
        """Album id at this rotation position, or None when there's a gap."""
        pass


__all__ = [
    "ICuratedCatalog",
    "IJobQueue",
    "IMetadataFetcher",
]
