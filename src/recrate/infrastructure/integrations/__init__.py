"""External metadata integrations (one fetcher per identity scheme)."""

from recrate.infrastructure.integrations.discogs_client import DiscogsClient
from recrate.infrastructure.integrations.musicbrainz_client import MusicBrainzClient

__all__ = [
    "DiscogsClient",
    "MusicBrainzClient",
]
