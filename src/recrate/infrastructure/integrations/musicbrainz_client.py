"""MusicBrainz metadata fetcher (identity scheme: UUID MBIDs)."""

import logging
from datetime import date
from typing import Any

import httpx

from recrate.config import MusicBrainzSettings
from recrate.domain.dtos import AlbumSnapshot, ArtistCredit, ArtistSnapshot
from recrate.domain.entities import ArtistRole, RecordSource
from recrate.domain.ports import IMetadataFetcher
from recrate.domain.value_objects import IdSource
from recrate.infrastructure.integrations.http_errors import send

logger = logging.getLogger(__name__)

SOURCE = "musicbrainz"
COVER_ART_URL = "https://coverartarchive.org/release/{mbid}/front"


def parse_partial_date(value: str | None) -> date | None:
    """Parse MusicBrainz dates: "1997", "1997-06" or "1997-06-16"."""
    if not value:
        return None
    parts = value.split("-")
    try:
        year = int(parts[0])
        month = int(parts[1]) if len(parts) > 1 else 1
        day = int(parts[2]) if len(parts) > 2 else 1
        return date(year, month, day)
    except (ValueError, IndexError):
        logger.debug("Ignoring unparseable MusicBrainz date %r", value)
        return None


def build_user_agent(settings: MusicBrainzSettings) -> str:
    # format matters: "AppName/Version ( contact )" - MusicBrainz rejects anything else
    return f"{settings.app_name}/{settings.app_version} ( {settings.contact} )"


class MusicBrainzClient(IMetadataFetcher):
    """Fetches releases and artists from the MusicBrainz web service.

    Hey future me - the httpx.AsyncClient is INJECTED and owned by the container
    (infrastructure/lifecycle.py), not created lazily here. Tests pass a client with
    httpx.MockTransport. MusicBrainz allows ~1 req/sec: throttling belongs to the
    enrichment workers that call this in bulk, not to one-off resolutions.
    """

    source = IdSource.MUSICBRAINZ

    def __init__(self, client: httpx.AsyncClient) -> None:
        """
        Initialize MusicBrainz client.

        Args:
            client: HTTP client with base_url, User-Agent and timeout configured
        """
        self._client = client

    @classmethod
    def create_http_client(cls, settings: MusicBrainzSettings) -> httpx.AsyncClient:
        """Build the HTTP client the way MusicBrainz expects it."""
        return httpx.AsyncClient(
            base_url=settings.base_url,
            headers={
                "User-Agent": build_user_agent(settings),
                "Accept": "application/json",
            },
            timeout=settings.timeout,
        )

    async def fetch_album(self, external_id: str) -> AlbumSnapshot:
        """Fetch a release by MBID.

        Raises:
            NotFoundUpstreamError: Unknown or malformed MBID
            TransientFetchError: Network error, timeout, 429 or 5xx
        """
        data = await send(
            self._client,
            SOURCE,
            external_id,
            f"/release/{external_id}",
            params={"fmt": "json", "inc": "artist-credits+release-groups+media"},
        )
        return self._release_to_snapshot(external_id, data)

    async def fetch_artist(self, external_id: str) -> ArtistSnapshot:
        """Fetch an artist by MBID."""
        data = await send(
            self._client,
            SOURCE,
            external_id,
            f"/artist/{external_id}",
            params={"fmt": "json"},
        )
        return ArtistSnapshot(
            name=data.get("name") or "",
            musicbrainz_id=data.get("id") or external_id,
            country_code=data.get("country"),
            source=RecordSource.MUSICBRAINZ,
        )

    # Yo future me, "release" in MusicBrainz is one specific pressing of an album.
    # The album type lives on the release-group, the track count on the media.
    @staticmethod
    def _release_to_snapshot(external_id: str, data: dict[str, Any]) -> AlbumSnapshot:
        credits: list[ArtistCredit] = []
        for position, credit in enumerate(data.get("artist-credit") or []):
            artist = credit.get("artist") or {}
            name = credit.get("name") or artist.get("name")
            if not name:
                continue
            credits.append(
                ArtistCredit(
                    name=name,
                    role=ArtistRole.PRIMARY if position == 0 else ArtistRole.FEATURED,
                    position=position,
                    musicbrainz_id=artist.get("id"),
                )
            )

        media = data.get("media") or []
        track_count = sum(m.get("track-count") or 0 for m in media) if media else None

        cover_art_url = None
        if (data.get("cover-art-archive") or {}).get("front"):
            cover_art_url = COVER_ART_URL.format(mbid=external_id)

        release_group = data.get("release-group") or {}
        return AlbumSnapshot(
            title=data.get("title") or "",
            artists=credits,
            release_date=parse_partial_date(data.get("date")),
            release_type=(release_group.get("primary-type") or "").upper() or None,
            track_count=track_count,
            cover_art_url=cover_art_url,
            musicbrainz_id=data.get("id") or external_id,
            source=RecordSource.MUSICBRAINZ,
        )
