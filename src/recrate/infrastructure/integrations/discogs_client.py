"""Discogs metadata fetcher (identity scheme: numeric catalog ids)."""

import logging
import re
from datetime import date
from typing import Any

import httpx

from recrate.config import DiscogsSettings
from recrate.domain.dtos import AlbumSnapshot, ArtistCredit, ArtistSnapshot
from recrate.domain.entities import ArtistRole, RecordSource
from recrate.domain.ports import IMetadataFetcher
from recrate.domain.value_objects import IdSource
from recrate.infrastructure.integrations.http_errors import send

logger = logging.getLogger(__name__)

SOURCE = "discogs"

# Discogs disambiguates same-named artists with a numeric suffix: "Nirvana (2)"
_NAME_SUFFIX = re.compile(r"\s+\(\d+\)$")


def clean_artist_name(name: str) -> str:
    return _NAME_SUFFIX.sub("", name.strip())


def _primary_image(images: list[dict[str, Any]] | None) -> str | None:
    if not images:
        return None
    for image in images:
        if image.get("type") == "primary" and image.get("uri"):
            return str(image["uri"])
    return images[0].get("uri")


class DiscogsClient(IMetadataFetcher):
    """Fetches releases and artists from the Discogs API.

    The httpx.AsyncClient is injected (see create_http_client) and owned by the
    process container.
    """

    source = IdSource.DISCOGS

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def create_http_client(cls, settings: DiscogsSettings) -> httpx.AsyncClient:
        headers = {"User-Agent": settings.user_agent, "Accept": "application/json"}
        # Hey future me - anonymous requests work but get a much lower rate limit
        if settings.token:
            headers["Authorization"] = f"Discogs token={settings.token}"
        return httpx.AsyncClient(
            base_url=settings.base_url, headers=headers, timeout=settings.timeout
        )

    async def fetch_album(self, external_id: str) -> AlbumSnapshot:
        """Fetch a release by Discogs id.

        Raises:
            NotFoundUpstreamError: Unknown release id
            TransientFetchError: Network error, timeout, 429 or 5xx
        """
        data = await send(self._client, SOURCE, external_id, f"/releases/{external_id}")

        credits = [
            ArtistCredit(
                name=clean_artist_name(artist["name"]),
                role=ArtistRole.PRIMARY if position == 0 else ArtistRole.FEATURED,
                position=position,
                discogs_id=str(artist["id"]) if artist.get("id") else None,
            )
            for position, artist in enumerate(data.get("artists") or [])
            if artist.get("name")
        ]

        year = data.get("year")
        formats = data.get("formats") or []
        release_type = None
        if formats:
            descriptions = formats[0].get("descriptions") or []
            release_type = (descriptions[0] if descriptions else formats[0].get("name"))
            release_type = release_type.upper() if release_type else None

        tracklist = [t for t in data.get("tracklist") or [] if t.get("type_") == "track"]

        return AlbumSnapshot(
            title=data.get("title") or "",
            artists=credits,
            release_date=date(int(year), 1, 1) if year else None,
            release_type=release_type,
            track_count=len(tracklist) or None,
            cover_art_url=_primary_image(data.get("images")),
            discogs_id=str(data.get("id") or external_id),
            source=RecordSource.DISCOGS,
        )

    async def fetch_artist(self, external_id: str) -> ArtistSnapshot:
        """Fetch an artist by Discogs id."""
        data = await send(self._client, SOURCE, external_id, f"/artists/{external_id}")
        return ArtistSnapshot(
            name=clean_artist_name(data.get("name") or ""),
            discogs_id=str(data.get("id") or external_id),
            image_url=_primary_image(data.get("images")),
            source=RecordSource.DISCOGS,
        )
