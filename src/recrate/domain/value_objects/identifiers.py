"""Identifier schemes, classification and local id generation.

An album or artist can reach us tagged by one of three identity schemes:

- ``local``: our own database id (cuid-style, e.g. ``cmabc123...``)
- ``musicbrainz``: 36-character hyphenated UUID (MBID)
- ``discogs``: all-digit catalog id

``classify_identifier`` is total: every string maps to exactly one source and it
never raises. Rules are order-sensitive; anything unrecognized is ``local``.
"""

import re
import secrets
import time
from enum import Enum

_MBID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_NUMERIC_PATTERN = re.compile(r"^[0-9]+$")

LOCAL_ID_LENGTH = 25

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class IdSource(str, Enum):
    """Identity scheme an identifier belongs to."""

    LOCAL = "local"
    MUSICBRAINZ = "musicbrainz"  # scheme A
    DISCOGS = "discogs"  # scheme B


def classify_identifier(value: str) -> IdSource:
    """Map an opaque identifier to its source scheme.

    Examples:
        >>> classify_identifier("5c1d2e3f-aaaa-bbbb-cccc-0123456789ab")
        <IdSource.MUSICBRAINZ: 'musicbrainz'>
        >>> classify_identifier("123456")
        <IdSource.DISCOGS: 'discogs'>
        >>> classify_identifier("cmabc123")
        <IdSource.LOCAL: 'local'>
    """
    if not isinstance(value, str):
        return IdSource.LOCAL
    candidate = value.strip()
    if _MBID_PATTERN.match(candidate):
        return IdSource.MUSICBRAINZ
    if _NUMERIC_PATTERN.match(candidate):
        return IdSource.DISCOGS
    return IdSource.LOCAL


def normalize_mbid(value: str | None) -> str | None:
    """Canonical (stripped, lower-case) form of a MusicBrainz id.

    Hey future me - MBIDs classify case-insensitively, so every store and lookup
    of a musicbrainz_id goes through here. Otherwise "B139..." and "b139..." end
    up as two rows for one release.
    """
    if not value:
        return value
    return value.strip().lower()


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits: list[str] = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def new_entity_id() -> str:
    """Generate a local entity id.

    Shape: ``c`` + base36 millisecond timestamp + base36 randomness, 25 chars.
    Always lowercase alphanumeric, so it can never look like an MBID or a
    numeric catalog id.
    """
    timestamp = _to_base36(int(time.time() * 1000))
    random_part = "".join(secrets.choice(_BASE36) for _ in range(LOCAL_ID_LENGTH))
    return f"c{timestamp}{random_part}"[:LOCAL_ID_LENGTH]


def normalize_key_part(value: str | None) -> str:
    """Case-fold and collapse whitespace for natural-key comparison."""
    if not value:
        return ""
    return " ".join(value.casefold().split())


def album_natural_key(
    title: str, primary_artist: str | None, release_year: int | None
) -> str:
    """Natural key for albums created without any external id."""
    year = str(release_year) if release_year is not None else ""
    return "::".join(
        (normalize_key_part(title), normalize_key_part(primary_artist), year)
    )


def artist_natural_key(name: str) -> str:
    """Natural key for artists created without any external id."""
    return normalize_key_part(name)
