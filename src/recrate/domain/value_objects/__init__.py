"""Domain value objects."""

from recrate.domain.value_objects.identifiers import (
    IdSource,
    album_natural_key,
    artist_natural_key,
    classify_identifier,
    new_entity_id,
    normalize_key_part,
    normalize_mbid,
)

__all__ = [
    "IdSource",
    "album_natural_key",
    "artist_natural_key",
    "classify_identifier",
    "new_entity_id",
    "normalize_key_part",
    "normalize_mbid",
]
