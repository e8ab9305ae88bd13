"""Persistence layer: database session management, ORM models and repositories."""

from .database import Database
from .idempotent import Resolution, is_unique_violation, resolve_or_create
from .models import Base
from .repositories import (
    AlbumRepository,
    ArtistRepository,
    CollectionRepository,
    CuratedChallengeRepository,
    DailyChallengeRepository,
    ProvenanceLogRepository,
)

__all__ = [
    "AlbumRepository",
    "ArtistRepository",
    "Base",
    "CollectionRepository",
    "CuratedChallengeRepository",
    "DailyChallengeRepository",
    "Database",
    "ProvenanceLogRepository",
    "Resolution",
    "is_unique_violation",
    "resolve_or_create",
]
