"""Application services - entity resolution, provenance and enrichment dispatch."""

from recrate.application.services.album_resolver import AlbumResolution, AlbumResolver
from recrate.application.services.artist_resolver import (
    ArtistResolution,
    ArtistResolver,
)
from recrate.application.services.daily_challenge_service import DailyChallengeService
from recrate.application.services.daily_selection import (
    DailySelection,
    select_album_for_date,
    to_utc_midnight,
)
from recrate.application.services.enrichment_dispatcher import EnrichmentDispatcher

# Hey future me - IdentityResolutionService is the entry point for "resolve this id",
# AlbumResolver/ArtistResolver are the in-transaction building blocks it uses.
from recrate.application.services.identity_resolution_service import (
    AlbumResolutionResult,
    ArtistResolutionResult,
    IdentityResolutionService,
)
from recrate.application.services.provenance_logger import (
    ProvenanceLogger,
    infer_category,
)

__all__ = [
    "AlbumResolution",
    "AlbumResolutionResult",
    "AlbumResolver",
    "ArtistResolution",
    "ArtistResolutionResult",
    "ArtistResolver",
    "DailyChallengeService",
    "DailySelection",
    "EnrichmentDispatcher",
    "IdentityResolutionService",
    "ProvenanceLogger",
    "infer_category",
    "select_album_for_date",
    "to_utc_midnight",
]
