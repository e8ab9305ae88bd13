"""Process bootstrap: builds and tears down every long-lived collaborator.

Hey future me - there is NO module-level client or engine anywhere in recrate. Everything
that holds a connection (the SQLAlchemy engine, the two httpx clients) is created here,
handed to the services through their constructors, and closed here. Tests can call
build_container() with their own httpx clients (MockTransport) and a tmp SQLite URL.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx

from recrate.application.services import (
    DailyChallengeService,
    EnrichmentDispatcher,
    IdentityResolutionService,
    ProvenanceLogger,
)
from recrate.application.use_cases import AddAlbumToCollectionUseCase
from recrate.application.workers import PersistentJobQueue
from recrate.config import Settings, get_settings
from recrate.domain.exceptions import ConfigurationError
from recrate.domain.value_objects import IdSource
from recrate.infrastructure.integrations import DiscogsClient, MusicBrainzClient
from recrate.infrastructure.observability import configure_logging
from recrate.infrastructure.persistence import Database

logger = logging.getLogger(__name__)


# Hey future me, this validates the SQLite directory BEFORE the engine exists. SQLite needs to
# create -journal/-wal files next to the .db, so a read-only directory only shows up later as a
# cryptic "unable to open database file". We don't pre-create the .db file itself.
def _validate_sqlite_path(settings: Settings) -> None:
    """Ensure the SQLite database directory exists and is writable."""
    db_path = settings.get_sqlite_db_path()
    if db_path is None:
        return

    try:
        if db_path.parent and str(db_path.parent) != ".":
            db_path.parent.mkdir(parents=True, exist_ok=True)
            logger.debug("Ensured SQLite parent directory exists: %s", db_path.parent)
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to create SQLite database directory '{db_path.parent}': {exc}. "
            "Update RECRATE_DATABASE__URL or adjust directory permissions."
        ) from exc

    try:
        test_file = db_path.parent / f".{db_path.stem}_write_test"
        test_file.write_bytes(b"test")
        test_file.unlink()
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to write files in database directory '{db_path.parent}': {exc}. "
            "SQLite requires write permissions to create database and journal files."
        ) from exc


@dataclass
class Container:
    """Every wired collaborator of one recrate process."""

    settings: Settings
    database: Database
    musicbrainz_http: httpx.AsyncClient
    discogs_http: httpx.AsyncClient
    job_queue: PersistentJobQueue
    provenance: ProvenanceLogger
    dispatcher: EnrichmentDispatcher
    identity_resolution: IdentityResolutionService
    daily_challenges: DailyChallengeService
    add_album_to_collection: AddAlbumToCollectionUseCase

    async def aclose(self) -> None:
        """Close HTTP clients and dispose the engine. Safe to call once at shutdown."""
        # Yo, each close is isolated: a failing HTTP close must not leave the engine open
        for name, client in (
            ("musicbrainz", self.musicbrainz_http),
            ("discogs", self.discogs_http),
        ):
            try:
                await client.aclose()
            except Exception as e:
                logger.exception("Error closing %s HTTP client: %s", name, e)
        try:
            await self.database.close()
            logger.info("Database connection closed")
        except Exception as e:
            logger.exception("Error closing database: %s", e)


def build_container(
    settings: Settings,
    *,
    musicbrainz_http: httpx.AsyncClient | None = None,
    discogs_http: httpx.AsyncClient | None = None,
) -> Container:
    """Wire the database, fetchers, queue, provenance and services together.

    Args:
        settings: Application settings
        musicbrainz_http: Pre-built MusicBrainz HTTP client (tests), else built from settings
        discogs_http: Pre-built Discogs HTTP client (tests), else built from settings
    """
    _validate_sqlite_path(settings)
    database = Database(settings)
    logger.info("Database initialized: %s", settings.database.url)

    musicbrainz_http = musicbrainz_http or MusicBrainzClient.create_http_client(
        settings.musicbrainz
    )
    discogs_http = discogs_http or DiscogsClient.create_http_client(settings.discogs)
    fetchers = {
        IdSource.MUSICBRAINZ: MusicBrainzClient(musicbrainz_http),
        IdSource.DISCOGS: DiscogsClient(discogs_http),
    }

    job_queue = PersistentJobQueue(database.session_factory)
    provenance = ProvenanceLogger(database.session_factory)
    dispatcher = EnrichmentDispatcher(job_queue, settings.queue)

    return Container(
        settings=settings,
        database=database,
        musicbrainz_http=musicbrainz_http,
        discogs_http=discogs_http,
        job_queue=job_queue,
        provenance=provenance,
        dispatcher=dispatcher,
        identity_resolution=IdentityResolutionService(
            database, fetchers, provenance, dispatcher
        ),
        daily_challenges=DailyChallengeService(database, settings.daily_challenge),
        add_album_to_collection=AddAlbumToCollectionUseCase(
            database, provenance, dispatcher
        ),
    )


# Listen future me, everything before `yield` is startup, everything after is shutdown, and
# the finally makes sure shutdown runs even when the body raises.
@asynccontextmanager
async def lifespan(settings: Settings | None = None) -> AsyncGenerator[Container, None]:
    """Configure logging, build the container, and close it on exit."""
    settings = settings or get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_format=settings.log_json,
        app_name=settings.app_name,
    )
    logger.info("Starting %s", settings.app_name)

    container = build_container(settings)
    try:
        yield container
    finally:
        logger.info("Shutting down %s", settings.app_name)
        await container.aclose()
