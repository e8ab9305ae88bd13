"""Enrichment Dispatcher - queue background enrichment for NEWLY created entities.

Hey future me - two rules here, both non-negotiable:

1. Only call this AFTER the resolution transaction committed. A queue outage must
   never roll back an album that was already created / added to a collection.
2. Each enqueue is isolated. If the cover-art enqueue blows up, the metadata check
   still gets queued, and nothing is raised to the caller. The entity just stays
   un-enriched until something re-queues it.

Existing entities (created=False) get NO jobs - they were enriched (or queued)
when they were first created.

Jobs per new entity (lower priority value = served sooner):
    Album:  check:album-enrichment  (priority 5,  3 attempts)
            cache:album-cover-art   (priority 10, 3 attempts, exponential backoff)
    Artist: check:artist-enrichment (priority 5,  3 attempts)
"""

import logging
from dataclasses import dataclass
from typing import Any

from recrate.application.workers.job_queue import JobType
from recrate.config import QueueSettings
from recrate.domain.dtos import BackoffPolicy, BackoffType, JobOptions
from recrate.domain.entities import Album, Artist, CallerContext, SideEffectOutcome
from recrate.domain.ports import IJobQueue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _PlannedJob:
    job_type: JobType
    payload: dict[str, Any]
    options: JobOptions


def _priority_label(priority: int) -> str:
    return "high" if priority <= 5 else "low"


class EnrichmentDispatcher:
    """Turns "entity was created" into prioritized background jobs."""

    def __init__(self, queue: IJobQueue, settings: QueueSettings) -> None:
        self._queue = queue
        self._settings = settings

    def _plan_album(
        self, album: Album, context: CallerContext, parent_job_id: str | None
    ) -> list[_PlannedJob]:
        request_id = context.request_id or f"album-created-{album.id}"
        check_priority = self._settings.metadata_check_priority
        cover_priority = self._settings.artwork_cache_priority
        return [
            _PlannedJob(
                job_type=JobType.CHECK_ALBUM_ENRICHMENT,
                payload={
                    "album_id": album.id,
                    "source": context.caller,
                    "priority": _priority_label(check_priority),
                    "request_id": request_id,
                    "parent_job_id": parent_job_id,
                },
                options=JobOptions(
                    priority=check_priority,
                    attempts=self._settings.default_attempts,
                    request_id=request_id,
                    parent_job_id=parent_job_id,
                ),
            ),
            _PlannedJob(
                job_type=JobType.CACHE_ALBUM_COVER_ART,
                payload={
                    "album_id": album.id,
                    "source": context.caller,
                    "priority": _priority_label(cover_priority),
                    "request_id": f"cache-cover-{request_id}",
                    "parent_job_id": parent_job_id,
                },
                options=JobOptions(
                    priority=cover_priority,
                    attempts=self._settings.default_attempts,
                    # cover art hosts are slow and flaky, back off between retries
                    backoff=BackoffPolicy(
                        type=BackoffType.EXPONENTIAL,
                        delay_ms=self._settings.backoff_delay_ms,
                    ),
                    request_id=f"cache-cover-{request_id}",
                    parent_job_id=parent_job_id,
                ),
            ),
        ]

    def _plan_artist(
        self, artist: Artist, context: CallerContext, parent_job_id: str | None
    ) -> list[_PlannedJob]:
        base = context.request_id or "artist-created"
        request_id = f"{base}-artist-{artist.id}"
        priority = self._settings.artist_check_priority
        return [
            _PlannedJob(
                job_type=JobType.CHECK_ARTIST_ENRICHMENT,
                payload={
                    "artist_id": artist.id,
                    "source": context.caller,
                    "priority": _priority_label(priority),
                    "request_id": request_id,
                    "parent_job_id": parent_job_id,
                },
                options=JobOptions(
                    priority=priority,
                    attempts=self._settings.default_attempts,
                    request_id=request_id,
                    parent_job_id=parent_job_id,
                ),
            )
        ]

    async def _enqueue(self, job: _PlannedJob) -> SideEffectOutcome:
        try:
            job_id = await self._queue.enqueue(
                job.job_type.value, job.payload, job.options
            )
        # Hey future me - intentionally broad. The entity is committed; a dead queue
        # only means "not enriched yet". Warn and move on to the next job.
        except Exception as e:
            logger.warning(
                "Failed to enqueue %s (request %s)",
                job.job_type.value,
                job.options.request_id,
                exc_info=True,
            )
            return SideEffectOutcome.failed(
                job.job_type.value, f"{type(e).__name__}: {e}"
            )

        logger.info(
            "Queued %s (job %s, priority %d, request %s)",
            job.job_type.value,
            job_id,
            job.options.priority,
            job.options.request_id,
        )
        return SideEffectOutcome.applied(job.job_type.value, reference=job_id)

    async def dispatch_if_created(
        self,
        entity: Album | Artist,
        created: bool,
        context: CallerContext,
        parent_job_id: str | None = None,
    ) -> list[SideEffectOutcome]:
        """Enqueue enrichment jobs for a newly created entity.

        Args:
            entity: Album or Artist that was just resolved
            created: Whether the resolution created it. False -> no-op.
            context: Requester tag + request id (job request ids derive from it)
            parent_job_id: Provenance root job of the triggering user action

        Returns:
            One outcome per planned job, or a single SKIPPED outcome. Never raises.
        """
        if not created:
            return [SideEffectOutcome.skipped("enrichment", "entity already existed")]

        if isinstance(entity, Album):
            plan = self._plan_album(entity, context, parent_job_id)
        elif isinstance(entity, Artist):
            plan = self._plan_artist(entity, context, parent_job_id)
        else:
            raise TypeError(f"Cannot dispatch enrichment for {type(entity).__name__}")

        return [await self._enqueue(job) for job in plan]
