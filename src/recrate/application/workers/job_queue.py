"""Persistent Job Queue - database-backed storage for enrichment jobs.

Hey future me - this is only the PRODUCER side!

The enrichment dispatcher enqueues jobs here after a resolution transaction has
committed. Workers that actually fetch metadata / cache artwork live outside this
package; they poll list_pending() which returns jobs in serving order:

    priority ASC (lower value = served sooner), then created_at ASC

enqueue() uses its OWN session and commits immediately. It must never share the
caller's session, otherwise a queue failure could roll back the business write.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recrate.domain.dtos import BackoffPolicy, BackoffType, JobOptions
from recrate.domain.ports import IJobQueue
from recrate.infrastructure.persistence.models import BackgroundJobModel, ensure_utc_aware

logger = logging.getLogger(__name__)


class JobType(str, Enum):
    """Enrichment job types."""

    CHECK_ALBUM_ENRICHMENT = "check:album-enrichment"
    CHECK_ARTIST_ENRICHMENT = "check:artist-enrichment"
    CACHE_ALBUM_COVER_ART = "cache:album-cover-art"


class JobStatus(str, Enum):
    """Job lifecycle status. Only PENDING is written here."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class QueuedJob:
    """A stored job, as a worker would see it."""

    id: str
    job_type: str
    status: JobStatus
    priority: int
    payload: dict[str, Any]
    max_retries: int
    retries: int = 0
    backoff: BackoffPolicy | None = None
    request_id: str | None = None
    parent_job_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class PersistentJobQueue(IJobQueue):
    """Database-backed job queue."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize persistent job queue.

        Args:
            session_factory: Factory for creating DB sessions
        """
        self._session_factory = session_factory

    async def enqueue(
        self,
        job_type: str,
        payload: dict[str, Any],
        options: JobOptions,
    ) -> str:
        """Add a job to the queue (committed immediately).

        Args:
            job_type: Type of job (JobType value or any custom string)
            payload: Job data (will be JSON serialized)
            options: Priority, attempts, backoff and tracing ids

        Returns:
            Job ID
        """
        job_id = str(uuid.uuid4())
        job_type_value = job_type.value if isinstance(job_type, JobType) else job_type

        async with self._session_factory() as session:
            session.add(
                BackgroundJobModel(
                    id=job_id,
                    job_type=job_type_value,
                    status=JobStatus.PENDING.value,
                    priority=options.priority,
                    payload=json.dumps(payload),
                    retries=0,
                    max_retries=options.attempts,
                    backoff_type=options.backoff.type.value if options.backoff else None,
                    backoff_delay_ms=options.backoff.delay_ms if options.backoff else None,
                    request_id=options.request_id,
                    parent_job_id=options.parent_job_id,
                )
            )
            await session.commit()

        logger.debug(
            "Enqueued job %s (%s) with priority %d", job_id, job_type_value, options.priority
        )
        return job_id

    @staticmethod
    def _model_to_job(model: BackgroundJobModel) -> QueuedJob:
        backoff = None
        if model.backoff_type:
            backoff = BackoffPolicy(
                type=BackoffType(model.backoff_type),
                delay_ms=model.backoff_delay_ms or 0,
            )
        return QueuedJob(
            id=model.id,
            job_type=model.job_type,
            status=JobStatus(model.status),
            priority=model.priority,
            payload=json.loads(model.payload),
            max_retries=model.max_retries,
            retries=model.retries,
            backoff=backoff,
            request_id=model.request_id,
            parent_job_id=model.parent_job_id,
            created_at=ensure_utc_aware(model.created_at),
        )

    async def get_job(self, job_id: str) -> QueuedJob | None:
        """Get a job by id."""
        async with self._session_factory() as session:
            model = await session.get(BackgroundJobModel, job_id)
            return self._model_to_job(model) if model else None

    async def list_pending(
        self, job_type: str | None = None, limit: int = 100
    ) -> list[QueuedJob]:
        """Pending jobs in serving order (lowest priority value first, then oldest)."""
        stmt = select(BackgroundJobModel).where(
            BackgroundJobModel.status == JobStatus.PENDING.value
        )
        if job_type is not None:
            stmt = stmt.where(BackgroundJobModel.job_type == job_type)
        stmt = stmt.order_by(
            BackgroundJobModel.priority.asc(), BackgroundJobModel.created_at.asc()
        ).limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [self._model_to_job(m) for m in result.scalars().all()]
