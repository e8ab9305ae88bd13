"""Provenance Logger - immutable audit trail of entity creation and enrichment.

Hey future me - this is an AUDIT TRAIL, not a consistency mechanism!

log() is best-effort: it writes in its own session, strictly AFTER the business
transaction committed, and it never raises. A broken log table must not fail a
user's "add album" request. Instead of exceptions you get a SideEffectOutcome
(APPLIED or FAILED + reason), which is also what the tests assert on.

Job trees:
    collection:album-added   (root, job_id = root_job_id)
      +- album:created       (child, parent = root)
      +- artist:created      (child, parent = root)

An entry without parent_job_id is a root and its own root_job_id.
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recrate.domain.entities import (
    EntityType,
    ProvenanceCategory,
    ProvenanceEntry,
    ProvenanceRecord,
    ProvenanceStatus,
    SideEffectOutcome,
)
from recrate.domain.value_objects import new_entity_id
from recrate.infrastructure.persistence.repositories import ProvenanceLogRepository

logger = logging.getLogger(__name__)

SIDE_EFFECT_KIND = "provenance"


def infer_category(operation: str, status: ProvenanceStatus) -> ProvenanceCategory:
    """Infer a category from the operation name and status.

    FAILURE always wins; otherwise the operation name decides
    (cache -> CACHED, correction -> CORRECTED, enrich -> ENRICHED, else CREATED).
    """
    if status == ProvenanceStatus.FAILURE:
        return ProvenanceCategory.FAILED

    op = operation.lower()
    if "cache" in op:
        return ProvenanceCategory.CACHED
    if "correction" in op:
        return ProvenanceCategory.CORRECTED
    if "enrich" in op:
        return ProvenanceCategory.ENRICHED
    return ProvenanceCategory.CREATED


class ProvenanceLogger:
    """Append-only provenance writer + read queries."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _complete(entry: ProvenanceEntry) -> dict[str, object]:
        """Fill in job id, root flags and category. Returns model column values."""
        job_id = entry.job_id or new_entity_id()
        is_root = (
            entry.is_root_job if entry.is_root_job is not None else not entry.parent_job_id
        )
        root_job_id = entry.root_job_id or (job_id if is_root else entry.parent_job_id)
        category = entry.category or infer_category(entry.operation, entry.status)

        return {
            "entity_type": entry.entity_type.value,
            "entity_id": entry.entity_id,
            "operation": entry.operation,
            "category": category.value,
            "sources": list(entry.sources),
            "status": entry.status.value,
            "job_id": job_id,
            "parent_job_id": entry.parent_job_id,
            "root_job_id": root_job_id,
            "is_root_job": is_root,
            "fields_enriched": list(entry.fields_enriched),
            "data_quality_before": (
                entry.data_quality_before.value if entry.data_quality_before else None
            ),
            "data_quality_after": (
                entry.data_quality_after.value if entry.data_quality_after else None
            ),
            "reason": entry.reason,
            "error_message": entry.error_message,
            "retry_count": entry.retry_count,
            "user_id": entry.user_id,
            "triggered_by": entry.triggered_by,
            "log_metadata": dict(entry.metadata),
        }

    async def log(self, entry: ProvenanceEntry) -> SideEffectOutcome:
        """Write one provenance record. Never raises.

        Returns:
            APPLIED with the job id as reference, or FAILED with the error text
        """
        try:
            fields = self._complete(entry)
            async with self._session_factory() as session:
                record = await ProvenanceLogRepository(session).add(**fields)
                await session.commit()
        # Hey future me - intentionally broad: ANY failure here is a warning, never an
        # error for the caller. The business write is already committed.
        except Exception as e:
            logger.warning(
                "Failed to write provenance %s for %s:%s",
                entry.operation,
                entry.entity_type.value,
                entry.entity_id,
                exc_info=True,
            )
            return SideEffectOutcome.failed(SIDE_EFFECT_KIND, f"{type(e).__name__}: {e}")

        logger.debug(
            "Logged %s for %s:%s - %s%s root:%s",
            record.operation,
            record.entity_type.value,
            record.entity_id,
            record.status.value,
            " [ROOT]" if record.is_root_job else "",
            record.root_job_id,
        )
        return SideEffectOutcome.applied(SIDE_EFFECT_KIND, reference=record.job_id)

    # =========================================================================
    # Read side
    # =========================================================================

    async def get_history(
        self, entity_type: EntityType, entity_id: str, limit: int = 50
    ) -> list[ProvenanceRecord]:
        """Provenance records for an entity, newest first."""
        async with self._session_factory() as session:
            return await ProvenanceLogRepository(session).get_history(
                entity_type, entity_id, limit
            )

    async def get_latest_attempt(
        self, entity_type: EntityType, entity_id: str
    ) -> ProvenanceRecord | None:
        async with self._session_factory() as session:
            return await ProvenanceLogRepository(session).get_latest(
                entity_type, entity_id
            )

    async def has_recent_no_data(
        self, entity_type: EntityType, entity_id: str, within_days: int = 90
    ) -> bool:
        """True if enrichment found nothing within the window (skip re-attempts)."""
        return await self._has_status_since(
            entity_type, entity_id, ProvenanceStatus.NO_DATA_AVAILABLE, within_days
        )

    async def has_recent_failure(
        self, entity_type: EntityType, entity_id: str, within_days: int = 7
    ) -> bool:
        """True if something failed for the entity within the window (cooldown)."""
        return await self._has_status_since(
            entity_type, entity_id, ProvenanceStatus.FAILURE, within_days
        )

    async def _has_status_since(
        self,
        entity_type: EntityType,
        entity_id: str,
        status: ProvenanceStatus,
        within_days: int,
    ) -> bool:
        since = datetime.now(UTC) - timedelta(days=within_days)
        async with self._session_factory() as session:
            return await ProvenanceLogRepository(session).exists_since(
                entity_type, entity_id, status, since
            )

    async def get_retry_count(self, entity_type: EntityType, entity_id: str) -> int:
        """Retry count recorded on the most recent failure, 0 if none."""
        async with self._session_factory() as session:
            latest_failure = await ProvenanceLogRepository(session).get_latest(
                entity_type, entity_id, status=ProvenanceStatus.FAILURE
            )
        return latest_failure.retry_count if latest_failure else 0

    async def get_job_tree(self, root_job_id: str) -> list[ProvenanceRecord]:
        """Every record of one logical user action, oldest first."""
        async with self._session_factory() as session:
            return await ProvenanceLogRepository(session).get_job_tree(root_job_id)
