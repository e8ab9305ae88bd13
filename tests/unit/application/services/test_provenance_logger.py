"""Tests for ProvenanceLogger (no database - see tests/integration for the real thing)."""

import logging
from unittest.mock import MagicMock

import pytest

from recrate.application.services.provenance_logger import (
    ProvenanceLogger,
    infer_category,
)
from recrate.domain.entities import (
    EntityType,
    ProvenanceCategory,
    ProvenanceEntry,
    ProvenanceStatus,
    SideEffectStatus,
)


class TestInferCategory:
    """Test category inference from operation names."""

    @pytest.mark.parametrize(
        ("operation", "status", "expected"),
        [
            ("cache:album-cover-art", ProvenanceStatus.FAILURE, ProvenanceCategory.FAILED),
            ("album:created", ProvenanceStatus.FAILURE, ProvenanceCategory.FAILED),
            ("cache:album-cover-art", ProvenanceStatus.SUCCESS, ProvenanceCategory.CACHED),
            ("album:correction", ProvenanceStatus.SUCCESS, ProvenanceCategory.CORRECTED),
            ("enrich:musicbrainz", ProvenanceStatus.SUCCESS, ProvenanceCategory.ENRICHED),
            ("check:album-enrichment", ProvenanceStatus.NO_DATA_AVAILABLE, ProvenanceCategory.ENRICHED),
            ("album:created", ProvenanceStatus.SUCCESS, ProvenanceCategory.CREATED),
            ("Album:CACHED-Image", ProvenanceStatus.SKIPPED, ProvenanceCategory.CACHED),
        ],
    )
    def test_inference(
        self, operation: str, status: ProvenanceStatus, expected: ProvenanceCategory
    ) -> None:
        assert infer_category(operation, status) == expected


class TestCompleteEntry:
    """Test job id / root defaults."""

    def test_entry_without_parent_is_its_own_root(self) -> None:
        fields = ProvenanceLogger._complete(
            ProvenanceEntry(EntityType.ALBUM, "a1", "album:created", job_id="job-1")
        )
        assert fields["is_root_job"] is True
        assert fields["root_job_id"] == "job-1"
        assert fields["category"] == ProvenanceCategory.CREATED.value

    def test_child_defaults_root_to_parent(self) -> None:
        fields = ProvenanceLogger._complete(
            ProvenanceEntry(
                EntityType.ARTIST, "r1", "artist:created", parent_job_id="root-1"
            )
        )
        assert fields["is_root_job"] is False
        assert fields["root_job_id"] == "root-1"
        assert fields["job_id"]  # generated

    def test_explicit_category_wins(self) -> None:
        fields = ProvenanceLogger._complete(
            ProvenanceEntry(
                EntityType.ALBUM,
                "a1",
                "collection:album-added",
                category=ProvenanceCategory.USER_ACTION,
            )
        )
        assert fields["category"] == ProvenanceCategory.USER_ACTION.value

    def test_metadata_maps_to_log_metadata_column(self) -> None:
        fields = ProvenanceLogger._complete(
            ProvenanceEntry(EntityType.ALBUM, "a1", "album:created", metadata={"k": 1})
        )
        assert fields["log_metadata"] == {"k": 1}


class TestLogNeverRaises:
    """A broken provenance store must never fail the caller."""

    async def test_storage_failure_reported_as_failed_outcome(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        session_factory = MagicMock(side_effect=RuntimeError("disk full"))
        provenance = ProvenanceLogger(session_factory)

        with caplog.at_level(logging.WARNING):
            outcome = await provenance.log(
                ProvenanceEntry(EntityType.ALBUM, "a1", "album:created")
            )

        assert outcome.status == SideEffectStatus.FAILED
        assert outcome.kind == "provenance"
        assert "disk full" in (outcome.reason or "")
        assert "Failed to write provenance album:created" in caplog.text
