"""initial schema - canonical catalog, collections, provenance, daily challenge, jobs

Revision ID: a1c0d3e5f701
Revises:
Create Date: 2026-10-17 09:00:00.000000

Hey future me - the UNIQUE constraints in here ARE the dedup guarantee (external ids,
natural keys, one membership per collection/album, one challenge per day). If you ever
write a migration that drops one of them, resolve_or_create stops being race-safe.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1c0d3e5f701"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    op.create_table(
        "artists",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("name_key", sa.String(255), nullable=True, unique=True),
        sa.Column("musicbrainz_id", sa.String(36), nullable=True, unique=True),
        sa.Column("discogs_id", sa.String(50), nullable=True, unique=True),
        sa.Column("spotify_id", sa.String(50), nullable=True, unique=True),
        sa.Column("image_url", sa.String(512), nullable=True),
        sa.Column("country_code", sa.String(2), nullable=True),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("data_quality", sa.String(10), nullable=False),
        sa.Column("enrichment_status", sa.String(20), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_artists_name", "artists", ["name"])
    op.create_index("ix_artists_enrichment_status", "artists", ["enrichment_status"])
    op.create_index("ix_artists_name_lower", "artists", [sa.text("lower(name)")])

    op.create_table(
        "albums",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("natural_key", sa.String(800), nullable=True, unique=True),
        sa.Column("musicbrainz_id", sa.String(36), nullable=True, unique=True),
        sa.Column("discogs_id", sa.String(50), nullable=True, unique=True),
        sa.Column("spotify_id", sa.String(50), nullable=True, unique=True),
        sa.Column("deezer_id", sa.String(50), nullable=True, unique=True),
        sa.Column("release_date", sa.Date(), nullable=True),
        sa.Column("release_type", sa.String(50), nullable=True),
        sa.Column("track_count", sa.Integer(), nullable=True),
        sa.Column("cover_art_url", sa.String(512), nullable=True),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("data_quality", sa.String(10), nullable=False),
        sa.Column("enrichment_status", sa.String(20), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_albums_title", "albums", ["title"])
    op.create_index("ix_albums_enrichment_status", "albums", ["enrichment_status"])
    op.create_index("ix_albums_title_lower", "albums", [sa.text("lower(title)")])

    op.create_table(
        "album_artists",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "album_id",
            sa.String(36),
            sa.ForeignKey("albums.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "artist_id",
            sa.String(36),
            sa.ForeignKey("artists.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.UniqueConstraint("album_id", "artist_id", "role", name="uq_album_artist_role"),
    )
    op.create_index("ix_album_artists_artist_id", "album_artists", ["artist_id"])

    op.create_table(
        "collections",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        _timestamp("created_at"),
    )
    op.create_index("ix_collections_user_id", "collections", ["user_id"])

    op.create_table(
        "collection_albums",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "collection_id",
            sa.String(36),
            sa.ForeignKey("collections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "album_id",
            sa.String(36),
            sa.ForeignKey("albums.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("personal_rating", sa.Integer(), nullable=True),
        sa.Column("personal_notes", sa.Text(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False),
        _timestamp("added_at"),
        sa.UniqueConstraint("collection_id", "album_id", name="uq_collection_album"),
    )
    op.create_index("ix_collection_albums_album_id", "collection_albums", ["album_id"])

    op.create_table(
        "provenance_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("operation", sa.String(100), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("sources", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("job_id", sa.String(100), nullable=False),
        sa.Column("parent_job_id", sa.String(100), nullable=True),
        sa.Column("root_job_id", sa.String(100), nullable=False),
        sa.Column("is_root_job", sa.Boolean(), nullable=False),
        sa.Column("fields_enriched", sa.JSON(), nullable=False),
        sa.Column("data_quality_before", sa.String(10), nullable=True),
        sa.Column("data_quality_after", sa.String(10), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.Column("triggered_by", sa.String(100), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        _timestamp("created_at"),
    )
    op.create_index("ix_provenance_logs_job_id", "provenance_logs", ["job_id"])
    op.create_index("ix_provenance_logs_root_job_id", "provenance_logs", ["root_job_id"])
    op.create_index(
        "ix_provenance_entity",
        "provenance_logs",
        ["entity_type", "entity_id", "created_at"],
    )
    op.create_index(
        "ix_provenance_status_created", "provenance_logs", ["status", "created_at"]
    )

    op.create_table(
        "daily_challenges",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("challenge_date", sa.Date(), nullable=False, unique=True),
        sa.Column("album_id", sa.String(36), sa.ForeignKey("albums.id"), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("total_plays", sa.Integer(), nullable=False),
        sa.Column("total_wins", sa.Integer(), nullable=False),
        sa.Column("avg_attempts", sa.Float(), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_daily_challenges_album_id", "daily_challenges", ["album_id"])

    op.create_table(
        "curated_challenges",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "album_id",
            sa.String(36),
            sa.ForeignKey("albums.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False, unique=True),
        _timestamp("created_at"),
    )

    op.create_table(
        "challenge_pins",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("pin_date", sa.Date(), nullable=False, unique=True),
        sa.Column(
            "album_id",
            sa.String(36),
            sa.ForeignKey("albums.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("pinned_by", sa.String(36), nullable=True),
        _timestamp("created_at"),
    )

    op.create_table(
        "background_jobs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("job_type", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("retries", sa.Integer(), nullable=False),
        sa.Column("max_retries", sa.Integer(), nullable=False),
        sa.Column("backoff_type", sa.String(20), nullable=True),
        sa.Column("backoff_delay_ms", sa.Integer(), nullable=True),
        sa.Column("request_id", sa.String(100), nullable=True),
        sa.Column("parent_job_id", sa.String(100), nullable=True),
        _timestamp("created_at"),
        sa.Column("next_run_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_background_jobs_job_type", "background_jobs", ["job_type"])
    op.create_index("ix_background_jobs_status", "background_jobs", ["status"])
    op.create_index(
        "ix_jobs_pending", "background_jobs", ["status", "priority", "created_at"]
    )


def downgrade() -> None:
    for table in (
        "background_jobs",
        "challenge_pins",
        "curated_challenges",
        "daily_challenges",
        "provenance_logs",
        "collection_albums",
        "collections",
        "album_artists",
        "albums",
        "artists",
    ):
        op.drop_table(table)
