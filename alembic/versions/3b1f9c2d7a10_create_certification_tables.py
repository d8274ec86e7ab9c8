"""create certification tables

Revision ID: 3b1f9c2d7a10
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1f9c2d7a10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "lesson_progress",
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("lesson_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("watch_time_seconds", sa.Integer(), nullable=False),
        sa.Column("last_position_seconds", sa.Integer(), nullable=False),
        sa.Column("position_observed_at", sa.Integer(), nullable=True),
        sa.Column("is_completed", sa.Boolean(), nullable=False),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.Column("quiz_score", sa.Integer(), nullable=True),
        sa.Column("quiz_attempts", sa.Integer(), nullable=False),
        sa.Column("video_watch_count", sa.Integer(), nullable=False),
        sa.Column("last_video_watch_at", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("user_id", "lesson_id"),
        sa.CheckConstraint(
            "(completed_at IS NULL) = (NOT is_completed)",
            name="ck_lesson_progress_completed_at",
        ),
    )

    op.create_table(
        "courses",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=500), nullable=False),
        sa.Column("instructor_name", sa.String(length=255), nullable=False),
        sa.Column("instructor_bio", sa.Text(), nullable=False, server_default=""),
        sa.Column("duration", sa.String(length=64), nullable=False, server_default=""),
        sa.Column(
            "organization_description", sa.Text(), nullable=False, server_default=""
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "course_sections",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("course_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_course_sections_course_id", "course_sections", ["course_id"]
    )
    op.create_table(
        "course_lessons",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("section_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("lesson_type", sa.String(length=32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.ForeignKeyConstraint(["section_id"], ["course_sections.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_course_lessons_section_id", "course_lessons", ["section_id"]
    )

    op.create_table(
        "events",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=500), nullable=False),
        sa.Column("organizer_name", sa.String(length=255), nullable=False),
        sa.Column("organizer_bio", sa.Text(), nullable=False, server_default=""),
        sa.Column("duration", sa.String(length=64), nullable=False, server_default=""),
        sa.Column(
            "organization_description", sa.Text(), nullable=False, server_default=""
        ),
        sa.Column("certificate_template_id", sa.String(length=64), nullable=True),
        sa.Column("certificate_description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "event_sections",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_event_sections_event_id", "event_sections", ["event_id"])

    op.create_table(
        "certificate_exceptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("item_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("reason", sa.Text(), nullable=False, server_default=""),
        sa.Column("granted_by", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "kind", "item_id"),
    )

    op.create_table(
        "certificates",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("certificate_number", sa.String(length=64), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("item_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_name", sa.String(length=255), nullable=False),
        sa.Column("item_name", sa.String(length=500), nullable=False),
        sa.Column("instructor_name", sa.String(length=255), nullable=False),
        sa.Column("duration", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("organization_name", sa.String(length=255), nullable=False),
        sa.Column("certificate_url", sa.Text(), nullable=False),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("issued_at", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("revoked_at", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("certificate_number", name="uq_certificates_number"),
    )
    # At most one active certificate per learner and item
    op.create_index(
        "uq_certificates_active_holder",
        "certificates",
        ["user_id", "kind", "item_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "public_certificates",
        sa.Column("certificate_number", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("item_name", sa.String(length=500), nullable=False),
        sa.Column("issued_at", sa.Integer(), nullable=False),
        sa.Column("certificate_url", sa.Text(), nullable=False),
        sa.Column("organization", sa.String(length=255), nullable=False),
        sa.Column("organization_slug", sa.String(length=255), nullable=False),
        sa.Column("instructor", sa.String(length=255), nullable=False),
        sa.Column("instructor_bio", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "organization_description", sa.Text(), nullable=False, server_default=""
        ),
        sa.Column("duration", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("certificate_title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("language", sa.String(length=8), nullable=False),
        sa.Column("template_id", sa.String(length=64), nullable=True),
        sa.Column("is_valid", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("certificate_number", name="public_certificates_pkey"),
    )

    op.create_table(
        "certificate_orphans",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("certificate_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("certificate_number", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("item_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("detected_at", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("certificate_orphans")
    op.drop_table("public_certificates")
    op.drop_index("uq_certificates_active_holder", table_name="certificates")
    op.drop_table("certificates")
    op.drop_table("certificate_exceptions")
    op.drop_index("ix_event_sections_event_id", table_name="event_sections")
    op.drop_table("event_sections")
    op.drop_table("events")
    op.drop_index("ix_course_lessons_section_id", table_name="course_lessons")
    op.drop_table("course_lessons")
    op.drop_index("ix_course_sections_course_id", table_name="course_sections")
    op.drop_table("course_sections")
    op.drop_table("courses")
    op.drop_table("lesson_progress")
