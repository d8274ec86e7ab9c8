"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in certify/models/.
The domain models stay as-is; these tables are the persistence layer.
Repos convert between SQLAlchemy rows and domain dataclasses.

Course and event structure tables are owned by the content side of the
platform; the engine only reads them.  Certificates, public certificates
and progress rows are written here.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from certify.db.engine import Base

# Constraint names are matched in IntegrityError messages by the Pg repos
ACTIVE_HOLDER_INDEX = "uq_certificates_active_holder"
CERTIFICATE_NUMBER_CONSTRAINT = "uq_certificates_number"

# --- Progress ---


class LessonProgressRow(Base):
    __tablename__ = "lesson_progress"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    lesson_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    watch_time_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_position_seconds: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    position_observed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quiz_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quiz_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    video_watch_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_video_watch_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)


# --- Catalog (read-only to the engine) ---


class CourseRow(Base):
    __tablename__ = "courses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    instructor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    instructor_bio: Mapped[str] = mapped_column(Text, nullable=False, default="")
    duration: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    organization_description: Mapped[str] = mapped_column(
        Text, nullable=False, default=""
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CourseSectionRow(Base):
    __tablename__ = "course_sections"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    course_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("courses.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CourseLessonRow(Base):
    __tablename__ = "course_lessons"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    section_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("course_sections.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    lesson_type: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # video|notes|quiz|quick|mixed
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class EventRow(Base):
    __tablename__ = "events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    organizer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    organizer_bio: Mapped[str] = mapped_column(Text, nullable=False, default="")
    duration: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    organization_description: Mapped[str] = mapped_column(
        Text, nullable=False, default=""
    )
    certificate_template_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True
    )
    certificate_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class EventSectionRow(Base):
    __tablename__ = "event_sections"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    event_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("events.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# --- Exceptions (administered elsewhere) ---


class CertificateExceptionRow(Base):
    __tablename__ = "certificate_exceptions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)  # course|event
    item_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    granted_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "kind", "item_id"),)


# --- Certificates ---


class CertificateRow(Base):
    """Primary record.

    At most one active row per (user_id, kind, item_id) is enforced by a
    partial unique index, so concurrent issuers cannot both commit.
    """

    __tablename__ = "certificates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    certificate_number: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    item_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_name: Mapped[str] = mapped_column(String(500), nullable=False)
    instructor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    duration: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    organization_name: Mapped[str] = mapped_column(String(255), nullable=False)
    certificate_url: Mapped[str] = mapped_column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    completion_metadata: Mapped[dict] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict
    )
    issued_at: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    revoked_at: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("certificate_number", name=CERTIFICATE_NUMBER_CONSTRAINT),
        Index(
            ACTIVE_HOLDER_INDEX,
            "user_id",
            "kind",
            "item_id",
            unique=True,
            postgresql_where=text("is_active"),
        ),
    )


class PublicCertificateRow(Base):
    """Secondary record served to anonymous verifiers."""

    __tablename__ = "public_certificates"

    certificate_number: Mapped[str] = mapped_column(String(64), primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_name: Mapped[str] = mapped_column(String(500), nullable=False)
    issued_at: Mapped[int] = mapped_column(Integer, nullable=False)
    certificate_url: Mapped[str] = mapped_column(Text, nullable=False)
    organization: Mapped[str] = mapped_column(String(255), nullable=False)
    organization_slug: Mapped[str] = mapped_column(String(255), nullable=False)
    instructor: Mapped[str] = mapped_column(String(255), nullable=False)
    instructor_bio: Mapped[str] = mapped_column(Text, nullable=False, default="")
    organization_description: Mapped[str] = mapped_column(
        Text, nullable=False, default=""
    )
    duration: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    certificate_title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    language: Mapped[str] = mapped_column(String(8), nullable=False)
    template_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CertificateOrphanRow(Base):
    """Primary records whose compensating delete failed."""

    __tablename__ = "certificate_orphans"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    certificate_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    certificate_number: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    item_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    detected_at: Mapped[int] = mapped_column(Integer, nullable=False)
