from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID, uuid4

from certify.models.entity import EntityKind


@dataclass(frozen=True, slots=True)
class CertificateSnapshot:
    """Catalog and learner state frozen into a certificate at issuance.

    Snapshots are copies, not references: renaming a user or a course later
    must not change what an issued certificate says.
    """

    student_name: str
    item_name: str
    instructor_name: str
    duration: str = ""
    instructor_bio: str = ""
    organization_description: str = ""
    template_id: str | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class Certificate:
    """Primary certificate record, internally keyed by (kind, item)."""

    id: UUID
    certificate_number: str
    kind: EntityKind
    user_id: str
    item_id: UUID
    student_name: str
    item_name: str
    instructor_name: str
    duration: str
    organization_name: str
    certificate_url: str
    issued_at: int
    is_active: bool = True
    revoked_at: int | None = None
    metadata: dict = field(default_factory=dict)

    @staticmethod
    def new(
        *,
        certificate_number: str,
        kind: EntityKind,
        user_id: str,
        item_id: UUID,
        snapshot: CertificateSnapshot,
        organization_name: str,
        certificate_url: str,
        issued_at: int,
        metadata: dict | None = None,
    ) -> Certificate:
        return Certificate(
            id=uuid4(),
            certificate_number=certificate_number,
            kind=kind,
            user_id=user_id,
            item_id=item_id,
            student_name=snapshot.student_name,
            item_name=snapshot.item_name,
            instructor_name=snapshot.instructor_name,
            duration=snapshot.duration,
            organization_name=organization_name,
            certificate_url=certificate_url,
            issued_at=issued_at,
            metadata=dict(metadata or {}),
        )


@dataclass(frozen=True, slots=True)
class PublicCertificate:
    """Secondary, lookup-optimized record served to anonymous verifiers.

    Carries no user id, item id or internal metadata.
    """

    certificate_number: str
    full_name: str
    item_name: str
    issued_at: int
    certificate_url: str
    organization: str
    organization_slug: str
    instructor: str
    duration: str
    certificate_title: str
    description: str
    language: str
    template_id: str | None = None
    instructor_bio: str = ""
    organization_description: str = ""
    is_valid: bool = True


@dataclass(frozen=True, slots=True)
class OrphanRecord:
    """A primary record whose rollback failed; needs manual reconciliation."""

    certificate_id: UUID
    certificate_number: str
    user_id: str
    kind: EntityKind
    item_id: UUID
    reason: str
    detected_at: int


@dataclass(frozen=True, slots=True)
class CertificateStats:
    kind: EntityKind
    item_id: UUID
    total_certificates: int
    recent_certificates: int
