"""Certificate endpoints for learners, plus the public verification lookup.

- GET  /v1/certificates/verify/{number}  public, no auth
- GET  /v1/certificates/{kind}/{item_id}/eligibility
- POST /v1/certificates/{kind}/{item_id}  request a certificate
- GET  /v1/certificates/{kind}/{item_id}  caller's active certificate

POST is idempotent in effect: 201 when this call created the certificate,
200 with the same certificate on every later call (or for the loser of a
concurrent race), 422 with the missing requirements when not eligible.

The verify route is registered first so ``verify`` is never read as a kind.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel

from certify.api.dependencies import get_engine, require_user
from certify.engine import CertificationEngine
from certify.models.certificate import Certificate, PublicCertificate
from certify.models.eligibility import EligibilityResult
from certify.models.entity import EntityKind
from certify.models.principal import Principal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


class CertificateOut(BaseModel):
    certificate_number: str
    kind: str
    item_id: str
    student_name: str
    item_name: str
    instructor_name: str
    duration: str
    organization_name: str
    certificate_url: str
    issued_at: int
    is_active: bool
    revoked_at: int | None = None

    @staticmethod
    def from_certificate(cert: Certificate) -> CertificateOut:
        return CertificateOut(
            certificate_number=cert.certificate_number,
            kind=cert.kind,
            item_id=str(cert.item_id),
            student_name=cert.student_name,
            item_name=cert.item_name,
            instructor_name=cert.instructor_name,
            duration=cert.duration,
            organization_name=cert.organization_name,
            certificate_url=cert.certificate_url,
            issued_at=cert.issued_at,
            is_active=cert.is_active,
            revoked_at=cert.revoked_at,
        )


class CertificateAdminOut(CertificateOut):
    """Primary record including internal fields; admin surfaces only."""

    id: str
    user_id: str
    metadata: dict[str, Any]

    @staticmethod
    def from_certificate(cert: Certificate) -> CertificateAdminOut:
        base = CertificateOut.from_certificate(cert)
        return CertificateAdminOut(
            **base.model_dump(),
            id=str(cert.id),
            user_id=cert.user_id,
            metadata=dict(cert.metadata),
        )


class IssueOut(BaseModel):
    status: str  # issued|already_certified
    certificate: CertificateOut


class EligibilityOut(BaseModel):
    is_eligible: bool
    completion_percentage: int
    completed_lessons: int
    total_lessons: int
    total_quizzes: int
    completed_quizzes: int
    average_quiz_score: int
    missing_requirements: list[str]
    has_exception: bool
    existing_certificate_number: str | None = None

    @staticmethod
    def from_result(result: EligibilityResult) -> EligibilityOut:
        existing = result.existing_certificate
        return EligibilityOut(
            is_eligible=result.is_eligible,
            completion_percentage=result.completion_percentage,
            completed_lessons=result.completed_lessons,
            total_lessons=result.total_lessons,
            total_quizzes=result.total_quizzes,
            completed_quizzes=result.completed_quizzes,
            average_quiz_score=result.average_quiz_score,
            missing_requirements=list(result.missing_requirements),
            has_exception=result.has_exception,
            existing_certificate_number=(
                existing.certificate_number if existing else None
            ),
        )


class PublicCertificateOut(BaseModel):
    certificate_number: str
    full_name: str
    item_name: str
    issued_at: int
    certificate_url: str
    organization: str
    organization_slug: str
    instructor: str
    instructor_bio: str
    organization_description: str
    duration: str
    certificate_title: str
    description: str
    language: str
    template_id: str | None
    is_valid: bool

    @staticmethod
    def from_record(record: PublicCertificate) -> PublicCertificateOut:
        return PublicCertificateOut(
            certificate_number=record.certificate_number,
            full_name=record.full_name,
            item_name=record.item_name,
            issued_at=record.issued_at,
            certificate_url=record.certificate_url,
            organization=record.organization,
            organization_slug=record.organization_slug,
            instructor=record.instructor,
            instructor_bio=record.instructor_bio,
            organization_description=record.organization_description,
            duration=record.duration,
            certificate_title=record.certificate_title,
            description=record.description,
            language=record.language,
            template_id=record.template_id,
            is_valid=record.is_valid,
        )


# ---------------------------------------------------------------------------
# Public verification
# ---------------------------------------------------------------------------


@router.get("/verify/{certificate_number}", response_model=PublicCertificateOut)
async def verify_certificate(
    certificate_number: str,
    engine: Annotated[CertificationEngine, Depends(get_engine)],
) -> PublicCertificateOut:
    record = await engine.issuer.get_certificate_by_number(certificate_number)
    if record is None:
        raise HTTPException(status_code=404, detail="certificate not found")
    return PublicCertificateOut.from_record(record)


# ---------------------------------------------------------------------------
# Learner endpoints
# ---------------------------------------------------------------------------


@router.get("/{kind}/{item_id}/eligibility", response_model=EligibilityOut)
async def check_eligibility(
    kind: EntityKind,
    item_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    engine: Annotated[CertificationEngine, Depends(get_engine)],
) -> EligibilityOut:
    result = await engine.evaluator.evaluate(principal.user_id, item_id, kind)
    return EligibilityOut.from_result(result)


@router.post(
    "/{kind}/{item_id}",
    response_model=IssueOut,
    status_code=status.HTTP_201_CREATED,
)
async def request_certificate(
    kind: EntityKind,
    item_id: UUID,
    response: Response,
    principal: Annotated[Principal, Depends(require_user)],
    engine: Annotated[CertificationEngine, Depends(get_engine)],
) -> IssueOut:
    result = await engine.issuer.issue(
        principal.user_id,
        item_id,
        kind=kind,
        student_name=principal.display_name,
    )
    if result.status == "not_eligible":
        raise HTTPException(
            status_code=422,
            detail={
                "message": "not eligible for a certificate yet",
                "missing_requirements": list(result.missing_requirements),
            },
        )
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return IssueOut(
        status=result.status,
        certificate=CertificateOut.from_certificate(result.held_certificate),
    )


@router.get("/{kind}/{item_id}", response_model=CertificateOut)
async def get_my_certificate(
    kind: EntityKind,
    item_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    engine: Annotated[CertificationEngine, Depends(get_engine)],
) -> CertificateOut:
    cert = await engine.issuer.get_user_certificate(principal.user_id, item_id, kind)
    if cert is None:
        raise HTTPException(status_code=404, detail="no active certificate")
    return CertificateOut.from_certificate(cert)
