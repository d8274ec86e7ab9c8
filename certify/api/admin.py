"""Administrative endpoints (platform "admin" role).

Forced issuance skips the eligibility check but not the one-active-
certificate rule.  Revocation flips the primary record inactive and marks
the public record invalid; the learner can be certified again later.
Resetting a lesson never revokes a certificate.
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from certify.api.certificates import CertificateAdminOut
from certify.api.dependencies import get_engine, require_role
from certify.api.progress import LessonProgressOut
from certify.engine import CertificationEngine
from certify.models.entity import EntityKind
from certify.models.principal import Principal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])

_require_admin = require_role("admin")


class ForceIssueIn(BaseModel):
    user_id: str = Field(min_length=1)
    student_name: str | None = None


class AdminIssueOut(BaseModel):
    status: str
    certificate: CertificateAdminOut


class StatsOut(BaseModel):
    kind: str
    item_id: str
    total_certificates: int
    recent_certificates: int


class OrphanOut(BaseModel):
    certificate_id: str
    certificate_number: str
    user_id: str
    kind: str
    item_id: str
    reason: str
    detected_at: int


@router.post(
    "/certificates/{kind}/{item_id}/issue",
    response_model=AdminIssueOut,
    status_code=status.HTTP_201_CREATED,
)
async def force_issue(
    kind: EntityKind,
    item_id: UUID,
    body: ForceIssueIn,
    response: Response,
    principal: Annotated[Principal, Depends(_require_admin)],
    engine: Annotated[CertificationEngine, Depends(get_engine)],
) -> AdminIssueOut:
    logger.info(
        "Forced issuance requested by admin=%s",
        principal.user_id,
        extra={"user_id": body.user_id, "item_kind": kind, "item_id": str(item_id)},
    )
    result = await engine.issuer.issue(
        body.user_id, item_id, kind=kind, student_name=body.student_name, force=True
    )
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return AdminIssueOut(
        status=result.status,
        certificate=CertificateAdminOut.from_certificate(result.held_certificate),
    )


@router.post(
    "/certificates/{certificate_number}/revoke", response_model=CertificateAdminOut
)
async def revoke_certificate(
    certificate_number: str,
    principal: Annotated[Principal, Depends(_require_admin)],
    engine: Annotated[CertificationEngine, Depends(get_engine)],
) -> CertificateAdminOut:
    revoked = await engine.issuer.revoke(certificate_number)
    if revoked is None:
        raise HTTPException(status_code=404, detail="no active certificate")
    logger.info(
        "Certificate revoked by admin=%s",
        principal.user_id,
        extra={"certificate_number": certificate_number},
    )
    return CertificateAdminOut.from_certificate(revoked)


@router.get(
    "/certificates/by-number/{certificate_number}",
    response_model=CertificateAdminOut,
)
async def get_primary_record(
    certificate_number: str,
    principal: Annotated[Principal, Depends(_require_admin)],
    engine: Annotated[CertificationEngine, Depends(get_engine)],
) -> CertificateAdminOut:
    cert = await engine.issuer.get_primary_by_number(certificate_number)
    if cert is None:
        raise HTTPException(status_code=404, detail="certificate not found")
    return CertificateAdminOut.from_certificate(cert)


@router.get("/certificates/orphans", response_model=list[OrphanOut])
async def list_orphans(
    principal: Annotated[Principal, Depends(_require_admin)],
    engine: Annotated[CertificationEngine, Depends(get_engine)],
) -> list[OrphanOut]:
    return [
        OrphanOut(
            certificate_id=str(o.certificate_id),
            certificate_number=o.certificate_number,
            user_id=o.user_id,
            kind=o.kind,
            item_id=str(o.item_id),
            reason=o.reason,
            detected_at=o.detected_at,
        )
        for o in await engine.issuer.list_orphans()
    ]


@router.get("/certificates/{kind}/{item_id}/stats", response_model=StatsOut)
async def certificate_stats(
    kind: EntityKind,
    item_id: UUID,
    principal: Annotated[Principal, Depends(_require_admin)],
    engine: Annotated[CertificationEngine, Depends(get_engine)],
) -> StatsOut:
    stats = await engine.issuer.stats(kind, item_id)
    return StatsOut(
        kind=stats.kind,
        item_id=str(stats.item_id),
        total_certificates=stats.total_certificates,
        recent_certificates=stats.recent_certificates,
    )


@router.post(
    "/progress/{user_id}/lessons/{lesson_id}/reset",
    response_model=LessonProgressOut,
)
async def reset_lesson(
    user_id: str,
    lesson_id: UUID,
    principal: Annotated[Principal, Depends(_require_admin)],
    engine: Annotated[CertificationEngine, Depends(get_engine)],
) -> LessonProgressOut:
    row = await engine.tracker.reset_lesson(user_id, lesson_id)
    if row is None:
        raise HTTPException(status_code=404, detail="no progress recorded")
    logger.info(
        "Lesson reset by admin=%s",
        principal.user_id,
        extra={"user_id": user_id, "lesson_id": str(lesson_id)},
    )
    return LessonProgressOut.from_progress(row)
