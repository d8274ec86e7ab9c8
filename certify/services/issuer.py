"""Certificate issuance.

A certificate is two records in two stores: the primary record (rich,
keyed by kind + item) and the public record (keyed by number, read by
anonymous verifiers).  No transaction spans both, so ``issue`` follows a
write-then-compensate protocol:

    1. evaluate (unless forced)   not eligible / already certified -> result
    2. snapshot catalog details   missing details -> CatalogUnavailable
    3. re-check active cert       closes most of the evaluate/insert race
    4. allocate number            checked against both stores
    5. insert primary             active_holder violation -> already_certified
    6. insert public              failure -> delete primary -> PartialWriteFailure
                                  delete fails -> OrphanRecord + ERROR log

Steps 5 and 6 run inside ``asyncio.shield``: once the primary row may be
committed, the caller giving up must not leave it without its public
counterpart.  The caller stops waiting; the write still finishes.

The storage-level unique index is the authority on "at most one active
certificate per (user, kind, item)".  Step 3 only saves a round trip.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from certify.core.config import Settings
from certify.core.metrics import (
    ISSUANCE_OUTCOMES,
    ORPHANED_CERTIFICATES,
    PARTIAL_WRITE_FAILURES,
)
from certify.models.certificate import (
    Certificate,
    CertificateSnapshot,
    CertificateStats,
    OrphanRecord,
    PublicCertificate,
)
from certify.models.eligibility import EligibilityResult, IssueResult
from certify.models.entity import EligibilityPolicy, EntityKind, policy_for
from certify.repos.catalog_repo import CatalogRepo
from certify.repos.certificate_repo import (
    CertificateRepo,
    OrphanRepo,
    PublicCertificateRepo,
)
from certify.services.eligibility import EligibilityEvaluator
from certify.services.errors import (
    CatalogUnavailable,
    PartialWriteFailure,
    StoreError,
    UniqueConstraintViolation,
)
from certify.services.numbering import CertificateNumberGenerator

logger = logging.getLogger(__name__)

DEFAULT_STUDENT_NAME = "Öğrenci"
DEFAULT_TEMPLATE_ID = "2"
STATS_WINDOW_SECONDS = 30 * 24 * 3600

# Insert retries for numbers that collide between allocation and insert
_MAX_INSERT_ATTEMPTS = 3


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


@dataclass(frozen=True, slots=True)
class IssuerOptions:
    organization_name: str
    organization_slug: str
    certificate_base_url: str
    language: str
    default_template_id: str = DEFAULT_TEMPLATE_ID

    @staticmethod
    def from_settings(settings: Settings) -> IssuerOptions:
        return IssuerOptions(
            organization_name=settings.organization_name,
            organization_slug=settings.organization_slug,
            certificate_base_url=settings.certificate_base_url,
            language=settings.certificate_language,
        )

    def certificate_url(self, certificate_number: str) -> str:
        return f"{self.certificate_base_url}/{certificate_number}"


class CertificateIssuer:
    def __init__(
        self,
        evaluator: EligibilityEvaluator,
        catalog: CatalogRepo,
        certificates: CertificateRepo,
        public: PublicCertificateRepo,
        orphans: OrphanRepo,
        numbers: CertificateNumberGenerator,
        options: IssuerOptions,
        clock: Callable[[], int] = _now,
    ) -> None:
        self._evaluator = evaluator
        self._catalog = catalog
        self._certificates = certificates
        self._public = public
        self._orphans = orphans
        self._numbers = numbers
        self._options = options
        self._clock = clock

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    async def issue(
        self,
        user_id: str,
        item_id: UUID,
        *,
        kind: EntityKind = "course",
        student_name: str | None = None,
        snapshot: CertificateSnapshot | None = None,
        force: bool = False,
    ) -> IssueResult:
        """Issue a certificate, or report why not.

        ``force`` skips the eligibility check (administrative issuance).
        It never bypasses the one-active-certificate rule.
        """
        policy = policy_for(kind)
        log_extra = {"user_id": user_id, "item_kind": kind, "item_id": str(item_id)}

        evaluation: EligibilityResult | None = None
        if not force:
            evaluation = await self._evaluator.evaluate(user_id, item_id, kind)
            if evaluation.existing_certificate is not None:
                return self._outcome(
                    kind, IssueResult.already(evaluation.existing_certificate)
                )
            if not evaluation.is_eligible:
                logger.info(
                    "Certificate not issued: %s",
                    "; ".join(evaluation.missing_requirements),
                    extra={**log_extra, "outcome": "not_eligible"},
                )
                return self._outcome(
                    kind, IssueResult.not_eligible(evaluation.missing_requirements)
                )

        if snapshot is None:
            snapshot = await self._build_snapshot(kind, item_id, student_name)

        existing = await self._certificates.get_active(user_id, kind, item_id)
        if existing is not None:
            return self._outcome(kind, IssueResult.already(existing))

        now = self._clock()
        metadata = _completion_metadata(evaluation, kind, now, force=force)

        for _ in range(_MAX_INSERT_ATTEMPTS):
            number = await self._numbers.allocate(self._number_taken)
            certificate = Certificate.new(
                certificate_number=number,
                kind=kind,
                user_id=user_id,
                item_id=item_id,
                snapshot=snapshot,
                organization_name=self._options.organization_name,
                certificate_url=self._options.certificate_url(number),
                issued_at=now,
                metadata=metadata,
            )
            try:
                await asyncio.shield(
                    self._write_records(certificate, snapshot, policy)
                )
            except UniqueConstraintViolation as exc:
                if exc.constraint == UniqueConstraintViolation.ACTIVE_HOLDER:
                    return await self._lost_race(user_id, kind, item_id, log_extra)
                logger.warning(
                    "Certificate number taken at insert, allocating again",
                    extra={**log_extra, "certificate_number": number},
                )
                continue
            except StoreError:
                ISSUANCE_OUTCOMES.labels(kind=kind, outcome="failed").inc()
                raise

            logger.info(
                "Certificate issued",
                extra={
                    **log_extra,
                    "certificate_number": number,
                    "outcome": "forced" if force else "issued",
                },
            )
            return self._outcome(kind, IssueResult.issued(certificate))

        ISSUANCE_OUTCOMES.labels(kind=kind, outcome="failed").inc()
        raise StoreError("could not reserve a unique certificate number")

    async def _write_records(
        self,
        certificate: Certificate,
        snapshot: CertificateSnapshot,
        policy: EligibilityPolicy,
    ) -> None:
        await self._certificates.insert(certificate)
        record = self._public_record(certificate, snapshot, policy)
        try:
            await self._public.insert(record)
        except Exception as exc:
            rolled_back = await self._compensate(certificate, exc)
            if rolled_back and isinstance(exc, UniqueConstraintViolation):
                # A public row without a primary holds this number
                raise
            PARTIAL_WRITE_FAILURES.labels(
                rolled_back="true" if rolled_back else "false"
            ).inc()
            raise PartialWriteFailure(
                certificate.certificate_number, rolled_back=rolled_back
            ) from exc

    async def _compensate(self, certificate: Certificate, cause: Exception) -> bool:
        """Delete the primary record after a failed public write.

        Returns False when the delete failed and an orphan was recorded.
        """
        log_extra = {
            "user_id": certificate.user_id,
            "item_kind": certificate.kind,
            "item_id": str(certificate.item_id),
            "certificate_number": certificate.certificate_number,
        }
        try:
            await self._certificates.delete(certificate.id)
        except Exception:
            logger.exception(
                "Rollback of primary certificate record failed",
                extra={**log_extra, "outcome": "orphaned"},
            )
        else:
            logger.warning(
                "Public certificate write failed (%s), primary record rolled back",
                cause.__class__.__name__,
                extra={**log_extra, "outcome": "rolled_back"},
            )
            return True

        ORPHANED_CERTIFICATES.inc()
        orphan = OrphanRecord(
            certificate_id=certificate.id,
            certificate_number=certificate.certificate_number,
            user_id=certificate.user_id,
            kind=certificate.kind,
            item_id=certificate.item_id,
            reason=f"public write failed ({cause.__class__.__name__}); rollback failed",
            detected_at=self._clock(),
        )
        try:
            await self._orphans.add(orphan)
        except Exception:
            # The ERROR line above is then the only trace of the orphan
            logger.exception(
                "Could not persist orphan record",
                extra={**log_extra, "outcome": "orphaned"},
            )
        return False

    async def _lost_race(
        self, user_id: str, kind: EntityKind, item_id: UUID, log_extra: dict[str, Any]
    ) -> IssueResult:
        winner = await self._certificates.get_active(user_id, kind, item_id)
        if winner is None:
            # Winner was revoked between its insert and our re-read
            raise StoreError("concurrent issuance left no active certificate")
        logger.info(
            "Concurrent issuance lost to existing certificate",
            extra={
                **log_extra,
                "certificate_number": winner.certificate_number,
                "outcome": "already_certified",
            },
        )
        return self._outcome(kind, IssueResult.already(winner))

    async def _number_taken(self, certificate_number: str) -> bool:
        if await self._certificates.number_exists(certificate_number):
            return True
        return await self._public.number_exists(certificate_number)

    async def _build_snapshot(
        self, kind: EntityKind, item_id: UUID, student_name: str | None
    ) -> CertificateSnapshot:
        details = await self._catalog.get_details(kind, item_id)
        if details is None:
            raise CatalogUnavailable(kind, item_id)
        return CertificateSnapshot(
            student_name=(student_name or "").strip() or DEFAULT_STUDENT_NAME,
            item_name=details.name,
            instructor_name=details.instructor_name,
            duration=details.duration,
            instructor_bio=details.instructor_bio,
            organization_description=details.organization_description,
            template_id=details.template_id,
            description=details.certificate_description,
        )

    def _public_record(
        self,
        certificate: Certificate,
        snapshot: CertificateSnapshot,
        policy: EligibilityPolicy,
    ) -> PublicCertificate:
        return PublicCertificate(
            certificate_number=certificate.certificate_number,
            full_name=certificate.student_name,
            item_name=certificate.item_name,
            issued_at=certificate.issued_at,
            certificate_url=certificate.certificate_url,
            organization=self._options.organization_name,
            organization_slug=self._options.organization_slug,
            instructor=certificate.instructor_name,
            duration=certificate.duration,
            certificate_title=policy.certificate_title,
            description=snapshot.description or policy.default_description,
            language=self._options.language,
            template_id=snapshot.template_id or self._options.default_template_id,
            instructor_bio=snapshot.instructor_bio,
            organization_description=snapshot.organization_description,
        )

    @staticmethod
    def _outcome(kind: EntityKind, result: IssueResult) -> IssueResult:
        ISSUANCE_OUTCOMES.labels(kind=kind, outcome=result.status).inc()
        return result

    # ------------------------------------------------------------------
    # Revocation and lookups
    # ------------------------------------------------------------------

    async def revoke(self, certificate_number: str) -> Certificate | None:
        """Deactivate a certificate and invalidate its public record.

        Returns None when no active certificate has that number.  The
        (user, item) pair may be issued a new certificate afterwards.
        """
        revoked = await self._certificates.deactivate(certificate_number, self._clock())
        if revoked is None:
            return None
        await self._public.set_valid(certificate_number, False)
        logger.info(
            "Certificate revoked",
            extra={
                "user_id": revoked.user_id,
                "item_kind": revoked.kind,
                "item_id": str(revoked.item_id),
                "certificate_number": certificate_number,
                "outcome": "revoked",
            },
        )
        return revoked

    async def get_user_certificate(
        self, user_id: str, item_id: UUID, kind: EntityKind = "course"
    ) -> Certificate | None:
        return await self._certificates.get_active(user_id, kind, item_id)

    async def get_certificate_by_number(
        self, certificate_number: str
    ) -> PublicCertificate | None:
        """Public lookup; never exposes the primary record."""
        return await self._public.get_by_number(certificate_number)

    async def get_primary_by_number(self, certificate_number: str) -> Certificate | None:
        return await self._certificates.get_by_number(certificate_number)

    async def stats(self, kind: EntityKind, item_id: UUID) -> CertificateStats:
        since = self._clock() - STATS_WINDOW_SECONDS
        return await self._certificates.stats(kind, item_id, since)

    async def list_orphans(self) -> list[OrphanRecord]:
        return await self._orphans.list_all()


def _completion_metadata(
    evaluation: EligibilityResult | None,
    kind: EntityKind,
    now: int,
    *,
    force: bool,
) -> dict[str, Any]:
    completion_date = datetime.datetime.fromtimestamp(now, datetime.UTC).date()
    metadata: dict[str, Any] = {
        "item_type": kind,
        "completion_date": completion_date.isoformat(),
        "has_exception": bool(evaluation and evaluation.has_exception),
        "forced": force,
    }
    if evaluation is None:
        metadata["completion_score"] = "forced"
    elif evaluation.has_exception:
        metadata["completion_score"] = "exception"
    else:
        metadata.update(
            completion_score=evaluation.completion_percentage,
            total_lessons=evaluation.total_lessons,
            completed_lessons=evaluation.completed_lessons,
            total_quizzes=evaluation.total_quizzes,
            completed_quizzes=evaluation.completed_quizzes,
            average_quiz_score=evaluation.average_quiz_score,
        )
    return metadata
