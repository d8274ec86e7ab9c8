"""PostgreSQL implementations of the certificate stores.

The primary and public stores each commit on their own; see
certify/db/session.py.  Unique-key violations come back from
``transaction`` already translated into UniqueConstraintViolation.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from certify.db.session import transaction
from certify.db.tables import CertificateOrphanRow, CertificateRow, PublicCertificateRow
from certify.models.certificate import (
    Certificate,
    CertificateStats,
    OrphanRecord,
    PublicCertificate,
)
from certify.models.entity import EntityKind


class PgCertificateRepo:
    """Satisfies the CertificateRepo Protocol using PostgreSQL."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get_active(
        self, user_id: str, kind: EntityKind, item_id: UUID
    ) -> Certificate | None:
        stmt = select(CertificateRow).where(
            CertificateRow.user_id == user_id,
            CertificateRow.kind == kind,
            CertificateRow.item_id == item_id,
            CertificateRow.is_active.is_(True),
        )
        async with transaction(self._sessions) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return None if row is None else _row_to_certificate(row)

    async def get_by_number(self, certificate_number: str) -> Certificate | None:
        stmt = select(CertificateRow).where(
            CertificateRow.certificate_number == certificate_number
        )
        async with transaction(self._sessions) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return None if row is None else _row_to_certificate(row)

    async def number_exists(self, certificate_number: str) -> bool:
        stmt = select(CertificateRow.id).where(
            CertificateRow.certificate_number == certificate_number
        )
        async with transaction(self._sessions) as session:
            return (await session.execute(stmt)).first() is not None

    async def insert(self, certificate: Certificate) -> Certificate:
        row = CertificateRow(
            id=certificate.id,
            certificate_number=certificate.certificate_number,
            kind=certificate.kind,
            user_id=certificate.user_id,
            item_id=certificate.item_id,
            student_name=certificate.student_name,
            item_name=certificate.item_name,
            instructor_name=certificate.instructor_name,
            duration=certificate.duration,
            organization_name=certificate.organization_name,
            certificate_url=certificate.certificate_url,
            completion_metadata=dict(certificate.metadata),
            issued_at=certificate.issued_at,
            is_active=certificate.is_active,
            revoked_at=certificate.revoked_at,
        )
        async with transaction(self._sessions) as session:
            session.add(row)
            await session.flush()
        return certificate

    async def delete(self, certificate_id: UUID) -> bool:
        stmt = delete(CertificateRow).where(CertificateRow.id == certificate_id)
        async with transaction(self._sessions) as session:
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def deactivate(self, certificate_number: str, now: int) -> Certificate | None:
        stmt = (
            update(CertificateRow)
            .where(
                CertificateRow.certificate_number == certificate_number,
                CertificateRow.is_active.is_(True),
            )
            .values(is_active=False, revoked_at=now)
            .returning(CertificateRow)
        )
        async with transaction(self._sessions) as session:
            row = (
                await session.execute(
                    stmt, execution_options={"populate_existing": True}
                )
            ).scalar_one_or_none()
            return None if row is None else _row_to_certificate(row)

    async def stats(
        self, kind: EntityKind, item_id: UUID, since: int
    ) -> CertificateStats:
        stmt = select(
            func.count(),
            func.count().filter(CertificateRow.issued_at >= since),
        ).where(
            CertificateRow.kind == kind,
            CertificateRow.item_id == item_id,
            CertificateRow.is_active.is_(True),
        )
        async with transaction(self._sessions) as session:
            total, recent = (await session.execute(stmt)).one()
        return CertificateStats(
            kind=kind,
            item_id=item_id,
            total_certificates=total,
            recent_certificates=recent,
        )


class PgPublicCertificateRepo:
    """Satisfies the PublicCertificateRepo Protocol using PostgreSQL."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get_by_number(self, certificate_number: str) -> PublicCertificate | None:
        stmt = select(PublicCertificateRow).where(
            PublicCertificateRow.certificate_number == certificate_number
        )
        async with transaction(self._sessions) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return None if row is None else _row_to_public(row)

    async def number_exists(self, certificate_number: str) -> bool:
        stmt = select(PublicCertificateRow.certificate_number).where(
            PublicCertificateRow.certificate_number == certificate_number
        )
        async with transaction(self._sessions) as session:
            return (await session.execute(stmt)).first() is not None

    async def insert(self, record: PublicCertificate) -> PublicCertificate:
        row = PublicCertificateRow(
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
        async with transaction(self._sessions) as session:
            session.add(row)
            await session.flush()
        return record

    async def delete(self, certificate_number: str) -> bool:
        stmt = delete(PublicCertificateRow).where(
            PublicCertificateRow.certificate_number == certificate_number
        )
        async with transaction(self._sessions) as session:
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def set_valid(self, certificate_number: str, is_valid: bool) -> None:
        stmt = (
            update(PublicCertificateRow)
            .where(PublicCertificateRow.certificate_number == certificate_number)
            .values(is_valid=is_valid)
        )
        async with transaction(self._sessions) as session:
            await session.execute(stmt)


class PgOrphanRepo:
    """Satisfies the OrphanRepo Protocol using PostgreSQL."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def add(self, record: OrphanRecord) -> None:
        row = CertificateOrphanRow(
            certificate_id=record.certificate_id,
            certificate_number=record.certificate_number,
            user_id=record.user_id,
            kind=record.kind,
            item_id=record.item_id,
            reason=record.reason,
            detected_at=record.detected_at,
        )
        async with transaction(self._sessions) as session:
            session.add(row)

    async def list_all(self) -> list[OrphanRecord]:
        stmt = select(CertificateOrphanRow).order_by(CertificateOrphanRow.detected_at)
        async with transaction(self._sessions) as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [
                OrphanRecord(
                    certificate_id=row.certificate_id,
                    certificate_number=row.certificate_number,
                    user_id=row.user_id,
                    kind=row.kind,  # type: ignore[arg-type]
                    item_id=row.item_id,
                    reason=row.reason,
                    detected_at=row.detected_at,
                )
                for row in rows
            ]


def _row_to_certificate(row: CertificateRow) -> Certificate:
    return Certificate(
        id=row.id,
        certificate_number=row.certificate_number,
        kind=row.kind,  # type: ignore[arg-type]
        user_id=row.user_id,
        item_id=row.item_id,
        student_name=row.student_name,
        item_name=row.item_name,
        instructor_name=row.instructor_name,
        duration=row.duration or "",
        organization_name=row.organization_name,
        certificate_url=row.certificate_url,
        issued_at=row.issued_at,
        is_active=row.is_active,
        revoked_at=row.revoked_at,
        metadata=dict(row.completion_metadata or {}),
    )


def _row_to_public(row: PublicCertificateRow) -> PublicCertificate:
    return PublicCertificate(
        certificate_number=row.certificate_number,
        full_name=row.full_name,
        item_name=row.item_name,
        issued_at=row.issued_at,
        certificate_url=row.certificate_url,
        organization=row.organization,
        organization_slug=row.organization_slug,
        instructor=row.instructor,
        duration=row.duration or "",
        certificate_title=row.certificate_title,
        description=row.description or "",
        language=row.language,
        template_id=row.template_id,
        instructor_bio=row.instructor_bio or "",
        organization_description=row.organization_description or "",
        is_valid=row.is_valid,
    )
