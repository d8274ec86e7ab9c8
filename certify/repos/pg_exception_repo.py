"""PostgreSQL implementation of ExceptionRepo (read-only)."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from certify.db.session import transaction
from certify.db.tables import CertificateExceptionRow
from certify.models.entity import EntityKind
from certify.models.exception import CertificateException


class PgExceptionRepo:
    """Satisfies the ExceptionRepo Protocol using PostgreSQL."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get_active(
        self, user_id: str, kind: EntityKind, item_id: UUID
    ) -> CertificateException | None:
        stmt = select(CertificateExceptionRow).where(
            CertificateExceptionRow.user_id == user_id,
            CertificateExceptionRow.kind == kind,
            CertificateExceptionRow.item_id == item_id,
            CertificateExceptionRow.is_active.is_(True),
        )
        async with transaction(self._sessions) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                return None
            return CertificateException(
                user_id=row.user_id,
                kind=row.kind,  # type: ignore[arg-type]
                item_id=row.item_id,
                is_active=row.is_active,
                reason=row.reason or "",
                granted_by=row.granted_by,
                created_at=row.created_at,
            )
