from __future__ import annotations

from typing import Protocol
from uuid import UUID

from certify.models.entity import EntityKind
from certify.models.exception import CertificateException


class ExceptionRepo(Protocol):
    async def get_active(
        self, user_id: str, kind: EntityKind, item_id: UUID
    ) -> CertificateException | None: ...


class InMemoryExceptionRepo:
    def __init__(self) -> None:
        self._by_key: dict[tuple[str, EntityKind, UUID], CertificateException] = {}

    def add(self, exception: CertificateException) -> None:
        key = (exception.user_id, exception.kind, exception.item_id)
        self._by_key[key] = exception

    async def get_active(
        self, user_id: str, kind: EntityKind, item_id: UUID
    ) -> CertificateException | None:
        found = self._by_key.get((user_id, kind, item_id))
        if found is None or not found.is_active:
            return None
        return found
