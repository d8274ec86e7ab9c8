"""Certificate record stores.

A certificate lives in two correlated records: the primary record (rich
metadata, keyed internally by kind + item) and the public record (keyed by
certificate number, served to anonymous verifiers).  There is no
transaction spanning both; CertificateIssuer keeps them consistent with a
write-then-compensate protocol.

The primary store must enforce, on its own, that at most one active
certificate exists per (user, kind, item).  The in-memory implementation
below checks inside ``insert``; PgCertificateRepo relies on a partial
unique index.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from certify.models.certificate import (
    Certificate,
    CertificateStats,
    OrphanRecord,
    PublicCertificate,
)
from certify.models.entity import EntityKind
from certify.services.errors import UniqueConstraintViolation


class CertificateRepo(Protocol):
    async def get_active(
        self, user_id: str, kind: EntityKind, item_id: UUID
    ) -> Certificate | None: ...
    async def get_by_number(self, certificate_number: str) -> Certificate | None: ...
    async def number_exists(self, certificate_number: str) -> bool: ...
    async def insert(self, certificate: Certificate) -> Certificate: ...
    async def delete(self, certificate_id: UUID) -> bool: ...
    async def deactivate(
        self, certificate_number: str, now: int
    ) -> Certificate | None: ...
    async def stats(
        self, kind: EntityKind, item_id: UUID, since: int
    ) -> CertificateStats: ...


class PublicCertificateRepo(Protocol):
    async def get_by_number(
        self, certificate_number: str
    ) -> PublicCertificate | None: ...
    async def number_exists(self, certificate_number: str) -> bool: ...
    async def insert(self, record: PublicCertificate) -> PublicCertificate: ...
    async def delete(self, certificate_number: str) -> bool: ...
    async def set_valid(self, certificate_number: str, is_valid: bool) -> None: ...


class OrphanRepo(Protocol):
    async def add(self, record: OrphanRecord) -> None: ...
    async def list_all(self) -> list[OrphanRecord]: ...


class InMemoryCertificateRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Certificate] = {}

    async def get_active(
        self, user_id: str, kind: EntityKind, item_id: UUID
    ) -> Certificate | None:
        for cert in self._by_id.values():
            if (
                cert.is_active
                and cert.user_id == user_id
                and cert.kind == kind
                and cert.item_id == item_id
            ):
                return cert
        return None

    async def get_by_number(self, certificate_number: str) -> Certificate | None:
        for cert in self._by_id.values():
            if cert.certificate_number == certificate_number:
                return cert
        return None

    async def number_exists(self, certificate_number: str) -> bool:
        return await self.get_by_number(certificate_number) is not None

    async def insert(self, certificate: Certificate) -> Certificate:
        # Mirrors the unique index and the partial unique index of the
        # certificates table; no await, so check and write are atomic.
        for cert in self._by_id.values():
            if cert.certificate_number == certificate.certificate_number:
                raise UniqueConstraintViolation(
                    UniqueConstraintViolation.CERTIFICATE_NUMBER
                )
            if (
                certificate.is_active
                and cert.is_active
                and cert.user_id == certificate.user_id
                and cert.kind == certificate.kind
                and cert.item_id == certificate.item_id
            ):
                raise UniqueConstraintViolation(UniqueConstraintViolation.ACTIVE_HOLDER)
        self._by_id[certificate.id] = certificate
        return certificate

    async def delete(self, certificate_id: UUID) -> bool:
        return self._by_id.pop(certificate_id, None) is not None

    async def deactivate(self, certificate_number: str, now: int) -> Certificate | None:
        cert = await self.get_by_number(certificate_number)
        if cert is None or not cert.is_active:
            return None
        updated = replace(cert, is_active=False, revoked_at=now)
        self._by_id[cert.id] = updated
        return updated

    async def stats(
        self, kind: EntityKind, item_id: UUID, since: int
    ) -> CertificateStats:
        active = [
            c
            for c in self._by_id.values()
            if c.is_active and c.kind == kind and c.item_id == item_id
        ]
        return CertificateStats(
            kind=kind,
            item_id=item_id,
            total_certificates=len(active),
            recent_certificates=sum(1 for c in active if c.issued_at >= since),
        )


class InMemoryPublicCertificateRepo:
    def __init__(self) -> None:
        self._by_number: dict[str, PublicCertificate] = {}

    async def get_by_number(self, certificate_number: str) -> PublicCertificate | None:
        return self._by_number.get(certificate_number)

    async def number_exists(self, certificate_number: str) -> bool:
        return certificate_number in self._by_number

    async def insert(self, record: PublicCertificate) -> PublicCertificate:
        if record.certificate_number in self._by_number:
            raise UniqueConstraintViolation(
                UniqueConstraintViolation.CERTIFICATE_NUMBER
            )
        self._by_number[record.certificate_number] = record
        return record

    async def delete(self, certificate_number: str) -> bool:
        return self._by_number.pop(certificate_number, None) is not None

    async def set_valid(self, certificate_number: str, is_valid: bool) -> None:
        record = self._by_number.get(certificate_number)
        if record is not None:
            self._by_number[certificate_number] = replace(record, is_valid=is_valid)


class InMemoryOrphanRepo:
    def __init__(self) -> None:
        self._records: list[OrphanRecord] = []

    async def add(self, record: OrphanRecord) -> None:
        self._records.append(record)

    async def list_all(self) -> list[OrphanRecord]:
        return list(self._records)
