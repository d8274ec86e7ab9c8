"""Component wiring.

Every component receives its store handles through its constructor; this
module is the one place that decides which implementations are used:

  DATABASE_URL set   -> Pg* repositories on a shared session factory
  DATABASE_URL unset -> in-memory repositories (dev, tests)
  redis client given -> RedisIssuanceGuard, else InMemoryIssuanceGuard

The HTTP layer reads the assembled engine from ``app.state.engine`` via the
``get_engine`` dependency, so tests swap in their own engine with
``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from certify.core.config import Settings
from certify.repos.catalog_repo import CatalogRepo, InMemoryCatalogRepo
from certify.repos.certificate_repo import (
    CertificateRepo,
    InMemoryCertificateRepo,
    InMemoryOrphanRepo,
    InMemoryPublicCertificateRepo,
    OrphanRepo,
    PublicCertificateRepo,
)
from certify.repos.exception_repo import ExceptionRepo, InMemoryExceptionRepo
from certify.repos.pg_catalog_repo import PgCatalogRepo
from certify.repos.pg_certificate_repo import (
    PgCertificateRepo,
    PgOrphanRepo,
    PgPublicCertificateRepo,
)
from certify.repos.pg_exception_repo import PgExceptionRepo
from certify.repos.pg_progress_repo import PgProgressRepo
from certify.repos.progress_repo import InMemoryProgressRepo, ProgressRepo
from certify.services.eligibility import EligibilityEvaluator
from certify.services.issuer import CertificateIssuer, IssuerOptions
from certify.services.numbering import CertificateNumberGenerator
from certify.services.progress_service import ProgressTracker
from certify.services.trigger import (
    AutoIssueTrigger,
    InMemoryIssuanceGuard,
    IssuanceGuard,
    RedisIssuanceGuard,
)

logger = logging.getLogger(__name__)


@dataclass
class CertificationEngine:
    settings: Settings
    progress_repo: ProgressRepo
    catalog_repo: CatalogRepo
    exception_repo: ExceptionRepo
    certificate_repo: CertificateRepo
    public_repo: PublicCertificateRepo
    orphan_repo: OrphanRepo
    guard: IssuanceGuard
    evaluator: EligibilityEvaluator
    issuer: CertificateIssuer
    trigger: AutoIssueTrigger
    tracker: ProgressTracker


def assemble_engine(
    settings: Settings,
    *,
    progress: ProgressRepo,
    catalog: CatalogRepo,
    exceptions: ExceptionRepo,
    certificates: CertificateRepo,
    public: PublicCertificateRepo,
    orphans: OrphanRepo,
    guard: IssuanceGuard,
    numbers: CertificateNumberGenerator | None = None,
) -> CertificationEngine:
    evaluator = EligibilityEvaluator(catalog, progress, exceptions, certificates)
    issuer = CertificateIssuer(
        evaluator=evaluator,
        catalog=catalog,
        certificates=certificates,
        public=public,
        orphans=orphans,
        numbers=numbers
        or CertificateNumberGenerator(
            settings.certificate_prefix, max_attempts=settings.number_max_attempts
        ),
        options=IssuerOptions.from_settings(settings),
    )
    trigger = AutoIssueTrigger(evaluator, issuer, guard)
    return CertificationEngine(
        settings=settings,
        progress_repo=progress,
        catalog_repo=catalog,
        exception_repo=exceptions,
        certificate_repo=certificates,
        public_repo=public,
        orphan_repo=orphans,
        guard=guard,
        evaluator=evaluator,
        issuer=issuer,
        trigger=trigger,
        tracker=ProgressTracker(progress, trigger),
    )


def _guard_for(settings: Settings, redis_client) -> IssuanceGuard:
    if redis_client is not None:
        return RedisIssuanceGuard(redis_client, settings.issuance_guard_ttl_seconds)
    return InMemoryIssuanceGuard(settings.issuance_guard_ttl_seconds)


def build_in_memory_engine(
    settings: Settings,
    *,
    guard: IssuanceGuard | None = None,
    numbers: CertificateNumberGenerator | None = None,
) -> CertificationEngine:
    return assemble_engine(
        settings,
        progress=InMemoryProgressRepo(),
        catalog=InMemoryCatalogRepo(),
        exceptions=InMemoryExceptionRepo(),
        certificates=InMemoryCertificateRepo(),
        public=InMemoryPublicCertificateRepo(),
        orphans=InMemoryOrphanRepo(),
        guard=guard or _guard_for(settings, None),
        numbers=numbers,
    )


def build_pg_engine(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    redis_client=None,
) -> CertificationEngine:
    return assemble_engine(
        settings,
        progress=PgProgressRepo(session_factory),
        catalog=PgCatalogRepo(session_factory),
        exceptions=PgExceptionRepo(session_factory),
        certificates=PgCertificateRepo(session_factory),
        public=PgPublicCertificateRepo(session_factory),
        orphans=PgOrphanRepo(session_factory),
        guard=_guard_for(settings, redis_client),
    )


def build_engine(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    redis_client=None,
) -> CertificationEngine:
    if session_factory is None:
        logger.info("Certification engine using in-memory stores")
        return build_in_memory_engine(
            settings, guard=_guard_for(settings, redis_client)
        )
    logger.info("Certification engine using PostgreSQL stores")
    return build_pg_engine(settings, session_factory, redis_client)
