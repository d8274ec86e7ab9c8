"""Eligibility evaluation for course and event certificates.

ORDER OF CHECKS
  1. Active exception      -> eligible, nothing missing.
  2. Active certificate    -> eligible, certificate attached.
  3. Catalog               -> CatalogUnavailable if it has no active units.
  4. Progress              -> rows for the catalog's unit ids only.

Steps 1 and 2 short-circuit before any progress is read: an exception is
an administrative override of whatever progress says, and an issued
certificate must keep evaluating as eligible even if progress later
changes (e.g. an administrative reset).

PERCENTAGE
  round-half-up(100 * completed / total), capped at 99 while any unit is
  incomplete so rounding alone can never reach 100.  Because only the
  current catalog's units are counted, removing lessons from a course
  can only raise a learner's percentage.

The evaluator only reads.  It is safe to call on every page load.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from certify.models.catalog import LessonCatalog
from certify.models.eligibility import EligibilityResult
from certify.models.entity import EligibilityPolicy, EntityKind, policy_for
from certify.models.progress import LessonProgress
from certify.repos.catalog_repo import CatalogRepo
from certify.repos.certificate_repo import CertificateRepo
from certify.repos.exception_repo import ExceptionRepo
from certify.repos.progress_repo import ProgressRepo
from certify.services.errors import CatalogUnavailable


def completion_percentage(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    pct = (200 * completed + total) // (2 * total)
    if completed < total:
        pct = min(pct, 99)
    return min(pct, 100)


def missing_requirements(
    policy: EligibilityPolicy, completed: int, total: int, percentage: int
) -> tuple[str, ...]:
    if percentage >= policy.threshold:
        return ()
    if policy.threshold >= 100:
        remaining = total - completed
        noun = policy.unit_noun if remaining == 1 else f"{policy.unit_noun}s"
        return (f"{remaining} {noun} remaining",)
    return (f"{policy.threshold}% completion required (current: {percentage}%)",)


def summarize(
    policy: EligibilityPolicy,
    catalog: LessonCatalog,
    rows: Iterable[LessonProgress],
) -> EligibilityResult:
    """Pure completion summary of ``rows`` against ``catalog``."""
    unit_ids = catalog.lesson_ids
    by_lesson = {row.lesson_id: row for row in rows if row.lesson_id in unit_ids}

    total = len(unit_ids)
    completed = sum(1 for row in by_lesson.values() if row.is_completed)
    pct = completion_percentage(completed, total)

    quizzes = catalog.quiz_lessons
    quiz_rows = [by_lesson[q.id] for q in quizzes if q.id in by_lesson]
    scores = [r.quiz_score for r in quiz_rows if r.quiz_score]
    average = (2 * sum(scores) + len(scores)) // (2 * len(scores)) if scores else 0

    return EligibilityResult(
        is_eligible=pct >= policy.threshold,
        completion_percentage=pct,
        completed_lessons=completed,
        total_lessons=total,
        total_quizzes=len(quizzes),
        completed_quizzes=sum(1 for r in quiz_rows if r.is_completed),
        average_quiz_score=average,
        missing_requirements=missing_requirements(policy, completed, total, pct),
    )


class EligibilityEvaluator:
    def __init__(
        self,
        catalog: CatalogRepo,
        progress: ProgressRepo,
        exceptions: ExceptionRepo,
        certificates: CertificateRepo,
    ) -> None:
        self._catalog = catalog
        self._progress = progress
        self._exceptions = exceptions
        self._certificates = certificates

    async def evaluate(
        self, user_id: str, item_id: UUID, kind: EntityKind = "course"
    ) -> EligibilityResult:
        policy = policy_for(kind)

        if await self._exceptions.get_active(user_id, kind, item_id) is not None:
            return EligibilityResult(
                is_eligible=True,
                completion_percentage=100,
                existing_certificate=await self._certificates.get_active(
                    user_id, kind, item_id
                ),
                has_exception=True,
            )

        existing = await self._certificates.get_active(user_id, kind, item_id)
        if existing is not None:
            return EligibilityResult(
                is_eligible=True,
                completion_percentage=100,
                existing_certificate=existing,
            )

        catalog = await self.load_catalog(kind, item_id)
        rows = await self._progress.list_for_lessons(user_id, catalog.lesson_ids)
        return summarize(policy, catalog, rows)

    async def load_catalog(self, kind: EntityKind, item_id: UUID) -> LessonCatalog:
        catalog = await self._catalog.get_catalog(kind, item_id)
        if catalog is None or len(catalog) == 0:
            raise CatalogUnavailable(kind, item_id)
        return catalog
