from __future__ import annotations

import asyncio
from dataclasses import replace
from uuid import uuid4

import pytest

from certify.models.catalog import LessonCatalog
from certify.models.exception import CertificateException
from certify.models.progress import ProgressUpdate
from certify.services.eligibility import completion_percentage
from certify.services.errors import CatalogUnavailable

NOW = 1_760_000_000


def _complete(engine, user_id, lesson_ids) -> None:
    async def run() -> None:
        for lesson_id in lesson_ids:
            await engine.progress_repo.upsert(
                user_id, lesson_id, ProgressUpdate.complete(), NOW
            )

    asyncio.run(run())


# ---- percentage ----


@pytest.mark.parametrize(
    ("completed", "total", "expected"),
    [
        (0, 0, 0),
        (0, 4, 0),
        (3, 4, 75),
        (4, 4, 100),
        (1, 3, 33),
        (2, 3, 67),
        (1, 8, 13),
        (199, 200, 99),
    ],
)
def test_completion_percentage(completed: int, total: int, expected: int) -> None:
    assert completion_percentage(completed, total) == expected


# ---- courses ----


def test_three_of_four_lessons(engine, course) -> None:
    _complete(engine, "u1", course.lesson_ids[:3])
    result = asyncio.run(engine.evaluator.evaluate("u1", course.item_id))
    assert result.is_eligible is False
    assert result.completion_percentage == 75
    assert result.completed_lessons == 3
    assert result.total_lessons == 4
    assert result.missing_requirements == ("1 lesson remaining",)


def test_no_progress_lists_every_lesson(engine, course) -> None:
    result = asyncio.run(engine.evaluator.evaluate("u1", course.item_id))
    assert result.completion_percentage == 0
    assert result.missing_requirements == ("4 lessons remaining",)


def test_all_lessons_complete(engine, course) -> None:
    _complete(engine, "u1", course.lesson_ids)
    result = asyncio.run(engine.evaluator.evaluate("u1", course.item_id))
    assert result.is_eligible is True
    assert result.completion_percentage == 100
    assert result.missing_requirements == ()


def test_progress_of_other_learners_ignored(engine, course) -> None:
    _complete(engine, "someone-else", course.lesson_ids)
    result = asyncio.run(engine.evaluator.evaluate("u1", course.item_id))
    assert result.is_eligible is False


def test_progress_outside_catalog_ignored(engine, course) -> None:
    _complete(engine, "u1", course.lesson_ids[:3])
    _complete(engine, "u1", [uuid4(), uuid4()])
    result = asyncio.run(engine.evaluator.evaluate("u1", course.item_id))
    assert result.completed_lessons == 3
    assert result.completion_percentage == 75


def test_catalog_shrink_never_lowers_percentage(engine, course) -> None:
    _complete(engine, "u1", course.lesson_ids[:3])
    before = asyncio.run(engine.evaluator.evaluate("u1", course.item_id))

    removed = course.lesson_ids[3]
    repo = engine.catalog_repo
    catalog = asyncio.run(repo.get_catalog("course", course.item_id))
    details = asyncio.run(repo.get_details("course", course.item_id))
    shrunk = LessonCatalog(
        kind="course",
        item_id=course.item_id,
        sections=tuple(
            replace(s, lessons=tuple(x for x in s.lessons if x.id != removed))
            for s in catalog.sections
        ),
    )
    repo.put(details, shrunk)

    after = asyncio.run(engine.evaluator.evaluate("u1", course.item_id))
    assert after.completion_percentage >= before.completion_percentage
    assert after.completion_percentage == 100
    assert after.is_eligible is True


def test_quiz_summary_uses_best_scores(engine, make_course) -> None:
    course = make_course(engine.catalog_repo, ("video", "quiz", "quiz"))

    async def run() -> None:
        quiz_a, quiz_b = course.quiz_ids
        repo = engine.progress_repo
        await repo.upsert("u1", quiz_a, ProgressUpdate.quiz_submission(score=50), NOW)
        await repo.upsert("u1", quiz_a, ProgressUpdate.quiz_submission(score=80), NOW)
        await repo.upsert("u1", quiz_b, ProgressUpdate.quiz_submission(score=95), NOW)

    asyncio.run(run())
    result = asyncio.run(engine.evaluator.evaluate("u1", course.item_id))
    assert result.total_quizzes == 2
    assert result.completed_quizzes == 2
    assert result.average_quiz_score == 88


def test_unknown_item_raises_catalog_unavailable(engine) -> None:
    with pytest.raises(CatalogUnavailable):
        asyncio.run(engine.evaluator.evaluate("u1", uuid4()))


def test_empty_catalog_raises_catalog_unavailable(engine, make_course) -> None:
    course = make_course(engine.catalog_repo, ())
    with pytest.raises(CatalogUnavailable):
        asyncio.run(engine.evaluator.evaluate("u1", course.item_id))


# ---- exceptions and existing certificates ----


def test_exception_bypasses_progress(engine, course) -> None:
    engine.exception_repo.add(
        CertificateException(user_id="u1", kind="course", item_id=course.item_id)
    )
    result = asyncio.run(engine.evaluator.evaluate("u1", course.item_id))
    assert result.is_eligible is True
    assert result.missing_requirements == ()
    assert result.has_exception is True


def test_inactive_exception_ignored(engine, course) -> None:
    engine.exception_repo.add(
        CertificateException(
            user_id="u1", kind="course", item_id=course.item_id, is_active=False
        )
    )
    result = asyncio.run(engine.evaluator.evaluate("u1", course.item_id))
    assert result.is_eligible is False
    assert result.has_exception is False


def test_exception_skips_catalog_lookup(engine) -> None:
    item_id = uuid4()
    engine.exception_repo.add(
        CertificateException(user_id="u1", kind="course", item_id=item_id)
    )
    result = asyncio.run(engine.evaluator.evaluate("u1", item_id))
    assert result.is_eligible is True


def test_existing_certificate_attached(engine, course) -> None:
    _complete(engine, "u1", course.lesson_ids)
    issued = asyncio.run(engine.issuer.issue("u1", course.item_id))
    result = asyncio.run(engine.evaluator.evaluate("u1", course.item_id))
    assert result.is_eligible is True
    assert result.existing_certificate == issued.certificate


# ---- events ----


def test_event_eligible_at_seventy_percent(engine, event) -> None:
    _complete(engine, "u1", event.lesson_ids[:7])
    result = asyncio.run(engine.evaluator.evaluate("u1", event.item_id, "event"))
    assert result.is_eligible is True
    assert result.completion_percentage == 70
    assert result.missing_requirements == ()


def test_event_below_threshold(engine, event) -> None:
    _complete(engine, "u1", event.lesson_ids[:6])
    result = asyncio.run(engine.evaluator.evaluate("u1", event.item_id, "event"))
    assert result.is_eligible is False
    assert result.missing_requirements == (
        "70% completion required (current: 60%)",
    )


def test_kinds_do_not_share_catalogs(engine, event) -> None:
    with pytest.raises(CatalogUnavailable):
        asyncio.run(engine.evaluator.evaluate("u1", event.item_id, "course"))
