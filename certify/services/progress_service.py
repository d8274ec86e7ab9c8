"""Lesson progress write path.

Every lesson player (video, notes, quiz) writes through ``record``.  The
store merges the update atomically (see LessonProgress.merged); this
layer only decides whether the write *completed* the lesson, and if so
hands the event to the auto-issue trigger.

Resetting a lesson is an administrative action.  It clears completion but
keeps watch and quiz history, and it never touches an issued certificate:
the evaluator keeps a certified learner eligible regardless of progress.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from certify.core.metrics import PROGRESS_WRITES
from certify.models.eligibility import AutoIssueOutcome
from certify.models.entity import EntityKind
from certify.models.progress import LessonProgress, ProgressUpdate
from certify.repos.progress_repo import ProgressRepo
from certify.services.trigger import AutoIssueTrigger

logger = logging.getLogger(__name__)


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


@dataclass(frozen=True, slots=True)
class ProgressWriteResult:
    progress: LessonProgress
    became_completed: bool
    auto_issue: AutoIssueOutcome | None = None


class ProgressTracker:
    def __init__(
        self,
        progress: ProgressRepo,
        trigger: AutoIssueTrigger | None = None,
        clock: Callable[[], int] = _now,
    ) -> None:
        self._progress = progress
        self._trigger = trigger
        self._clock = clock

    async def get(self, user_id: str, lesson_id: UUID) -> LessonProgress | None:
        return await self._progress.get(user_id, lesson_id)

    async def record(
        self,
        user_id: str,
        kind: EntityKind,
        item_id: UUID,
        lesson_id: UUID,
        update: ProgressUpdate,
        student_name: str | None = None,
    ) -> ProgressWriteResult:
        before = await self._progress.get(user_id, lesson_id)
        row = await self._progress.upsert(user_id, lesson_id, update, self._clock())
        PROGRESS_WRITES.labels(source=update.source).inc()

        was_completed = before is not None and before.is_completed
        became_completed = row.is_completed and not was_completed
        if not became_completed:
            return ProgressWriteResult(progress=row, became_completed=False)

        logger.info(
            "Lesson completed",
            extra={
                "user_id": user_id,
                "item_kind": kind,
                "item_id": str(item_id),
                "lesson_id": str(lesson_id),
            },
        )
        outcome = None
        if self._trigger is not None:
            outcome = await self._trigger.on_lesson_completed(
                user_id, kind, item_id, student_name=student_name
            )
        return ProgressWriteResult(
            progress=row, became_completed=True, auto_issue=outcome
        )

    async def reset_lesson(
        self, user_id: str, lesson_id: UUID
    ) -> LessonProgress | None:
        row = await self._progress.reset(user_id, lesson_id, self._clock())
        if row is not None:
            logger.info(
                "Lesson completion reset",
                extra={"user_id": user_id, "lesson_id": str(lesson_id)},
            )
        return row
