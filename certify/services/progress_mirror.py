"""Write-through progress mirror for lesson-player clients.

A player shows progress before the store confirms it.  The mirror makes
the reconciliation rule explicit instead of trusting local state:

  write()  1. merge the update into the local copy (optimistic)
           2. send it to the store
           3a. success -> local copy := the row the store returned
           3b. failure -> local copy := value before step 1, re-raise

The store's row wins on success because other devices may have written
the same lesson in between.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Awaitable, Callable
from uuid import UUID

from certify.models.progress import LessonProgress, ProgressUpdate

logger = logging.getLogger(__name__)

ProgressWriter = Callable[[str, UUID, ProgressUpdate], Awaitable[LessonProgress]]


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


class ProgressMirror:
    def __init__(
        self, writer: ProgressWriter, clock: Callable[[], int] = _now
    ) -> None:
        self._writer = writer
        self._clock = clock
        self._local: dict[tuple[str, UUID], LessonProgress] = {}

    def get(self, user_id: str, lesson_id: UUID) -> LessonProgress | None:
        return self._local.get((user_id, lesson_id))

    def seed(self, row: LessonProgress) -> None:
        """Load a row read from the store, e.g. when a player opens."""
        self._local[(row.user_id, row.lesson_id)] = row

    async def write(
        self, user_id: str, lesson_id: UUID, update: ProgressUpdate
    ) -> LessonProgress:
        key = (user_id, lesson_id)
        previous = self._local.get(key)
        base = previous or LessonProgress.new(user_id=user_id, lesson_id=lesson_id)
        self._local[key] = base.merged(update, self._clock())

        try:
            confirmed = await self._writer(user_id, lesson_id, update)
        except Exception:
            if previous is None:
                self._local.pop(key, None)
            else:
                self._local[key] = previous
            logger.warning(
                "Progress write failed, local state reverted",
                extra={"user_id": user_id, "lesson_id": str(lesson_id)},
            )
            raise

        self._local[key] = confirmed
        return confirmed
