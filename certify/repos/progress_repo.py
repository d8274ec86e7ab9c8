from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol
from uuid import UUID

from certify.models.progress import LessonProgress, ProgressUpdate


class ProgressRepo(Protocol):
    async def get(self, user_id: str, lesson_id: UUID) -> LessonProgress | None: ...
    async def list_for_lessons(
        self, user_id: str, lesson_ids: Iterable[UUID]
    ) -> list[LessonProgress]: ...
    async def upsert(
        self, user_id: str, lesson_id: UUID, update: ProgressUpdate, now: int
    ) -> LessonProgress: ...
    async def reset(
        self, user_id: str, lesson_id: UUID, now: int
    ) -> LessonProgress | None: ...


class InMemoryProgressRepo:
    def __init__(self) -> None:
        self._rows: dict[tuple[str, UUID], LessonProgress] = {}

    async def get(self, user_id: str, lesson_id: UUID) -> LessonProgress | None:
        return self._rows.get((user_id, lesson_id))

    async def list_for_lessons(
        self, user_id: str, lesson_ids: Iterable[UUID]
    ) -> list[LessonProgress]:
        wanted = set(lesson_ids)
        return [
            row
            for (uid, lid), row in self._rows.items()
            if uid == user_id and lid in wanted
        ]

    async def upsert(
        self, user_id: str, lesson_id: UUID, update: ProgressUpdate, now: int
    ) -> LessonProgress:
        # No await between read and write: atomic on the event loop
        key = (user_id, lesson_id)
        current = self._rows.get(key) or LessonProgress.new(
            user_id=user_id, lesson_id=lesson_id
        )
        merged = current.merged(update, now)
        self._rows[key] = merged
        return merged

    async def reset(
        self, user_id: str, lesson_id: UUID, now: int
    ) -> LessonProgress | None:
        key = (user_id, lesson_id)
        current = self._rows.get(key)
        if current is None:
            return None
        updated = current.reset(now)
        self._rows[key] = updated
        return updated
