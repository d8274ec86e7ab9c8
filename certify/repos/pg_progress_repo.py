"""PostgreSQL implementation of ProgressRepo.

``upsert`` is one ``INSERT ... ON CONFLICT DO UPDATE`` statement that
expresses LessonProgress.merged in SQL, so two lesson players writing the
same row concurrently cannot regress it: the database serializes the two
statements and each one merges against the other's committed result.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from certify.db.session import transaction
from certify.db.tables import LessonProgressRow
from certify.models.progress import LessonProgress, ProgressUpdate


class PgProgressRepo:
    """Satisfies the ProgressRepo Protocol using PostgreSQL."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get(self, user_id: str, lesson_id: UUID) -> LessonProgress | None:
        stmt = select(LessonProgressRow).where(
            LessonProgressRow.user_id == user_id,
            LessonProgressRow.lesson_id == lesson_id,
        )
        async with transaction(self._sessions) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return None if row is None else _row_to_progress(row)

    async def list_for_lessons(
        self, user_id: str, lesson_ids: Iterable[UUID]
    ) -> list[LessonProgress]:
        ids = list(lesson_ids)
        if not ids:
            return []
        stmt = select(LessonProgressRow).where(
            LessonProgressRow.user_id == user_id,
            LessonProgressRow.lesson_id.in_(ids),
        )
        async with transaction(self._sessions) as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_progress(row) for row in rows]

    async def upsert(
        self, user_id: str, lesson_id: UUID, update: ProgressUpdate, now: int
    ) -> LessonProgress:
        stmt = upsert_statement(user_id, lesson_id, update, now)
        async with transaction(self._sessions) as session:
            row = (
                await session.execute(
                    stmt, execution_options={"populate_existing": True}
                )
            ).scalar_one()
            return _row_to_progress(row)

    async def reset(
        self, user_id: str, lesson_id: UUID, now: int
    ) -> LessonProgress | None:
        stmt = (
            update(LessonProgressRow)
            .where(
                LessonProgressRow.user_id == user_id,
                LessonProgressRow.lesson_id == lesson_id,
            )
            .values(is_completed=False, completed_at=None, updated_at=now)
            .returning(LessonProgressRow)
        )
        async with transaction(self._sessions) as session:
            row = (
                await session.execute(
                    stmt, execution_options={"populate_existing": True}
                )
            ).scalar_one_or_none()
            return None if row is None else _row_to_progress(row)


def upsert_statement(
    user_id: str, lesson_id: UUID, update: ProgressUpdate, now: int
) -> Any:
    # The insert branch is the merge applied to an empty row
    fresh = LessonProgress.new(user_id=user_id, lesson_id=lesson_id).merged(
        update, now
    )
    stmt = pg_insert(LessonProgressRow).values(
        user_id=fresh.user_id,
        lesson_id=fresh.lesson_id,
        watch_time_seconds=fresh.watch_time_seconds,
        last_position_seconds=fresh.last_position_seconds,
        position_observed_at=fresh.position_observed_at,
        is_completed=fresh.is_completed,
        completed_at=fresh.completed_at,
        quiz_score=fresh.quiz_score,
        quiz_attempts=fresh.quiz_attempts,
        video_watch_count=fresh.video_watch_count,
        last_video_watch_at=fresh.last_video_watch_at,
        updated_at=now,
    )
    return stmt.on_conflict_do_update(
        index_elements=[LessonProgressRow.user_id, LessonProgressRow.lesson_id],
        set_=_merge_assignments(stmt.excluded, update),
    ).returning(LessonProgressRow)


def _merge_assignments(excluded: Any, update: ProgressUpdate) -> dict[str, Any]:
    """SQL form of LessonProgress.merged; keep the two in step."""
    t = LessonProgressRow
    values: dict[str, Any] = {
        "watch_time_seconds": func.greatest(
            t.watch_time_seconds, excluded.watch_time_seconds
        ),
        "is_completed": or_(t.is_completed, excluded.is_completed),
        "completed_at": func.coalesce(t.completed_at, excluded.completed_at),
        "video_watch_count": t.video_watch_count + excluded.video_watch_count,
        "updated_at": excluded.updated_at,
    }
    if update.last_position_seconds is not None:
        newer = or_(
            t.position_observed_at.is_(None),
            excluded.position_observed_at >= t.position_observed_at,
        )
        values["last_position_seconds"] = case(
            (newer, excluded.last_position_seconds),
            else_=t.last_position_seconds,
        )
        values["position_observed_at"] = case(
            (newer, excluded.position_observed_at),
            else_=t.position_observed_at,
        )
    if update.quiz_score is not None:
        # GREATEST ignores NULL, so a first score replaces an empty one
        values["quiz_score"] = func.greatest(t.quiz_score, excluded.quiz_score)
        values["quiz_attempts"] = t.quiz_attempts + 1
    if update.source in ("video_tick", "video_end"):
        values["last_video_watch_at"] = excluded.last_video_watch_at
    return values


def _row_to_progress(row: LessonProgressRow) -> LessonProgress:
    return LessonProgress(
        user_id=row.user_id,
        lesson_id=row.lesson_id,
        watch_time_seconds=row.watch_time_seconds,
        last_position_seconds=row.last_position_seconds,
        position_observed_at=row.position_observed_at,
        is_completed=row.is_completed,
        completed_at=row.completed_at,
        quiz_score=row.quiz_score,
        quiz_attempts=row.quiz_attempts,
        video_watch_count=row.video_watch_count,
        last_video_watch_at=row.last_video_watch_at,
        updated_at=row.updated_at,
    )
