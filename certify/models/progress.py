from __future__ import annotations

from dataclasses import dataclass, replace
from uuid import UUID

DEFAULT_PASSING_SCORE = 70


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    """Fields a lesson player sends on pause, periodic tick, quiz submit or
    video end.  ``None`` means "not reported in this write"."""

    source: str  # video_tick|video_end|reading|quiz|complete
    watch_time_seconds: int | None = None
    last_position_seconds: int | None = None
    observed_at: int | None = None  # client clock, epoch seconds
    completed: bool = False
    quiz_score: int | None = None
    video_ended: bool = False

    @staticmethod
    def video_tick(
        *,
        position_seconds: int,
        watch_time_seconds: int | None = None,
        observed_at: int | None = None,
    ) -> ProgressUpdate:
        return ProgressUpdate(
            source="video_tick",
            watch_time_seconds=(
                position_seconds if watch_time_seconds is None else watch_time_seconds
            ),
            last_position_seconds=position_seconds,
            observed_at=observed_at,
        )

    @staticmethod
    def video_end(
        *, position_seconds: int, observed_at: int | None = None
    ) -> ProgressUpdate:
        return ProgressUpdate(
            source="video_end",
            watch_time_seconds=position_seconds,
            last_position_seconds=position_seconds,
            observed_at=observed_at,
            completed=True,
            video_ended=True,
        )

    @staticmethod
    def reading(*, seconds: int, completed: bool = False) -> ProgressUpdate:
        return ProgressUpdate(
            source="reading", watch_time_seconds=seconds, completed=completed
        )

    @staticmethod
    def quiz_submission(
        *, score: int, passing_score: int = DEFAULT_PASSING_SCORE
    ) -> ProgressUpdate:
        if not 0 <= score <= 100:
            raise ValueError(f"quiz score must be within 0..100 (got {score})")
        return ProgressUpdate(
            source="quiz", quiz_score=score, completed=score >= passing_score
        )

    @staticmethod
    def complete() -> ProgressUpdate:
        return ProgressUpdate(source="complete", completed=True)


@dataclass(frozen=True, slots=True)
class LessonProgress:
    """Per-(user, lesson) consumption state.

    Invariant: ``completed_at`` is set iff ``is_completed``.  For events the
    unit is an event section and its id is stored in ``lesson_id``.
    """

    user_id: str
    lesson_id: UUID
    watch_time_seconds: int = 0
    last_position_seconds: int = 0
    position_observed_at: int | None = None
    is_completed: bool = False
    completed_at: int | None = None
    quiz_score: int | None = None
    quiz_attempts: int = 0
    video_watch_count: int = 0
    last_video_watch_at: int | None = None
    updated_at: int | None = None

    @staticmethod
    def new(*, user_id: str, lesson_id: UUID) -> LessonProgress:
        return LessonProgress(user_id=user_id, lesson_id=lesson_id)

    def merged(self, update: ProgressUpdate, now: int) -> LessonProgress:
        """Apply ``update`` with compare-and-set semantics.

        Watch time never decreases, a position only replaces one observed at
        the same time or earlier, completion is sticky, and the best quiz
        score is kept.  PgProgressRepo expresses the same rule in SQL.
        """
        watch_time = self.watch_time_seconds
        if update.watch_time_seconds is not None:
            watch_time = max(watch_time, update.watch_time_seconds)

        position = self.last_position_seconds
        position_observed_at = self.position_observed_at
        if update.last_position_seconds is not None:
            observed_at = update.observed_at if update.observed_at is not None else now
            if position_observed_at is None or observed_at >= position_observed_at:
                position = update.last_position_seconds
                position_observed_at = observed_at

        is_completed = self.is_completed or update.completed
        completed_at = self.completed_at
        if is_completed and completed_at is None:
            completed_at = now

        quiz_score = self.quiz_score
        quiz_attempts = self.quiz_attempts
        if update.quiz_score is not None:
            quiz_attempts += 1
            quiz_score = (
                update.quiz_score
                if quiz_score is None
                else max(quiz_score, update.quiz_score)
            )

        video_watch_count = self.video_watch_count + (1 if update.video_ended else 0)
        last_video_watch_at = self.last_video_watch_at
        if update.source in ("video_tick", "video_end"):
            last_video_watch_at = now

        return replace(
            self,
            watch_time_seconds=watch_time,
            last_position_seconds=position,
            position_observed_at=position_observed_at,
            is_completed=is_completed,
            completed_at=completed_at,
            quiz_score=quiz_score,
            quiz_attempts=quiz_attempts,
            video_watch_count=video_watch_count,
            last_video_watch_at=last_video_watch_at,
            updated_at=now,
        )

    def reset(self, now: int) -> LessonProgress:
        """Administrative un-completion; consumption history is kept."""
        return replace(self, is_completed=False, completed_at=None, updated_at=now)
