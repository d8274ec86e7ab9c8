"""Lesson progress endpoints used by the lesson players.

- PUT /v1/progress/{kind}/{item_id}/lessons/{lesson_id}
    body.event selects the kind of write:
      video_tick  periodic/pause position report  (position_seconds)
      video_end   video watched to the end        (position_seconds) -> completes
      reading     time spent on notes             (seconds, completed)
      quiz        quiz submission                 (score, passing_score)
      complete    explicit "mark as done"
    The response carries the merged row and, when this write completed
    the lesson, the auto-issue outcome (e.g. a freshly issued certificate).

- GET /v1/progress/{kind}/{item_id}/lessons/{lesson_id}
"""

from __future__ import annotations

from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from certify.api.dependencies import get_engine, require_user
from certify.engine import CertificationEngine
from certify.models.eligibility import AutoIssueOutcome
from certify.models.entity import EntityKind
from certify.models.principal import Principal
from certify.models.progress import (
    DEFAULT_PASSING_SCORE,
    LessonProgress,
    ProgressUpdate,
)

router = APIRouter(prefix="/v1/progress", tags=["progress"])


class ProgressWriteIn(BaseModel):
    event: Literal["video_tick", "video_end", "reading", "quiz", "complete"]
    position_seconds: int | None = Field(default=None, ge=0)
    watch_time_seconds: int | None = Field(default=None, ge=0)
    observed_at: int | None = Field(default=None, ge=0)
    seconds: int | None = Field(default=None, ge=0)
    completed: bool = False
    score: int | None = Field(default=None, ge=0, le=100)
    passing_score: int = Field(default=DEFAULT_PASSING_SCORE, ge=0, le=100)

    def to_update(self) -> ProgressUpdate:
        if self.event in ("video_tick", "video_end") and self.position_seconds is None:
            raise ValueError(f"{self.event} requires position_seconds")
        if self.event == "video_tick":
            return ProgressUpdate.video_tick(
                position_seconds=self.position_seconds,  # type: ignore[arg-type]
                watch_time_seconds=self.watch_time_seconds,
                observed_at=self.observed_at,
            )
        if self.event == "video_end":
            return ProgressUpdate.video_end(
                position_seconds=self.position_seconds,  # type: ignore[arg-type]
                observed_at=self.observed_at,
            )
        if self.event == "reading":
            if self.seconds is None:
                raise ValueError("reading requires seconds")
            return ProgressUpdate.reading(seconds=self.seconds, completed=self.completed)
        if self.event == "quiz":
            if self.score is None:
                raise ValueError("quiz requires score")
            return ProgressUpdate.quiz_submission(
                score=self.score, passing_score=self.passing_score
            )
        return ProgressUpdate.complete()


class LessonProgressOut(BaseModel):
    lesson_id: str
    watch_time_seconds: int
    last_position_seconds: int
    is_completed: bool
    completed_at: int | None
    quiz_score: int | None
    quiz_attempts: int
    video_watch_count: int
    updated_at: int | None

    @staticmethod
    def from_progress(row: LessonProgress) -> LessonProgressOut:
        return LessonProgressOut(
            lesson_id=str(row.lesson_id),
            watch_time_seconds=row.watch_time_seconds,
            last_position_seconds=row.last_position_seconds,
            is_completed=row.is_completed,
            completed_at=row.completed_at,
            quiz_score=row.quiz_score,
            quiz_attempts=row.quiz_attempts,
            video_watch_count=row.video_watch_count,
            updated_at=row.updated_at,
        )


class AutoIssueOut(BaseModel):
    status: str
    certificate_number: str | None = None
    certificate_url: str | None = None
    completion_percentage: int | None = None
    message: str | None = None

    @staticmethod
    def from_outcome(outcome: AutoIssueOutcome) -> AutoIssueOut:
        cert = outcome.certificate
        return AutoIssueOut(
            status=outcome.status,
            certificate_number=cert.certificate_number if cert else None,
            certificate_url=cert.certificate_url if cert else None,
            completion_percentage=outcome.completion_percentage,
            message=outcome.message,
        )


class ProgressWriteOut(BaseModel):
    progress: LessonProgressOut
    became_completed: bool
    auto_issue: AutoIssueOut | None = None


@router.put(
    "/{kind}/{item_id}/lessons/{lesson_id}", response_model=ProgressWriteOut
)
async def write_progress(
    kind: EntityKind,
    item_id: UUID,
    lesson_id: UUID,
    body: ProgressWriteIn,
    principal: Annotated[Principal, Depends(require_user)],
    engine: Annotated[CertificationEngine, Depends(get_engine)],
) -> ProgressWriteOut:
    try:
        update = body.to_update()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None

    result = await engine.tracker.record(
        principal.user_id,
        kind,
        item_id,
        lesson_id,
        update,
        student_name=principal.display_name,
    )
    return ProgressWriteOut(
        progress=LessonProgressOut.from_progress(result.progress),
        became_completed=result.became_completed,
        auto_issue=(
            AutoIssueOut.from_outcome(result.auto_issue)
            if result.auto_issue is not None
            else None
        ),
    )


@router.get(
    "/{kind}/{item_id}/lessons/{lesson_id}", response_model=LessonProgressOut
)
async def read_progress(
    kind: EntityKind,
    item_id: UUID,
    lesson_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    engine: Annotated[CertificationEngine, Depends(get_engine)],
) -> LessonProgressOut:
    row = await engine.tracker.get(principal.user_id, lesson_id)
    if row is None:
        raise HTTPException(status_code=404, detail="no progress recorded")
    return LessonProgressOut.from_progress(row)
