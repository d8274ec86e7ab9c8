"""SQL rendering of the progress merge rule.

Compiled against the PostgreSQL dialect; no database needed.
"""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy.dialects import postgresql

from certify.models.progress import ProgressUpdate
from certify.repos.pg_progress_repo import upsert_statement

NOW = 1_760_000_000


def _sql(update: ProgressUpdate) -> str:
    stmt = upsert_statement("u1", uuid4(), update, NOW)
    return " ".join(str(stmt.compile(dialect=postgresql.dialect())).split())


def _set_clause(sql: str) -> str:
    return sql.split("DO UPDATE SET", 1)[1]


def test_upsert_conflicts_on_user_and_lesson() -> None:
    sql = _sql(ProgressUpdate.complete())
    assert "ON CONFLICT (user_id, lesson_id) DO UPDATE SET" in sql
    assert "RETURNING" in sql


def test_watch_time_and_completion_never_regress() -> None:
    set_clause = _set_clause(_sql(ProgressUpdate.complete()))
    assert (
        "greatest(lesson_progress.watch_time_seconds, excluded.watch_time_seconds)"
        in set_clause
    )
    assert "lesson_progress.is_completed OR excluded.is_completed" in set_clause
    assert (
        "coalesce(lesson_progress.completed_at, excluded.completed_at)" in set_clause
    )


def test_video_tick_moves_position_only_when_newer() -> None:
    set_clause = _set_clause(
        _sql(ProgressUpdate.video_tick(position_seconds=95, observed_at=1000))
    )
    assert "CASE WHEN" in set_clause
    assert (
        "excluded.position_observed_at >= lesson_progress.position_observed_at"
        in set_clause
    )
    assert (
        "THEN excluded.last_position_seconds "
        "ELSE lesson_progress.last_position_seconds END" in set_clause
    )
    assert "excluded.last_video_watch_at" in set_clause
    assert "excluded.quiz_score" not in set_clause


def test_quiz_keeps_best_score_and_counts_attempts() -> None:
    set_clause = _set_clause(_sql(ProgressUpdate.quiz_submission(score=85)))
    assert "greatest(lesson_progress.quiz_score, excluded.quiz_score)" in set_clause
    assert "lesson_progress.quiz_attempts +" in set_clause
    assert "excluded.last_position_seconds" not in set_clause
