from __future__ import annotations

import asyncio

from prometheus_client import REGISTRY
from redis.exceptions import ConnectionError as RedisConnectionError

from certify.engine import assemble_engine
from certify.models.certificate import PublicCertificate
from certify.models.eligibility import UNAVAILABLE_MESSAGE
from certify.models.progress import LessonProgress, ProgressUpdate
from certify.repos.catalog_repo import InMemoryCatalogRepo
from certify.repos.certificate_repo import (
    InMemoryCertificateRepo,
    InMemoryOrphanRepo,
    InMemoryPublicCertificateRepo,
)
from certify.repos.exception_repo import InMemoryExceptionRepo
from certify.repos.progress_repo import InMemoryProgressRepo
from certify.services.trigger import (
    InMemoryIssuanceGuard,
    RedisIssuanceGuard,
    guard_key,
)

NOW = 1_760_000_000


def _sample(name: str, labels: dict | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels=labels or {}) or 0.0


def _complete(engine, user_id, lesson_ids) -> None:
    async def run() -> None:
        for lesson_id in lesson_ids:
            await engine.progress_repo.upsert(
                user_id, lesson_id, ProgressUpdate.complete(), NOW
            )

    asyncio.run(run())


class _FlakyPublicRepo(InMemoryPublicCertificateRepo):
    def __init__(self) -> None:
        super().__init__()
        self.down = True

    async def insert(self, record: PublicCertificate) -> PublicCertificate:
        if self.down:
            raise ConnectionError("public store unreachable")
        return await super().insert(record)


class _FakeRedis:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.values:
            return None
        self.values[key] = value
        return True

    async def get(self, key):
        return self.values.get(key)

    async def delete(self, key):
        return 1 if self.values.pop(key, None) is not None else 0


class _SlowProgressRepo(InMemoryProgressRepo):
    """Lets one completion read progress before another write lands."""

    def __init__(self, slow_lesson_id) -> None:
        super().__init__()
        self._slow_lesson_id = slow_lesson_id

    async def upsert(self, user_id, lesson_id, update, now) -> LessonProgress:
        if lesson_id == self._slow_lesson_id:
            await asyncio.sleep(0.02)
        return await super().upsert(user_id, lesson_id, update, now)

    async def list_for_lessons(self, user_id, lesson_ids) -> list[LessonProgress]:
        rows = await super().list_for_lessons(user_id, lesson_ids)
        await asyncio.sleep(0.05)
        return rows


class _DownRedis:
    async def set(self, *args, **kwargs):
        raise RedisConnectionError("connection refused")

    async def delete(self, *args, **kwargs):
        raise RedisConnectionError("connection refused")


# ---- trigger ----


def test_certified_guard_suppresses_attempt(engine, course) -> None:
    _complete(engine, "u1", course.lesson_ids)
    key = guard_key("course", course.item_id, "u1")
    asyncio.run(engine.guard.complete(key))

    outcome = asyncio.run(
        engine.trigger.on_lesson_completed("u1", "course", course.item_id)
    )
    assert outcome.status == "suppressed"
    assert asyncio.run(engine.issuer.get_user_certificate("u1", course.item_id)) is None


def test_in_flight_guard_does_not_suppress(engine, course) -> None:
    _complete(engine, "u1", course.lesson_ids)
    key = guard_key("course", course.item_id, "u1")
    asyncio.run(engine.guard.try_acquire(key))

    outcome = asyncio.run(
        engine.trigger.on_lesson_completed("u1", "course", course.item_id)
    )
    assert outcome.status == "issued"


def test_not_eligible_releases_guard(engine, course) -> None:
    _complete(engine, "u1", course.lesson_ids[:2])
    outcome = asyncio.run(
        engine.trigger.on_lesson_completed("u1", "course", course.item_id)
    )
    assert outcome.status == "not_eligible"
    assert outcome.completion_percentage == 50
    key = guard_key("course", course.item_id, "u1")
    assert asyncio.run(engine.guard.try_acquire(key)) is True


def test_issued_marks_guard_done(engine, course) -> None:
    _complete(engine, "u1", course.lesson_ids)

    async def run():
        first = await engine.trigger.on_lesson_completed("u1", "course", course.item_id)
        second = await engine.trigger.on_lesson_completed(
            "u1", "course", course.item_id
        )
        return first, second

    first, second = asyncio.run(run())
    assert first.status == "issued"
    assert first.certificate is not None
    assert second.status == "suppressed"


def test_already_certified_reported(engine, course) -> None:
    _complete(engine, "u1", course.lesson_ids)
    issued = asyncio.run(engine.issuer.issue("u1", course.item_id))
    outcome = asyncio.run(
        engine.trigger.on_lesson_completed("u1", "course", course.item_id)
    )
    assert outcome.status == "already_certified"
    assert outcome.certificate == issued.certificate


def test_store_failure_reports_unavailable_and_releases(
    settings, make_course
) -> None:
    public = _FlakyPublicRepo()
    guard = InMemoryIssuanceGuard()
    engine = assemble_engine(
        settings,
        progress=InMemoryProgressRepo(),
        catalog=InMemoryCatalogRepo(),
        exceptions=InMemoryExceptionRepo(),
        certificates=InMemoryCertificateRepo(),
        public=public,
        orphans=InMemoryOrphanRepo(),
        guard=guard,
    )
    course = make_course(engine.catalog_repo)
    _complete(engine, "u1", course.lesson_ids)

    outcome = asyncio.run(
        engine.trigger.on_lesson_completed("u1", "course", course.item_id)
    )
    assert outcome.status == "unavailable"
    assert outcome.message == UNAVAILABLE_MESSAGE

    # Guard released, so the next completion retries and succeeds
    public.down = False
    retry = asyncio.run(
        engine.trigger.on_lesson_completed("u1", "course", course.item_id)
    )
    assert retry.status == "issued"


def test_missing_catalog_reports_unavailable(engine, course) -> None:
    outcome = asyncio.run(
        engine.trigger.on_lesson_completed("u1", "event", course.item_id)
    )
    assert outcome.status == "unavailable"


# ---- end-to-end through the progress tracker ----


def test_last_two_lessons_completing_together_issue_once(
    settings, make_course
) -> None:
    catalog = InMemoryCatalogRepo()
    course = make_course(catalog)
    progress = _SlowProgressRepo(slow_lesson_id=course.lesson_ids[3])
    engine = assemble_engine(
        settings,
        progress=progress,
        catalog=catalog,
        exceptions=InMemoryExceptionRepo(),
        certificates=InMemoryCertificateRepo(),
        public=InMemoryPublicCertificateRepo(),
        orphans=InMemoryOrphanRepo(),
        guard=InMemoryIssuanceGuard(),
    )
    _complete(engine, "u1", course.lesson_ids[:2])

    async def run():
        return await asyncio.gather(
            *(
                engine.tracker.record(
                    "u1",
                    "course",
                    course.item_id,
                    lesson_id,
                    ProgressUpdate.complete(),
                )
                for lesson_id in course.lesson_ids[2:]
            )
        )

    early, late = asyncio.run(run())
    # The first completion saw 75% before the second write landed
    assert early.auto_issue.status == "not_eligible"
    assert late.auto_issue.status == "issued"

    cert = asyncio.run(engine.issuer.get_user_certificate("u1", course.item_id))
    assert cert is not None
    assert cert.certificate_number == late.auto_issue.certificate.certificate_number


def test_four_lesson_course_end_to_end(engine, course) -> None:
    issued_before = _sample("auto_issue_events_total", {"outcome": "issued"})

    async def run():
        for lesson_id in course.lesson_ids[:3]:
            await engine.tracker.record(
                "u1", "course", course.item_id, lesson_id, ProgressUpdate.complete()
            )
        midway = await engine.evaluator.evaluate("u1", course.item_id)
        last = await engine.tracker.record(
            "u1",
            "course",
            course.item_id,
            course.lesson_ids[3],
            ProgressUpdate.complete(),
        )
        after = await engine.evaluator.evaluate("u1", course.item_id)
        manual = await engine.issuer.issue("u1", course.item_id)
        return midway, last, after, manual

    midway, last, after, manual = asyncio.run(run())

    assert midway.completion_percentage == 75
    assert midway.is_eligible is False
    assert midway.missing_requirements == ("1 lesson remaining",)

    assert last.became_completed is True
    assert last.auto_issue is not None
    assert last.auto_issue.status == "issued"
    assert after.completion_percentage == 100

    assert manual.status == "already_certified"
    assert (
        manual.certificate.certificate_number
        == last.auto_issue.certificate.certificate_number
    )
    assert _sample("auto_issue_events_total", {"outcome": "issued"}) - issued_before == 1


# ---- guards ----


def test_in_memory_guard_lifecycle() -> None:
    guard = InMemoryIssuanceGuard()

    async def run():
        first = await guard.try_acquire("k")
        second = await guard.try_acquire("k")
        await guard.release("k")
        third = await guard.try_acquire("k")
        await guard.complete("k")
        fourth = await guard.try_acquire("k")
        return first, second, third, fourth

    assert asyncio.run(run()) == (True, True, True, False)


def test_in_memory_guard_entries_expire() -> None:
    guard = InMemoryIssuanceGuard(ttl_seconds=0)

    async def run():
        await guard.complete("k")
        return await guard.try_acquire("k")

    assert asyncio.run(run()) is True


def test_in_memory_guard_sweeps_expired_keys() -> None:
    guard = InMemoryIssuanceGuard(ttl_seconds=0)

    async def run():
        for n in range(100):
            await guard.complete(f"course:item:u{n}")
        await guard.try_acquire("course:item:other")

    asyncio.run(run())
    assert len(guard._entries) <= 1


def test_redis_guard_uses_set_nx() -> None:
    redis = _FakeRedis()
    guard = RedisIssuanceGuard(redis, ttl_seconds=60)

    async def run():
        first = await guard.try_acquire("course:x:u1")
        second = await guard.try_acquire("course:x:u1")
        await guard.release("course:x:u1")
        third = await guard.try_acquire("course:x:u1")
        await guard.complete("course:x:u1")
        fourth = await guard.try_acquire("course:x:u1")
        return first, second, third, fourth

    assert asyncio.run(run()) == (True, True, True, False)
    assert redis.values == {"issuance-guard:course:x:u1": "done"}


def test_redis_guard_degrades_to_acquire_when_down() -> None:
    guard = RedisIssuanceGuard(_DownRedis(), ttl_seconds=60)

    async def run():
        acquired = await guard.try_acquire("k")
        await guard.complete("k")
        await guard.release("k")
        return acquired

    assert asyncio.run(run()) is True
