from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from uuid import UUID, uuid4

import jwt
import pytest
from fastapi.testclient import TestClient

from certify.api.dependencies import get_engine
from certify.core.config import Settings
from certify.engine import CertificationEngine, build_in_memory_engine
from certify.main import app
from certify.models.catalog import (
    CatalogLesson,
    CatalogSection,
    ItemDetails,
    LessonCatalog,
)
from certify.repos.catalog_repo import InMemoryCatalogRepo

TEST_JWT_SECRET = "test-secret"


def make_settings(**overrides) -> Settings:
    values = dict(
        app_env="test",
        log_level="info",
        log_json=False,
        port=8000,
        database_url=None,
        redis_url=None,
        jwt_secret=TEST_JWT_SECRET,
        certificate_prefix="MUNI",
        certificate_base_url="https://certificates.example.test",
        organization_name="MyUNI Eğitim Platformu",
        organization_slug="myuni",
        certificate_language="tr",
        number_max_attempts=10,
        issuance_guard_ttl_seconds=3600,
    )
    values.update(overrides)
    return Settings(**values)  # type: ignore[arg-type]


@dataclass(frozen=True)
class SeededItem:
    item_id: UUID
    lesson_ids: tuple[UUID, ...]
    quiz_ids: tuple[UUID, ...] = ()


def seed_course(
    repo: InMemoryCatalogRepo,
    lesson_types: tuple[str, ...] = ("video", "video", "notes", "quiz"),
    *,
    name: str = "Intro to Data",
) -> SeededItem:
    """Two sections; lessons split between them in order."""
    details = ItemDetails.new(
        kind="course", name=name, instructor_name="Ada Lovelace", duration="4h"
    )
    first, second = uuid4(), uuid4()
    half = (len(lesson_types) + 1) // 2
    lessons = [
        CatalogLesson(
            id=uuid4(),
            section_id=first if i < half else second,
            position=i,
            title=f"Lesson {i + 1}",
            lesson_type=lesson_type,
        )
        for i, lesson_type in enumerate(lesson_types)
    ]
    catalog = LessonCatalog(
        kind="course",
        item_id=details.item_id,
        sections=(
            CatalogSection(
                id=first,
                position=0,
                title="Basics",
                lessons=tuple(x for x in lessons if x.section_id == first),
            ),
            CatalogSection(
                id=second,
                position=1,
                title="Practice",
                lessons=tuple(x for x in lessons if x.section_id == second),
            ),
        ),
    )
    repo.put(details, catalog)
    return SeededItem(
        item_id=details.item_id,
        lesson_ids=tuple(x.id for x in lessons),
        quiz_ids=tuple(x.id for x in lessons if x.is_quiz),
    )


def seed_event(
    repo: InMemoryCatalogRepo, sections: int = 10, *, name: str = "Data Summit"
) -> SeededItem:
    event_id = uuid4()
    section_ids = tuple(uuid4() for _ in range(sections))
    details = ItemDetails(
        kind="event",
        item_id=event_id,
        name=name,
        instructor_name="Grace Hopper",
        duration="2 days",
        template_id="7",
        certificate_description="Attended the summit.",
    )
    catalog = LessonCatalog.for_event(
        event_id=event_id,
        sections=[(sid, i, f"Session {i + 1}") for i, sid in enumerate(section_ids)],
    )
    repo.put(details, catalog)
    return SeededItem(item_id=event_id, lesson_ids=section_ids)


# ---- fixtures ----


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    return make_settings


@pytest.fixture
def make_course() -> Callable[..., SeededItem]:
    return seed_course


@pytest.fixture
def make_event() -> Callable[..., SeededItem]:
    return seed_event


@pytest.fixture
def engine(settings: Settings) -> CertificationEngine:
    return build_in_memory_engine(settings)


@pytest.fixture
def course(engine: CertificationEngine) -> SeededItem:
    return seed_course(engine.catalog_repo)  # type: ignore[arg-type]


@pytest.fixture
def event(engine: CertificationEngine) -> SeededItem:
    return seed_event(engine.catalog_repo)  # type: ignore[arg-type]


@pytest.fixture
def client(engine: CertificationEngine) -> Iterator[TestClient]:
    app.dependency_overrides[get_engine] = lambda: engine
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Factory for Authorization headers carrying a signed test token."""

    def _make(
        sub: str = "user-1",
        *,
        roles: tuple[str, ...] = ("user",),
        name: str | None = "Test Learner",
        expires_in: int = 300,
        secret: str = TEST_JWT_SECRET,
    ) -> dict[str, str]:
        claims: dict[str, object] = {
            "sub": sub,
            "roles": list(roles),
            "exp": int(time.time()) + expires_in,
        }
        if name is not None:
            claims["name"] = name
        token = jwt.encode(claims, secret, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return _make
