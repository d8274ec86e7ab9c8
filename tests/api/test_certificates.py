from __future__ import annotations

import asyncio
from collections.abc import Iterator
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from certify.api.dependencies import get_engine
from certify.engine import assemble_engine
from certify.main import app
from certify.models.certificate import PublicCertificate
from certify.models.eligibility import UNAVAILABLE_MESSAGE
from certify.models.exception import CertificateException
from certify.models.progress import ProgressUpdate
from certify.repos.catalog_repo import InMemoryCatalogRepo
from certify.repos.certificate_repo import (
    InMemoryCertificateRepo,
    InMemoryOrphanRepo,
    InMemoryPublicCertificateRepo,
)
from certify.repos.exception_repo import InMemoryExceptionRepo
from certify.repos.progress_repo import InMemoryProgressRepo
from certify.services.trigger import InMemoryIssuanceGuard

NOW = 1_760_000_000


def _complete(engine, user_id, lesson_ids) -> None:
    async def run() -> None:
        for lesson_id in lesson_ids:
            await engine.progress_repo.upsert(
                user_id, lesson_id, ProgressUpdate.complete(), NOW
            )

    asyncio.run(run())


class _FailingPublicRepo(InMemoryPublicCertificateRepo):
    async def insert(self, record: PublicCertificate) -> PublicCertificate:
        raise ConnectionError("public store unreachable")


# ---- authentication ----


def test_eligibility_requires_token(client: TestClient, course) -> None:
    resp = client.get(f"/v1/certificates/course/{course.item_id}/eligibility")
    assert resp.status_code == 401


def test_expired_token_rejected(client: TestClient, course, auth_headers) -> None:
    resp = client.get(
        f"/v1/certificates/course/{course.item_id}/eligibility",
        headers=auth_headers(expires_in=-60),
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token expired"


def test_token_with_wrong_secret_rejected(
    client: TestClient, course, auth_headers
) -> None:
    resp = client.get(
        f"/v1/certificates/course/{course.item_id}/eligibility",
        headers=auth_headers(secret="not-the-secret"),
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"


# ---- eligibility ----


def test_eligibility_reports_progress(
    client: TestClient, engine, course, auth_headers
) -> None:
    _complete(engine, "user-1", course.lesson_ids[:3])
    resp = client.get(
        f"/v1/certificates/course/{course.item_id}/eligibility",
        headers=auth_headers(),
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["is_eligible"] is False
    assert data["completion_percentage"] == 75
    assert data["missing_requirements"] == ["1 lesson remaining"]
    assert data["existing_certificate_number"] is None


def test_eligibility_with_exception(
    client: TestClient, engine, course, auth_headers
) -> None:
    engine.exception_repo.add(
        CertificateException(user_id="user-1", kind="course", item_id=course.item_id)
    )
    data = client.get(
        f"/v1/certificates/course/{course.item_id}/eligibility",
        headers=auth_headers(),
    ).json()
    assert data["is_eligible"] is True
    assert data["has_exception"] is True
    assert data["missing_requirements"] == []


def test_unknown_kind_rejected(client: TestClient, auth_headers) -> None:
    resp = client.get(
        f"/v1/certificates/webinar/{uuid4()}/eligibility", headers=auth_headers()
    )
    assert resp.status_code == 422


# ---- request certificate ----


def test_request_not_eligible_returns_422(
    client: TestClient, engine, course, auth_headers
) -> None:
    _complete(engine, "user-1", course.lesson_ids[:3])
    resp = client.post(
        f"/v1/certificates/course/{course.item_id}", headers=auth_headers()
    )
    assert resp.status_code == 422
    detail = resp.json()["detail"]
    assert detail["missing_requirements"] == ["1 lesson remaining"]


def test_request_issues_then_returns_same_certificate(
    client: TestClient, engine, course, auth_headers
) -> None:
    _complete(engine, "user-1", course.lesson_ids)
    url = f"/v1/certificates/course/{course.item_id}"

    first = client.post(url, headers=auth_headers())
    assert first.status_code == 201
    assert first.json()["status"] == "issued"
    cert = first.json()["certificate"]
    assert cert["student_name"] == "Test Learner"
    assert cert["certificate_number"].startswith("MUNI")

    second = client.post(url, headers=auth_headers())
    assert second.status_code == 200
    assert second.json()["status"] == "already_certified"
    assert second.json()["certificate"]["certificate_number"] == (
        cert["certificate_number"]
    )

    mine = client.get(url, headers=auth_headers())
    assert mine.status_code == 200
    assert mine.json()["certificate_number"] == cert["certificate_number"]


def test_learner_response_hides_internal_fields(
    client: TestClient, engine, course, auth_headers
) -> None:
    _complete(engine, "user-1", course.lesson_ids)
    cert = client.post(
        f"/v1/certificates/course/{course.item_id}", headers=auth_headers()
    ).json()["certificate"]
    assert "metadata" not in cert
    assert "user_id" not in cert


def test_get_certificate_404_when_none(
    client: TestClient, course, auth_headers
) -> None:
    resp = client.get(
        f"/v1/certificates/course/{course.item_id}", headers=auth_headers()
    )
    assert resp.status_code == 404


def test_request_for_unknown_item_returns_409(
    client: TestClient, auth_headers
) -> None:
    resp = client.post(f"/v1/certificates/course/{uuid4()}", headers=auth_headers())
    assert resp.status_code == 409


@pytest.fixture
def failing_client(settings, make_course) -> Iterator[tuple[TestClient, object]]:
    engine = assemble_engine(
        settings,
        progress=InMemoryProgressRepo(),
        catalog=InMemoryCatalogRepo(),
        exceptions=InMemoryExceptionRepo(),
        certificates=InMemoryCertificateRepo(),
        public=_FailingPublicRepo(),
        orphans=InMemoryOrphanRepo(),
        guard=InMemoryIssuanceGuard(),
    )
    course = make_course(engine.catalog_repo)
    _complete(engine, "user-1", course.lesson_ids)
    app.dependency_overrides[get_engine] = lambda: engine
    try:
        yield TestClient(app), course
    finally:
        app.dependency_overrides.clear()


def test_partial_write_failure_returns_503(failing_client, auth_headers) -> None:
    client, course = failing_client
    resp = client.post(
        f"/v1/certificates/course/{course.item_id}", headers=auth_headers()
    )
    assert resp.status_code == 503
    assert resp.json()["detail"] == UNAVAILABLE_MESSAGE
    assert resp.headers.get("retry-after") == "5"


# ---- public verification ----


def test_verify_unknown_number_404(client: TestClient) -> None:
    resp = client.get("/v1/certificates/verify/MUNI2026-000000-0000-AAA-00000")
    assert resp.status_code == 404


def test_verify_returns_public_record_without_auth(
    client: TestClient, engine, course, auth_headers
) -> None:
    _complete(engine, "user-1", course.lesson_ids)
    number = client.post(
        f"/v1/certificates/course/{course.item_id}", headers=auth_headers()
    ).json()["certificate"]["certificate_number"]

    resp = client.get(f"/v1/certificates/verify/{number}")
    assert resp.status_code == 200
    data = resp.json()
    assert data["certificate_number"] == number
    assert data["full_name"] == "Test Learner"
    assert data["item_name"] == "Intro to Data"
    assert data["is_valid"] is True
    assert "user_id" not in data
    assert "item_id" not in data
    assert "metadata" not in data
