"""Demo: walk a learner through a 4-lesson course using FastAPI TestClient.

Seeds an in-memory engine, completes the lessons one by one, and shows the
certificate issued automatically on the last one, the public verification
record, and an admin revocation.

Run with:
    python scripts/demo_certificate_flow.py
"""

from __future__ import annotations

import time
from uuid import uuid4

import jwt
from fastapi.testclient import TestClient

from certify.api.dependencies import get_engine
from certify.core.config import SETTINGS
from certify.engine import build_in_memory_engine
from certify.main import app
from certify.models.catalog import (
    CatalogLesson,
    CatalogSection,
    ItemDetails,
    LessonCatalog,
)

LEARNER_ID = "demo-learner"


def _headers(sub: str, roles: list[str], name: str) -> dict[str, str]:
    token = jwt.encode(
        {"sub": sub, "roles": roles, "name": name, "exp": int(time.time()) + 600},
        SETTINGS.jwt_secret,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


def main() -> None:
    engine = build_in_memory_engine(SETTINGS)
    app.dependency_overrides[get_engine] = lambda: engine
    client = TestClient(app)

    # ── Seed data ───────────────────────────────────────────────────
    details = ItemDetails.new(
        kind="course", name="Intro to Data", instructor_name="Ada Lovelace"
    )
    section_id = uuid4()
    lessons = tuple(
        CatalogLesson(
            id=uuid4(),
            section_id=section_id,
            position=i,
            title=f"Lesson {i + 1}",
            lesson_type="quiz" if i == 3 else "video",
        )
        for i in range(4)
    )
    engine.catalog_repo.put(  # type: ignore[attr-defined]
        details,
        LessonCatalog(
            kind="course",
            item_id=details.item_id,
            sections=(
                CatalogSection(
                    id=section_id, position=0, title="Basics", lessons=lessons
                ),
            ),
        ),
    )
    learner = _headers(LEARNER_ID, ["user"], "Demo Learner")
    admin = _headers("demo-admin", ["user", "admin"], "Demo Admin")
    base = f"/v1/certificates/course/{details.item_id}"

    # ── Step 1: three lessons ───────────────────────────────────────
    for lesson in lessons[:3]:
        r = client.put(
            f"/v1/progress/course/{details.item_id}/lessons/{lesson.id}",
            json={"event": "video_end", "position_seconds": 600},
            headers=learner,
        )
        print(
            f"1. PUT  {lesson.title:<10} → {r.status_code}  "
            f"auto_issue={r.json()['auto_issue']['status']}"
        )

    r = client.get(f"{base}/eligibility", headers=learner)
    data = r.json()
    print(
        f"2. GET  eligibility       → {data['completion_percentage']}%  "
        f"missing={data['missing_requirements']}"
    )

    # ── Step 2: quiz completes the course ───────────────────────────
    r = client.put(
        f"/v1/progress/course/{details.item_id}/lessons/{lessons[3].id}",
        json={"event": "quiz", "score": 85},
        headers=learner,
    )
    auto = r.json()["auto_issue"]
    number = auto["certificate_number"]
    print(f"3. PUT  quiz (85)         → {auto['status']}  {number}")

    r = client.post(base, headers=learner)
    print(f"4. POST certificate       → {r.status_code}  {r.json()['status']}")

    # ── Step 3: public verification ─────────────────────────────────
    r = client.get(f"/v1/certificates/verify/{number}")
    print(
        f"5. GET  verify            → {r.status_code}  "
        f"{r.json()['full_name']} / {r.json()['item_name']}"
    )

    # ── Step 4: admin revocation ────────────────────────────────────
    r = client.post(f"/v1/admin/certificates/{number}/revoke", headers=admin)
    print(f"6. POST revoke            → {r.status_code}")
    r = client.get(f"/v1/certificates/verify/{number}")
    print(f"7. GET  verify            → is_valid={r.json()['is_valid']}")

    app.dependency_overrides.clear()


if __name__ == "__main__":
    main()
