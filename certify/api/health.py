"""Health and readiness endpoints.

  /health (liveness)   "is the process alive?"  Always 200 while it can
                        answer; ``status`` reports degraded dependencies.
  /ready  (readiness)  "can this instance take traffic?"  503 when the
                        database is configured but unreachable.  Redis is
                        not critical: the issuance guard is only a hint.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, Response
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_database(request: Request) -> str:
    factory = getattr(request.app.state, "session_factory", None)
    if factory is None:
        return "not_configured"
    try:
        async with factory() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.warning("Database health check failed")
        return "degraded"
    return "ok"


async def _check_redis(request: Request) -> str:
    client = getattr(request.app.state, "redis", None)
    if client is None:
        return "not_configured"
    try:
        await client.ping()  # type: ignore[misc]
    except (RedisError, OSError):
        logger.warning("Redis health check failed")
        return "degraded"
    return "ok"


@router.get("/health")
async def health(request: Request) -> dict:
    checks = {
        "database": await _check_database(request),
        "redis": await _check_redis(request),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready(request: Request) -> Response:
    if await _check_database(request) == "degraded":
        return Response(status_code=503)
    return Response(status_code=200)
