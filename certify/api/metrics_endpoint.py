"""Prometheus scrape endpoint (text exposition format, not JSON).

Exposes the HTTP metrics and the issuance counters declared in
certify/core/metrics.py.  Restrict it to the Prometheus server at the
ingress in production; partial-write and orphan counts are internal.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
