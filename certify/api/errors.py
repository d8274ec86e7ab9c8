"""Mapping of engine exceptions onto HTTP responses.

  CatalogUnavailable  -> 409, a configuration problem the learner cannot fix
  StoreError          -> 503 with one retry message.  PartialWriteFailure is a
                         StoreError; whether an orphan was left behind is an
                         operator concern and never shown to the caller.

"Not eligible" and "already certified" are results, not exceptions; the
routers turn those into 422 and 200 themselves.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from certify.models.eligibility import UNAVAILABLE_MESSAGE
from certify.services.errors import CatalogUnavailable, StoreError

logger = logging.getLogger(__name__)


async def _catalog_unavailable(
    request: Request, exc: CatalogUnavailable
) -> JSONResponse:
    logger.warning(
        "Catalog unavailable for %s %s",
        exc.kind,
        exc.item_id,
        extra={"item_kind": exc.kind, "item_id": str(exc.item_id)},
    )
    return JSONResponse(
        status_code=409,
        content={"detail": f"{exc.kind} has no active content to certify"},
    )


async def _store_error(request: Request, exc: StoreError) -> JSONResponse:
    logger.warning("Store error surfaced as 503: %s", exc)
    return JSONResponse(
        status_code=503,
        content={"detail": UNAVAILABLE_MESSAGE},
        headers={"Retry-After": "5"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CatalogUnavailable, _catalog_unavailable)  # type: ignore[arg-type]
    app.add_exception_handler(StoreError, _store_error)  # type: ignore[arg-type]
