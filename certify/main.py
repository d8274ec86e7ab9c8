from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from certify.api.admin import router as admin_router
from certify.api.certificates import router as certificates_router
from certify.api.errors import register_error_handlers
from certify.api.health import router as health_router
from certify.api.metrics_endpoint import router as metrics_router
from certify.api.progress import router as progress_router
from certify.core.config import SETTINGS
from certify.core.logging import setup_logging
from certify.db.engine import lifespan_db
from certify.db.redis import lifespan_redis
from certify.engine import build_engine
from certify.middleware.metrics import MetricsMiddleware
from certify.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order even if one fails
    async with lifespan_db(SETTINGS.database_url) as session_factory:
        async with lifespan_redis(SETTINGS.redis_url) as redis_client:
            app.state.session_factory = session_factory
            app.state.redis = redis_client
            app.state.engine = build_engine(SETTINGS, session_factory, redis_client)
            yield


app = FastAPI(
    title="certify-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) → Metrics → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

register_error_handlers(app)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(certificates_router)
app.include_router(progress_router)
app.include_router(admin_router)

logger.info(
    "certify-service started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
