"""examops API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map ExamOpsError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database, Redis and services initialized on startup via lifespan context manager
    - The publication pool is started on startup and stopped before clients are closed

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Services live on app.state, so tests swap in fakes without touching module globals
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from examops.api.error_handlers import register_error_handlers
from examops.api.routes import health, payments, publications, schedules
from examops.config import get_settings
from examops.infrastructure.database import init_db
from examops.infrastructure.observability import setup_logging
from examops.infrastructure.redis_cache import create_redis_client
from examops.services.wiring import build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    db = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    redis_client = create_redis_client(settings.redis_url, settings.redis_max_connections)
    services = build_services(settings, db, redis_client)
    services.pool.start()
    app.state.services = services
    logger.info("examops API started")
    yield
    logger.info("examops API shutting down")
    await services.pool.stop()
    await services.gateway.aclose()
    await redis_client.aclose()
    await db.dispose()


def create_app(use_lifespan: bool = True) -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="examops API", version="1.0.0",
        lifespan=lifespan if use_lifespan else None,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(health.router)
    app.include_router(schedules.router)
    app.include_router(publications.router)
    app.include_router(payments.router)
    register_error_handlers(app)
    return app


app = create_app()
