"""Health & Readiness Probes — liveness and readiness endpoints for container orchestration.

Invariants:
    - GET /health/ always returns 200 if process is up (liveness)
    - GET /health/ready returns 503 if the database or Redis is unreachable (readiness)

Design Decisions:
    - Separate liveness/readiness: liveness restarts, readiness removes from load balancer
"""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from examops.infrastructure import database

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    """Basic liveness probe. Returns 200 if the process is up."""
    return {"status": "healthy", "service": "examops-api", "version": "1.0.0"}


@router.get("/ready")
async def readiness_check(request: Request):
    """Readiness probe — database and result cache connectivity."""
    db_ok = await database.db_manager.health_check() if database.db_manager else False
    services = getattr(request.app.state, "services", None)
    cache_ok = await services.cache.health_check() if services else False
    checks = {
        "database": "healthy" if db_ok else "unavailable",
        "cache": "healthy" if cache_ok else "unavailable",
    }
    if not (db_ok and cache_ok):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
