"""Health & Readiness Probes - liveness and readiness endpoints for container orchestration.

Invariants:
    - GET /health/ always returns 200 if process is up (liveness)
    - GET /health/ready returns 503 if the database is unreachable or the
      ledger context was never built (readiness)

Design Decisions:
    - Separate liveness/readiness: liveness restarts, readiness removes from load balancer
    - Readiness does not call the ledger: a slow ledger degrades writes, not reads
"""

import logging
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from propchain.infrastructure import database

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    """Basic liveness probe. Returns 200 if the process is up."""
    return {
        "status": "healthy",
        "service": "propchain-api",
        "version": "1.0.0",
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """Readiness probe: database connectivity and ledger wiring."""
    db_ok = await database.db_manager.health_check() if database.db_manager else False
    ledger = getattr(request.app.state, "ledger", None)
    if not db_ok or ledger is None:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "reason": "database_unavailable" if not db_ok else "ledger_not_initialized",
            },
        )
    return {
        "status": "ready",
        "checks": {
            "database": "healthy",
            "ledger_contracts": sorted(c.value for c in ledger.operations.configured_contracts),
        },
    }
