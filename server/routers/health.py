"""
Health check endpoints for production deployment.

Provides:
- /health - Basic liveness check (is the app running?)
- /ready - Readiness check (can the game store be reached?)
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Service references (set during app initialization)
_game_store = None
_connections = None


def set_health_dependencies(game_store=None, connections=None):
    """Set dependencies for health checks."""
    global _game_store, _connections
    _game_store = game_store
    _connections = connections


@router.get("/health")
async def health_check():
    """
    Basic liveness check - is the app running?

    This endpoint should always return 200 if the process is alive.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check():
    """
    Readiness check - can the app handle requests?

    Returns 503 if the game store is missing or unreachable.
    """
    checks = {}
    overall_healthy = True

    if _game_store is not None:
        try:
            await _game_store.ping()
            checks["game_store"] = {"status": "ok", "backend": type(_game_store).__name__}
        except Exception as e:
            logger.warning(f"Game store health check failed: {e}")
            checks["game_store"] = {"status": "error", "message": str(e)}
            overall_healthy = False
    else:
        checks["game_store"] = {"status": "not_configured"}
        overall_healthy = False

    if _connections is not None:
        checks["connections"] = {"status": "ok", "open": len(_connections)}

    return JSONResponse(
        content={
            "status": "ok" if overall_healthy else "degraded",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        status_code=200 if overall_healthy else 503,
    )
