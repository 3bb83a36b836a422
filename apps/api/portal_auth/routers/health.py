"""
Health check router with database and session cache verification.
"""
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from portal_auth.core.deps import get_session_manager
from portal_auth.sessions.manager import SessionManager

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic health check - always returns OK."""
    return {"status": "ok"}


@router.get("/api/health")
async def api_health_check(manager: SessionManager = Depends(get_session_manager)):
    """
    Comprehensive health check verifying:
    - Database connectivity (durable session store)
    - Session cache connectivity

    Returns 200 if all critical services are healthy.
    Returns 503 if any critical service is down.
    """
    health_status = {
        "status": "ok",
        "services": {}
    }
    is_healthy = True

    if await manager.durable.ping():
        health_status["services"]["database"] = {"status": "ok"}
    else:
        health_status["services"]["database"] = {"status": "error", "message": "Database not reachable"}
        is_healthy = False

    if await manager.cache.ping():
        health_status["services"]["session_cache"] = {"status": "ok"}
    else:
        health_status["services"]["session_cache"] = {"status": "error", "message": "Session cache not reachable"}
        is_healthy = False

    if not is_healthy:
        health_status["status"] = "unhealthy"
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=health_status
        )

    return health_status
