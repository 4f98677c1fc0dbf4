"""
Health check endpoints.

Provides system health information for monitoring.
"""

from fastapi import APIRouter, HTTPException, Request
import structlog

from breathwork import __version__
from breathwork.core.config import settings
from breathwork.persistence.database import check_database_health

log = structlog.get_logger(__name__)

router = APIRouter()


def _session_core_health(request: Request) -> dict:
    controller = getattr(request.app.state, "controller", None)
    if controller is None or not controller.is_initialized:
        return {"status": "unhealthy", "error": "controller not initialized"}
    return {
        "status": "healthy",
        "techniques": len(controller.registry),
        "scheduler": controller.scheduler.capabilities(),
    }


@router.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint.

    Returns:
        System health status including database connectivity and the
        session core.
    """
    db_health = await check_database_health()
    core_health = _session_core_health(request)

    healthy = db_health["status"] == "healthy" and core_health["status"] == "healthy"

    return {
        "status": "healthy" if healthy else "unhealthy",
        "version": __version__,
        "debug": settings.debug,
        "components": {
            "database": db_health,
            "session_core": core_health,
        },
    }


@router.get("/health/live")
async def liveness():
    """
    Kubernetes-style liveness probe.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness(request: Request):
    """
    Kubernetes-style readiness probe.

    Returns 200 once the database answers and the controller is initialized.
    """
    db_health = await check_database_health()
    if db_health["status"] != "healthy":
        raise HTTPException(status_code=503, detail="Database not ready")

    if _session_core_health(request)["status"] != "healthy":
        raise HTTPException(status_code=503, detail="Session core not ready")

    return {"status": "ready"}
