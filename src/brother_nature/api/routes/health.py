"""Health and root endpoints.

Provides the root ``/`` endpoint (API identity and version) and the
``/health`` endpoint (liveness, active session count, ledger connection and
reward backlog).
"""

from fastapi import APIRouter, Depends

from brother_nature import __version__
from brother_nature.api.auth import get_active_session_count
from brother_nature.api.services import Services, get_services

router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint showing API identity and current version."""
    return {"message": "Brother Nature Core API", "version": __version__}


@router.get("/health")
async def health_check(services: Services = Depends(get_services)):
    """Health check endpoint."""
    return {
        "status": "ok",
        "active_sessions": get_active_session_count(),
        "chain_connected": services.chain.is_connected,
        "reward_worker_running": services.worker.is_running,
        "reward_backlog": services.worker.backlog,
    }
