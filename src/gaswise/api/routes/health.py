"""Health check endpoints."""

from fastapi import APIRouter, Depends

from gaswise.api.deps import get_services
from gaswise.services import Services

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "gaswise"}


@router.get("/health/detailed")
async def detailed_health(services: Services = Depends(get_services)):
    """Detailed health check with configuration and feed freshness."""
    tracker = services.tracker
    stale = [chain_id for chain_id in services.registry.chain_ids if tracker.is_stale(chain_id)]
    return {
        "status": "degraded" if stale else "healthy",
        "service": "gaswise",
        "version": "0.1.0",
        "paused": services.orchestrator.paused,
        "bridge": services.orchestrator.bridge.name,
        "stale_chains": stale,
        "config": services.settings.get_safe_dict(),
    }
