# health.py - Health check endpoints
# This file defines endpoints for checking the health of the agent_service.

from fastapi import APIRouter, Request
from datetime import datetime

from ..config import settings

router = APIRouter(prefix="/health", tags=["health"])

@router.get("")
async def health_check(request: Request):
    """Health check including the persistence store."""
    store = request.app.state.store
    store_healthy = store.ping()

    return {
        "status": "healthy" if store_healthy else "degraded",
        "service": settings.service_name,
        "timestamp": datetime.utcnow().isoformat(),
        "version": "1.0.0",
        "components": {
            "store": "healthy" if store_healthy else "unhealthy",
            "tracing": "disabled" if request.app.state.runner.tracer.disabled else "enabled",
            "agent_types": request.app.state.agent_registry.list_agent_types(),
        }
    }
