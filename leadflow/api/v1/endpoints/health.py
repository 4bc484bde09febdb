"""
Health Check Endpoint
Provides health status for Docker health checks and monitoring
"""
from fastapi import APIRouter, status
from datetime import datetime, timezone
from typing import Any, Dict

from leadflow.domain.services.workspace_manager import WorkspaceManager

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> Dict[str, Any]:
    """
    Health check endpoint for Docker and monitoring systems.
    
    Returns:
        Dict with status, timestamp and open workspace count
    """
    manager = await WorkspaceManager.get_instance()
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "leadflow-backend",
        "active_workspaces": manager.get_active_workspace_count(),
    }
