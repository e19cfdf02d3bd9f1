"""
Health check endpoints
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from depgraph.api.graph import get_snapshot
from depgraph.utils.datetime import utc_now

router = APIRouter()


@router.get("/health")
async def health_check(
    request: Request, snapshot: Dict[str, Dict[str, Any]] = Depends(get_snapshot)
):
    """Simple API health check."""
    external = sum(1 for node in snapshot.values() if node.get("external"))
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "service": request.app.title,
        "organization": request.app.state.org_name,
        "repositories": len(snapshot) - external,
        "externalPackages": external,
    }
