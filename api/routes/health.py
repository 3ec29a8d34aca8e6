"""
Health check and monitoring endpoints.
"""

import time

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check():
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "timestamp": time.time()
    }


@router.get("/api/health/detailed")
def detailed_health_check():
    """
    Detailed health check.

    Returns:
    - Node store reachability and number of books
    - Workflow database reachability
    - Artifact directory availability
    """
    from core.publishing.service import get_publishing_service

    components = {}
    try:
        service = get_publishing_service()
    except Exception as e:
        return {"status": "unhealthy", "error": str(e), "timestamp": time.time()}

    try:
        components["store"] = {"status": "ok", "books": len(service.list_books())}
    except Exception as e:
        components["store"] = {"status": "error", "error": str(e)}

    try:
        service.workflow.get_process_ref("__health__")
        components["workflow"] = {"status": "ok"}
    except Exception as e:
        components["workflow"] = {"status": "error", "error": str(e)}

    artifact_dir = service.config.artifact_dir
    components["artifacts"] = {
        "status": "ok" if artifact_dir.is_dir() else "missing",
        "path": str(artifact_dir),
    }

    healthy = all(c["status"] == "ok" for c in components.values())
    return {
        "status": "healthy" if healthy else "degraded",
        "timestamp": time.time(),
        "components": components,
    }
