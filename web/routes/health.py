"""Health check route."""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from loguru import logger

from gymbook import __version__
from gymbook.models.db_connection import DatabasePool
from web.dependencies import get_db

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request, db: DatabasePool = Depends(get_db)) -> JSONResponse:
    """
    Health check endpoint for monitoring and container orchestration.

    Returns:
        200 with the database status when the pool answers, 503 otherwise
    """
    status = await db.check_health()
    healthy = status.reachable
    if not healthy:
        logger.warning(f"Health check failed: {status.error_message}")

    body: Dict[str, Any] = {
        "success": healthy,
        "message": "API is healthy" if healthy else "API is unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "environment": request.app.state.settings.env,
        "database": status.to_dict(),
    }
    return JSONResponse(status_code=200 if healthy else 503, content=body)
