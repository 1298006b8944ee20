"""API route modules."""

from fastapi import APIRouter

from web.routes.auth import router as auth_router
from web.routes.health import router as health_router

api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(auth_router)
api_v1.include_router(health_router)

__all__ = ["api_v1", "auth_router", "health_router"]
