from fastapi import APIRouter

from .ai import router as ai_router
from .health import router as health_router


# Authentication and project membership are enforced by the gateway in front
# of this service; every route here is reachable once a request gets through.
api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(ai_router)
