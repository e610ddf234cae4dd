from fastapi import APIRouter

from dependencies.ai import AppSettings
from schemas.api import ApiResponse
from services.ai.providers import resolve_provider_config


router = APIRouter()


@router.get("/health", response_model=ApiResponse[dict[str, str]])
def health_check(settings: AppSettings) -> ApiResponse[dict[str, str]]:
    """Health check endpoint for monitoring and load balancer health checks."""
    config = resolve_provider_config(settings)
    return ApiResponse(
        success=True,
        data={
            "status": "healthy",
            "message": f"{settings.APP_NAME} API is running",
            "ai": config.provider_kind if config else "not_configured",
        },
        message="Health check successful",
    )
