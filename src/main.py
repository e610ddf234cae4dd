import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.v1.api import api_router
from core.config import get_settings
from core.error_handler import (
    ExceptionNormalizationMiddleware,
    global_exception_handler,
    setup_logging,
)
from core.exceptions import DomainError
from core.middleware import CorrelationIdMiddleware
from services.ai.exceptions import AIGenerationError


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    # No read timeout: long generations are bounded by AI_STREAM_TIMEOUT_SECONDS.
    timeout = httpx.Timeout(None, connect=settings.AI_CONNECT_TIMEOUT_SECONDS)
    logger.info("AI provider: %s", settings.AI_PROVIDER or "not configured")
    async with httpx.AsyncClient(timeout=timeout) as client:
        app.state.http_client = client
        yield


def create_app() -> FastAPI:
    setup_logging()
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="AI-assisted card descriptions for Kanban boards",
        version="0.1.0",
        docs_url=None,  # We'll mount docs under /api/v1/docs
        redoc_url=None,
        lifespan=lifespan,
    )

    origins = settings.CORS_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins if isinstance(origins, list) else [origins],
        allow_credentials=settings.ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID"],
    )
    app.add_middleware(ExceptionNormalizationMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    for exc_type in (
        StarletteHTTPException,
        RequestValidationError,
        DomainError,
        AIGenerationError,
        Exception,
    ):
        app.add_exception_handler(exc_type, global_exception_handler)

    app.include_router(api_router, prefix="/api/v1")

    # Mount OpenAPI docs under /api/v1/docs and /api/v1/redoc
    @app.get("/api/v1/docs", include_in_schema=False)
    def custom_swagger_ui_html():
        return get_swagger_ui_html(
            openapi_url="/openapi.json", title=f"{settings.APP_NAME} API Docs"
        )

    @app.get("/api/v1/redoc", include_in_schema=False)
    def redoc_html():
        return get_redoc_html(
            openapi_url="/openapi.json", title=f"{settings.APP_NAME} API Redoc"
        )

    @app.get("/")
    def read_root() -> dict[str, str]:
        return {"message": f"{settings.APP_NAME} AI service"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
