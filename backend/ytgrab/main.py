"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ytgrab.api.errors import generic_exception_handler, ytgrab_error_handler
from ytgrab.api.router import api_router
from ytgrab.core.config import settings
from ytgrab.core.logging import get_logger, setup_logging
from ytgrab.models.download import HealthResponse
from ytgrab.services.companion import CompanionBinary, resolve_binary_path
from ytgrab.services.download_service import DownloadService
from ytgrab.services.errors import YtGrabError

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan events.

    Builds the shared upstream HTTP client and the download service once per
    process; the yt-dlp executable path is resolved here and never again.

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    # Startup
    logger.info(f"Starting application in {settings.ENV} mode")
    logger.info(f"API prefix: {settings.API_PREFIX}")
    logger.info(f"CORS origins: {settings.cors_origins_list}")

    client = httpx.AsyncClient(
        timeout=settings.UPSTREAM_TIMEOUT,
        follow_redirects=True,
    )
    companion = CompanionBinary(resolve_binary_path(settings), client=client, config=settings)
    if companion.enabled:
        logger.info(f"yt-dlp executable: {companion.path}")
    else:
        logger.info("yt-dlp executable tiers disabled")

    app.state.download_service = DownloadService.create(client, companion, settings)

    yield

    # Shutdown
    logger.info("Shutting down application")
    await client.aclose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title="ytgrab",
        description="Video info and download service built on yt-dlp and ffmpeg",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "Content-Length", "Content-Range", "X-Mode"],
    )

    # Exception handlers
    app.add_exception_handler(YtGrabError, ytgrab_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Include API routes
    app.include_router(api_router, prefix=settings.API_PREFIX)

    # Health check endpoint
    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["health"],
        summary="Health check",
        description="Check if the service is running",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint.

        Returns:
            Health status response
        """
        return HealthResponse(status="healthy", version="0.1.0")

    return app


# Create application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ytgrab.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower(),
    )
