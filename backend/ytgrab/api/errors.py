"""Global exception handlers for API errors."""
from fastapi import Request, status
from fastapi.responses import JSONResponse

from ytgrab.core.logging import get_logger
from ytgrab.models.download import ErrorResponse
from ytgrab.services.errors import YtGrabError

logger = get_logger(__name__)

STATUS_CODE_MAP = {
    "INVALID_URL": status.HTTP_400_BAD_REQUEST,
    "FORMAT_UNAVAILABLE": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "UPSTREAM_FAILED": status.HTTP_502_BAD_GATEWAY,
    "TRANSCODE_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "EXTRACTOR_FAILED": status.HTTP_502_BAD_GATEWAY,
    "DOWNLOAD_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def ytgrab_error_handler(request: Request, exc: YtGrabError) -> JSONResponse:
    """Handle all YtGrabError exceptions.

    Args:
        request: FastAPI request
        exc: Domain exception

    Returns:
        JSON response with error details
    """
    status_code = STATUS_CODE_MAP.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    # Missing URLs and unavailable formats are expected user errors
    if exc.code not in ("INVALID_URL", "FORMAT_UNAVAILABLE"):
        logger.warning(f"Domain error: {exc.code} - {exc.message} ({exc.detail})")

    error_response = ErrorResponse(error=exc.message, code=exc.code, detail=exc.detail)

    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(exclude_none=True),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions.

    Args:
        request: FastAPI request
        exc: Unexpected exception

    Returns:
        JSON response with generic error
    """
    logger.error(f"Unexpected error: {exc}", exc_info=True)

    error_response = ErrorResponse(
        error="Failed to process request",
        code="INTERNAL_ERROR",
        detail=str(exc) or type(exc).__name__,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response.model_dump(exclude_none=True),
    )
