"""Pydantic models for the download API contracts."""
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class InfoResponse(BaseModel):
    """Response for ``GET /download?mode=info``."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "rawTitle": "Example Video Title",
                "thumbnail": "https://i.ytimg.com/vi/abc123/hqdefault.jpg",
                "availableQualities": ["360p", "720p"],
                "limited": False,
            }
        },
    )

    raw_title: str = Field(default="", alias="rawTitle", description="Unsanitized video title")
    thumbnail: str = Field(default="", description="Thumbnail URL")
    available_qualities: list[str] = Field(
        default_factory=list,
        alias="availableQualities",
        description="Quality labels usable as the `format` parameter",
    )
    limited: bool = Field(
        default=False,
        description="True when metadata came from a fallback provider",
    )


class ErrorResponse(BaseModel):
    """Standard error response model."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "Format unavailable",
                "code": "FORMAT_UNAVAILABLE",
            }
        },
    )

    error: str = Field(..., description="Human-readable error message", min_length=1)
    code: Literal[
        "INVALID_URL",
        "FORMAT_UNAVAILABLE",
        "UPSTREAM_FAILED",
        "TRANSCODE_FAILED",
        "EXTRACTOR_FAILED",
        "DOWNLOAD_FAILED",
        "INTERNAL_ERROR",
    ] = Field(..., description="Stable error code for programmatic handling")
    detail: str | None = Field(default=None, description="Diagnostic detail")


class HealthResponse(BaseModel):
    """Health check response model."""

    status: Literal["healthy", "unhealthy"] = Field(
        default="healthy",
        description="Health status of the service",
    )
    version: str = Field(
        default="0.1.0",
        description="API version",
    )
