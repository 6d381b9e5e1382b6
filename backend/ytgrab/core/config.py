"""Application configuration using pydantic-settings."""
import os
import tempfile
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

AudioSubformat = Literal["mp3", "wav", "m4a", "opus", "flac"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ENV: Literal["development", "production", "test"] = "development"
    DEBUG: bool = False
    PORT: int = Field(default=8000, ge=1, le=65535)

    # API Configuration
    API_PREFIX: str = "/api"

    # CORS Configuration
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Delivery toggles
    FAST_REDIRECT: bool = Field(
        default=False,
        description="Redirect clients to the signed upstream URL instead of proxying bytes",
    )
    FAST_MODE: bool = Field(
        default=False,
        description="Skip the upstream HEAD probe used to learn Content-Length",
    )
    DISABLE_YTDLP: bool = Field(
        default=False,
        description="Disable every tier that runs the yt-dlp executable",
    )

    # Companion binary
    YTDLP_PATH: str | None = Field(
        default=None,
        description="Explicit path to a yt-dlp executable",
    )
    YTDLP_CACHE_DIR: str = Field(
        default=os.path.join(tempfile.gettempdir(), "yt-dlp"),
        description="Directory the yt-dlp executable is downloaded into when missing",
    )
    YTDLP_DOWNLOAD_URL: str = Field(
        default="https://github.com/yt-dlp/yt-dlp/releases/latest/download/",
        description="Release base URL used to fetch the yt-dlp executable",
    )
    YTDLP_SOCKET_TIMEOUT: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Socket timeout passed to yt-dlp (library and executable)",
    )
    EXTRACTOR_TIMEOUT: float = Field(
        default=60.0,
        gt=0,
        description="Seconds allowed for a `yt-dlp -J` metadata dump",
    )

    # Transcoding engine
    FFMPEG_PATH: str = Field(default="ffmpeg", description="ffmpeg executable")

    # Upstream HTTP
    USER_AGENT: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/124 Safari/537.36"
        ),
        description="Browser user agent sent to upstream media hosts",
    )
    UPSTREAM_TIMEOUT: float = Field(
        default=30.0,
        gt=0,
        description="Connect/read timeout for proxied upstream requests",
    )

    # Streaming
    TEMP_DIR: str = Field(
        default=os.path.join(tempfile.gettempdir(), "ytgrab"),
        description="Directory for extractor download output",
    )
    STREAM_CHUNK_SIZE: int = Field(
        default=262144,
        ge=4096,
        le=16777216,
        description="Read size for subprocess and file streams",
    )
    STREAM_QUEUE_SIZE: int = Field(
        default=16,
        ge=1,
        le=1024,
        description="Chunks buffered between a producer and the response",
    )

    # Formats
    DEFAULT_AUDIO_FORMAT: AudioSubformat = "m4a"

    @field_validator("CORS_ORIGINS")
    @classmethod
    def parse_cors_origins(cls, v: str) -> str:
        """Ensure CORS_ORIGINS is properly formatted."""
        return v.strip()

    @field_validator("API_PREFIX")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Keep the prefix joinable with route paths."""
        return v.rstrip("/")

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENV == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENV == "production"

    @property
    def companion_enabled(self) -> bool:
        """Whether tiers backed by the yt-dlp executable may run."""
        return not self.DISABLE_YTDLP


# Global settings instance
settings = Settings()
