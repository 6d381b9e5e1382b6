"""Domain-specific exceptions for the services layer."""


class YtGrabError(Exception):
    """Base exception for download service errors."""

    def __init__(self, message: str, code: str, detail: str | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message
            code: Stable error code for API responses
            detail: Optional diagnostic text (tier errors, tool stderr)
        """
        self.message = message
        self.code = code
        self.detail = detail
        super().__init__(message if detail is None else f"{message}: {detail}")


class InputError(YtGrabError):
    """Raised when the URL is missing or cannot be used."""

    def __init__(self, message: str = "Missing url", detail: str | None = None) -> None:
        super().__init__(message, "INVALID_URL", detail)


class FormatUnavailableError(YtGrabError):
    """Raised when no retrieval decision exists for the requested token."""

    def __init__(self, message: str = "Format unavailable", detail: str | None = None) -> None:
        super().__init__(message, "FORMAT_UNAVAILABLE", detail)


class UpstreamFailure(YtGrabError):
    """Raised when an upstream media URL answers non-2xx or without a body."""

    def __init__(self, message: str = "Upstream request failed", detail: str | None = None) -> None:
        super().__init__(message, "UPSTREAM_FAILED", detail)


class TranscodeFailure(YtGrabError):
    """Raised when ffmpeg cannot be started or exits with an error."""

    def __init__(self, message: str = "Transcoding failed", detail: str | None = None) -> None:
        super().__init__(message, "TRANSCODE_FAILED", detail)


class ExtractorFailure(YtGrabError):
    """Raised when the yt-dlp executable is unavailable or exits non-zero."""

    def __init__(self, message: str = "yt-dlp failed", detail: str | None = None) -> None:
        super().__init__(message, "EXTRACTOR_FAILED", detail)


class DownloadFailedError(YtGrabError):
    """Raised when every retrieval tier has failed."""

    def __init__(self, message: str = "Download failed", detail: str | None = None) -> None:
        super().__init__(message, "DOWNLOAD_FAILED", detail)
