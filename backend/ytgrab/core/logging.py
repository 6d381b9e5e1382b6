"""Structured logging configuration."""
import hashlib
import logging
import sys
from urllib.parse import urlparse

from ytgrab.core.config import settings


def setup_logging() -> None:
    """Configure structured logging for the application."""
    log_level = getattr(logging, settings.LOG_LEVEL.upper())

    if settings.is_production:
        # JSON logs for production (easier for log aggregators)
        log_format = '{"time":"%(asctime)s","level":"%(levelname)s","name":"%(name)s","message":"%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Request lines from uvicorn and httpx are noise next to tier logs
    for noisy in ("uvicorn", "uvicorn.access", "fastapi", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def safe_url(url: str) -> str:
    """Loggable form of a URL: query string replaced by a short hash.

    Upstream media URLs carry signatures in the query string, so they are
    never logged verbatim.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return "invalid-url"
    url_hash = hashlib.sha256(url.encode()).hexdigest()[:8]
    return f"{parsed.scheme}://{parsed.hostname}{parsed.path} (hash:{url_hash})"
