"""Canonicalisation of YouTube URL shapes."""
from urllib.parse import parse_qs, urlparse

CANONICAL_WATCH_URL = "https://www.youtube.com/watch?v="


def _watch_url(video_id: str) -> str:
    return f"{CANONICAL_WATCH_URL}{video_id}"


def normalize_url(raw: str | None) -> str | None:
    """Rewrite short-link and shorts URLs to the canonical watch form.

    ``https://youtu.be/<id>`` and ``https://www.youtube.com/shorts/<id>`` both
    become ``https://www.youtube.com/watch?v=<id>``; watch URLs lose any
    extra query parameters. Anything else, malformed input included, is
    returned unchanged. Empty input gives ``None``. Never raises.

    Args:
        raw: URL as submitted by the client

    Returns:
        Canonical URL, the original string, or None
    """
    if not raw or not raw.strip():
        return None
    raw = raw.strip()

    try:
        parsed = urlparse(raw)
        host = (parsed.hostname or "").lower()
    except ValueError:
        return raw

    if host == "youtu.be" or host.endswith(".youtu.be"):
        video_id = parsed.path.strip("/").split("/")[0]
        return _watch_url(video_id) if video_id else raw

    if host == "youtube.com" or host.endswith(".youtube.com"):
        if parsed.path.startswith("/shorts/"):
            segments = parsed.path.split("/")
            video_id = segments[2] if len(segments) > 2 else ""
            return _watch_url(video_id) if video_id else raw
        if parsed.path == "/watch":
            video_ids = parse_qs(parsed.query).get("v")
            if video_ids and video_ids[0]:
                return _watch_url(video_ids[0])

    return raw
