"""Download filenames and Content-Disposition values."""
import re
import unicodedata
from urllib.parse import quote

MAX_FILENAME_LENGTH = 200

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f\x7f]')
_WINDOWS_RESERVED = {
    "CON", "PRN", "AUX", "NUL",
    "COM1", "COM2", "COM3", "COM4", "COM5", "COM6", "COM7", "COM8", "COM9",
    "LPT1", "LPT2", "LPT3", "LPT4", "LPT5", "LPT6", "LPT7", "LPT8", "LPT9",
}


def sanitize_title(title: str) -> str:
    """Make ``title`` safe as a file stem on every common filesystem.

    Unicode is kept; path separators, reserved punctuation and control
    characters are dropped.
    """
    name = unicodedata.normalize("NFKC", title or "")
    name = _UNSAFE_CHARS.sub("", name)
    name = name.strip().rstrip(". ")
    if name.upper() in _WINDOWS_RESERVED:
        name = f"_{name}"
    return name[:MAX_FILENAME_LENGTH].strip()


def filename_from_title(title: str, ext: str, fallback: str = "download") -> str:
    """``<sanitized title>.<ext>``, using ``fallback`` for empty titles."""
    stem = sanitize_title(title) or fallback
    return f"{stem}.{ext}"


def ascii_filename(filename: str) -> str:
    """ASCII-only fallback for the legacy ``filename=`` parameter."""
    # Only keep ASCII alphanumeric, spaces, hyphens, dots
    filename = re.sub(r"[^a-zA-Z0-9\s\-\.]", "", filename, flags=re.ASCII)
    filename = re.sub(r"\s+", "_", filename)
    if len(filename) > MAX_FILENAME_LENGTH:
        filename = filename[:MAX_FILENAME_LENGTH]
    return filename or "download"


def content_disposition(filename: str) -> str:
    """Attachment header with both an ASCII and an RFC 5987 filename.

    ``filename=`` is for older browsers, ``filename*=`` carries the UTF-8
    name percent-encoded for modern ones.
    """
    encoded = quote(filename, safe="")
    return f"attachment; filename=\"{ascii_filename(filename)}\"; filename*=UTF-8''{encoded}"
