"""Turns a format token plus resolved formats into a retrieval decision.

Token grammar: ``best`` | ``<label>`` | ``audio`` | ``audio:<subformat>``.
Labels are opaque; the only interpretation applied to them is the numeric
height obtained by stripping every non-digit character.
"""
import re

from ytgrab.core.config import settings
from ytgrab.models.media import (
    AudioTarget,
    MediaFormat,
    MergeSpec,
    ResolvedMetadata,
    RetrievalDecision,
    RetrievalRequest,
    Strategy,
    Unavailable,
)

AUDIO_MARKER = "audio"
BEST = "best"
AUDIO_SUBFORMATS = ("mp3", "wav", "m4a", "opus", "flac")

# Upstream containers that can be handed to the client as-is
_DIRECT_AUDIO_MIME_MARKERS: dict[str, tuple[str, ...]] = {
    "m4a": ("audio/mp4", "m4a"),
    "opus": ("audio/webm", "opus"),
}

_NON_DIGITS = re.compile(r"\D")


def is_audio_token(token: str) -> bool:
    return token == AUDIO_MARKER or token.startswith(f"{AUDIO_MARKER}:")


def audio_subformat(token: str, default: str | None = None) -> str:
    """``audio:mp3`` -> ``mp3``; bare ``audio`` -> the configured default."""
    _, _, sub = token.partition(":")
    return sub.strip().lower() or default or settings.DEFAULT_AUDIO_FORMAT


def extract_height(token: str) -> int | None:
    """Digits of ``token`` as an int; None when it has no digits.

    Frame-rate suffixes are not split off: ``1080p60`` gives 108060, which
    caps nothing, so such a label merges from the tallest stream available.
    """
    digits = _NON_DIGITS.sub("", token)
    return int(digits) if digits else None


def _direct_audio(formats: tuple[MediaFormat, ...], subformat: str) -> MediaFormat | None:
    markers = _DIRECT_AUDIO_MIME_MARKERS.get(subformat)
    if not markers:
        return None
    for fmt in formats:
        mime = fmt.mime_hint or ""
        if fmt.is_audio_only and fmt.direct_url and any(m in mime for m in markers):
            return fmt
    return None


def _match_muxed(formats: tuple[MediaFormat, ...], token: str) -> MediaFormat | None:
    muxed = [f for f in formats if f.is_muxed and f.direct_url]
    target = next((f for f in muxed if f.quality_label == token), None)
    if target is None and token == BEST:
        target = muxed[0] if muxed else None
    if target is None and token != BEST:
        target = next((f for f in muxed if token in (f.quality_label or "")), None)
    return target


def _fits(fmt: MediaFormat, token: str, max_height: int) -> bool:
    if fmt.height:
        return fmt.height <= max_height
    return token in (fmt.quality_label or "")


def best_audio_only(formats: tuple[MediaFormat, ...]) -> MediaFormat | None:
    """Highest-bitrate audio-only stream; the first listed wins ties."""
    candidates = [f for f in formats if f.is_audio_only]
    if not candidates:
        return None
    return max(candidates, key=lambda f: f.bitrate_kbps or 0.0)


def plan_merge(metadata: ResolvedMetadata, token: str) -> MergeSpec:
    """Video and audio components for merging at or below ``token``'s height.

    Video-only streams are preferred; a muxed stream stands in only when no
    video-only stream fits. Without formats the merge is left to the
    extractor.
    """
    formats = metadata.selectable_formats
    max_height = extract_height(token)
    if not formats:
        return MergeSpec(max_height=max_height, via_extractor=True)

    def _eligible(fmt: MediaFormat) -> bool:
        return max_height is None or _fits(fmt, token, max_height)

    video_only = [f for f in formats if f.is_video_only and _eligible(f)]
    muxed = [f for f in formats if f.is_muxed and _eligible(f)]
    pool = video_only or muxed
    video = max(pool, key=lambda f: f.height or 0) if pool else None

    return MergeSpec(
        max_height=max_height,
        video=video,
        audio=best_audio_only(formats),
    )


def select(
    metadata: ResolvedMetadata,
    request: RetrievalRequest,
    *,
    redirect_enabled: bool = False,
) -> RetrievalDecision | Unavailable:
    """Decide how to satisfy ``request`` from ``metadata``; never raises.

    Args:
        metadata: Resolved formats (possibly empty)
        request: Caller request carrying the format token
        redirect_enabled: Whether direct targets may be redirected to

    Returns:
        A ``RetrievalDecision``, or ``Unavailable`` when nothing fits
    """
    token = (request.requested_token or BEST).strip()
    formats = metadata.selectable_formats
    direct_strategy = Strategy.REDIRECT if redirect_enabled else Strategy.PROXY

    if is_audio_token(token):
        subformat = audio_subformat(token)
        if subformat not in AUDIO_SUBFORMATS:
            return Unavailable(reason=f"Unsupported audio format '{subformat}'")
        direct = _direct_audio(formats, subformat)
        if direct is not None:
            return RetrievalDecision(
                strategy=direct_strategy,
                target=AudioTarget(subformat=subformat, direct=direct),
            )
        return RetrievalDecision(
            strategy=Strategy.TRANSCODE,
            target=AudioTarget(subformat=subformat),
        )

    muxed = _match_muxed(formats, token)
    if muxed is not None:
        return RetrievalDecision(strategy=direct_strategy, target=muxed)

    height = extract_height(token)
    if not formats:
        if token == BEST or height is not None:
            return RetrievalDecision(
                strategy=Strategy.TRANSCODE,
                target=MergeSpec(max_height=height, via_extractor=True),
            )
        return Unavailable()

    if height is not None and any(f.has_video and _fits(f, token, height) for f in formats):
        return RetrievalDecision(strategy=Strategy.TRANSCODE, target=plan_merge(metadata, token))

    if token == BEST:
        return RetrievalDecision(strategy=Strategy.TRANSCODE, target=plan_merge(metadata, token))

    return Unavailable()
