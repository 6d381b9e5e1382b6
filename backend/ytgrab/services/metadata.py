"""Metadata resolution through an ordered chain of providers.

Tier order is fixed: the yt-dlp library with full processing, the same
library with ``process=False`` (raw extractor output, no format sorting),
then the yt-dlp executable's ``-J`` dump. Each provider has its own adapter
into ``ResolvedMetadata``. If every provider fails the resolver returns the
empty ``UNAVAILABLE`` result instead of raising.
"""
import asyncio
import re
from typing import Any, Protocol, Sequence

import yt_dlp

from ytgrab.core.config import Settings, settings
from ytgrab.core.logging import get_logger, safe_url
from ytgrab.models.media import MediaFormat, ResolvedMetadata, SourceTier
from ytgrab.services.companion import CompanionBinary
from ytgrab.services.fallback import FallbackExhausted, Tier, first_success

logger = get_logger(__name__)

CODEC_NONE = "none"

_HEIGHT_NOTE_RE = re.compile(r"^\d+p\d*")


class EmptyMetadataError(Exception):
    """A provider answered but produced no selectable format."""


class MetadataProvider(Protocol):
    name: str
    tier: SourceTier

    async def fetch(self, url: str) -> ResolvedMetadata: ...


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and value > 0:
        return int(value)
    return None


def _as_float(value: Any) -> float | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        return float(value)
    return None


def _thumbnail(info: dict[str, Any]) -> str:
    if isinstance(info.get("thumbnail"), str):
        return info["thumbnail"]
    thumbnails = info.get("thumbnails")
    if isinstance(thumbnails, list):
        # yt-dlp orders thumbnails by preference, best last
        for thumb in reversed(thumbnails):
            if isinstance(thumb, dict) and thumb.get("url"):
                return str(thumb["url"])
    return ""


def _library_format(raw: dict[str, Any]) -> MediaFormat | None:
    """Map one yt-dlp library format dict to ``MediaFormat``."""
    format_id = raw.get("format_id")
    if not format_id:
        return None

    height = _as_int(raw.get("height"))
    vcodec = raw.get("vcodec")
    acodec = raw.get("acodec")
    has_video = vcodec != CODEC_NONE if vcodec is not None else height is not None
    has_audio = (
        acodec != CODEC_NONE
        if acodec is not None
        else bool(raw.get("audio_channels") or raw.get("asr"))
    )

    ext = raw.get("ext")
    mime_hint = f"{'video' if has_video else 'audio'}/{ext}" if ext else None

    label = None
    if has_video:
        note_match = _HEIGHT_NOTE_RE.match(str(raw.get("format_note") or ""))
        if note_match:
            label = note_match.group(0)
        elif height:
            label = f"{height}p"

    return MediaFormat(
        id=str(format_id),
        direct_url=raw.get("url"),
        mime_hint=mime_hint,
        quality_label=label,
        height=height,
        bitrate_kbps=_as_float(raw.get("abr")) or _as_float(raw.get("tbr")),
        has_audio=has_audio,
        has_video=has_video,
    )


def adapt_library_info(info: dict[str, Any], tier: SourceTier) -> ResolvedMetadata:
    """Adapter for ``YoutubeDL.extract_info`` output (processed or raw)."""
    formats = []
    for raw in info.get("formats") or []:
        if not isinstance(raw, dict):
            continue
        fmt = _library_format(raw)
        if fmt is not None:
            formats.append(fmt)
    return ResolvedMetadata(
        title=str(info.get("title") or ""),
        thumbnail_url=_thumbnail(info),
        formats=tuple(formats),
        source_tier=tier,
    )


def _extractor_format(raw: dict[str, Any]) -> MediaFormat | None:
    """Map one ``yt-dlp -J`` format entry to ``MediaFormat``.

    format_id -> id, url -> direct_url, ext -> mime_hint, format_note or
    height -> quality_label, audio_channels/asr -> has_audio,
    height -> has_video.
    """
    format_id = raw.get("format_id")
    if not format_id:
        return None

    height = _as_int(raw.get("height"))
    has_video = height is not None
    has_audio = bool(raw.get("audio_channels") or raw.get("asr"))

    ext = raw.get("ext")
    mime_hint = None
    if ext:
        mime_hint = f"audio/{ext}" if has_audio and not has_video else f"video/{ext}"

    return MediaFormat(
        id=str(format_id),
        direct_url=raw.get("url"),
        mime_hint=mime_hint,
        quality_label=raw.get("format_note") or (f"{height}p" if height else None),
        height=height,
        bitrate_kbps=_as_float(raw.get("abr")) or _as_float(raw.get("tbr")),
        has_audio=has_audio,
        has_video=has_video,
    )


def adapt_extractor_dump(data: dict[str, Any]) -> ResolvedMetadata:
    """Adapter for the yt-dlp executable's ``-J`` JSON."""
    formats = []
    for raw in data.get("formats") or []:
        if not isinstance(raw, dict):
            continue
        fmt = _extractor_format(raw)
        if fmt is not None:
            formats.append(fmt)
    return ResolvedMetadata(
        title=str(data.get("title") or ""),
        thumbnail_url=_thumbnail(data),
        formats=tuple(formats),
        source_tier=SourceTier.EXTRACTOR,
    )


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


def build_ydl_options(config: Settings = settings) -> dict[str, Any]:
    """yt-dlp library options for metadata-only extraction."""
    return {
        "quiet": True,
        "no_warnings": True,
        "skip_download": True,
        "noplaylist": True,
        "socket_timeout": config.YTDLP_SOCKET_TIMEOUT,
        "http_headers": {"User-Agent": config.USER_AGENT},
    }


class LibraryProvider:
    """yt-dlp Python API; ``process=False`` gives the lighter secondary tier."""

    def __init__(
        self,
        tier: SourceTier,
        *,
        process: bool = True,
        options: dict[str, Any] | None = None,
    ) -> None:
        self.tier = tier
        self.process = process
        self.name = "yt_dlp.extract_info" + ("" if process else "(process=False)")
        self._options = options if options is not None else build_ydl_options()

    def _extract(self, url: str) -> dict[str, Any] | None:
        with yt_dlp.YoutubeDL(dict(self._options)) as ydl:
            return ydl.extract_info(url, download=False, process=self.process)

    async def fetch(self, url: str) -> ResolvedMetadata:
        # extract_info blocks on network I/O
        info = await asyncio.to_thread(self._extract, url)
        if not info:
            raise EmptyMetadataError(f"{self.name} returned no info")
        return adapt_library_info(info, self.tier)


class ExtractorProvider:
    """The yt-dlp executable in JSON-dump mode."""

    name = "yt-dlp -J"
    tier = SourceTier.EXTRACTOR

    def __init__(self, companion: CompanionBinary) -> None:
        self._companion = companion

    async def fetch(self, url: str) -> ResolvedMetadata:
        return adapt_extractor_dump(await self._companion.dump_json(url))


def default_providers(companion: CompanionBinary) -> list[MetadataProvider]:
    """Primary, secondary and extractor providers in tier order."""
    return [
        LibraryProvider(SourceTier.PRIMARY),
        LibraryProvider(SourceTier.SECONDARY, process=False),
        ExtractorProvider(companion),
    ]


class MetadataResolver:
    """Tries providers in order until one yields selectable formats."""

    def __init__(self, providers: Sequence[MetadataProvider]) -> None:
        self._providers = list(providers)
        self._tiers = [Tier(p.name, self._require_formats(p)) for p in self._providers]

    @staticmethod
    def _require_formats(provider: MetadataProvider):
        async def run(url: str) -> ResolvedMetadata:
            metadata = await provider.fetch(url)
            if not metadata.selectable_formats:
                raise EmptyMetadataError(f"{provider.name} returned no usable formats")
            return metadata

        return run

    async def resolve(self, url: str) -> ResolvedMetadata:
        """Resolve title, thumbnail and formats; never raises.

        Returns:
            Metadata from the first successful tier, or the empty
            ``UNAVAILABLE`` result if every tier failed
        """
        try:
            metadata, tier = await first_success(self._tiers, url, chain="metadata")
        except FallbackExhausted as exc:
            logger.warning(f"Metadata unavailable for {safe_url(url)}: {exc.summary()}")
            return ResolvedMetadata.unavailable()

        logger.info(
            f"Resolved {len(metadata.formats)} formats for {safe_url(url)} "
            f"via {tier.name} ({metadata.source_tier.value})"
        )
        return metadata
