"""Canonical media types shared by the resolver, selector and strategies."""
import re
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

_LEADING_INT = re.compile(r"^\d+")


class SourceTier(str, Enum):
    """Which metadata provider produced a ``ResolvedMetadata``."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    EXTRACTOR = "extractor"
    UNAVAILABLE = "unavailable"


class Strategy(str, Enum):
    """How bytes reach the client."""

    REDIRECT = "redirect"
    PROXY = "proxy"
    TRANSCODE = "transcode"


class MediaFormat(BaseModel):
    """A single upstream format as reported by one provider."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Provider format identifier (itag for YouTube)")
    direct_url: str | None = Field(default=None, description="Signed upstream URL")
    mime_hint: str | None = Field(default=None, description="e.g. 'video/mp4', 'audio/webm'")
    quality_label: str | None = Field(default=None, description="e.g. '720p', '1080p60'")
    height: int | None = Field(default=None, ge=0)
    bitrate_kbps: float | None = Field(default=None, ge=0)
    has_audio: bool = False
    has_video: bool = False

    @property
    def is_selectable(self) -> bool:
        return self.has_audio or self.has_video

    @property
    def is_muxed(self) -> bool:
        return self.has_audio and self.has_video

    @property
    def is_audio_only(self) -> bool:
        return self.has_audio and not self.has_video

    @property
    def is_video_only(self) -> bool:
        return self.has_video and not self.has_audio

    @property
    def display_label(self) -> str | None:
        """Label shown to users; falls back to ``<height>p``."""
        if self.quality_label:
            return self.quality_label
        if self.height:
            return f"{self.height}p"
        return None


class ResolvedMetadata(BaseModel):
    """Title, thumbnail and formats for one canonical URL."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    thumbnail_url: str = ""
    formats: tuple[MediaFormat, ...] = ()
    source_tier: SourceTier = SourceTier.UNAVAILABLE

    @classmethod
    def unavailable(cls) -> "ResolvedMetadata":
        """Terminal fallback: nothing could be resolved."""
        return cls(source_tier=SourceTier.UNAVAILABLE)

    @property
    def limited(self) -> bool:
        """True unless the rich primary provider answered."""
        return self.source_tier is not SourceTier.PRIMARY

    @property
    def selectable_formats(self) -> tuple[MediaFormat, ...]:
        return tuple(f for f in self.formats if f.is_selectable)

    def available_qualities(self) -> list[str]:
        """Distinct labels of video-bearing formats, ordered by leading number."""
        labels: list[str] = []
        for fmt in self.formats:
            if not (fmt.has_video or fmt.height):
                continue
            label = fmt.display_label
            if label and label not in labels:
                labels.append(label)

        def _sort_key(label: str) -> int:
            match = _LEADING_INT.match(label)
            return int(match.group(0)) if match else 0

        return sorted(labels, key=_sort_key)


class RetrievalRequest(BaseModel):
    """Caller input for one retrieval."""

    model_config = ConfigDict(frozen=True)

    canonical_url: str
    requested_token: str = "best"
    cookie: str | None = None
    range: str | None = Field(default=None, description="Client Range header, forwarded upstream")


class AudioTarget(BaseModel):
    """Audio output request; ``direct`` is set when a playable stream exists."""

    model_config = ConfigDict(frozen=True)

    subformat: str
    direct: MediaFormat | None = None


class MergeSpec(BaseModel):
    """Video and audio components to combine by stream copy."""

    model_config = ConfigDict(frozen=True)

    max_height: int | None = None
    video: MediaFormat | None = None
    audio: MediaFormat | None = None
    via_extractor: bool = False


class RetrievalDecision(BaseModel):
    """Output of the format selector."""

    model_config = ConfigDict(frozen=True)

    strategy: Strategy
    target: MediaFormat | AudioTarget | MergeSpec

    @property
    def mode(self) -> Literal["audio", "muxed", "merge"]:
        if isinstance(self.target, AudioTarget):
            return "audio"
        if isinstance(self.target, MergeSpec):
            return "merge"
        return "muxed"


class Unavailable(BaseModel):
    """Typed selector outcome when no decision can be made."""

    model_config = ConfigDict(frozen=True)

    reason: str = "Format unavailable"
