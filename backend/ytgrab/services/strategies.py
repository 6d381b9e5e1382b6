"""Retrieval strategies: redirect, proxy passthrough, local transcode.

Every strategy exposes ``execute(decision, request, metadata)`` and either
returns a ``Retrieval`` or raises; the download service moves on to the
next strategy when one raises.
"""
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import httpx

from ytgrab.core.config import Settings, settings
from ytgrab.core.logging import get_logger, safe_url
from ytgrab.models.media import (
    AudioTarget,
    MediaFormat,
    MergeSpec,
    ResolvedMetadata,
    RetrievalDecision,
    RetrievalRequest,
)
from ytgrab.services.companion import CompanionBinary
from ytgrab.services.errors import ExtractorFailure, TranscodeFailure, UpstreamFailure
from ytgrab.services.format_selector import best_audio_only, extract_height, plan_merge
from ytgrab.services.naming import filename_from_title
from ytgrab.services.stream_adapter import ByteStream, remove_file
from ytgrab.services.transcoder import MATROSKA_EXT, MATROSKA_MIME, Transcoder, audio_profile

logger = get_logger(__name__)

OCTET_STREAM = "application/octet-stream"
DEFAULT_VIDEO_EXT = "mp4"

# yt-dlp post-processing flags per audio subformat
EXTRACT_AUDIO_ARGS: dict[str, list[str]] = {
    "mp3": ["--extract-audio", "--audio-format", "mp3", "--audio-quality", "0"],
    "wav": ["--extract-audio", "--audio-format", "wav"],
    "m4a": ["--extract-audio", "--audio-format", "m4a"],
    "opus": ["--extract-audio", "--audio-format", "opus"],
    "flac": ["--extract-audio", "--audio-format", "flac"],
}


@dataclass
class Retrieval:
    """What the HTTP layer needs to answer a download request."""

    filename: str
    content_type: str
    stream: ByteStream | None = None
    content_length: int | None = None
    status_code: int = 200
    redirect_url: str | None = None
    content_range: str | None = None


class RetrievalStrategy(Protocol):
    name: str

    async def execute(
        self,
        decision: RetrievalDecision,
        request: RetrievalRequest,
        metadata: ResolvedMetadata,
    ) -> Retrieval: ...


@dataclass(frozen=True)
class _DirectTarget:
    fmt: MediaFormat
    url: str
    extension: str
    content_type: str
    is_audio: bool


def _direct_target(decision: RetrievalDecision) -> _DirectTarget:
    """Upstream format a redirect or proxy would serve."""
    target = decision.target
    if isinstance(target, MediaFormat) and target.direct_url:
        return _DirectTarget(target, target.direct_url, DEFAULT_VIDEO_EXT, OCTET_STREAM, False)
    if isinstance(target, AudioTarget) and target.direct and target.direct.direct_url:
        profile = audio_profile(target.subformat)
        return _DirectTarget(
            target.direct, target.direct.direct_url, target.subformat, profile.mime_type, True
        )
    raise UpstreamFailure("No direct upstream URL for this decision")


def _title_fallback(is_audio: bool) -> str:
    return "audio" if is_audio else "video"


class DirectRedirect:
    """302 to the signed upstream URL; no bytes pass through the server."""

    name = "redirect"

    async def execute(
        self,
        decision: RetrievalDecision,
        request: RetrievalRequest,
        metadata: ResolvedMetadata,
    ) -> Retrieval:
        direct = _direct_target(decision)
        return Retrieval(
            filename=filename_from_title(
                metadata.title, direct.extension, _title_fallback(direct.is_audio)
            ),
            content_type=direct.content_type,
            status_code=302,
            redirect_url=direct.url,
        )


class ProxyPassthrough:
    """Re-streams the upstream body with browser-like request headers."""

    name = "proxy"

    def __init__(self, client: httpx.AsyncClient, config: Settings = settings) -> None:
        self._client = client
        self._config = config

    def upstream_headers(self, request: RetrievalRequest) -> dict[str, str]:
        headers = {
            "User-Agent": self._config.USER_AGENT,
            "Accept": "*/*",
        }
        if request.cookie:
            headers["Cookie"] = request.cookie
        if request.range:
            headers["Range"] = request.range
        return headers

    async def _probe_length(self, url: str, headers: dict[str, str]) -> int | None:
        try:
            response = await self._client.head(url, headers=headers)
        except httpx.HTTPError as exc:
            logger.debug(f"HEAD probe failed for {safe_url(url)}: {exc}")
            return None
        if not response.is_success:
            return None
        return _parse_length(response.headers.get("content-length"))

    async def execute(
        self,
        decision: RetrievalDecision,
        request: RetrievalRequest,
        metadata: ResolvedMetadata,
    ) -> Retrieval:
        direct = _direct_target(decision)
        headers = self.upstream_headers(request)

        # A ranged response has its own length; the probe would report the full size
        length = None
        if not self._config.FAST_MODE and not request.range:
            length = await self._probe_length(direct.url, headers)

        try:
            upstream = await self._client.send(
                self._client.build_request("GET", direct.url, headers=headers),
                stream=True,
            )
        except httpx.HTTPError as exc:
            raise UpstreamFailure("Upstream request failed", str(exc)) from exc

        if not upstream.is_success:
            await upstream.aclose()
            raise UpstreamFailure(f"Upstream failed ({upstream.status_code})")

        length = length or _parse_length(upstream.headers.get("content-length"))
        if direct.is_audio:
            content_type = upstream.headers.get("content-type") or direct.content_type
        else:
            # Generic binary type so browsers download instead of playing inline
            content_type = OCTET_STREAM

        logger.info(f"Proxying {direct.fmt.id} from {safe_url(direct.url)} ({length or '?'} bytes)")
        return Retrieval(
            filename=filename_from_title(
                metadata.title, direct.extension, _title_fallback(direct.is_audio)
            ),
            content_type=content_type,
            stream=ByteStream.from_response(upstream),
            content_length=length,
            status_code=upstream.status_code,
            content_range=upstream.headers.get("content-range"),
        )


class LibraryTranscode:
    """ffmpeg over the library-resolved stream URLs, streamed from stdout."""

    name = "library-transcode"

    def __init__(self, transcoder: Transcoder) -> None:
        self._transcoder = transcoder

    async def execute(
        self,
        decision: RetrievalDecision,
        request: RetrievalRequest,
        metadata: ResolvedMetadata,
    ) -> Retrieval:
        target = decision.target
        if isinstance(target, AudioTarget):
            return await self._audio(target, request, metadata)

        merge = target if isinstance(target, MergeSpec) else plan_merge(metadata, request.requested_token)
        if merge.via_extractor or merge.video is None:
            raise TranscodeFailure("No video stream available for merging")

        cmd = self._transcoder.merge_command(merge.video, merge.audio, request.cookie)
        stream = await self._transcoder.start(cmd, name="ffmpeg-merge")
        return Retrieval(
            filename=filename_from_title(metadata.title, MATROSKA_EXT, "video"),
            content_type=MATROSKA_MIME,
            stream=stream,
        )

    async def _audio(
        self,
        target: AudioTarget,
        request: RetrievalRequest,
        metadata: ResolvedMetadata,
    ) -> Retrieval:
        candidates = tuple(f for f in metadata.selectable_formats if f.direct_url)
        source = best_audio_only(candidates)
        if source is None:
            raise TranscodeFailure("No audio-only stream available")

        profile = audio_profile(target.subformat)
        cmd = self._transcoder.audio_command(source, profile, request.cookie)
        stream = await self._transcoder.start(cmd, name=f"ffmpeg-{profile.subformat}")
        return Retrieval(
            filename=filename_from_title(metadata.title, profile.extension, "audio"),
            content_type=profile.mime_type,
            stream=stream,
        )


class ExtractorTranscode:
    """yt-dlp downloads and merges (or extracts audio) to a temp file.

    The file is streamed back and removed when the stream ends, fails or is
    cancelled; a failed run removes any partial output.
    """

    name = "extractor-transcode"

    def __init__(self, companion: CompanionBinary, config: Settings = settings) -> None:
        self._companion = companion
        self._config = config

    def _ffmpeg_args(self) -> list[str]:
        location = shutil.which(self._config.FFMPEG_PATH)
        return ["--ffmpeg-location", location] if location else []

    def build_args(
        self,
        decision: RetrievalDecision,
        request: RetrievalRequest,
        output_template: str,
    ) -> list[str]:
        """yt-dlp arguments for ``decision``, writing to ``output_template``."""
        target = decision.target
        if isinstance(target, AudioTarget):
            selection = ["-f", "bestaudio/best"]
            post = EXTRACT_AUDIO_ARGS.get(target.subformat, EXTRACT_AUDIO_ARGS["m4a"])
        else:
            if isinstance(target, MergeSpec):
                height = target.max_height
            else:
                height = extract_height(request.requested_token)
            query = "bestvideo+bestaudio/best"
            if height is not None:
                query = f"bestvideo[height<={height}]+bestaudio/best[height<={height}]"
            selection = ["-f", query]
            post = ["--merge-output-format", MATROSKA_EXT]

        return [
            *self._companion.header_args(request.cookie),
            "--no-playlist",
            "--no-part",
            "--quiet",
            "--no-warnings",
            "--socket-timeout", str(self._config.YTDLP_SOCKET_TIMEOUT),
            *selection,
            *post,
            *self._ffmpeg_args(),
            "-o", output_template,
            request.canonical_url,
        ]

    async def execute(
        self,
        decision: RetrievalDecision,
        request: RetrievalRequest,
        metadata: ResolvedMetadata,
    ) -> Retrieval:
        target = decision.target
        if isinstance(target, AudioTarget):
            profile = audio_profile(target.subformat)
            extension, content_type, fallback = profile.extension, profile.mime_type, "audio"
        else:
            extension, content_type, fallback = MATROSKA_EXT, MATROSKA_MIME, "video"

        temp_dir = Path(self._config.TEMP_DIR)
        temp_dir.mkdir(parents=True, exist_ok=True)
        prefix = f"{time.time_ns()}-{uuid.uuid4().hex[:8]}"
        template = str(temp_dir / f"{prefix}.%(ext)s")

        logger.info(f"Extractor download for {safe_url(request.canonical_url)} to {template}")
        try:
            await self._companion.run(self.build_args(decision, request, template))
            output = _find_output(temp_dir, prefix, extension)
            size = output.stat().st_size
        except BaseException:
            _remove_outputs(temp_dir, prefix)
            raise

        path = str(output)
        return Retrieval(
            filename=filename_from_title(metadata.title, extension, fallback),
            content_type=content_type,
            stream=ByteStream.from_file(path, on_close=lambda: remove_file(path)),
            content_length=size,
        )


def _parse_length(value: str | None) -> int | None:
    if value and value.isdigit():
        return int(value)
    return None


def _find_output(temp_dir: Path, prefix: str, extension: str) -> Path:
    """The finished file for ``prefix``; other leftovers are removed."""
    outputs = [
        p for p in temp_dir.glob(f"{prefix}.*")
        if p.is_file() and p.suffix not in (".part", ".ytdl")
    ]
    if not outputs:
        raise ExtractorFailure("yt-dlp produced no output file")
    expected = temp_dir / f"{prefix}.{extension}"
    chosen = expected if expected in outputs else max(outputs, key=lambda p: p.stat().st_size)
    # Unmerged intermediates (e.g. <prefix>.f137.mp4) are not served
    for extra in outputs:
        if extra != chosen:
            remove_file(str(extra))
    return chosen


def _remove_outputs(temp_dir: Path, prefix: str) -> None:
    for leftover in temp_dir.glob(f"{prefix}*"):
        remove_file(str(leftover))
