"""Sample formats and in-process stand-ins for providers, strategies and tools."""
from pathlib import Path
from typing import Any

from ytgrab.core.config import Settings, settings
from ytgrab.models.media import (
    MediaFormat,
    ResolvedMetadata,
    RetrievalDecision,
    RetrievalRequest,
    SourceTier,
)
from ytgrab.services.download_service import DownloadService
from ytgrab.services.metadata import MetadataResolver
from ytgrab.services.strategies import Retrieval
from ytgrab.services.stream_adapter import ByteStream
from ytgrab.services.transcoder import Transcoder

WATCH_URL = "https://www.youtube.com/watch?v=abc123"

MUXED_720 = MediaFormat(
    id="22",
    direct_url="https://rr1.googlevideo.com/videoplayback?itag=22&sig=muxed",
    mime_hint="video/mp4",
    quality_label="720p",
    height=720,
    bitrate_kbps=1500.0,
    has_audio=True,
    has_video=True,
)
VIDEO_1080 = MediaFormat(
    id="137",
    direct_url="https://rr1.googlevideo.com/videoplayback?itag=137&sig=v1080",
    mime_hint="video/mp4",
    quality_label="1080p",
    height=1080,
    has_video=True,
)
VIDEO_480 = MediaFormat(
    id="135",
    direct_url="https://rr1.googlevideo.com/videoplayback?itag=135&sig=v480",
    mime_hint="video/mp4",
    quality_label="480p",
    height=480,
    has_video=True,
)
AUDIO_M4A = MediaFormat(
    id="140",
    direct_url="https://rr1.googlevideo.com/videoplayback?itag=140&sig=m4a",
    mime_hint="audio/m4a",
    bitrate_kbps=129.5,
    has_audio=True,
)
AUDIO_WEBM = MediaFormat(
    id="251",
    direct_url="https://rr1.googlevideo.com/videoplayback?itag=251&sig=webm",
    mime_hint="audio/webm",
    bitrate_kbps=160.0,
    has_audio=True,
)


def make_metadata(
    *formats: MediaFormat,
    tier: SourceTier = SourceTier.PRIMARY,
    title: str = "Test Video",
) -> ResolvedMetadata:
    return ResolvedMetadata(
        title=title,
        thumbnail_url="https://i.ytimg.com/vi/abc123/hqdefault.jpg",
        formats=formats,
        source_tier=tier,
    )


def bytes_stream(chunks: list[bytes], **kwargs: Any) -> ByteStream:
    """ByteStream yielding ``chunks``; must be called inside a running loop."""

    async def produce(stream: ByteStream) -> None:
        for chunk in chunks:
            await stream.push(chunk)

    return ByteStream(produce, name="stub", **kwargs)


async def collect(stream: ByteStream) -> bytes:
    return b"".join([chunk async for chunk in stream])


class StubProvider:
    """Metadata provider returning a fixed result or raising."""

    def __init__(
        self,
        name: str,
        tier: SourceTier,
        result: ResolvedMetadata | None = None,
        error: Exception | None = None,
    ) -> None:
        self.name = name
        self.tier = tier
        self.result = result
        self.error = error
        self.calls: list[str] = []

    async def fetch(self, url: str) -> ResolvedMetadata:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        assert self.result is not None
        return self.result


def failing_providers() -> list[StubProvider]:
    return [
        StubProvider("primary", SourceTier.PRIMARY, error=RuntimeError("primary down")),
        StubProvider("secondary", SourceTier.SECONDARY, error=RuntimeError("secondary down")),
        StubProvider("extractor", SourceTier.EXTRACTOR, error=RuntimeError("extractor down")),
    ]


class StubStrategy:
    """Retrieval strategy serving a fixed body or raising."""

    def __init__(
        self,
        name: str,
        *,
        body: bytes = b"payload",
        content_type: str = "application/octet-stream",
        error: Exception | None = None,
    ) -> None:
        self.name = name
        self.body = body
        self.content_type = content_type
        self.error = error
        self.calls: list[tuple[RetrievalDecision, RetrievalRequest]] = []

    async def execute(
        self,
        decision: RetrievalDecision,
        request: RetrievalRequest,
        metadata: ResolvedMetadata,
    ) -> Retrieval:
        self.calls.append((decision, request))
        if self.error is not None:
            raise self.error
        return Retrieval(
            filename=f"{self.name}.bin",
            content_type=self.content_type,
            stream=bytes_stream([self.body]),
            content_length=len(self.body),
        )


class FakeTranscoder(Transcoder):
    """Builds real ffmpeg commands but never spawns ffmpeg."""

    def __init__(self, body: bytes = b"transcoded", config: Settings = settings) -> None:
        super().__init__(config)
        self.body = body
        self.commands: list[list[str]] = []

    async def start(self, cmd: list[str], *, name: str = "ffmpeg") -> ByteStream:
        self.commands.append(cmd)
        return bytes_stream([self.body])


class FakeCompanion:
    """Stands in for the yt-dlp executable by writing files at ``-o``."""

    def __init__(self, outputs: dict[str, bytes] | None = None, error: Exception | None = None) -> None:
        self.outputs = outputs or {}
        self.error = error
        self.calls: list[list[str]] = []

    def header_args(self, cookie: str | None = None) -> list[str]:
        args = ["--add-header", "User-Agent: test-agent"]
        if cookie:
            args.extend(["--add-header", f"Cookie: {cookie}"])
        return args

    async def run(self, args: list[str], timeout: float | None = None) -> None:
        self.calls.append(args)
        template = args[args.index("-o") + 1]
        for ext, data in self.outputs.items():
            Path(template.replace("%(ext)s", ext)).write_bytes(data)
        if self.error is not None:
            raise self.error


def make_service(
    providers: list[StubProvider],
    *,
    redirect: Any = None,
    proxy: Any = None,
    library: Any = None,
    extractor: Any = None,
    config: Settings = settings,
) -> DownloadService:
    return DownloadService(
        MetadataResolver(providers),
        redirect=redirect or StubStrategy("redirect"),
        proxy=proxy or StubStrategy("proxy"),
        library=library or StubStrategy("library-transcode"),
        extractor=extractor or StubStrategy("extractor-transcode"),
        config=config,
    )
