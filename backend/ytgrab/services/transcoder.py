"""ffmpeg command construction and process start-up.

Outputs always go to stdout (``pipe:1``) so nothing touches disk: audio is
encoded into a codec-specific container, merges are stream copies into
matroska.
"""
import asyncio
from dataclasses import dataclass

from ytgrab.core.config import Settings, settings
from ytgrab.core.logging import get_logger
from ytgrab.models.media import MediaFormat
from ytgrab.services.errors import TranscodeFailure
from ytgrab.services.stream_adapter import ByteStream

logger = get_logger(__name__)

MATROSKA_MIME = "video/x-matroska"
MATROSKA_EXT = "mkv"


@dataclass(frozen=True)
class AudioProfile:
    """Output settings for one audio subformat."""

    subformat: str
    mime_type: str
    extension: str
    codec_args: tuple[str, ...]


AUDIO_PROFILES: dict[str, AudioProfile] = {
    "mp3": AudioProfile("mp3", "audio/mpeg", "mp3", ("-c:a", "libmp3lame", "-q:a", "0", "-f", "mp3")),
    "wav": AudioProfile("wav", "audio/wav", "wav", ("-c:a", "pcm_s16le", "-f", "wav")),
    # mp4 needs a fragmented layout to be written to a pipe
    "m4a": AudioProfile(
        "m4a",
        "audio/mp4",
        "m4a",
        ("-c:a", "aac", "-b:a", "192k", "-movflags", "frag_keyframe+empty_moov", "-f", "mp4"),
    ),
    "opus": AudioProfile("opus", "audio/ogg", "opus", ("-c:a", "libopus", "-b:a", "160k", "-f", "ogg")),
    "flac": AudioProfile("flac", "audio/flac", "flac", ("-c:a", "flac", "-f", "flac")),
}


def audio_profile(subformat: str) -> AudioProfile:
    """Profile for ``subformat``; unknown values use m4a."""
    return AUDIO_PROFILES.get(subformat, AUDIO_PROFILES["m4a"])


class Transcoder:
    """Builds and starts ffmpeg pipelines reading upstream URLs."""

    def __init__(self, config: Settings = settings) -> None:
        self._config = config

    def _input_args(self, url: str, cookie: str | None) -> list[str]:
        args = ["-user_agent", self._config.USER_AGENT]
        if cookie:
            args.extend(["-headers", f"Cookie: {cookie}\r\n"])
        args.extend(["-i", url])
        return args

    def _base(self) -> list[str]:
        return [self._config.FFMPEG_PATH, "-hide_banner", "-loglevel", "error", "-nostdin"]

    def audio_command(
        self,
        source: MediaFormat,
        profile: AudioProfile,
        cookie: str | None = None,
    ) -> list[str]:
        """Encode the audio track of ``source`` per ``profile``."""
        if not source.direct_url:
            raise TranscodeFailure("Audio source has no direct URL", source.id)
        return [
            *self._base(),
            *self._input_args(source.direct_url, cookie),
            "-vn",
            *profile.codec_args,
            "pipe:1",
        ]

    def merge_command(
        self,
        video: MediaFormat,
        audio: MediaFormat | None,
        cookie: str | None = None,
    ) -> list[str]:
        """Stream-copy ``video`` plus ``audio`` into matroska.

        Without a separate audio stream, ``video`` must be muxed and its own
        audio track is copied.
        """
        if not video.direct_url:
            raise TranscodeFailure("Video source has no direct URL", video.id)
        cmd = [*self._base(), *self._input_args(video.direct_url, cookie)]
        if audio is not None and audio.direct_url:
            cmd.extend(self._input_args(audio.direct_url, cookie))
            cmd.extend(["-map", "0:v:0", "-map", "1:a:0"])
        elif video.has_audio:
            cmd.extend(["-map", "0:v:0", "-map", "0:a:0"])
        else:
            raise TranscodeFailure("No audio stream to merge", video.id)
        cmd.extend(["-c", "copy", "-f", "matroska", "pipe:1"])
        return cmd

    async def start(self, cmd: list[str], *, name: str = "ffmpeg") -> ByteStream:
        """Spawn ``cmd`` and return its stdout once it has produced data.

        Raises:
            TranscodeFailure: If ffmpeg cannot start, fails before the first
                chunk, or exits without output
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise TranscodeFailure("Could not start ffmpeg", str(exc)) from exc

        stream = ByteStream.from_process(process, name=name, error_cls=TranscodeFailure)
        try:
            has_data = await stream.ready()
        except asyncio.CancelledError:
            await stream.cancel()
            raise
        if not has_data:
            await stream.cancel()
            raise TranscodeFailure("ffmpeg produced no output")
        logger.info(f"{name} streaming (pid {process.pid})")
        return stream
