"""The yt-dlp executable: location, on-demand download and invocation."""
import asyncio
import json
import os
import shutil
import sys
import time
from pathlib import Path
from typing import Any, NamedTuple

import httpx

from ytgrab.core.config import Settings, settings
from ytgrab.core.logging import get_logger, safe_url
from ytgrab.services.errors import ExtractorFailure
from ytgrab.services.stream_adapter import terminate_process

logger = get_logger(__name__)

STDERR_DETAIL_CHARS = 500


class CompletedProcess(NamedTuple):
    """Subprocess result"""
    returncode: int
    stdout: bytes
    stderr: bytes


def _binary_names() -> list[str]:
    return ["yt-dlp.exe", "yt-dlp"] if sys.platform == "win32" else ["yt-dlp"]


def resolve_binary_path(config: Settings = settings) -> Path:
    """Pick the yt-dlp executable path; called once at startup.

    Candidates, in order: ``YTDLP_PATH``, ``PATH`` lookup, the cache
    directory. When none exists the cache-directory path is returned and
    the binary is fetched there on first use.
    """
    names = _binary_names()
    candidates: list[Path] = []
    if config.YTDLP_PATH:
        candidates.append(Path(config.YTDLP_PATH))
    for name in names:
        found = shutil.which(name)
        if found:
            candidates.append(Path(found))
    cache_dir = Path(config.YTDLP_CACHE_DIR)
    candidates.extend(cache_dir / name for name in names)

    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return cache_dir / names[0]


class CompanionBinary:
    """Runs the yt-dlp executable at a fixed, pre-resolved path."""

    def __init__(
        self,
        path: Path,
        *,
        client: httpx.AsyncClient | None = None,
        config: Settings = settings,
    ) -> None:
        self.path = path
        self._client = client
        self._config = config

    @property
    def enabled(self) -> bool:
        return self._config.companion_enabled

    async def ensure_available(self) -> Path:
        """Return the executable path, downloading the binary if missing.

        Raises:
            ExtractorFailure: If yt-dlp is disabled or cannot be fetched
        """
        if not self.enabled:
            raise ExtractorFailure("yt-dlp disabled")
        if not self.path.is_file():
            await self._download()
        return self.path

    async def _download(self) -> None:
        # Concurrent first requests may each download. Every copy is written
        # to its own part file and moved into place with os.replace, so the
        # last write wins with identical content and no lock is taken.
        url = f"{self._config.YTDLP_DOWNLOAD_URL.rstrip('/')}/{self.path.name}"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        partial = self.path.with_name(f"{self.path.name}.{os.getpid()}-{time.time_ns()}.part")
        logger.info(f"Downloading yt-dlp from {url} to {self.path}")

        client = self._client or httpx.AsyncClient(timeout=self._config.UPSTREAM_TIMEOUT)
        try:
            async with client.stream("GET", url, follow_redirects=True) as response:
                if response.status_code != 200:
                    raise ExtractorFailure(
                        "Could not download yt-dlp",
                        f"HTTP {response.status_code} from {url}",
                    )
                with open(partial, "wb") as handle:
                    async for chunk in response.aiter_bytes():
                        await asyncio.to_thread(handle.write, chunk)
            partial.chmod(0o755)
            os.replace(partial, self.path)
        except httpx.HTTPError as exc:
            raise ExtractorFailure("Could not download yt-dlp", str(exc)) from exc
        finally:
            partial.unlink(missing_ok=True)
            if self._client is None:
                await client.aclose()

    async def spawn(self, args: list[str]) -> asyncio.subprocess.Process:
        """Start yt-dlp with piped stdout/stderr."""
        binary = await self.ensure_available()
        try:
            return await asyncio.create_subprocess_exec(
                str(binary),
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise ExtractorFailure("Could not start yt-dlp", str(exc)) from exc

    async def run(self, args: list[str], timeout: float | None = None) -> CompletedProcess:
        """Run yt-dlp to completion.

        Raises:
            ExtractorFailure: On timeout or non-zero exit
        """
        process = await self.spawn(args)
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ExtractorFailure("yt-dlp timed out", f"no result after {timeout}s")
        finally:
            await terminate_process(process)

        if process.returncode != 0:
            stderr_text = stderr.decode(errors="replace").strip()
            raise ExtractorFailure(
                f"yt-dlp exited with status {process.returncode}",
                stderr_text[-STDERR_DETAIL_CHARS:] or None,
            )
        return CompletedProcess(process.returncode, stdout, stderr)

    async def dump_json(self, url: str) -> dict[str, Any]:
        """``yt-dlp -J``: the full info dict for ``url``."""
        logger.info(f"Dumping metadata with yt-dlp for {safe_url(url)}")
        result = await self.run(
            [
                "-J",
                "--no-playlist",
                "--no-warnings",
                "--socket-timeout", str(self._config.YTDLP_SOCKET_TIMEOUT),
                url,
            ],
            timeout=self._config.EXTRACTOR_TIMEOUT,
        )
        try:
            data = json.loads(result.stdout)
        except ValueError as exc:
            raise ExtractorFailure("yt-dlp returned invalid JSON", str(exc)) from exc
        if not isinstance(data, dict):
            raise ExtractorFailure("yt-dlp returned unexpected JSON", type(data).__name__)
        return data

    def header_args(self, cookie: str | None = None) -> list[str]:
        """``--add-header`` flags carrying the browser UA and optional cookie."""
        args = ["--add-header", f"User-Agent: {self._config.USER_AGENT}"]
        if cookie:
            args.extend(["--add-header", f"Cookie: {cookie}"])
        return args
