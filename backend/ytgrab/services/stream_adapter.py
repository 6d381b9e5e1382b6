"""Pull-style, cancellable byte streams over push-style producers.

A ``ByteStream`` owns a producer task that pushes chunks into a bounded
queue; the HTTP layer pulls them with ``next()`` or ``async for``. The
producer owns its resource (subprocess, file handle, upstream response) and
releases it in its own ``finally``, so cancelling the stream is enough to
kill a process or close a handle. End and failure are distinct terminal
states: a failure is raised from ``next()`` as the producer's exception.
"""
import asyncio
import os
from collections import deque
from contextlib import suppress
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable

import httpx

from ytgrab.core.config import settings
from ytgrab.core.logging import get_logger
from ytgrab.services.errors import TranscodeFailure, UpstreamFailure, YtGrabError

logger = get_logger(__name__)

STDERR_MAX_LINES = 50

Producer = Callable[["ByteStream"], Awaitable[None]]
CloseCallback = Callable[[], None]


class StreamState(str, Enum):
    OPEN = "open"
    ENDED = "ended"
    FAILED = "failed"
    CANCELLED = "cancelled"


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: Exception) -> None:
        self.error = error


_END = object()
_NOTHING = object()


class ByteStream:
    """Bounded channel between one producer task and one consumer."""

    def __init__(
        self,
        produce: Producer,
        *,
        name: str = "stream",
        queue_size: int | None = None,
        on_close: CloseCallback | None = None,
    ) -> None:
        self.name = name
        self._queue: asyncio.Queue = asyncio.Queue(
            maxsize=queue_size or settings.STREAM_QUEUE_SIZE
        )
        self._state = StreamState.OPEN
        self._error: Exception | None = None
        self._pending: object = _NOTHING
        self._close_callbacks: list[CloseCallback] = [on_close] if on_close else []
        self._closed = False
        self._task = asyncio.create_task(self._run(produce), name=f"bytestream:{name}")

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def _run(self, produce: Producer) -> None:
        try:
            await produce(self)
        except Exception as exc:
            await self._queue.put(_Failure(exc))
        else:
            await self._queue.put(_END)

    async def push(self, chunk: bytes) -> None:
        """Hand a chunk to the consumer; waits while the queue is full."""
        if chunk:
            await self._queue.put(chunk)

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    @property
    def state(self) -> StreamState:
        return self._state

    def add_close_callback(self, callback: CloseCallback) -> None:
        """Run ``callback`` once when the stream ends, fails or is cancelled."""
        if self._closed:
            callback()
        else:
            self._close_callbacks.append(callback)

    async def _take(self) -> object:
        if self._pending is not _NOTHING:
            item, self._pending = self._pending, _NOTHING
            return item
        return await self._queue.get()

    async def _fail(self, error: Exception) -> None:
        self._state = StreamState.FAILED
        self._error = error
        await self._finish()

    async def ready(self) -> bool:
        """Wait for the first chunk without consuming it.

        Returns:
            True if data is available, False if the producer ended empty

        Raises:
            Exception: The producer's error, if it failed first
        """
        if self._state is StreamState.FAILED and self._error is not None:
            raise self._error
        if self._state is not StreamState.OPEN:
            return False
        if self._pending is _NOTHING:
            item = await self._queue.get()
            if isinstance(item, _Failure):
                await self._fail(item.error)
                raise item.error
            self._pending = item
        return self._pending is not _END

    async def next(self) -> bytes | None:
        """Return the next chunk, or None once the producer has ended.

        Raises:
            Exception: The producer's error, typed as the producer raised it
        """
        if self._state is StreamState.FAILED and self._error is not None:
            raise self._error
        if self._state is not StreamState.OPEN:
            return None

        item = await self._take()
        if item is _END:
            self._state = StreamState.ENDED
            await self._finish()
            return None
        if isinstance(item, _Failure):
            await self._fail(item.error)
            raise item.error
        return item  # type: ignore[return-value]

    async def cancel(self) -> None:
        """Stop the producer and release its resources. Idempotent."""
        if self._state is StreamState.OPEN:
            self._state = StreamState.CANCELLED
            logger.debug(f"Stream {self.name} cancelled")
        await self._finish()

    async def _finish(self) -> None:
        if not self._task.done():
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        if self._closed:
            return
        self._closed = True
        for callback in self._close_callbacks:
            try:
                callback()
            except Exception as exc:
                logger.warning(f"Close callback for stream {self.name} failed: {exc}")

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await self.next()
                if chunk is None:
                    return
                yield chunk
        finally:
            # Client disconnects land here via generator close/cancellation
            await self.cancel()

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def from_process(
        cls,
        process: asyncio.subprocess.Process,
        *,
        name: str,
        error_cls: type[YtGrabError] = TranscodeFailure,
        chunk_size: int | None = None,
        queue_size: int | None = None,
        on_close: CloseCallback | None = None,
    ) -> "ByteStream":
        """Stream a subprocess's stdout; non-zero exit becomes ``error_cls``."""
        read_size = chunk_size or settings.STREAM_CHUNK_SIZE

        async def produce(stream: ByteStream) -> None:
            stderr_tail: deque[str] = deque(maxlen=STDERR_MAX_LINES)
            if process.stdout is None:
                await terminate_process(process)
                raise error_cls(f"{name} has no stdout pipe")
            drain = asyncio.create_task(_drain_stderr(process, stderr_tail))
            try:
                while True:
                    chunk = await process.stdout.read(read_size)
                    if not chunk:
                        break
                    await stream.push(chunk)

                returncode = await process.wait()
                if returncode != 0:
                    with suppress(asyncio.TimeoutError):
                        await asyncio.wait_for(drain, timeout=1.0)
                    detail = "\n".join(stderr_tail)[-500:] or None
                    raise error_cls(f"{name} exited with status {returncode}", detail)
            finally:
                await terminate_process(process)
                drain.cancel()
                with suppress(asyncio.CancelledError):
                    await drain

        return cls(produce, name=name, queue_size=queue_size, on_close=on_close)

    @classmethod
    def from_file(
        cls,
        path: str,
        *,
        chunk_size: int | None = None,
        queue_size: int | None = None,
        on_close: CloseCallback | None = None,
    ) -> "ByteStream":
        """Stream a file from disk; reads run in a worker thread."""
        read_size = chunk_size or settings.STREAM_CHUNK_SIZE

        async def produce(stream: ByteStream) -> None:
            with open(path, "rb") as handle:
                while True:
                    chunk = await asyncio.to_thread(handle.read, read_size)
                    if not chunk:
                        break
                    await stream.push(chunk)

        return cls(
            produce,
            name=os.path.basename(path),
            queue_size=queue_size,
            on_close=on_close,
        )

    @classmethod
    def from_response(
        cls,
        response: httpx.Response,
        *,
        queue_size: int | None = None,
    ) -> "ByteStream":
        """Re-stream an httpx response body verbatim (no content decoding)."""

        async def produce(stream: ByteStream) -> None:
            try:
                async for chunk in response.aiter_raw():
                    await stream.push(chunk)
            except (httpx.HTTPError, httpx.StreamError) as exc:
                raise UpstreamFailure("Upstream stream interrupted", str(exc)) from exc
            finally:
                await response.aclose()

        return cls(produce, name=f"upstream:{response.url.host}", queue_size=queue_size)


async def _drain_stderr(process: asyncio.subprocess.Process, lines: deque[str]) -> None:
    """Drain stderr to prevent pipe-buffer deadlock, keeping the tail."""
    if process.stderr is None:
        return
    while True:
        line = await process.stderr.readline()
        if not line:
            break
        lines.append(line.decode(errors="replace").rstrip())


async def terminate_process(process: asyncio.subprocess.Process) -> None:
    """Kill ``process`` if it is still running and reap it."""
    if process.returncode is None:
        with suppress(ProcessLookupError):
            process.kill()
        await process.wait()


def remove_file(path: str) -> None:
    """Delete ``path``; a missing file is not an error."""
    try:
        os.remove(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning(f"Could not remove temp file {path}: {exc}")
        return
    logger.debug(f"Removed temp file {path}")
