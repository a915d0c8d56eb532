"""anyio transport, usable under any scheduler anyio supports (asyncio, trio)."""

import io
import logging

import anyio
import anyio.to_thread

from ..discovery import Endpoint, TransportFamily
from ..errors import ConnectionFailed, SocketClosed
from .base import AsyncTransport

_STREAM_ERRORS = (anyio.BrokenResourceError, anyio.ClosedResourceError, OSError)


class _PipeStream:
    """Named pipe file driven from a worker thread, shaped like an anyio byte stream."""

    def __init__(self, pipe: io.FileIO):
        self._pipe = pipe

    @classmethod
    async def open(cls, address: str) -> "_PipeStream":
        pipe = await anyio.to_thread.run_sync(io.FileIO, address, "r+")
        return cls(pipe)

    async def receive(self, max_bytes: int = 65536) -> bytes:
        if self._pipe.closed:
            raise anyio.ClosedResourceError
        chunk = await anyio.to_thread.run_sync(self._pipe.read, max_bytes)
        if not chunk:
            raise anyio.EndOfStream
        return chunk

    async def send(self, item: bytes) -> None:
        view = memoryview(item)
        while view:
            written = await anyio.to_thread.run_sync(self._pipe.write, view)
            view = view[written or 0 :]

    async def aclose(self) -> None:
        self._pipe.close()


class AnyioTransport(AsyncTransport):
    """Transport for anyio-managed event loops."""

    def __init__(self) -> None:
        self._stream = None
        self.endpoint: Endpoint | None = None

    async def open(self, endpoint: Endpoint, timeout: float | None = None) -> None:
        """Connect to ``endpoint``."""
        try:
            with anyio.fail_after(timeout):
                if endpoint.family is TransportFamily.NAMED_PIPE:
                    self._stream = await _PipeStream.open(endpoint.address)
                else:
                    self._stream = await anyio.connect_unix(endpoint.address)
        except TimeoutError:
            raise
        except OSError as exc:
            logging.debug("Open %s failed: %s", endpoint.address, exc)
            raise ConnectionFailed(exc, [endpoint]) from exc
        self.endpoint = endpoint

    async def read_exact(self, n: int, timeout: float | None = None) -> bytes:
        """Receive exactly n bytes.

        anyio streams return whatever is available, so this loops until the
        count is met or the stream ends.
        """
        if n == 0:
            return b""
        stream = self._stream
        if stream is None:
            raise SocketClosed("Transport is not open")
        buf = bytearray()
        with anyio.fail_after(timeout):
            while len(buf) < n:
                try:
                    chunk = await stream.receive(n - len(buf))
                except anyio.EndOfStream as exc:
                    raise SocketClosed("Unexpected EOF from peer", partial=bytes(buf)) from exc
                except _STREAM_ERRORS as exc:
                    raise SocketClosed(f"Read failed: {exc}", partial=bytes(buf)) from exc
                buf.extend(chunk)
        return bytes(buf)

    async def write_all(self, data: bytes, timeout: float | None = None) -> None:
        """Send every byte of data."""
        stream = self._stream
        if stream is None:
            raise SocketClosed("Transport is not open")
        with anyio.fail_after(timeout):
            try:
                await stream.send(data)
            except _STREAM_ERRORS as exc:
                raise SocketClosed(f"Write failed: {exc}") from exc

    async def shutdown(self) -> None:
        """Close the connection."""
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            await stream.aclose()
        except _STREAM_ERRORS:
            pass

    @staticmethod
    async def sleep(seconds: float) -> None:
        await anyio.sleep(seconds)
