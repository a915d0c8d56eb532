"""asyncio transport: stream reader/writer over a domain socket or named pipe."""

import asyncio
import logging

from ..discovery import Endpoint, TransportFamily
from ..errors import ConnectionFailed, SocketClosed
from .base import AsyncTransport


class AsyncioTransport(AsyncTransport):
    """Transport for the asyncio event loop."""

    def __init__(self) -> None:
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self.endpoint: Endpoint | None = None

    async def open(self, endpoint: Endpoint, timeout: float | None = None) -> None:
        """Connect to ``endpoint``.

        Named pipes need the Proactor event loop (the Windows default).
        """
        if endpoint.family is TransportFamily.NAMED_PIPE:
            connecting = self._connect_pipe(endpoint.address)
        else:
            connecting = asyncio.open_unix_connection(endpoint.address)
        try:
            self._reader, self._writer = await asyncio.wait_for(connecting, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise TimeoutError(f"Opening {endpoint.address} timed out") from exc
        except OSError as exc:
            logging.debug("Open %s failed: %s", endpoint.address, exc)
            raise ConnectionFailed(exc, [endpoint]) from exc
        self.endpoint = endpoint

    @staticmethod
    async def _connect_pipe(address: str) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        loop = asyncio.get_running_loop()
        if not hasattr(loop, "create_pipe_connection"):
            raise OSError("Named pipes require the Proactor event loop")
        connected: asyncio.Future = loop.create_future()

        def on_connected(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            connected.set_result((reader, writer))

        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader, on_connected)
        await loop.create_pipe_connection(lambda: protocol, address)
        return await connected

    async def read_exact(self, n: int, timeout: float | None = None) -> bytes:
        """Receive exactly n bytes."""
        if n == 0:
            return b""
        reader = self._reader
        if reader is None:
            raise SocketClosed("Transport is not open")
        try:
            return await asyncio.wait_for(reader.readexactly(n), timeout=timeout)
        except asyncio.IncompleteReadError as exc:
            raise SocketClosed("Unexpected EOF from peer", partial=exc.partial) from exc
        except asyncio.TimeoutError as exc:
            raise TimeoutError(f"Reading {n} bytes timed out") from exc
        except OSError as exc:
            raise SocketClosed(f"Read failed: {exc}") from exc

    async def write_all(self, data: bytes, timeout: float | None = None) -> None:
        """Send every byte of data and wait for the buffer to drain."""
        writer = self._writer
        if writer is None or writer.is_closing():
            raise SocketClosed("Transport is not open")
        try:
            writer.write(data)
            await asyncio.wait_for(writer.drain(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise TimeoutError(f"Writing {len(data)} bytes timed out") from exc
        except OSError as exc:
            raise SocketClosed(f"Write failed: {exc}") from exc

    async def shutdown(self) -> None:
        """Close the connection."""
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass

    @staticmethod
    async def sleep(seconds: float) -> None:
        await asyncio.sleep(seconds)
