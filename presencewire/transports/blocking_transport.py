"""Blocking transport over a Unix domain socket or a Windows named pipe."""

import errno
import io
import logging
import socket

from ..discovery import Endpoint, TransportFamily
from ..errors import ConnectionFailed, SocketClosed
from .base import Transport


class BlockingTransport(Transport):
    """Plain blocking I/O; per-call timeouts map onto socket timeouts."""

    def __init__(self) -> None:
        self._sock: socket.socket | None = None
        self._pipe: io.FileIO | None = None
        self.endpoint: Endpoint | None = None

    @classmethod
    def from_socket(cls, sock: socket.socket) -> "BlockingTransport":
        """Wrap an already connected socket (the accepting side of a server)."""
        transport = cls()
        transport._sock = sock
        return transport

    def open(self, endpoint: Endpoint, timeout: float | None = None) -> None:
        """Connect to ``endpoint``.

        Named pipes are opened as unbuffered binary files; the pipe open does
        not wait, so ``timeout`` only applies to domain sockets.
        """
        try:
            if endpoint.family is TransportFamily.NAMED_PIPE:
                self._pipe = io.FileIO(endpoint.address, "r+")
            else:
                self._sock = self._connect_unix(endpoint.address, timeout)
        except TimeoutError:
            raise
        except OSError as exc:
            logging.debug("Open %s failed: %s", endpoint.address, exc)
            raise ConnectionFailed(exc, [endpoint]) from exc
        self.endpoint = endpoint

    @staticmethod
    def _connect_unix(address: str, timeout: float | None) -> socket.socket:
        if not hasattr(socket, "AF_UNIX"):
            raise OSError(errno.EAFNOSUPPORT, "Unix domain sockets are not supported on this platform")
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.settimeout(timeout)
            sock.connect(address)
        except BaseException:
            sock.close()
            raise
        return sock

    def read_exact(self, n: int, timeout: float | None = None) -> bytes:
        """Receive exactly n bytes.

        Raises:
            SocketClosed: If the peer closes or the channel breaks first
            TimeoutError: If ``timeout`` expires between chunks
        """
        if n == 0:
            return b""
        sock, pipe = self._sock, self._pipe
        if sock is None and pipe is None:
            raise SocketClosed("Transport is not open")

        buf = bytearray()
        while len(buf) < n:
            try:
                if sock is not None:
                    sock.settimeout(timeout)
                    chunk = sock.recv(n - len(buf))
                else:
                    chunk = pipe.read(n - len(buf))  # type: ignore[union-attr]
            except TimeoutError:
                raise
            except (OSError, ValueError) as exc:
                raise SocketClosed(f"Read failed: {exc}", partial=bytes(buf)) from exc
            if not chunk:
                raise SocketClosed("Unexpected EOF from peer", partial=bytes(buf))
            buf.extend(chunk)
        return bytes(buf)

    def write_all(self, data: bytes, timeout: float | None = None) -> None:
        """Send every byte of data."""
        sock, pipe = self._sock, self._pipe
        if sock is None and pipe is None:
            raise SocketClosed("Transport is not open")
        try:
            if sock is not None:
                sock.settimeout(timeout)
                sock.sendall(data)
            else:
                view = memoryview(data)
                while view:
                    written = pipe.write(view)  # type: ignore[union-attr]
                    view = view[written or 0 :]
        except TimeoutError:
            raise
        except (OSError, ValueError) as exc:
            raise SocketClosed(f"Write failed: {exc}") from exc

    def shutdown(self) -> None:
        """Close the connection. Unblocks a read pending on another thread."""
        sock, pipe = self._sock, self._pipe
        self._sock = None
        self._pipe = None
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            finally:
                sock.close()
        if pipe is not None:
            try:
                pipe.close()
            except OSError:
                pass
