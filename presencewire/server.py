"""Loopback server speaking the Discord IPC wire format.

Stands in for the Discord desktop client in tests, the demo and the
benchmarks. It is not a Discord implementation: it answers the handshake,
echoes commands and nothing else.
"""

import contextlib
import logging
import os
import socket
import threading
from collections.abc import Callable
from typing import Any

from .codec import json_codec
from .constants import IPC_VERSION, Command, Event, Opcode
from .errors import IpcError
from .frames import encode_frame, parse_frame
from .steps import run_blocking
from .transports.blocking_transport import BlockingTransport

CommandHandler = Callable[[dict[str, Any]], dict[str, Any] | None]

INVALID_CLIENT_ID = 4000

READY_DATA: dict[str, Any] = {
    "v": IPC_VERSION,
    "config": {"cdn_host": "cdn.discordapp.com", "api_endpoint": "//discord.com/api", "environment": "production"},
    "user": {"id": "1045800378228281345", "username": "loopback", "discriminator": "0", "avatar": None},
}


class _ClientHandler(threading.Thread):
    """Handle a single client connection."""

    def __init__(self, server: "LoopbackServer", sock: socket.socket):
        super().__init__(daemon=True)
        self.server = server
        self.channel = BlockingTransport.from_socket(sock)

    def run(self):
        """Handle client connection."""
        try:
            self._serve()
        except IpcError as exc:
            logging.debug("Loopback client closed: %s", exc)
        finally:
            self.channel.shutdown()
            self.server._forget(self)

    def _send(self, opcode: int, body: Any) -> None:
        self.channel.write_all(encode_frame(opcode, json_codec.encode(body)))

    def _serve(self):
        """Serve one client: handshake, then commands until it leaves."""
        frame = run_blocking(parse_frame(), self.channel)
        if frame.opcode != Opcode.HANDSHAKE:
            return

        hello = json_codec.decode(frame.payload)
        client_id = str(hello.get("client_id", "")) if isinstance(hello, dict) else ""
        if client_id in self.server.reject_client_ids:
            error = {"code": INVALID_CLIENT_ID, "message": "Invalid Client ID"}
            self._send(Opcode.FRAME, {"cmd": Command.DISPATCH, "evt": Event.ERROR, "data": error, "nonce": None})
            return
        self._send(Opcode.FRAME, {"cmd": Command.DISPATCH, "evt": Event.READY, "data": READY_DATA, "nonce": None})

        while self.server.running:
            frame = run_blocking(parse_frame(), self.channel)
            if frame.opcode == Opcode.PING:
                self.channel.write_all(encode_frame(Opcode.PONG, frame.payload))
            elif frame.opcode == Opcode.CLOSE:
                return
            elif frame.opcode == Opcode.FRAME:
                message = json_codec.decode(frame.payload)
                reply = self.server.handle_command(message)
                if reply is None:
                    logging.debug("Loopback server dropping client after %s", message.get("cmd"))
                    return
                self._send(Opcode.FRAME, reply)


def echo_reply(message: dict[str, Any]) -> dict[str, Any]:
    """Default reply: echo ``cmd`` and ``nonce``, with ``args.activity`` as data."""
    args = message.get("args")
    data = args.get("activity") if isinstance(args, dict) else None
    return {"cmd": message.get("cmd"), "data": data, "evt": None, "nonce": message.get("nonce")}


class LoopbackServer:
    """Threaded Unix domain socket server for the Discord IPC protocol."""

    def __init__(
        self,
        path: str,
        on_command: CommandHandler | None = None,
        reject_client_ids: set[str] | frozenset[str] = frozenset(),
    ):
        """Initialize server.

        Args:
            path: Socket path to bind
            on_command: Optional reply hook; return None to drop the connection
            reject_client_ids: Client ids answered with an ERROR event
        """
        self.path = path
        self.on_command = on_command
        self.reject_client_ids = set(reject_client_ids)
        self.commands: list[dict[str, Any]] = []
        self._sock: socket.socket | None = None
        self._running = threading.Event()
        self._handlers: set[_ClientHandler] = set()
        self._lock = threading.Lock()

    @property
    def address(self) -> str:
        return self.path

    @property
    def running(self) -> bool:
        return self._running.is_set()

    def handle_command(self, message: dict[str, Any]) -> dict[str, Any] | None:
        with self._lock:
            self.commands.append(message)
        handler = self.on_command or echo_reply
        return handler(message)

    def _forget(self, handler: _ClientHandler) -> None:
        with self._lock:
            self._handlers.discard(handler)

    def serve_forever(self):
        """Bind the socket and handle connections until :meth:`stop`."""
        with contextlib.suppress(FileNotFoundError):
            os.unlink(self.path)

        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as srv:
            srv.bind(self.path)
            srv.listen()
            self._sock = srv
            self._running.set()

            logging.info("Loopback IPC server listening on %s", self.path)

            while self._running.is_set():
                try:
                    cli_sock, _ = srv.accept()
                except OSError:
                    break  # socket closed
                handler = _ClientHandler(self, cli_sock)
                with self._lock:
                    self._handlers.add(handler)
                handler.start()

        logging.info("Loopback IPC server stopped")

    def start(self) -> threading.Thread:
        """Run :meth:`serve_forever` on a daemon thread and wait until it listens."""
        thread = threading.Thread(target=self.serve_forever, daemon=True)
        thread.start()
        if not self.wait_until_ready(5.0):
            raise RuntimeError(f"Loopback server did not start on {self.path}")
        return thread

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        """Block until the server accepts connections; False on timeout."""
        return self._running.wait(timeout)

    def stop(self):
        """Stop the server and drop every client connection."""
        self._running.clear()
        if self._sock:
            try:
                self._sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self._sock.close()
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            handler.channel.shutdown()
        with contextlib.suppress(FileNotFoundError):
            os.unlink(self.path)
