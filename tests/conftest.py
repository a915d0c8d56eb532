"""Shared fixtures: scripted in-memory transports and a loopback server."""

import os
import shutil
import sys
import tempfile

import pytest

from presencewire import LoopbackServer
from presencewire.codec import json_codec
from presencewire.constants import HEADER_SIZE, Opcode
from presencewire.discovery import Endpoint, TransportFamily
from presencewire.errors import ConnectionFailed, SocketClosed
from presencewire.frames import Frame, encode_frame, unpack_header
from presencewire.transports import AsyncTransport, Transport

ENDPOINT = Endpoint(TransportFamily.DOMAIN_SOCKET, "/tmp/discord-ipc-0", 0)
CLIENT_ID = "1045800378228281345"


def frame(opcode: int, body) -> bytes:
    """Encode one inbound frame; dict bodies become JSON."""
    payload = body if isinstance(body, bytes) else json_codec.encode(body)
    return encode_frame(opcode, payload)


def ready_frame(data=None) -> bytes:
    return frame(Opcode.FRAME, {"cmd": "DISPATCH", "evt": "READY", "data": data or {"v": 1}, "nonce": None})


def reply_frame(nonce, data=None, evt=None, cmd="SET_ACTIVITY") -> bytes:
    return frame(Opcode.FRAME, {"cmd": cmd, "data": data, "evt": evt, "nonce": nonce})


def split_frames(data: bytes) -> list[Frame]:
    frames = []
    while data:
        opcode, length = unpack_header(data[:HEADER_SIZE])
        frames.append(Frame(opcode, data[HEADER_SIZE : HEADER_SIZE + length]))
        data = data[HEADER_SIZE + length :]
    return frames


class ScriptedTransport(Transport):
    """Replays canned inbound bytes and records everything written.

    Args:
        inbound: Bytes handed out by read_exact, in order
        refuse: Addresses whose open fails with ECONNREFUSED
        stall: Raise TimeoutError instead of SocketClosed once inbound runs dry
        fail_writes: Raise SocketClosed on every write
    """

    def __init__(self, *inbound: bytes, refuse=(), stall=False, fail_writes=False):
        self.inbound = bytearray(b"".join(inbound))
        self.outbound = bytearray()
        self.refuse = set(refuse)
        self.stall = stall
        self.fail_writes = fail_writes
        self.opened: list[Endpoint] = []
        self.shutdowns = 0

    def feed(self, *chunks: bytes) -> None:
        self.inbound.extend(b"".join(chunks))

    def open(self, endpoint, timeout=None):
        if endpoint.address in self.refuse:
            raise ConnectionFailed(ConnectionRefusedError(111, "Connection refused"), [endpoint])
        self.opened.append(endpoint)

    def read_exact(self, n, timeout=None):
        if n == 0:
            return b""
        if len(self.inbound) < n:
            if self.stall and not self.inbound:
                raise TimeoutError("scripted read stalled")
            partial = bytes(self.inbound)
            self.inbound.clear()
            raise SocketClosed("scripted EOF", partial=partial)
        chunk = bytes(self.inbound[:n])
        del self.inbound[:n]
        return chunk

    def write_all(self, data, timeout=None):
        if self.fail_writes:
            raise SocketClosed("scripted broken pipe")
        self.outbound.extend(data)

    def shutdown(self):
        self.shutdowns += 1

    @property
    def sent(self) -> list[Frame]:
        return split_frames(bytes(self.outbound))


class AsyncScriptedTransport(AsyncTransport):
    """Async face of :class:`ScriptedTransport`; sleeps are recorded, not taken."""

    def __init__(self, *inbound: bytes, **options):
        self.script = ScriptedTransport(*inbound, **options)
        self.sleeps: list[float] = []

    async def open(self, endpoint, timeout=None):
        self.script.open(endpoint, timeout)

    async def read_exact(self, n, timeout=None):
        return self.script.read_exact(n, timeout)

    async def write_all(self, data, timeout=None):
        self.script.write_all(data, timeout)

    async def shutdown(self):
        self.script.shutdown()

    async def sleep(self, seconds):
        self.sleeps.append(seconds)

    @property
    def sent(self) -> list[Frame]:
        return self.script.sent


@pytest.fixture(params=["asyncio", "trio"])
def anyio_backend(request):
    """Run every ``@pytest.mark.anyio`` test under both schedulers."""
    return request.param


@pytest.fixture
def socket_dir():
    """A short directory path; AF_UNIX paths are limited to ~100 bytes."""
    path = tempfile.mkdtemp(prefix="pw-", dir="/tmp" if os.path.isdir("/tmp") else None)
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def loopback(socket_dir):
    """A running loopback server bound at ``<socket_dir>/discord-ipc-0``."""
    if sys.platform == "win32":
        pytest.skip("loopback server needs Unix domain sockets")
    server = LoopbackServer(os.path.join(socket_dir, "discord-ipc-0"), reject_client_ids={"0"})
    server.start()
    yield server
    server.stop()
