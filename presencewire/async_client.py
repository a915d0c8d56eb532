"""Discord IPC client for asyncio, trio and other cooperative schedulers."""

import logging
import os
from collections.abc import Mapping
from typing import Any

import anyio

from .activity import Activity
from .client import TransportChoice, _activity_payload, _transport_factory
from .config import IpcConfig
from .constants import Command, Opcode
from .discovery import Endpoint
from .messages import Response
from .nonce import generate_nonce
from .session import Session, SessionState, Target
from .steps import Steps, run_async
from .transports import AsyncTransport


class AsyncClient:
    """Async Discord IPC client.

    The scheduler is chosen by the transport: ``"asyncio"`` for asyncio
    only, ``"anyio"`` for anything anyio runs on. The protocol code is the
    same one :class:`~presencewire.client.Client` drives.

    Not safe for concurrent use: guard a shared client with a lock.
    """

    def __init__(
        self,
        client_id: str,
        endpoint: Target = None,
        config: IpcConfig | None = None,
        transport: TransportChoice = "anyio",
        pid: int | None = None,
    ):
        self.session = Session(client_id, config)
        self.target = endpoint
        self.pid = os.getpid() if pid is None else pid
        self._transport_factory = _transport_factory(transport)
        self._transport = self._new_transport()
        self._timeout: float | None = None

    def _new_transport(self) -> AsyncTransport:
        transport = self._transport_factory()
        if not isinstance(transport, AsyncTransport):
            raise TypeError(f"AsyncClient needs an async transport, got {type(transport).__name__}")
        return transport

    async def _run(self, steps: Steps[Any]) -> Any:
        try:
            return await run_async(steps, self._transport)
        except BaseException as exc:
            if isinstance(exc, Exception):
                raise
            # Cancelled mid-operation: frame boundaries are unknown, drop the channel
            self.session.abort()
            with anyio.CancelScope(shield=True):
                await self._transport.shutdown()
            raise

    async def connect(self, timeout: float | None = None) -> Any:
        """Connect and complete the handshake; returns the READY data."""
        self._timeout = timeout
        return await self._run(self.session.connect(self.target, timeout))

    async def send_command(self, cmd: str, args: Any = None, nonce: str | None = None) -> Response:
        return await self._run(self.session.send_command(cmd, args, nonce))

    async def send_frame(self, opcode: int, payload: Any = None) -> None:
        await self._run(self.session.send_frame(opcode, payload))

    async def recv_frame(self) -> tuple[Opcode, Any]:
        return await self._run(self.session.recv_frame())

    async def set_activity(self, activity: Activity | Mapping[str, Any]) -> Response:
        args = {"pid": self.pid, "activity": _activity_payload(activity)}
        return await self.send_command(Command.SET_ACTIVITY, args, nonce=generate_nonce("set-activity"))

    async def clear_activity(self) -> Response:
        args = {"pid": self.pid, "activity": None}
        return await self.send_command(Command.SET_ACTIVITY, args, nonce=generate_nonce("clear-activity"))

    async def reconnect(self) -> Any:
        """Close (best effort), then connect again on a fresh transport."""
        logging.info("Reconnecting to Discord IPC")
        await self.close()
        self.session.reset()
        self._transport = self._new_transport()
        return await self.connect(self._timeout)

    async def close(self) -> None:
        await run_async(self.session.close(), self._transport)

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def endpoint(self) -> Endpoint | None:
        return self.session.endpoint

    @property
    def ready_data(self) -> Any:
        return self.session.ready_data

    async def __aenter__(self) -> "AsyncClient":
        if self.state in (SessionState.DISCONNECTED, SessionState.CLOSED):
            await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
