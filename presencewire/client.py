"""Blocking Discord IPC client."""

import logging
import os
from collections.abc import Callable, Mapping
from typing import Any

from .activity import Activity
from .config import IpcConfig
from .constants import Command, Opcode
from .discovery import Endpoint
from .messages import Response
from .nonce import generate_nonce
from .session import Session, SessionState, Target
from .steps import run_blocking
from .transports import Transport, get_transport

TransportChoice = str | Callable[[], Any]


def _transport_factory(transport: TransportChoice) -> Callable[[], Any]:
    return get_transport(transport) if isinstance(transport, str) else transport


def _activity_payload(activity: Activity | Mapping[str, Any] | None) -> Any:
    if isinstance(activity, Activity):
        return activity.to_payload()
    return None if activity is None else dict(activity)


class Client:
    """Discord IPC client for blocking code.

    A client owns one session. It is not thread safe; callers sharing one
    client across threads must serialize access themselves.
    """

    def __init__(
        self,
        client_id: str,
        endpoint: Target = None,
        config: IpcConfig | None = None,
        transport: TransportChoice = "blocking",
        pid: int | None = None,
    ):
        """Initialize client.

        Args:
            client_id: Discord application id
            endpoint: None for auto-discovery, an Endpoint, a socket/pipe path
                or a discovery ordinal
            config: Connection configuration
            transport: Registered transport name or a zero-argument factory
            pid: Process id reported with activities (defaults to this process)
        """
        self.session = Session(client_id, config)
        self.target = endpoint
        self.pid = os.getpid() if pid is None else pid
        self._transport_factory = _transport_factory(transport)
        self._transport = self._new_transport()
        self._timeout: float | None = None

    def _new_transport(self) -> Transport:
        transport = self._transport_factory()
        if not isinstance(transport, Transport):
            raise TypeError(f"Client needs a blocking transport, got {type(transport).__name__}")
        return transport

    def connect(self, timeout: float | None = None) -> Any:
        """Connect and complete the handshake.

        Args:
            timeout: Optional bound on connect plus handshake, in seconds

        Returns:
            The READY dispatch data (user and config info)
        """
        self._timeout = timeout
        return run_blocking(self.session.connect(self.target, timeout), self._transport)

    def send_command(self, cmd: str, args: Any = None, nonce: str | None = None) -> Response:
        """Send a raw command and return Discord's response."""
        return run_blocking(self.session.send_command(cmd, args, nonce), self._transport)

    def send_frame(self, opcode: int, payload: Any = None) -> None:
        """Send a raw frame; no nonce is added and no reply is awaited."""
        run_blocking(self.session.send_frame(opcode, payload), self._transport)

    def recv_frame(self) -> tuple[Opcode, Any]:
        """Receive the next raw frame as ``(opcode, payload)``."""
        return run_blocking(self.session.recv_frame(), self._transport)

    def set_activity(self, activity: Activity | Mapping[str, Any]) -> Response:
        """Publish ``activity`` as this process's rich presence."""
        args = {"pid": self.pid, "activity": _activity_payload(activity)}
        return self.send_command(Command.SET_ACTIVITY, args, nonce=generate_nonce("set-activity"))

    def clear_activity(self) -> Response:
        """Remove this process's rich presence."""
        args = {"pid": self.pid, "activity": None}
        return self.send_command(Command.SET_ACTIVITY, args, nonce=generate_nonce("clear-activity"))

    def reconnect(self) -> Any:
        """Close (best effort), then connect again on a fresh transport.

        The last command is not replayed.
        """
        logging.info("Reconnecting to Discord IPC")
        self.close()
        self.session.reset()
        self._transport = self._new_transport()
        return self.connect(self._timeout)

    def close(self) -> None:
        """Close the connection."""
        run_blocking(self.session.close(), self._transport)

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def endpoint(self) -> Endpoint | None:
        """Endpoint of the current (or last) connection."""
        return self.session.endpoint

    @property
    def ready_data(self) -> Any:
        return self.session.ready_data

    def __enter__(self) -> "Client":
        if self.state in (SessionState.DISCONNECTED, SessionState.CLOSED):
            self.connect()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
