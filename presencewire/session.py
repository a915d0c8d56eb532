"""Handshake and session state machine.

Every operation here is a generator of I/O steps (see :mod:`presencewire.steps`)
so one implementation serves the blocking client and every async backend.

A session allows one request in flight. It is not internally synchronized:
two callers issuing commands on the same session without their own lock may
interleave writes and reads and corrupt frame boundaries.
"""

import logging
import os
from enum import Enum
from typing import Any

from pydantic import ValidationError

from .codec import json_codec
from .config import IpcConfig
from .constants import Opcode
from .discovery import Endpoint, discover
from .errors import (
    ConnectionFailed,
    ConnectionTimeout,
    DiscordError,
    HandshakeFailed,
    InvalidOpcode,
    InvalidResponse,
    IpcError,
    NoValidSocket,
    SocketClosed,
    SocketDiscoveryFailed,
)
from .frames import encode_frame, parse_frame
from .messages import CommandMessage, HandshakePayload, Response
from .nonce import generate_nonce
from .steps import Open, Shutdown, Sleep, Steps, WriteAll, deadline_after, remaining

Target = Endpoint | str | os.PathLike | int | None


class SessionState(str, Enum):
    """Lifecycle of a session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_READY = "awaiting_ready"
    READY = "ready"
    CLOSED = "closed"

    def __str__(self) -> str:
        return self.value


def _error_fields(body: Any) -> tuple[int, str] | None:
    """Code and message of an error object such as ``{"code": 4000, "message": ...}``."""
    if not isinstance(body, dict) or "code" not in body:
        return None
    try:
        code = int(body["code"])
    except (TypeError, ValueError):
        code = 0
    return code, str(body.get("message", "Unknown error"))


def _close_reason(payload: bytes) -> tuple[int, str] | None:
    """Code and message carried by a CLOSE frame, if any."""
    try:
        return _error_fields(json_codec.decode(payload))
    except IpcError:
        return None


def _to_response(body: Any) -> Response:
    if not isinstance(body, dict):
        raise InvalidResponse(f"expected a JSON object, got {type(body).__name__}")
    try:
        return Response.model_validate(body)
    except ValidationError as exc:
        raise InvalidResponse(str(exc)) from exc


class Session:
    """One conversation with Discord, from handshake to close."""

    def __init__(self, client_id: str, config: IpcConfig | None = None):
        """Initialize session.

        Args:
            client_id: Application id sent in the handshake
            config: Connection configuration

        Raises:
            ValueError: If ``client_id`` is empty
        """
        self.config = config or IpcConfig()
        self._handshake = HandshakePayload(v=self.config.ipc_version, client_id=client_id)
        self.state = SessionState.DISCONNECTED
        self.endpoint: Endpoint | None = None
        self.ready_data: Any = None

    @property
    def client_id(self) -> str:
        return self._handshake.client_id

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    def reset(self) -> None:
        """Return a closed session to DISCONNECTED, keeping its configuration."""
        self.state = SessionState.DISCONNECTED
        self.endpoint = None
        self.ready_data = None

    def abort(self) -> None:
        """Mark the session closed without any I/O (used after cancellation)."""
        self.state = SessionState.CLOSED

    # ------------------------------------------------------------------
    # connect
    # ------------------------------------------------------------------

    def connect(self, target: Target = None, timeout: float | None = None) -> Steps[Any]:
        """Open a channel to Discord and complete the handshake.

        Args:
            target: None for auto-discovery, an :class:`Endpoint`, a socket or
                pipe path, or a discovery ordinal
            timeout: Optional bound on the whole connect plus handshake

        Returns:
            The ``data`` object of Discord's READY dispatch

        Raises:
            RuntimeError: If the session is not DISCONNECTED or CLOSED
            ValueError: If an ordinal target is out of range
        """
        if self.state not in (SessionState.DISCONNECTED, SessionState.CLOSED):
            raise RuntimeError(f"connect() is not valid in state {self.state}")
        if isinstance(target, int) and not 0 <= target < self.config.max_sockets:
            raise ValueError(f"Socket ordinal must be in 0..{self.config.max_sockets - 1}, got {target}")

        self.state = SessionState.CONNECTING
        self.endpoint = None
        self.ready_data = None
        deadline = deadline_after(timeout)
        try:
            candidates = yield from self._resolve(target, timeout, deadline)
            yield from self._open(candidates, target is None, deadline)
            self.state = SessionState.AWAITING_READY
            data = yield from self._exchange_handshake(deadline)
        except TimeoutError as exc:
            yield from self._teardown()
            raise ConnectionTimeout(timeout, exc) from exc
        except IpcError:
            yield from self._teardown()
            raise

        self.ready_data = data
        self.state = SessionState.READY
        logging.info("Discord IPC session ready on %s", self.endpoint)
        return data

    def _candidates(self, target: Target) -> list[Endpoint]:
        if isinstance(target, Endpoint):
            return [target]
        if isinstance(target, (str, os.PathLike)):
            return [Endpoint.from_path(target)]

        endpoints = discover(self.config.max_sockets)
        if target is not None:
            endpoints = [endpoint for endpoint in endpoints if endpoint.ordinal == target]
            if not endpoints:
                raise NoValidSocket(f"No Discord IPC socket with ordinal {target}")
        if not endpoints:
            raise NoValidSocket()
        return endpoints

    def _resolve(self, target: Target, timeout: float | None, deadline: float | None) -> Steps[list[Endpoint]]:
        while True:
            try:
                return self._candidates(target)
            except NoValidSocket as exc:
                if deadline is None:
                    raise
                try:
                    left = remaining(deadline)
                except TimeoutError:
                    raise ConnectionTimeout(timeout, exc) from exc
                logging.debug("No Discord IPC socket yet, polling again in %.3f s", self.config.retry_interval)
                yield Sleep(min(self.config.retry_interval, left))

    def _open(self, candidates: list[Endpoint], auto: bool, deadline: float | None) -> Steps[Endpoint]:
        attempted: list[str] = []
        last_error: OSError | None = None
        for endpoint in candidates:
            logging.debug("Opening Discord IPC endpoint %s", endpoint.address)
            try:
                yield Open(endpoint, timeout=remaining(deadline))
            except ConnectionFailed as exc:
                if not (auto and self.config.fallthrough):
                    raise
                attempted.append(endpoint.address)
                last_error = exc.os_error
                continue
            self.endpoint = endpoint
            return endpoint
        raise SocketDiscoveryFailed(attempted, last_error)

    def _exchange_handshake(self, deadline: float | None) -> Steps[Any]:
        payload = json_codec.encode(self._handshake)
        yield WriteAll(encode_frame(Opcode.HANDSHAKE, payload), timeout=remaining(deadline))

        frame = yield from parse_frame(deadline, self.config.max_payload_size)
        logging.debug("Handshake response: opcode=%d, %d bytes", frame.opcode, len(frame.payload))

        if frame.opcode == Opcode.CLOSE:
            reason = _close_reason(frame.payload)
            if reason is not None:
                raise DiscordError(*reason)
            raise HandshakeFailed("Discord closed the connection", payload=frame.payload)
        if frame.opcode != Opcode.FRAME:
            raise HandshakeFailed(f"expected FRAME opcode, got {frame.opcode}", payload=frame.payload)

        try:
            body = json_codec.decode(frame.payload)
            response = _to_response(body)
        except IpcError as exc:
            raise HandshakeFailed(f"unreadable response: {exc}", payload=frame.payload) from exc

        error = _error_fields(body.get("error"))
        if error is not None:
            raise DiscordError(*error)
        if response.is_error:
            raise DiscordError(response.error_code, response.error_message)
        if not response.is_ready:
            raise HandshakeFailed(f"expected READY dispatch, got evt={response.evt!r}", payload=frame.payload)
        return response.data

    # ------------------------------------------------------------------
    # commands
    # ------------------------------------------------------------------

    def send_command(self, cmd: str, args: Any = None, nonce: str | None = None) -> Steps[Response]:
        """Send one command and wait for its response.

        Args:
            cmd: Command name, e.g. ``SET_ACTIVITY``
            args: JSON-ready arguments, sent untouched
            nonce: Correlation token; a fresh one is generated when omitted

        Returns:
            The matching response

        Raises:
            RuntimeError: If the session is not READY
            InvalidResponse: If the reply carries another nonce
            DiscordError: If Discord rejects the command
        """
        if self.state is not SessionState.READY:
            raise RuntimeError(f"send_command() requires a ready session, state is {self.state}")

        message = CommandMessage(cmd=cmd, args={} if args is None else args, nonce=nonce or generate_nonce())
        data = json_codec.encode(message.to_dict())
        logging.debug("Sending %s (nonce=%s)", message.cmd, message.nonce)

        try:
            yield WriteAll(encode_frame(Opcode.FRAME, data))
            response = yield from self._await_response(message.nonce)
        except DiscordError:
            raise
        except (IpcError, TimeoutError):
            yield from self._teardown()
            raise
        return response

    def _await_response(self, nonce: str) -> Steps[Response]:
        while True:
            frame = yield from parse_frame(max_payload_size=self.config.max_payload_size)
            opcode = frame.known_opcode
            if opcode is None:
                raise InvalidOpcode(frame.opcode, expected=Opcode.FRAME)
            if opcode is Opcode.PING:
                logging.debug("Answering PING (%d bytes)", len(frame.payload))
                yield WriteAll(encode_frame(Opcode.PONG, frame.payload))
                continue
            if opcode is Opcode.CLOSE:
                yield from self._teardown()
                reason = _close_reason(frame.payload)
                if reason is not None:
                    raise DiscordError(*reason)
                raise SocketClosed("Discord closed the connection")
            if opcode is not Opcode.FRAME:
                raise InvalidResponse(f"unexpected {opcode.name} frame while awaiting a response")

            response = _to_response(json_codec.decode(frame.payload))
            if response.nonce != nonce:
                raise InvalidResponse(f"nonce mismatch: expected {nonce!r}, got {response.nonce!r}")
            logging.debug("Received response to %s (nonce=%s)", response.cmd, nonce)
            if response.is_error:
                raise DiscordError(response.error_code, response.error_message)
            return response

    # ------------------------------------------------------------------
    # raw frames
    # ------------------------------------------------------------------

    def send_frame(self, opcode: int, payload: Any = None) -> Steps[None]:
        """Send one frame with a JSON payload, bypassing nonce bookkeeping.

        Raises:
            RuntimeError: If the session is not READY
            SerializationFailed: If ``payload`` cannot be encoded (session stays READY)
        """
        if self.state is not SessionState.READY:
            raise RuntimeError(f"send_frame() requires a ready session, state is {self.state}")

        data = json_codec.encode({} if payload is None else payload)
        try:
            yield WriteAll(encode_frame(opcode, data))
        except (IpcError, TimeoutError):
            yield from self._teardown()
            raise

    def recv_frame(self) -> Steps[tuple[Opcode, Any]]:
        """Read the next frame as ``(opcode, decoded payload)``.

        Nothing is answered or filtered: PING frames are returned to the
        caller. A CLOSE frame is returned too, with the session already closed.

        Raises:
            RuntimeError: If the session is not READY
            InvalidOpcode: If the opcode is not a known one
        """
        if self.state is not SessionState.READY:
            raise RuntimeError(f"recv_frame() requires a ready session, state is {self.state}")

        try:
            frame = yield from parse_frame(max_payload_size=self.config.max_payload_size)
            opcode = frame.known_opcode
            if opcode is None:
                raise InvalidOpcode(frame.opcode)
            body = json_codec.decode(frame.payload) if frame.payload else None
        except (IpcError, TimeoutError):
            yield from self._teardown()
            raise

        if opcode is Opcode.CLOSE:
            yield from self._teardown()
        return opcode, body

    # ------------------------------------------------------------------
    # close
    # ------------------------------------------------------------------

    def close(self) -> Steps[None]:
        """Send a best-effort CLOSE frame, then release the transport."""
        if self.state in (SessionState.AWAITING_READY, SessionState.READY):
            try:
                yield WriteAll(encode_frame(Opcode.CLOSE, b"{}"))
            except (IpcError, TimeoutError) as exc:
                logging.debug("CLOSE frame not sent: %s", exc)
        yield from self._teardown()

    def _teardown(self) -> Steps[None]:
        if self.state is not SessionState.CLOSED:
            logging.debug("Closing Discord IPC session (state=%s)", self.state)
        self.state = SessionState.CLOSED
        yield Shutdown()
