"""Error taxonomy for Discord IPC operations.

Every error raised by the client derives from :class:`IpcError` and carries
a :class:`ErrorCategory` plus a ``recoverable`` flag. Connection errors are
the ones a reconnect or a retry loop is expected to resolve; protocol,
serialization and application errors are rejections or bugs.

::

    IpcError
    +-- ConnectionFailed        (connection, recoverable)
    +-- SocketDiscoveryFailed   (connection, recoverable)
    +-- ConnectionTimeout       (connection, recoverable)
    +-- NoValidSocket           (connection, recoverable)
    +-- SocketClosed            (connection, recoverable)
    +-- HandshakeFailed         (protocol)
    +-- ProtocolViolation       (protocol)
    |   +-- InvalidOpcode
    +-- InvalidResponse         (protocol)
    +-- SerializationFailed     (serialization)
    +-- DeserializationFailed   (serialization)
    +-- DiscordError            (application)
    +-- InvalidActivity         (application)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Broad classification of an :class:`IpcError`."""

    CONNECTION = "connection"
    PROTOCOL = "protocol"
    SERIALIZATION = "serialization"
    APPLICATION = "application"
    OTHER = "other"

    def __str__(self) -> str:
        return self.value


@dataclass
class ProtocolContext:
    """Diagnostic details attached to a protocol violation."""

    expected_opcode: int | None = None
    received_opcode: int | None = None
    payload_size: int | None = None

    @classmethod
    def with_opcodes(cls, expected: int, received: int) -> "ProtocolContext":
        return cls(expected_opcode=expected, received_opcode=received)


# ----------------------------------------------------------------------------
# Base
# ----------------------------------------------------------------------------


class IpcError(Exception):
    """Base class for all Discord IPC errors."""

    category: ErrorCategory = ErrorCategory.OTHER
    recoverable: bool = False

    @property
    def is_connection_error(self) -> bool:
        return self.category is ErrorCategory.CONNECTION

    @property
    def is_recoverable(self) -> bool:
        return self.recoverable


# ----------------------------------------------------------------------------
# Connection errors
# ----------------------------------------------------------------------------


class ConnectionFailed(IpcError):
    """Opening the socket or pipe failed with an OS error."""

    category = ErrorCategory.CONNECTION
    recoverable = True

    def __init__(self, os_error: OSError, endpoints: list[Any] | None = None):
        self.os_error = os_error
        self.endpoints = list(endpoints or [])
        super().__init__(f"Failed to connect to Discord IPC socket: {os_error}")


class SocketDiscoveryFailed(IpcError):
    """Every discovered endpoint refused the connection."""

    category = ErrorCategory.CONNECTION
    recoverable = True

    def __init__(self, attempted: list[str], last_error: OSError | None = None):
        self.attempted = list(attempted)
        self.last_error = last_error
        paths = ", ".join(self.attempted) or "<none>"
        super().__init__(f"Could not connect to any Discord IPC endpoint (tried: {paths}): {last_error}")


class ConnectionTimeout(IpcError):
    """Connect plus handshake did not finish within the timeout."""

    category = ErrorCategory.CONNECTION
    recoverable = True

    def __init__(self, timeout: float | None, last_error: BaseException | None = None):
        self.timeout = timeout
        self.last_error = last_error
        message = f"Connection to Discord timed out after {timeout} s"
        if last_error is not None:
            message += f" (last error: {last_error})"
        super().__init__(message)


class NoValidSocket(IpcError):
    """Discovery found no listening endpoint."""

    category = ErrorCategory.CONNECTION
    recoverable = True

    def __init__(self, message: str = "No Discord IPC socket found. Is Discord running?"):
        super().__init__(message)


class SocketClosed(IpcError):
    """The peer closed the channel or an I/O error broke it mid-session."""

    category = ErrorCategory.CONNECTION
    recoverable = True

    def __init__(self, message: str = "Socket connection was closed unexpectedly", partial: bytes = b""):
        self.partial = partial
        super().__init__(message)


# ----------------------------------------------------------------------------
# Protocol errors
# ----------------------------------------------------------------------------


class HandshakeFailed(IpcError):
    """Discord did not answer the handshake with a READY dispatch."""

    category = ErrorCategory.PROTOCOL

    def __init__(self, message: str, payload: bytes | None = None):
        self.payload = payload
        super().__init__(f"Handshake failed: {message}")


class ProtocolViolation(IpcError):
    """The byte stream broke the framing rules."""

    category = ErrorCategory.PROTOCOL

    def __init__(self, message: str, context: ProtocolContext | None = None):
        self.context = context or ProtocolContext()
        super().__init__(f"Protocol violation: {message}")


class InvalidOpcode(ProtocolViolation):
    """A frame carried an opcode outside the known set."""

    def __init__(self, opcode: int, expected: int | None = None):
        self.opcode = opcode
        super().__init__(
            f"Invalid opcode value: {opcode}",
            ProtocolContext(expected_opcode=expected, received_opcode=opcode),
        )


class InvalidResponse(IpcError):
    """A well-formed frame did not answer the request that was sent."""

    category = ErrorCategory.PROTOCOL

    def __init__(self, message: str):
        super().__init__(f"Invalid response from Discord: {message}")


# ----------------------------------------------------------------------------
# Serialization errors
# ----------------------------------------------------------------------------


class SerializationFailed(IpcError):
    """An outgoing payload could not be encoded as JSON."""

    category = ErrorCategory.SERIALIZATION

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Failed to serialize JSON payload: {cause}")


class DeserializationFailed(IpcError):
    """An incoming payload was not valid JSON."""

    category = ErrorCategory.SERIALIZATION

    def __init__(self, cause: Exception, payload: bytes | None = None):
        self.cause = cause
        self.payload = payload
        super().__init__(f"Failed to deserialize response from Discord: {cause}")


# ----------------------------------------------------------------------------
# Application errors
# ----------------------------------------------------------------------------


class DiscordError(IpcError):
    """Discord rejected a request with its own error code and message."""

    category = ErrorCategory.APPLICATION

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"Discord error: {code} - {message}")


class InvalidActivity(IpcError):
    """An activity payload failed the builder's field checks."""

    category = ErrorCategory.APPLICATION

    def __init__(self, message: str):
        super().__init__(f"Invalid activity: {message}")


def is_recoverable(exc: BaseException) -> bool:
    """Retry policy helper: True for recoverable :class:`IpcError` instances."""
    return isinstance(exc, IpcError) and exc.recoverable
