# Copyright 2025 Maida.AI
# SPDX-License-Identifier: Apache-2.0
r"""presencewire - a Discord IPC client for rich presence.

The package talks to the Discord desktop client over its local IPC channel
(a Unix domain socket or a Windows named pipe) and provides:

- Endpoint discovery across the runtime, temp and sandboxed app directories
- The length-prefixed frame codec and JSON payload codec
- A handshake/session state machine written once as I/O step generators
- Transports for blocking code, asyncio and anyio (asyncio or trio)
- Bounded exponential backoff and a typed error taxonomy
- Activity models with Discord's field limits, and a fluent builder
- A loopback server speaking the same wire format, for tests and demos
"""

# Import public API from modules
from .activity import (
    Activity,
    ActivityAssets,
    ActivityBuilder,
    ActivityButton,
    ActivityParty,
    ActivitySecrets,
    ActivityTimestamps,
)
from .async_client import AsyncClient
from .client import Client
from .codec import JSONCodec, json_codec
from .config import IpcConfig
from .constants import (
    HEADER_SIZE,
    IPC_VERSION,
    MAX_IPC_SOCKETS,
    MAX_PAYLOAD_SIZE,
    Command,
    Event,
    Opcode,
)
from .discovery import Endpoint, TransportFamily, candidate_directories, discover
from .errors import (
    ConnectionFailed,
    ConnectionTimeout,
    DeserializationFailed,
    DiscordError,
    ErrorCategory,
    HandshakeFailed,
    InvalidActivity,
    InvalidOpcode,
    InvalidResponse,
    IpcError,
    NoValidSocket,
    ProtocolContext,
    ProtocolViolation,
    SerializationFailed,
    SocketClosed,
    SocketDiscoveryFailed,
    is_recoverable,
)
from .frames import Frame, encode_frame, pack_frame, parse_frame, unpack_frame, unpack_header
from .messages import CommandMessage, HandshakePayload, Response
from .nonce import generate_nonce
from .retry import RetryConfig, with_retry, with_retry_async
from .server import LoopbackServer
from .session import Session, SessionState
from .steps import run_async, run_blocking
from .transports import (
    AnyioTransport,
    AsyncioTransport,
    AsyncTransport,
    BlockingTransport,
    Transport,
    get_transport,
    list_transports,
    register_transport,
)

# Public API exports
__all__ = [
    # Clients
    "Client",
    "AsyncClient",
    "Session",
    "SessionState",
    "IpcConfig",
    "RetryConfig",
    "with_retry",
    "with_retry_async",
    # Discovery
    "Endpoint",
    "TransportFamily",
    "discover",
    "candidate_directories",
    # Frames and payloads
    "Frame",
    "pack_frame",
    "encode_frame",
    "unpack_header",
    "unpack_frame",
    "parse_frame",
    "JSONCodec",
    "json_codec",
    "HandshakePayload",
    "CommandMessage",
    "Response",
    "generate_nonce",
    # Step drivers
    "run_blocking",
    "run_async",
    # Transports
    "Transport",
    "AsyncTransport",
    "BlockingTransport",
    "AsyncioTransport",
    "AnyioTransport",
    "register_transport",
    "get_transport",
    "list_transports",
    # Activities
    "Activity",
    "ActivityAssets",
    "ActivityBuilder",
    "ActivityButton",
    "ActivityParty",
    "ActivitySecrets",
    "ActivityTimestamps",
    # Constants and enums
    "IPC_VERSION",
    "HEADER_SIZE",
    "MAX_IPC_SOCKETS",
    "MAX_PAYLOAD_SIZE",
    "Opcode",
    "Command",
    "Event",
    # Errors
    "IpcError",
    "ErrorCategory",
    "ProtocolContext",
    "ConnectionFailed",
    "SocketDiscoveryFailed",
    "ConnectionTimeout",
    "NoValidSocket",
    "SocketClosed",
    "HandshakeFailed",
    "ProtocolViolation",
    "InvalidOpcode",
    "InvalidResponse",
    "SerializationFailed",
    "DeserializationFailed",
    "DiscordError",
    "InvalidActivity",
    "is_recoverable",
    # Test tooling
    "LoopbackServer",
]
