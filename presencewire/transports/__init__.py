"""Transport backends, one per execution model."""

from .anyio_transport import AnyioTransport
from .asyncio_transport import AsyncioTransport
from .base import AsyncTransport, Transport
from .blocking_transport import BlockingTransport

__all__ = [
    "AnyioTransport",
    "AsyncTransport",
    "AsyncioTransport",
    "BlockingTransport",
    "Transport",
    "get_transport",
    "list_transports",
    "register_transport",
]


# Transport registry
_TRANSPORTS: dict[str, type[Transport] | type[AsyncTransport]] = {}


def register_transport(name: str, transport_class: type[Transport] | type[AsyncTransport]) -> None:
    """Register a transport implementation under ``name``."""
    _TRANSPORTS[name] = transport_class


def get_transport(name: str) -> type[Transport] | type[AsyncTransport]:
    """Get a transport class by name."""
    if name not in _TRANSPORTS:
        raise ValueError(f"Unknown transport: {name!r} (available: {', '.join(list_transports())})")
    return _TRANSPORTS[name]


def list_transports() -> list[str]:
    """List all registered transport names."""
    return list(_TRANSPORTS.keys())


# Register default transports
register_transport("blocking", BlockingTransport)
register_transport("asyncio", AsyncioTransport)
register_transport("anyio", AnyioTransport)
