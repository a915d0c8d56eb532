"""Transport contracts.

A transport is a duplex byte channel to one endpoint. Backends implement
only these primitives; every protocol rule lives in the session layer.

Error contract for all backends:

* ``open`` failure raises :class:`~presencewire.errors.ConnectionFailed`
* EOF, reset or broken pipe raises :class:`~presencewire.errors.SocketClosed`
  (with any partial bytes already read)
* an expired ``timeout`` raises the built-in :class:`TimeoutError`
"""

from abc import ABC, abstractmethod

from ..discovery import Endpoint


class Transport(ABC):
    """Blocking transport."""

    @abstractmethod
    def open(self, endpoint: Endpoint, timeout: float | None = None) -> None:
        """Connect to ``endpoint``."""
        pass

    @abstractmethod
    def read_exact(self, n: int, timeout: float | None = None) -> bytes:
        """Read exactly ``n`` bytes."""
        pass

    @abstractmethod
    def write_all(self, data: bytes, timeout: float | None = None) -> None:
        """Write every byte of ``data``."""
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Close the channel. Safe to call more than once."""
        pass


class AsyncTransport(ABC):
    """Transport for a cooperative scheduler."""

    @abstractmethod
    async def open(self, endpoint: Endpoint, timeout: float | None = None) -> None:
        """Connect to ``endpoint``."""
        pass

    @abstractmethod
    async def read_exact(self, n: int, timeout: float | None = None) -> bytes:
        """Read exactly ``n`` bytes."""
        pass

    @abstractmethod
    async def write_all(self, data: bytes, timeout: float | None = None) -> None:
        """Write every byte of ``data``."""
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """Close the channel. Safe to call more than once."""
        pass

    @staticmethod
    @abstractmethod
    async def sleep(seconds: float) -> None:
        """Suspend the calling task on this transport's scheduler."""
        pass
