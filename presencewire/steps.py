"""I/O step requests and the drivers that execute them.

Protocol code (frame parsing, handshake, commands, close) is written once as
generators that yield the steps below and receive their results. A driver
performs each step on a concrete transport: :func:`run_blocking` for the
blocking model and :func:`run_async` for any cooperative scheduler. Errors
raised by the transport are thrown back into the generator, so the protocol
code sees the same exceptions in every execution model.
"""

import time
from collections.abc import Generator
from dataclasses import dataclass
from typing import Any, TypeVar

from .errors import IpcError

T = TypeVar("T")

# ----------------------------------------------------------------------------
# Step requests
# ----------------------------------------------------------------------------


@dataclass
class Open:
    """Open the transport to ``endpoint``."""

    endpoint: Any
    timeout: float | None = None


@dataclass
class ReadExact:
    """Read exactly ``n`` bytes; the driver sends back the bytes."""

    n: int
    timeout: float | None = None


@dataclass
class WriteAll:
    """Write every byte of ``data``."""

    data: bytes
    timeout: float | None = None


@dataclass
class Shutdown:
    """Release the transport. Never fails."""


@dataclass
class Sleep:
    """Suspend (or block) for ``seconds``."""

    seconds: float


Step = Open | ReadExact | WriteAll | Shutdown | Sleep
Steps = Generator[Step, Any, T]


def deadline_after(timeout: float | None) -> float | None:
    """Monotonic deadline ``timeout`` seconds from now, or None."""
    if timeout is None:
        return None
    return time.monotonic() + timeout


def remaining(deadline: float | None) -> float | None:
    """Seconds left until ``deadline``.

    Raises:
        TimeoutError: If the deadline has already passed
    """
    if deadline is None:
        return None
    left = deadline - time.monotonic()
    if left <= 0:
        raise TimeoutError("deadline exceeded")
    return left


# ----------------------------------------------------------------------------
# Drivers
# ----------------------------------------------------------------------------


def run_blocking(steps: Steps[T], transport: Any, sleep: Any = time.sleep) -> T:
    """Drive ``steps`` to completion on a blocking transport.

    Args:
        steps: Protocol generator
        transport: A :class:`~presencewire.transports.base.Transport`
        sleep: Blocking sleep used for :class:`Sleep` steps

    Returns:
        The generator's return value
    """
    result: Any = None
    error: BaseException | None = None
    while True:
        try:
            step = steps.throw(error) if error is not None else steps.send(result)
        except StopIteration as stop:
            return stop.value
        result, error = None, None
        try:
            if isinstance(step, ReadExact):
                result = transport.read_exact(step.n, timeout=step.timeout)
            elif isinstance(step, WriteAll):
                transport.write_all(step.data, timeout=step.timeout)
            elif isinstance(step, Open):
                transport.open(step.endpoint, timeout=step.timeout)
            elif isinstance(step, Shutdown):
                transport.shutdown()
            elif isinstance(step, Sleep):
                sleep(step.seconds)
            else:
                raise TypeError(f"Unknown I/O step: {step!r}")
        except (IpcError, TimeoutError) as exc:
            error = exc


async def run_async(steps: Steps[T], transport: Any) -> T:
    """Drive ``steps`` to completion on an async transport.

    Args:
        steps: Protocol generator
        transport: A :class:`~presencewire.transports.base.AsyncTransport`

    Returns:
        The generator's return value
    """
    result: Any = None
    error: BaseException | None = None
    while True:
        try:
            step = steps.throw(error) if error is not None else steps.send(result)
        except StopIteration as stop:
            return stop.value
        result, error = None, None
        try:
            if isinstance(step, ReadExact):
                result = await transport.read_exact(step.n, timeout=step.timeout)
            elif isinstance(step, WriteAll):
                await transport.write_all(step.data, timeout=step.timeout)
            elif isinstance(step, Open):
                await transport.open(step.endpoint, timeout=step.timeout)
            elif isinstance(step, Shutdown):
                await transport.shutdown()
            elif isinstance(step, Sleep):
                await transport.sleep(step.seconds)
            else:
                raise TypeError(f"Unknown I/O step: {step!r}")
        except (IpcError, TimeoutError) as exc:
            error = exc
