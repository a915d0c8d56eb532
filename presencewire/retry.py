"""Bounded exponential backoff around a fallible operation.

The engine only counts attempts and sleeps. By default only recoverable
errors (see :func:`presencewire.errors.is_recoverable`) earn another
attempt; callers can pass their own ``retry_if``.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import anyio
from pydantic import BaseModel, ConfigDict, Field

from .errors import is_recoverable

T = TypeVar("T")

RetryPredicate = Callable[[BaseException], bool]


class RetryConfig(BaseModel):
    """Backoff schedule; all delays are in seconds."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(3, ge=1, description="Total attempts, the first one included")
    initial_delay: float = Field(1.0, gt=0, description="Delay after the first failed attempt")
    max_delay: float = Field(10.0, ge=0, description="Upper bound for any single delay")
    backoff_multiplier: float = Field(2.0, ge=1.0, description="Growth factor between delays")

    def with_max_attempts(self, max_attempts: int) -> "RetryConfig":
        """Copy of this config with another attempt budget."""
        return RetryConfig(**{**self.model_dump(), "max_attempts": max_attempts})

    def delay_for_attempt(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        if attempt < 1:
            raise ValueError(f"attempt numbers start at 1, got {attempt}")
        return min(self.initial_delay * self.backoff_multiplier ** (attempt - 1), self.max_delay)

    def delays(self) -> list[float]:
        """The delay following each of the ``max_attempts`` attempts."""
        return [self.delay_for_attempt(attempt) for attempt in range(1, self.max_attempts + 1)]


def _next_delay(config: RetryConfig, attempt: int, exc: BaseException, retry_if: RetryPredicate) -> float | None:
    """Delay before the next attempt, or None when ``exc`` should propagate."""
    if attempt >= config.max_attempts or not retry_if(exc):
        return None
    delay = config.delay_for_attempt(attempt)
    logging.debug("Attempt %d/%d failed (%s); retrying in %.3f s", attempt, config.max_attempts, exc, delay)
    return delay


def with_retry(
    config: RetryConfig,
    operation: Callable[[], T],
    retry_if: RetryPredicate | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``operation`` until it succeeds or the attempt budget runs out.

    Args:
        config: Backoff schedule
        operation: Zero-argument callable to (re)invoke
        retry_if: Decides whether an exception earns another attempt;
            defaults to :func:`~presencewire.errors.is_recoverable`
        sleep: Blocking sleep between attempts

    Returns:
        The first successful result

    Raises:
        The last exception raised by ``operation``
    """
    retry_if = retry_if or is_recoverable
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except Exception as exc:
            delay = _next_delay(config, attempt, exc, retry_if)
            if delay is None:
                raise
        sleep(delay)


async def with_retry_async(
    config: RetryConfig,
    operation: Callable[[], Awaitable[T]],
    retry_if: RetryPredicate | None = None,
    sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
) -> T:
    """Async counterpart of :func:`with_retry`; suspends between attempts.

    ``sleep`` defaults to :func:`anyio.sleep`, which works under asyncio and trio.
    """
    retry_if = retry_if or is_recoverable
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            delay = _next_delay(config, attempt, exc, retry_if)
            if delay is None:
                raise
        await sleep(delay)
