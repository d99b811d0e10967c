"""Retry logic with backoff, jitter and an explicit bail.

This module provides:
- Ok, Retryable, Terminal: Tagged outcomes an operation returns
- RetryPolicy: Bounded async retry executor
- compute_delay: Backoff delay for a given retry
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from shipsync.core.config import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """The operation succeeded."""

    value: T


@dataclass(frozen=True)
class Retryable:
    """The operation failed and may be attempted again."""

    error: BaseException


@dataclass(frozen=True)
class Terminal:
    """The operation failed and must not be attempted again (bail)."""

    error: BaseException


Outcome = Ok[T] | Retryable | Terminal
Operation = Callable[[], Awaitable["Outcome[T]"]]


def compute_delay(
    config: RetryConfig,
    retry: int,
    rand: Callable[[], float] = random.random,
) -> float:
    """Compute the delay before a retry.

    Args:
        config: Retry configuration.
        retry: 1-based retry number.
        rand: Source of randomness in [0, 1), used when jitter is on.

    Returns:
        Delay in seconds.
    """
    delay = config.min_delay * (config.factor ** (retry - 1))
    if config.jitter:
        delay *= 1.0 + rand()
    if config.max_delay is not None:
        delay = min(delay, config.max_delay)
    return delay


class RetryPolicy:
    """Run an operation until it succeeds, bails, or exhausts its budget.

    Usage:
        policy = RetryPolicy(CREATE_RETRY, on_retry=log_retry)

        async def attempt() -> Outcome[dict]:
            response = await agent.send("/create", "POST", body=payload)
            if response.status_code == 403:
                return Terminal(ForbiddenError())
            return Ok(response.json())

        result = await policy.execute(attempt)
    """

    def __init__(
        self,
        config: RetryConfig,
        on_retry: Callable[[BaseException, int], None] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
        retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
    ) -> None:
        """Initialize the policy.

        Args:
            config: Attempt budget and backoff.
            on_retry: Observer called with (error, attempt) before each delay.
            sleep: Awaitable sleep, replaceable in tests.
            rand: Source of randomness for jitter.
            retryable_exceptions: Exceptions raised by the operation that
                count as retryable failures; others propagate at once.
        """
        self._config = config
        self._on_retry = on_retry
        self._sleep = sleep
        self._rand = rand
        self._retryable_exceptions = retryable_exceptions

    @property
    def config(self) -> RetryConfig:
        """Get the retry configuration."""
        return self._config

    async def execute(self, operation: Operation[T]) -> T:
        """Execute an operation with retry.

        An exception raised by the operation counts as a retryable failure
        when it is one of the retryable exceptions; any other propagates
        without further attempts.

        Args:
            operation: Async callable returning Ok, Retryable or Terminal.

        Returns:
            The value carried by Ok.

        Raises:
            The Terminal error immediately, or the last retryable error
            once max_attempts attempts have failed.
        """
        max_attempts = self._config.max_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                outcome = await operation()
            except self._retryable_exceptions as e:
                outcome = Retryable(e)

            if isinstance(outcome, Ok):
                return outcome.value
            if isinstance(outcome, Terminal):
                logger.debug(f"Bailing on attempt {attempt}: {outcome.error}")
                raise outcome.error

            if attempt == max_attempts:
                logger.debug(f"All {max_attempts} attempts failed: {outcome.error}")
                raise outcome.error

            delay = compute_delay(self._config, attempt, self._rand)
            logger.debug(
                f"Attempt {attempt}/{max_attempts} failed: {outcome.error}. "
                f"Retrying in {delay:.1f}s..."
            )
            self._notify_retry(outcome.error, attempt)
            await self._sleep(delay)

        raise RuntimeError("Unexpected retry loop exit")

    def _notify_retry(self, error: BaseException, attempt: int) -> None:
        """Call the retry observer; its failures never affect retrying."""
        if self._on_retry is None:
            return
        try:
            self._on_retry(error, attempt)
        except Exception:
            logger.warning("Retry observer raised", exc_info=True)
