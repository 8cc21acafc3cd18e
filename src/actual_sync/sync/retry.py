"""
Retry execution with classified exponential backoff.

This module runs a fallible asynchronous operation with bounded retries.
Only rate-limit and network errors are retried; every other error propagates
immediately. Backoff delays wait on the shutdown event, so a stopping process
abandons them instead of sleeping through them.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .error_handling import ErrorClassifier
from .types import ErrorKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExecutor:
    """Executes async operations with bounded, classified retries."""

    def __init__(
        self,
        shutdown_event: asyncio.Event | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """
        Initialize the retry executor.

        Args:
            shutdown_event: Event that, once set, abandons pending backoff delays
            sleep: Replacement for the backoff wait (used by tests)
        """
        self._shutdown_event: asyncio.Event = shutdown_event or asyncio.Event()
        self._sleep: Callable[[float], Awaitable[None]] | None = sleep

    @staticmethod
    def calculate_delay(base_delay: float, attempt_index: int) -> float:
        """
        Backoff delay after the failed attempt ``attempt_index`` (0-based).

        Examples:
            >>> RetryExecutor.calculate_delay(3.0, 0)
            3.0
            >>> RetryExecutor.calculate_delay(3.0, 2)
            12.0
        """
        return base_delay * (2**attempt_index)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int,
        base_delay: float,
        description: str = "operation",
        log: logging.Logger | logging.LoggerAdapter[logging.Logger] | None = None,
    ) -> T:
        """
        Run ``operation`` up to ``max_retries + 1`` times.

        Args:
            operation: Zero-argument coroutine function to run
            max_retries: Retries allowed after the first attempt
            base_delay: Base backoff delay in seconds
            description: Name of the operation for log messages
            log: Logger to report attempts on (defaults to this module's logger)

        Returns:
            Whatever the operation returns, unchanged (None included)

        Raises:
            Exception: The operation's error when it is not retryable, when
                retries are exhausted, or when shutdown abandons a delay
        """
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")

        log = log or logger

        for attempt in range(max_retries + 1):
            try:
                return await operation()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                classified = ErrorClassifier.classify(e)
                log.warning(
                    f"{description} attempt {attempt + 1}/{max_retries + 1} failed "
                    + f"({classified.kind.value}, code={classified.code}): {classified.message}"
                )

                if not classified.retryable:
                    log.error(f"{description}: not a retryable error, not retrying")
                    raise

                if attempt == max_retries:
                    log.error(
                        f"{description}: max retries ({max_retries}) reached, giving up"
                    )
                    raise

                delay = self.calculate_delay(base_delay, attempt)
                reason = (
                    "Rate limit exceeded"
                    if classified.kind is ErrorKind.RATE_LIMITED
                    else "Network failure"
                )
                log.warning(f"{reason}. Retrying {description} in {delay:.1f} seconds...")

                if not await self._wait(delay):
                    log.warning(f"{description}: shutdown requested, abandoning retries")
                    raise

        # range() always runs at least once and every path returns or raises
        raise RuntimeError("unreachable")

    async def _wait(self, delay: float) -> bool:
        """
        Wait for the backoff delay.

        Returns:
            False if shutdown was requested before or during the wait
        """
        if self._shutdown_event.is_set():
            return False

        if self._sleep is not None:
            await self._sleep(delay)
            return not self._shutdown_event.is_set()

        try:
            _ = await asyncio.wait_for(self._shutdown_event.wait(), timeout=delay)
            return False
        except asyncio.TimeoutError:
            return True
