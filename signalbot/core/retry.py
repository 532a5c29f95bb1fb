"""Shared retry policy for reconnects, scanner backoff and HTTP calls."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_never,
    wait_exponential,
    wait_fixed,
)

logger = structlog.get_logger(__name__)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    logger.warning(
        "Retrying after failure",
        attempt=retry_state.attempt_number,
        error=str(error),
        error_type=type(error).__name__,
    )


@dataclass(frozen=True)
class RetryPolicy:
    """Retry policy applied uniformly by every consumer.

    Attributes:
        delay_seconds: Fixed delay, or the exponential base when
            ``max_delay_seconds`` is set
        max_attempts: Attempt limit; None retries forever
        max_delay_seconds: Enables exponential backoff capped at this value
        retry_on: Exception types that trigger a retry
        sleep: Sleep coroutine (injectable for tests)
    """

    delay_seconds: float = 5.0
    max_attempts: int | None = None
    max_delay_seconds: float | None = None
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    @classmethod
    def http(cls) -> "RetryPolicy":
        """Three attempts, exponential 1-10s, transport errors only."""
        return cls(
            delay_seconds=1.0,
            max_attempts=3,
            max_delay_seconds=10.0,
            retry_on=(httpx.NetworkError, httpx.TimeoutException),
        )

    def retrying(self) -> AsyncRetrying:
        """Build a tenacity controller for ``async for attempt in ...`` loops."""
        if self.max_delay_seconds is None:
            wait = wait_fixed(self.delay_seconds)
        else:
            wait = wait_exponential(
                multiplier=self.delay_seconds,
                min=self.delay_seconds,
                max=self.max_delay_seconds,
            )
        stop = stop_never if self.max_attempts is None else stop_after_attempt(
            self.max_attempts
        )
        return AsyncRetrying(
            stop=stop,
            wait=wait,
            retry=retry_if_exception_type(self.retry_on),
            sleep=self.sleep,
            before_sleep=_log_before_sleep,
            reraise=True,
        )

    async def backoff(self) -> None:
        """Sleep for the fixed delay between loop iterations."""
        await self.sleep(self.delay_seconds)
