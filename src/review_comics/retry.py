"""Bounded exponential-backoff retries for calls to external services."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from review_comics.errors import ErrorKind, TransientServiceError, classify_exception

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 2.0


def is_transient(exc: BaseException) -> bool:
    return classify_exception(exc) is ErrorKind.EXTERNAL_TRANSIENT


class RetryingCaller:
    """Run an async operation, retrying transient failures with backoff.

    The wait before retry ``n`` (1-based) is ``backoff_base ** n`` seconds, so
    the defaults wait 2, 4, then 8 seconds. Failures that are not transient
    are re-raised unchanged on the first attempt. Cancellation is never
    retried: it propagates out of both the attempt and the backoff wait.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        attempt_timeout: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be zero or greater")
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.attempt_timeout = attempt_timeout
        self._sleep = sleep

    def _retrying(self, description: str) -> AsyncRetrying:
        def log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception()
            logger.warning(
                "Retrying %s due to %s. Attempt %d/%d. Waiting %.1f seconds",
                description,
                str(exc) or type(exc).__name__,
                retry_state.attempt_number,
                self.max_retries,
                retry_state.next_action.sleep,
            )

        # multiplier * base ** (attempt - 1) == base ** attempt
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff_base, exp_base=self.backoff_base),
            retry=retry_if_exception(is_transient),
            before_sleep=log_retry,
            sleep=self._sleep,
        )

    async def call(self, operation: Callable[[], Awaitable[T]], description: str = "external call") -> T:
        """Await ``operation()`` until it succeeds or retries are exhausted.

        Args:
            operation: Zero-argument factory returning a fresh awaitable per attempt.
            description: Human-readable label used in logs and error messages.

        Raises:
            TransientServiceError: If every attempt failed transiently.
        """
        try:
            async for attempt in self._retrying(description):
                with attempt:
                    return await self._attempt(operation)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            raise TransientServiceError(
                f"{description} unavailable after {self.max_retries} retries: {last}"
            ) from last

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self.attempt_timeout is None:
            return await operation()
        return await asyncio.wait_for(operation(), timeout=self.attempt_timeout)
