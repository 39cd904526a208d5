"""Retry-with-backoff policy shared by artifact uploads."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from dropmint.services.exceptions import PermanentError, is_insufficient_funds

logger = structlog.get_logger()

T = TypeVar("T")


def default_is_retryable(error: BaseException) -> bool:
    """Everything except insufficient funds and permanent service errors is retried."""
    if is_insufficient_funds(error):
        return False
    return not isinstance(error, PermanentError)


class RetryError(Exception):
    """Operation gave up.

    Attributes:
        last_error: Exception raised by the final attempt
        attempts: Number of attempts made
        retryable: False if the policy stopped early on a non-retryable error
    """

    def __init__(self, last_error: BaseException, attempts: int, retryable: bool):
        super().__init__(f"Gave up after {attempts} attempt(s): {last_error}")
        self.last_error = last_error
        self.attempts = attempts
        self.retryable = retryable


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retries with capped exponential backoff.

    Delay before attempt n+1 is base_delay * 2**(n-1), capped at max_delay.
    """

    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 30.0
    is_retryable: Callable[[BaseException], bool] = field(default=default_is_retryable)

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after a failed attempt (1-based)."""
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
        **log_context: Any,
    ) -> T:
        """Run operation until it succeeds or the policy gives up.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            operation_name: Label used in log events
            **log_context: Extra key/values for log events (e.g. folder name)

        Returns:
            The operation's result

        Raises:
            RetryError: On a non-retryable error or after max_attempts failures
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except Exception as e:
                if not self.is_retryable(e):
                    logger.error(
                        "retry.non_retryable",
                        operation=operation_name,
                        attempt=attempt,
                        error=str(e),
                        error_type=type(e).__name__,
                        **log_context,
                    )
                    raise RetryError(e, attempt, retryable=False) from e

                if attempt >= self.max_attempts:
                    logger.error(
                        "retry.exhausted",
                        operation=operation_name,
                        attempts=attempt,
                        error=str(e),
                        error_type=type(e).__name__,
                        **log_context,
                    )
                    raise RetryError(e, attempt, retryable=True) from e

                delay = self.delay_for(attempt)
                logger.warning(
                    "retry.attempt_failed",
                    operation=operation_name,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    retry_in_seconds=delay,
                    error=str(e),
                    error_type=type(e).__name__,
                    **log_context,
                )
                await asyncio.sleep(delay)

        # max_attempts < 1
        raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
