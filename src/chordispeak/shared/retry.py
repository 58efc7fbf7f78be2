"""Retry utilities with a fixed delay between attempts."""

import time
from typing import Callable, TypeVar, Optional

from chordispeak.shared.logging import get_logger

T = TypeVar('T')

logger = get_logger(__name__)


def _always(error: Exception) -> bool:
    return True


class RetryStrategy:
    """
    Configurable retry strategy.

    ``max_retries`` counts additional attempts, so a strategy with
    ``max_retries=3`` calls the function at most four times. Only exceptions
    accepted by ``should_retry`` are retried; anything else propagates on the
    first failure.
    """

    def __init__(
        self,
        max_retries: int = 3,
        backoff_seconds: float = 2.0,
        should_retry: Optional[Callable[[Exception], bool]] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got: {max_retries}")
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.should_retry = should_retry or _always
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        """Total number of attempts including the first one."""
        return self.max_retries + 1

    def execute(
        self,
        func: Callable[..., T],
        *args,
        on_retry: Optional[Callable[[int, Exception], None]] = None,
        **kwargs
    ) -> T:
        """
        Execute a function with retry logic.

        Args:
            func: Function to execute
            *args: Positional arguments for the function
            on_retry: Optional hook called with (retry number, error) before each retry
            **kwargs: Keyword arguments for the function

        Returns:
            Function result

        Raises:
            The last exception if all attempts fail, or the first
            non-retryable exception
        """
        retry = 0
        while True:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if retry >= self.max_retries or not self.should_retry(e):
                    raise

                retry += 1
                if on_retry:
                    on_retry(retry, e)
                logger.warning(
                    f"Retrying request (attempt {retry}/{self.max_retries}) after error: {e}"
                )
                self._sleep(self.backoff_seconds)

