"""Retry utilities with exponential backoff."""

import time
import random
from typing import Callable, TypeVar, Optional

T = TypeVar('T')


def backoff_delay(
    attempt: int,
    backoff_seconds: float = 1.0,
    exponential: bool = True,
    max_backoff: Optional[float] = None,
    jitter: bool = False
) -> float:
    """
    Delay to wait after the given (1-based) failed attempt.

    With exponential backoff the sequence is base, 2*base, 4*base, ...
    """
    if exponential:
        wait_time = backoff_seconds * (2 ** (attempt - 1))
    else:
        wait_time = backoff_seconds * attempt

    if max_backoff is not None:
        wait_time = min(wait_time, max_backoff)

    if jitter:
        wait_time = wait_time * (0.5 + random.random())

    return wait_time


class RetryStrategy:
    """Configurable retry strategy.

    ``max_retries`` counts retries, not attempts: a strategy with
    ``max_retries=3`` calls the function at most four times. ``retry_on``
    decides whether a raised exception is worth another attempt; anything
    it rejects propagates immediately.
    """

    def __init__(
        self,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        exponential: bool = True,
        jitter: bool = False,
        max_backoff: float = 60.0,
        retry_on: Optional[Callable[[Exception], bool]] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.exponential = exponential
        self.jitter = jitter
        self.max_backoff = max_backoff
        self.retry_on = retry_on or (lambda e: True)
        self._sleep = sleep
        self.attempts = 0

    def execute(
        self,
        func: Callable[..., T],
        *args,
        **kwargs
    ) -> T:
        """
        Execute a function with retry logic.

        Args:
            func: Function to execute
            *args: Positional arguments for the function
            **kwargs: Keyword arguments for the function

        Returns:
            Function result

        Raises:
            Last exception if all attempts fail or the error is not retryable
        """
        self.attempts = 0
        total_attempts = self.max_retries + 1

        for attempt in range(1, total_attempts + 1):
            self.attempts = attempt
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if attempt == total_attempts or not self.retry_on(e):
                    raise
                self._sleep(self._calculate_backoff(attempt))

        raise RuntimeError("Retry logic failed unexpectedly")

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate backoff time for given attempt number."""
        return backoff_delay(
            attempt,
            self.backoff_seconds,
            self.exponential,
            max_backoff=self.max_backoff,
            jitter=self.jitter
        )
