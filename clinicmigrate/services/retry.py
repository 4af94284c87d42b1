"""Retry policy for I/O operations."""

import functools
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

from ..exceptions import RetryExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry an operation up to ``max_attempts`` times.

    Between attempts the caller sleeps ``base_delay * attempt`` seconds
    (linear backoff), or ``base_delay * 2 ** (attempt - 1)`` with
    ``backoff="exponential"``. ``jitter`` adds up to that fraction of the
    delay at random. Only the retrying call sleeps.

    Usage:
        policy = RetryPolicy(max_attempts=3, base_delay=0.5)

        @policy
        def download(path): ...

        data = policy.call(client.download, bucket, path)
    """
    max_attempts: int = 3
    base_delay: float = 0.5
    backoff: str = "linear"
    jitter: float = 0.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)
    on_retry: Optional[Callable[[int, BaseException, float], None]] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff not in ("linear", "exponential"):
            raise ValueError(f"Unsupported backoff: {self.backoff}")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after a failed ``attempt`` (1-based)."""
        if self.backoff == "exponential":
            delay = self.base_delay * (2 ** (attempt - 1))
        else:
            delay = self.base_delay * attempt
        if self.jitter > 0:
            delay += delay * random.uniform(0, self.jitter)
        return delay

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run ``func`` under the policy.

        Returns:
            The first successful result

        Raises:
            RetryExhausted: After the final attempt fails, carrying the last error
        """
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return func(*args, **kwargs)
            except self.retry_on as e:
                last_error = e
                if attempt == self.max_attempts:
                    break
                delay = self.delay_for(attempt)
                logger.debug(f"Attempt {attempt}/{self.max_attempts} failed ({e}); retrying in {delay:.2f}s")
                if self.on_retry:
                    self.on_retry(attempt, e, delay)
                self.sleep(delay)

        raise RetryExhausted(self.max_attempts, last_error)

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        """Decorate ``func`` so every call runs under the policy."""

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return self.call(func, *args, **kwargs)

        return wrapper
