"""Retry policy with exponential backoff and jitter."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, Type, TypeVar

from ..errors import CallTimeout, DependencyBlocked, LockConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRIABLE_ERRORS: Tuple[Type[Exception], ...] = (DependencyBlocked, CallTimeout, LockConflict)


@dataclass
class RetryPolicy:
    """Bounded retry with exponential backoff and full jitter.

    Attributes:
        max_attempts: Total attempts including the first (>= 1)
        base_delay: Delay before the second attempt, in seconds
        max_delay: Upper bound for a single delay
        jitter: Randomise each delay between half and all of its value
        sleep: Sleep function (replaced in tests)
    """

    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 30.0
    jitter: bool = True
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays cannot be negative")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        delay = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if self.jitter:
            delay = random.uniform(delay / 2, delay)
        return delay

    def backoff(self, attempt: int) -> None:
        """Sleep the backoff delay for ``attempt`` unless it was the last one."""
        if attempt < self.max_attempts:
            self.sleep(self.delay_for(attempt))

    def run(
        self,
        func: Callable[[], T],
        retry_on: Tuple[Type[Exception], ...] = RETRIABLE_ERRORS,
        description: Optional[str] = None,
    ) -> T:
        """Call ``func`` until it succeeds or attempts are exhausted.

        Args:
            func: Zero-argument callable
            retry_on: Exception types that trigger another attempt
            description: Text for log messages

        Returns:
            Whatever ``func`` returns

        Raises:
            The last retriable exception once attempts are exhausted, or any
            non-retriable exception immediately
        """
        label = description or getattr(func, "__name__", "call")
        for attempt in range(1, self.max_attempts + 1):
            try:
                return func()
            except retry_on as e:
                if attempt >= self.max_attempts:
                    logger.warning(f"{label} failed after {attempt} attempts: {e}")
                    raise
                delay = self.delay_for(attempt)
                logger.debug(f"{label} failed ({e}), retrying in {delay:.1f}s (attempt {attempt}/{self.max_attempts})")
                self.sleep(delay)
        raise AssertionError("unreachable")
