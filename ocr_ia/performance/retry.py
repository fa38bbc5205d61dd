"""
Retry Policies

Retry with backoff for chunk processing and other transient failures.
Chunks are retried a fixed number of times with a delay that doubles on
every attempt; once retries are exhausted the last error reaches the caller.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Optional, Set, Type, TypeVar

from ..errors import CorruptDocument, JobCancelled, UnsupportedFormat

logger = logging.getLogger(__name__)

T = TypeVar('T')


class NonRetryableError(Exception):
    """Marks a failure that must not be retried."""


class BackoffStrategy(Enum):
    """How the delay grows between attempts."""
    CONSTANT = auto()
    LINEAR = auto()
    EXPONENTIAL = auto()


@dataclass
class RetryPolicy:
    """
    When and how to retry.

    With the defaults the delays are 1 s, 2 s, 4 s (base x 2^attempt).
    """
    max_retries: int = 3
    max_time: Optional[float] = None

    backoff: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    base_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: float = 0.0

    retry_exceptions: Set[Type[BaseException]] = field(
        default_factory=lambda: {Exception}
    )
    ignore_exceptions: Set[Type[BaseException]] = field(
        default_factory=lambda: {
            NonRetryableError,
            JobCancelled,
            UnsupportedFormat,
            CorruptDocument,
            KeyboardInterrupt,
            SystemExit,
        }
    )

    sleep: Callable[[float], None] = time.sleep

    def get_delay(self, attempt: int) -> float:
        """Delay before retrying after the given (0-indexed) attempt."""
        if self.backoff == BackoffStrategy.CONSTANT:
            delay = self.base_delay
        elif self.backoff == BackoffStrategy.LINEAR:
            delay = self.base_delay * (attempt + 1)
        else:
            delay = self.base_delay * (self.multiplier ** attempt)

        delay = min(delay, self.max_delay)

        if self.jitter > 0:
            jitter_range = delay * self.jitter
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0.0, delay)

    def should_retry_exception(self, exc: BaseException) -> bool:
        if any(isinstance(exc, t) for t in self.ignore_exceptions):
            return False
        return any(isinstance(exc, t) for t in self.retry_exceptions)


def execute_with_retry(func: Callable[..., T], policy: RetryPolicy, *args, **kwargs) -> T:
    """
    Call ``func`` under ``policy``.

    Raises:
        The last exception once retries are exhausted
    """
    start_time = time.time()
    last_error: Optional[Exception] = None

    for attempt in range(policy.max_retries + 1):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            last_error = e
            elapsed = time.time() - start_time

            will_retry = (
                attempt < policy.max_retries and
                policy.should_retry_exception(e) and
                (policy.max_time is None or elapsed < policy.max_time)
            )
            if not will_retry:
                break

            delay = policy.get_delay(attempt)
            logger.warning(
                f"Attempt {attempt + 1} failed: {e}. "
                f"Retrying in {delay:.2f}s..."
            )
            policy.sleep(delay)

    raise last_error
