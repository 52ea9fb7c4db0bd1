"""
Retry — bounded exponential backoff for transient failures.

Only errors flagged ``retryable`` (``TransientFetchFailed``) are
retried.  Everything else surfaces on the first attempt.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from picolayer.core.errors import PicolayerError
from picolayer.core.models.settings import RetrySettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to retry and how long to wait in between.

    Args:
        max_retries: Retries after the first attempt (0 = single attempt).
        initial_delay: Seconds before the first retry.
        backoff_multiplier: Factor applied to the delay after each retry.
        max_delay: Upper bound for a single delay.
        jitter: Fraction of the delay added at random.
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.1

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        return cls(
            max_retries=settings.max_retries,
            initial_delay=settings.initial_delay_ms / 1000,
            backoff_multiplier=settings.backoff_multiplier,
            max_delay=settings.max_delay_ms / 1000,
        )

    @property
    def attempts(self) -> int:
        return self.max_retries + 1

    def delay(self, retry_number: int) -> float:
        """Delay before retry ``retry_number`` (1-based), without jitter."""
        base = self.initial_delay * (self.backoff_multiplier ** (retry_number - 1))
        return min(base, self.max_delay)


def call_with_retry(
    operation: Callable[[], T],
    *,
    policy: RetryPolicy,
    name: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation``, retrying retryable picolayer errors with backoff.

    Args:
        operation: Zero-argument callable.
        policy: Retry bounds.
        name: Human-readable operation name for log lines.
        sleep: Injected for tests.

    Returns:
        Whatever ``operation`` returns.

    Raises:
        The last error once attempts are exhausted, or any
        non-retryable error immediately.
    """
    for attempt in range(1, policy.attempts + 1):
        try:
            return operation()
        except PicolayerError as exc:
            if not exc.retryable or attempt == policy.attempts:
                if exc.retryable:
                    logger.warning("%s failed after %d attempts", name, attempt)
                raise
            delay = policy.delay(attempt)
            delay += random.uniform(0, delay * policy.jitter)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                name,
                attempt,
                policy.attempts,
                delay,
                exc,
            )
            sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
