"""Retry and backoff policies used by the processor."""

import random
from dataclasses import dataclass

DEFAULT_MAX_RETRIES = 3


@dataclass(frozen=True)
class RetryPolicy:
    """How failed handler attempts are retried.

    Attributes:
        max_retries: Failed attempts allowed before an event is dead-lettered.
        base_delay: Seconds before the first retry. 0 re-enqueues immediately.
        multiplier: Growth factor applied per subsequent retry.
        max_delay: Upper bound on any single retry delay.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = 0.0
    multiplier: float = 2.0
    max_delay: float = 60.0

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be non-negative")
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be >= 1, got {self.multiplier}")

    def exhausted(self, retry_count: int) -> bool:
        return retry_count >= self.max_retries

    def delay_for(self, retry_count: int) -> float:
        """Delay before re-attempting after the ``retry_count``-th failure."""
        if self.base_delay == 0 or retry_count < 1:
            return 0.0
        return min(self.max_delay, self.base_delay * self.multiplier ** (retry_count - 1))


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff with jitter for transport outages.

    Attributes:
        base_delay: Sleep after the first consecutive failure.
        multiplier: Growth factor per consecutive failure.
        max_delay: Cap on a single sleep.
        jitter: When True the delay is drawn uniformly from [delay/2, delay].
    """

    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 30.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("backoff delays must be non-negative")
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be >= 1, got {self.multiplier}")

    def delay_for(self, consecutive_failures: int) -> float:
        if consecutive_failures < 1:
            return 0.0
        delay = min(self.max_delay, self.base_delay * self.multiplier ** (consecutive_failures - 1))
        if self.jitter:
            delay = random.uniform(delay / 2, delay)
        return delay
