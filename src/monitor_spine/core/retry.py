"""Delays between reconnect attempts of the stream consumer.

The consumer never gives up on the event log: a broker or store outage is
waited out, so policies only answer "how long until the next attempt".

Example:
    >>> policy = ExponentialBackoff(base_delay=1.0, max_delay=30.0, jitter=False)
    >>> [policy.next_delay(attempt) for attempt in range(6)]
    [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass


class BackoffPolicy(ABC):
    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Seconds to wait before attempt number *attempt* (0 = first retry)."""
        ...


@dataclass
class ExponentialBackoff(BackoffPolicy):
    """``base_delay * multiplier**attempt`` capped at ``max_delay``.

    With ``jitter`` the delay is spread by +/- ``jitter_range`` of itself so
    that monitor instances sharing a consumer group do not reconnect in
    lockstep after a broker restart.
    """

    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.25

    def next_delay(self, attempt: int) -> float:
        # exponent capped: multiplier ** 10_000 overflows a float
        delay = min(self.base_delay * self.multiplier ** min(attempt, 32), self.max_delay)
        if not self.jitter:
            return delay
        spread = delay * self.jitter_range
        return max(0.0, delay + random.uniform(-spread, spread))


@dataclass
class ConstantBackoff(BackoffPolicy):
    """Same delay every time (tests, local development)."""

    delay: float = 1.0

    def next_delay(self, attempt: int) -> float:
        return self.delay


__all__ = ["BackoffPolicy", "ExponentialBackoff", "ConstantBackoff"]
