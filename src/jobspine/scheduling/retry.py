"""Retry delay strategies for failed jobs.

By default a failed job goes straight back to ``pending`` and is picked up
by the next poll pass (``ImmediateRetry``). ``ExponentialBackoff`` pushes
``scheduled_at`` into the future instead.

Example:
    >>> strategy = ExponentialBackoff(base_delay=30.0, max_delay=600.0)
    >>> [strategy.next_delay(n) for n in (1, 2, 3)]
    [30.0, 60.0, 120.0]
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class RetryStrategy(ABC):
    """Abstract base for retry delay strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Seconds to wait before retrying.

        Args:
            attempt: One-based number of the attempt that just failed

        Returns:
            Delay in seconds; 0 means re-eligible immediately
        """
        ...


class ImmediateRetry(RetryStrategy):
    """Retry on the next poll pass without moving ``scheduled_at``."""

    def next_delay(self, attempt: int) -> float:
        return 0.0


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Delay = min(base_delay * multiplier ** (attempt - 1), max_delay)."""

    base_delay: float = 1.0
    max_delay: float = 3600.0
    multiplier: float = 2.0

    def next_delay(self, attempt: int) -> float:
        if self.base_delay <= 0:
            return 0.0
        exponent = min(max(attempt - 1, 0), 64)
        return min(self.base_delay * (self.multiplier**exponent), self.max_delay)


def strategy_from_settings(base_delay: float, max_delay: float) -> RetryStrategy:
    """``ImmediateRetry`` when *base_delay* is 0, otherwise exponential."""
    if base_delay <= 0:
        return ImmediateRetry()
    return ExponentialBackoff(base_delay=base_delay, max_delay=max_delay)
