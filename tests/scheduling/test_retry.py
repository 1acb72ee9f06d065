"""Tests for retry delay strategies."""

from jobspine.scheduling.retry import ExponentialBackoff, ImmediateRetry, strategy_from_settings


def test_immediate_retry():
    assert ImmediateRetry().next_delay(5) == 0.0


def test_exponential_backoff_doubles_and_caps():
    backoff = ExponentialBackoff(base_delay=10, max_delay=50)
    assert [backoff.next_delay(n) for n in (1, 2, 3, 4)] == [10, 20, 40, 50]


def test_exponential_backoff_huge_attempt():
    assert ExponentialBackoff(base_delay=1, max_delay=60).next_delay(10_000) == 60


def test_strategy_from_settings():
    assert isinstance(strategy_from_settings(0, 3600), ImmediateRetry)
    strategy = strategy_from_settings(5, 120)
    assert isinstance(strategy, ExponentialBackoff)
    assert strategy.max_delay == 120
