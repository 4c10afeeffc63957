"""Tests for the exponential backoff policy."""

import pytest

from sselink.monitor.backoff import ExponentialBackoff


class TestExponentialBackoff:
    def test_first_delay_is_initial(self):
        backoff = ExponentialBackoff(initial=2.0, maximum=30.0)
        assert backoff.next_delay() == 2.0

    def test_doubles_until_capped(self):
        backoff = ExponentialBackoff(initial=2.0, maximum=30.0)
        delays = [backoff.next_delay() for _ in range(7)]
        assert delays == [2.0, 4.0, 8.0, 16.0, 30.0, 30.0, 30.0]

    def test_non_decreasing_and_bounded(self):
        backoff = ExponentialBackoff(initial=0.3, maximum=7.0, factor=1.7)
        delays = [backoff.next_delay() for _ in range(50)]
        assert all(a <= b for a, b in zip(delays, delays[1:]))
        assert max(delays) == 7.0

    def test_reset_returns_to_initial(self):
        backoff = ExponentialBackoff(initial=1.0, maximum=10.0)
        for _ in range(4):
            backoff.next_delay()
        backoff.reset()
        assert backoff.attempt == 0
        assert backoff.next_delay() == 1.0

    def test_delay_for_is_pure(self):
        backoff = ExponentialBackoff(initial=1.0, maximum=100.0)
        assert backoff.delay_for(3) == 8.0
        assert backoff.attempt == 0

    def test_huge_attempt_is_capped(self):
        backoff = ExponentialBackoff(initial=1.0, maximum=60.0)
        assert backoff.delay_for(10_000) == 60.0

    def test_factor_one_is_constant(self):
        backoff = ExponentialBackoff(initial=5.0, maximum=60.0, factor=1.0)
        assert backoff.delay_for(100) == 5.0

    @pytest.mark.parametrize(
        "initial,maximum,factor",
        [(0, 10.0, 2.0), (5.0, 1.0, 2.0), (1.0, 10.0, 0.5)],
    )
    def test_invalid_parameters(self, initial, maximum, factor):
        with pytest.raises(ValueError):
            ExponentialBackoff(initial=initial, maximum=maximum, factor=factor)
