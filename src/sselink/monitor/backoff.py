"""Exponential reconnect backoff."""

from __future__ import annotations


class ExponentialBackoff:
    """Reconnect delay policy: grows by ``factor`` per failure, capped at ``maximum``.

    The first delay after a reset is ``initial``. The owner sleeps on the
    returned delay itself; this object only does the arithmetic.
    """

    def __init__(self, initial: float, maximum: float, factor: float = 2.0) -> None:
        if initial <= 0:
            raise ValueError(f"initial delay must be positive, got {initial}")
        if maximum < initial:
            raise ValueError(f"maximum delay {maximum} is below initial delay {initial}")
        if factor < 1:
            raise ValueError(f"backoff factor must be >= 1, got {factor}")
        self.initial = initial
        self.maximum = maximum
        self.factor = factor
        self.attempt = 0

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        delay = self.initial
        if self.factor == 1:
            return delay
        for _ in range(attempt):
            delay *= self.factor
            if delay >= self.maximum:
                return self.maximum
        return min(delay, self.maximum)

    def next_delay(self) -> float:
        """Return the delay for the current attempt and advance."""
        delay = self.delay_for(self.attempt)
        self.attempt += 1
        return delay

    def reset(self) -> None:
        self.attempt = 0
