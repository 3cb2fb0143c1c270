"""
Rate limiting for outgoing pixel placement.

The server grants a pixel quota of `rate` placements per `time` seconds and
refills it continuously. The client mirrors that quota locally so it never
sends placements the server would drop.
"""

import threading
import time
from typing import Callable


class Bucket:
    """
    Token bucket with continuous linear refill.

    Starts full. Every check refills `allowance` by the elapsed time times
    `rate / time`, capped at `rate`.
    """

    def __init__(
        self,
        rate: float,
        time_period: float,
        infinite: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        if rate < 0:
            raise ValueError(f"rate must be non-negative, got {rate}")
        if time_period <= 0:
            raise ValueError(f"time period must be positive, got {time_period}")

        self.rate = rate
        self.time = time_period
        self.infinite = infinite
        self.allowance = float(rate)
        self._clock = clock
        self.last_check = clock()
        self._lock = threading.Lock()

    def update(self) -> None:
        """Refill the allowance for the time elapsed since the last check."""
        now = self._clock()
        self.allowance += (now - self.last_check) * (self.rate / self.time)
        self.last_check = now
        if self.allowance > self.rate:
            self.allowance = self.rate

    def can_spend(self, count: float = 1) -> bool:
        """
        Try to spend `count` units.

        Args:
            count: Units to spend

        Returns:
            True if the units were granted (and deducted), False otherwise
        """
        if self.infinite:
            return True

        with self._lock:
            self.update()
            if self.allowance < count:
                return False
            self.allowance -= count
            return True

    def __repr__(self) -> str:
        return f"Bucket(rate={self.rate}, time={self.time}, allowance={self.allowance:.2f})"
