"""Per-connection token bucket for inbound frame throttling."""

import time
from collections.abc import Callable


class TokenBucket:
    """Allow `rate` frames per second on average with bursts up to `burst`.

    The bucket starts full. consume() takes one token and returns False
    when none is left; the caller drops that frame.
    """

    def __init__(self, rate: float, burst: int, clock: Callable[[], float] = time.monotonic) -> None:
        if rate <= 0 or burst < 1:
            raise ValueError(f"rate and burst must be positive, got rate={rate} burst={burst}")
        self._rate = rate
        self._burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last_refill = clock()

    def consume(self) -> bool:
        now = self._clock()
        self._tokens = min(self._burst, self._tokens + (now - self._last_refill) * self._rate)
        self._last_refill = now

        if self._tokens < 1.0:
            return False
        self._tokens -= 1.0
        return True
