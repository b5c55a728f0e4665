"""Delay and rate-limit generators used to simulate network conditions."""

from __future__ import annotations

import random
import threading
import time
from typing import Protocol

_shared_rng = random.Random()


class DelayGenerator(Protocol):
    """Turns a base delay into an actual wait time."""

    def next_wait_time(self, t: float) -> float: ...


class Delay:
    """A base delay in seconds, optionally varied by a generator."""

    def __init__(self, t: float = 0.0, generator: DelayGenerator | None = None) -> None:
        self._t = t
        self._generator = generator
        self._lock = threading.Lock()

    def next_wait_time(self) -> float:
        """The time to wait next, in seconds."""
        with self._lock:
            t = self._t
        if self._generator is None:
            return t
        return self._generator.next_wait_time(t)

    def set(self, t: float) -> float:
        """Change the base delay and return the previous one."""
        with self._lock:
            previous = self._t
            self._t = t
        return previous

    def get(self) -> float:
        with self._lock:
            return self._t

    def wait(self) -> None:
        """Sleep for the next wait time."""
        time.sleep(max(0.0, self.next_wait_time()))


def fixed_delay(t: float) -> Delay:
    """A delay that always waits exactly t seconds."""
    return Delay(t)


class InternetLatencyDelayGenerator:
    """Generates delays in three clusters typical of peers on the internet.

    Each wait time is a normal distribution around the base time, shifted by
    the large delay with probability percent_large, by the medium delay with
    probability percent_medium, and not shifted otherwise.
    """

    def __init__(
        self,
        medium_delay: float,
        large_delay: float,
        percent_medium: float,
        percent_large: float,
        std: float,
        rng: random.Random | None = None,
    ) -> None:
        self.medium_delay = medium_delay
        self.large_delay = large_delay
        self.percent_medium = percent_medium
        self.percent_large = percent_large
        self.std = std
        self._rng = rng if rng is not None else _shared_rng

    def next_wait_time(self, t: float) -> float:
        cluster = self._rng.random()
        base = self._rng.gauss(0.0, 1.0) * self.std + t
        if cluster < self.percent_large:
            return base + self.large_delay
        if cluster < self.percent_medium + self.percent_large:
            return base + self.medium_delay
        return base


class FixedRateLimitGenerator:
    """Always generates the same rate limit, in bytes per second."""

    def __init__(self, rate_limit: float) -> None:
        self.rate_limit = rate_limit

    def next_rate_limit(self) -> float:
        return self.rate_limit


class VariableRateLimitGenerator:
    """Generates rate limits following a normal distribution."""

    def __init__(
        self, rate_limit: float, std: float, rng: random.Random | None = None
    ) -> None:
        self.rate_limit = rate_limit
        self.std = std
        self._rng = rng if rng is not None else _shared_rng

    def next_rate_limit(self) -> float:
        return self._rng.gauss(0.0, 1.0) * self.std + self.rate_limit