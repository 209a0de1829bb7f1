"""Pacing policies that bound the request rate to a shared model backend."""

from __future__ import annotations

import threading
import time
from typing import Callable, Protocol

from common.config import ExpansionConfig
from common.exceptions import ConfigurationError


class Pacer(Protocol):
    def wait(self) -> None: ...


class NoPacer:
    def wait(self) -> None:
        return None


class FixedDelayPacer:
    """Sleep a fixed cooldown after every call."""

    def __init__(
        self, seconds: float, sleep: Callable[[float], None] = time.sleep
    ) -> None:
        if seconds < 0:
            raise ConfigurationError("Pacing delay must be >= 0", context={"seconds": seconds})
        self.seconds = seconds
        self._sleep = sleep

    def wait(self) -> None:
        if self.seconds > 0:
            self._sleep(self.seconds)


class TokenBucketPacer:
    """Token bucket with minute-based capacity.

    Blocking and thread-safe so several documents ingested in parallel share
    one budget against the same backend.
    """

    def __init__(
        self,
        requests_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if requests_per_minute <= 0:
            raise ConfigurationError(
                "requests_per_minute must be > 0",
                context={"requests_per_minute": requests_per_minute},
            )
        self.capacity = requests_per_minute
        self.tokens = float(requests_per_minute)
        self.refill_interval = 60.0 / requests_per_minute
        self._clock = clock
        self._sleep = sleep
        self.last_refill = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        tokens_to_add = int((now - self.last_refill) // self.refill_interval)
        if tokens_to_add > 0:
            self.tokens = min(float(self.capacity), self.tokens + tokens_to_add)
            self.last_refill += tokens_to_add * self.refill_interval

    def wait(self) -> None:
        while True:
            with self._lock:
                self._refill()
                if self.tokens >= 1:
                    self.tokens -= 1
                    return
                wait_time = self.refill_interval - (self._clock() - self.last_refill)

            # sleep outside the lock
            self._sleep(wait_time if wait_time > 0 else self.refill_interval)


def build_pacer(cfg: ExpansionConfig) -> Pacer:
    if cfg.pacing == "none":
        return NoPacer()
    if cfg.pacing == "token_bucket":
        if not cfg.requests_per_minute:
            raise ConfigurationError(
                "expansion.requests_per_minute is required for token_bucket pacing"
            )
        return TokenBucketPacer(cfg.requests_per_minute)
    return FixedDelayPacer(cfg.delay_seconds)
