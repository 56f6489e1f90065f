"""Pacing primitives: block the calling task between provider requests."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional, Protocol

logger = logging.getLogger("reposync.pacing")


class Pacer(Protocol):
    def wait(self) -> None:
        """Block until the next request to the provider may be issued."""

    def backoff(self, seconds: float) -> None:
        """Block for a rate-limit backoff window."""


class FixedDelayPacer:
    """Enforce a fixed minimum spacing between consecutive requests.

    The first request goes out immediately; each later one waits until
    ``delay_ms`` has elapsed since the previous request was issued.
    """

    def __init__(
        self,
        delay_ms: int,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.delay_s = max(delay_ms, 0) / 1000.0
        self._sleep = sleep
        self._clock = clock
        self._last: Optional[float] = None
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            if self._last is not None:
                remaining = self.delay_s - (self._clock() - self._last)
                if remaining > 0:
                    self._sleep(remaining)
            self._last = self._clock()

    def backoff(self, seconds: float) -> None:
        logger.warning("Rate limited, backing off %.1fs", seconds)
        self._sleep(seconds)


class NoopPacer:
    """Pacer that never blocks."""

    def wait(self) -> None:
        return None

    def backoff(self, seconds: float) -> None:
        return None
