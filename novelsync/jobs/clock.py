"""Time source used by the job poll loop."""

import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Monotonic time and sleep, replaceable in tests."""

    @abstractmethod
    def monotonic(self) -> float:
        """Seconds from an arbitrary, never-decreasing origin."""

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        """Block for ``seconds``."""


class SystemClock(Clock):
    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)
