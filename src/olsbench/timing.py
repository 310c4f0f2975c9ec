"""Clock and stopwatch used to time benchmark batches.

All durations are integer nanoseconds from a monotonic clock.  The clock
is injectable so the sampling loop can be driven by a fake clock in tests.
"""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]

NS_PER_SECOND = 1_000_000_000


def default_clock() -> Clock:
    """The high-resolution monotonic clock used for measurements."""
    return time.perf_counter_ns


class Stopwatch:
    """A high-precision stopwatch.

    Usage::

        sw = Stopwatch()
        do_work()
        ns = sw.elapsed_ns()
    """

    __slots__ = ("_clock", "_start")

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or default_clock()
        self._start = self._clock()

    def reset(self) -> None:
        """Restart timing from now."""
        self._start = self._clock()

    def elapsed_ns(self) -> int:
        """Nanoseconds since construction or the last :meth:`reset`."""
        return self._clock() - self._start


def seconds_to_ns(seconds: float) -> int:
    """Convert seconds to whole nanoseconds."""
    return int(round(seconds * NS_PER_SECOND))


def format_seconds(ns: int | float) -> str:
    """Format a nanosecond duration as seconds with one decimal (``'5.0s'``)."""
    return f"{ns / NS_PER_SECOND:.1f}s"
