"""Tests for olsbench.timing — clock and stopwatch helpers."""

from __future__ import annotations

import time
import unittest

from bench_test_helpers import FakeClock

from olsbench.timing import Stopwatch, default_clock, format_seconds, seconds_to_ns


class TestStopwatch(unittest.TestCase):
    """Tests for Stopwatch."""

    def test_elapsed_with_fake_clock(self) -> None:
        clock = FakeClock(start=1000)
        sw = Stopwatch(clock)
        clock.advance(250)
        self.assertEqual(sw.elapsed_ns(), 250)

    def test_reset(self) -> None:
        clock = FakeClock()
        sw = Stopwatch(clock)
        clock.advance(500)
        sw.reset()
        clock.advance(20)
        self.assertEqual(sw.elapsed_ns(), 20)

    def test_real_clock_is_monotonic(self) -> None:
        sw = Stopwatch()
        time.sleep(0.01)
        elapsed = sw.elapsed_ns()
        self.assertGreaterEqual(elapsed, 9_000_000)

    def test_default_clock_returns_ints(self) -> None:
        self.assertIsInstance(default_clock()(), int)


class TestConversions(unittest.TestCase):
    """Tests for seconds_to_ns() and format_seconds()."""

    def test_seconds_to_ns(self) -> None:
        self.assertEqual(seconds_to_ns(5), 5_000_000_000)
        self.assertEqual(seconds_to_ns(0.2), 200_000_000)
        self.assertEqual(seconds_to_ns(1e-9), 1)

    def test_format_seconds(self) -> None:
        self.assertEqual(format_seconds(5_000_000_000), "5.0s")
        self.assertEqual(format_seconds(1_250_000_000), "1.2s")
        self.assertEqual(format_seconds(0), "0.0s")


if __name__ == "__main__":
    unittest.main()
