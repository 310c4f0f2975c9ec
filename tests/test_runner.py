"""Tests for olsbench.runner — the sampling loop, variants and suites."""

from __future__ import annotations

import dataclasses
import math
import threading
import time
import unittest

from bench_test_helpers import (
    CountingRetainer,
    FakeClock,
    ProgressRecorder,
    constant_body,
)

from olsbench.errors import BenchmarkFailed, InsufficientDataError
from olsbench.options import Options
from olsbench.retain import ChecksumRetainer, SinkRetainer, set_retainer
from olsbench.runner import (
    Benchmark,
    BenchProgress,
    BenchResult,
    Driver,
    bench,
    bench_drop,
    bench_setup,
    run_suite,
)

MS = 1_000_000


def _driver(
    options: Options,
    clock: FakeClock,
    **kwargs: object,
) -> Driver:
    return Driver(options, clock=clock, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Sampling loop with a fake clock
# ---------------------------------------------------------------------------


class TestDriverFakeClock(unittest.TestCase):
    """Deterministic checks of the sampling loop."""

    def test_recovers_constant_cost(self) -> None:
        """A body with a fixed cost yields slope == cost and R² == 1."""
        for cost in (1, 37, 250, 10_000):
            with self.subTest(cost=cost):
                clock = FakeClock()
                options = Options().with_time_ns(cost * 20_000)
                result = _driver(options, clock).bench("fixed", constant_body(clock, cost))
                self.assertAlmostEqual(result.ns_per_iter, cost, places=6)
                self.assertAlmostEqual(result.r2, 1.0, places=9)
                self.assertGreaterEqual(result.analysis.samples, 2)

    def test_timer_overhead_goes_to_intercept(self) -> None:
        """A fixed per-read clock cost shows up as intercept, not slope."""
        clock = FakeClock(tick=500)
        options = Options().with_time_ns(5 * MS)
        result = _driver(options, clock).bench("ticked", constant_body(clock, 100))
        self.assertAlmostEqual(result.ns_per_iter, 100.0, places=6)
        self.assertAlmostEqual(result.analysis.intercept, 500.0, places=3)

    def test_any_growth_factor(self) -> None:
        for factor in (1.05, 1.5, 2.0, 4.0):
            with self.subTest(factor=factor):
                clock = FakeClock()
                options = Options(time_ns=2 * MS, growth_factor=factor)
                result = _driver(options, clock).bench("g", constant_body(clock, 80))
                self.assertAlmostEqual(result.ns_per_iter, 80.0, places=6)

    def test_stops_at_budget(self) -> None:
        clock = FakeClock()
        options = Options().with_time_ns(MS)
        recorder = ProgressRecorder()
        _driver(options, clock, progress=recorder).bench("b", constant_body(clock, 100))
        spent = [p.spent_ns for p in recorder.reports]
        # Every batch but the last finished under budget.
        self.assertTrue(all(s < MS for s in spent[:-1]))
        self.assertGreaterEqual(spent[-1], MS)

    def test_batch_sizes_grow_geometrically(self) -> None:
        clock = FakeClock()
        options = Options(time_ns=MS, growth_factor=1.1)
        recorder = ProgressRecorder()
        _driver(options, clock, progress=recorder).bench("b", constant_body(clock, 10))
        sizes = recorder.batch_sizes
        self.assertEqual(sizes[0], 1)
        self.assertGreater(len(sizes), 10)
        for prev, cur in zip(sizes, sizes[1:]):
            self.assertGreater(cur, prev)
            self.assertGreaterEqual(cur, math.floor(prev * 1.1))

    def test_min_iterations_starts_batches(self) -> None:
        clock = FakeClock()
        options = Options(time_ns=MS, min_iterations=64)
        recorder = ProgressRecorder()
        _driver(options, clock, progress=recorder).bench("b", constant_body(clock, 10))
        self.assertEqual(recorder.batch_sizes[0], 64)

    def test_total_iterations(self) -> None:
        clock = FakeClock()
        recorder = ProgressRecorder()
        result = _driver(Options(time_ns=MS), clock, progress=recorder).bench(
            "b", constant_body(clock, 50)
        )
        self.assertEqual(result.iterations, sum(recorder.batch_sizes))
        self.assertEqual(result.analysis.samples, len(recorder.batch_sizes))

    def test_max_samples_ceiling(self) -> None:
        clock = FakeClock()
        options = Options(time_ns=10**15, max_samples=12)
        result = _driver(options, clock).bench("b", constant_body(clock, 5))
        self.assertEqual(result.analysis.samples, 12)

    def test_max_iterations_ceiling(self) -> None:
        """A body that takes no time at all still terminates."""
        clock = FakeClock()
        options = Options(time_ns=MS, max_iterations=200)
        recorder = ProgressRecorder()
        result = _driver(options, clock, progress=recorder).bench("free", lambda: None)
        self.assertLessEqual(max(recorder.batch_sizes), 200)
        self.assertEqual(result.ns_per_iter, 0.0)

    def test_single_call_exceeds_budget(self) -> None:
        """One enormous call ends the loop and reports insufficient data."""
        clock = FakeClock()
        options = Options(time_ns=MS)
        recorder = ProgressRecorder()
        driver = _driver(options, clock, progress=recorder)
        with self.assertRaises(InsufficientDataError):
            driver.bench("slow", constant_body(clock, 10 * MS))
        self.assertEqual(recorder.batch_sizes, [1])

    def test_zero_budget(self) -> None:
        clock = FakeClock()
        with self.assertRaises(InsufficientDataError):
            _driver(Options(time_ns=0), clock).bench("none", constant_body(clock, 1))

    def test_every_value_is_retained(self) -> None:
        clock = FakeClock()
        retainer = CountingRetainer()
        result = _driver(Options(time_ns=MS), clock, retainer=retainer).bench(
            "r", constant_body(clock, 100)
        )
        self.assertEqual(retainer.count, result.iterations)
        self.assertEqual(retainer.clears, 1)

    def test_warmup_runs_untimed(self) -> None:
        clock = FakeClock()
        calls = 0

        def body() -> None:
            nonlocal calls
            calls += 1
            clock.advance(1000)

        options = Options(time_ns=MS, warmup_ns=50_000)
        result = _driver(options, clock).bench("w", body)
        self.assertEqual(calls, result.iterations + 50)
        self.assertAlmostEqual(result.ns_per_iter, 1000.0, places=6)

    def test_result_fields(self) -> None:
        clock = FakeClock()
        result = _driver(Options(time_ns=MS), clock).bench("named", constant_body(clock, 10))
        self.assertIsInstance(result, BenchResult)
        self.assertEqual(result.label, "named")
        self.assertGreaterEqual(result.total_ns, MS)
        d = result.to_dict()
        self.assertEqual(d["label"], "named")
        self.assertIn("ns_per_iter", d)
        self.assertIn("r2", d)

    def test_result_and_progress_field_names(self) -> None:
        self.assertEqual(
            [f.name for f in dataclasses.fields(BenchResult)],
            ["label", "analysis", "iterations", "total_ns"],
        )
        self.assertEqual(
            [f.name for f in dataclasses.fields(BenchProgress)],
            ["label", "sample", "iterations", "elapsed_ns", "spent_ns", "budget_ns"],
        )

    def test_driver_is_reusable(self) -> None:
        clock = FakeClock()
        driver = _driver(Options(time_ns=MS), clock)
        first = driver.bench("a", constant_body(clock, 10))
        second = driver.bench("b", constant_body(clock, 20))
        self.assertAlmostEqual(first.ns_per_iter, 10.0, places=6)
        self.assertAlmostEqual(second.ns_per_iter, 20.0, places=6)


# ---------------------------------------------------------------------------
# Result retention
# ---------------------------------------------------------------------------


class TestDriverRetainer(unittest.TestCase):
    """Each driver owns its retainer and empties it after every run."""

    def test_drivers_do_not_share_retainers(self) -> None:
        first = Driver(Options().with_time(0.01))
        second = Driver(Options().with_time(0.01))
        self.assertIsNot(first.retainer, second.retainer)

    def test_driver_uses_selected_backend(self) -> None:
        previous = set_retainer("checksum")
        try:
            driver = Driver()
        finally:
            set_retainer(previous)
        self.assertIsInstance(driver.retainer, ChecksumRetainer)
        self.assertIsInstance(Driver().retainer, SinkRetainer)

    def test_drivers_on_threads_get_own_retainers(self) -> None:
        retainers: list[object] = []

        def worker() -> None:
            clock = FakeClock()
            driver = _driver(Options(time_ns=MS), clock)
            driver.bench("t", constant_body(clock, 10))
            retainers.append(driver.retainer)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(len(retainers), 2)
        self.assertIsNot(retainers[0], retainers[1])

    def test_last_result_released_after_run(self) -> None:
        clock = FakeClock()
        big = bytearray(1 << 20)

        def body() -> bytearray:
            clock.advance(100)
            return big

        driver = _driver(Options(time_ns=MS), clock)
        driver.bench("b", body)
        self.assertIsNone(driver.retainer.last)  # type: ignore[attr-defined]

    def test_released_after_failure(self) -> None:
        clock = FakeClock()
        retainer = CountingRetainer()
        calls = 0

        def body() -> object:
            nonlocal calls
            calls += 1
            if calls > 3:
                raise RuntimeError("late failure")
            clock.advance(100)
            return object()

        with self.assertRaises(BenchmarkFailed):
            _driver(Options(time_ns=MS), clock, retainer=retainer).bench("b", body)
        self.assertEqual(retainer.count, 3)
        self.assertIsNone(retainer.last)

    def test_checksum_digest_survives_run(self) -> None:
        clock = FakeClock()
        retainer = ChecksumRetainer()
        value = object()

        def body() -> object:
            clock.advance(10)
            return value

        # A single batch of 1 leaves an odd number of XORs.
        options = Options(time_ns=0, max_samples=2)
        with self.assertRaises(InsufficientDataError):
            _driver(options, clock, retainer=retainer).bench("c", body)
        self.assertEqual(retainer.digest, id(value))
        self.assertIsNone(retainer.last)


# ---------------------------------------------------------------------------
# Setup and drop variants
# ---------------------------------------------------------------------------


class TestVariantsFakeClock(unittest.TestCase):
    """Setup and teardown are excluded from the measurement."""

    def test_setup_excluded(self) -> None:
        clock = FakeClock()
        seen: list[int] = []

        def setup() -> int:
            clock.advance(MS)
            return 7

        def body(value: int) -> int:
            seen.append(value)
            clock.advance(300)
            return value * 2

        result = _driver(Options(time_ns=50 * MS), clock).bench_setup("s", setup, body)
        self.assertAlmostEqual(result.ns_per_iter, 300.0, places=6)
        self.assertEqual(len(seen), result.iterations)
        self.assertTrue(all(v == 7 for v in seen))

    def test_setup_counts_toward_budget(self) -> None:
        """Untimed setup still consumes the wall-clock budget."""
        clock = FakeClock()

        def setup() -> None:
            clock.advance(MS)

        result = _driver(Options(time_ns=20 * MS), clock).bench_setup(
            "s", setup, lambda _: clock.advance(1)
        )
        self.assertLess(result.iterations, 40)

    def test_one_setup_per_call(self) -> None:
        clock = FakeClock()
        made = 0

        def setup() -> list[int]:
            nonlocal made
            made += 1
            return []

        def body(value: list[int]) -> list[int]:
            clock.advance(10)
            value.append(1)
            return value

        result = _driver(Options(time_ns=MS), clock).bench_setup("s", setup, body)
        self.assertEqual(made, result.iterations)

    def test_teardown_excluded(self) -> None:
        clock = FakeClock()
        torn: list[str] = []

        def teardown(value: str) -> None:
            torn.append(value)
            clock.advance(MS)

        result = _driver(Options(time_ns=50 * MS), clock).bench_drop(
            "d", constant_body(clock, 200), teardown
        )
        self.assertAlmostEqual(result.ns_per_iter, 200.0, places=6)
        self.assertEqual(len(torn), result.iterations)

    def test_setup_with_teardown(self) -> None:
        clock = FakeClock()
        torn: list[int] = []

        def setup() -> int:
            clock.advance(MS)
            return 3

        def body(value: int) -> int:
            clock.advance(250)
            return value + 1

        def teardown(value: int) -> None:
            torn.append(value)
            clock.advance(MS)

        result = _driver(Options(time_ns=50 * MS), clock).bench_setup(
            "st", setup, body, teardown
        )
        self.assertAlmostEqual(result.ns_per_iter, 250.0, places=6)
        self.assertEqual(len(torn), result.iterations)
        self.assertTrue(all(v == 4 for v in torn))

    def test_drop_without_teardown(self) -> None:
        clock = FakeClock()
        result = _driver(Options(time_ns=MS), clock).bench_drop("d", constant_body(clock, 40))
        self.assertAlmostEqual(result.ns_per_iter, 40.0, places=6)

    def test_body_exception_is_wrapped(self) -> None:
        clock = FakeClock()

        def body() -> None:
            raise KeyError("missing")

        with self.assertRaises(BenchmarkFailed) as cm:
            _driver(Options(time_ns=MS), clock).bench("bad", body)
        self.assertEqual(cm.exception.label, "bad")
        self.assertIsInstance(cm.exception.cause, KeyError)

    def test_setup_exception_is_wrapped(self) -> None:
        clock = FakeClock()

        def setup() -> None:
            raise RuntimeError("no fixture")

        with self.assertRaises(BenchmarkFailed):
            _driver(Options(time_ns=MS), clock).bench_setup("bad", setup, lambda v: v)


# ---------------------------------------------------------------------------
# Suites
# ---------------------------------------------------------------------------


class TestRunSuite(unittest.TestCase):
    """run_suite continues past individual failures."""

    def test_continues_after_failures(self) -> None:
        clock = FakeClock()

        def broken() -> None:
            raise RuntimeError("boom")

        benchmarks = [
            Benchmark("first", constant_body(clock, 10)),
            Benchmark("broken", broken),
            Benchmark("too-slow", constant_body(clock, 10**12)),
            Benchmark("last", constant_body(clock, 30)),
        ]
        suite = run_suite(benchmarks, Options(time_ns=MS), clock=clock)

        self.assertEqual([r.label for r in suite.results], ["first", "last"])
        self.assertEqual([f.label for f in suite.failures], ["broken", "too-slow"])
        self.assertEqual(suite.failures[0].error_type, "RuntimeError")
        self.assertEqual(suite.failures[1].error_type, "InsufficientDataError")
        self.assertFalse(suite.ok)

    def test_all_ok(self) -> None:
        clock = FakeClock()
        suite = run_suite(
            [Benchmark("a", constant_body(clock, 5))], Options(time_ns=MS), clock=clock
        )
        self.assertTrue(suite.ok)
        self.assertEqual(len(suite.results), 1)

    def test_dispatches_variants(self) -> None:
        clock = FakeClock()
        torn: list[int] = []
        benchmarks = [
            Benchmark(
                "setup",
                lambda v: clock.advance(v),
                setup=lambda: (clock.advance(MS), 20)[1],
            ),
            Benchmark("drop", constant_body(clock, 1500), teardown=torn.append),
            Benchmark("plain-drop", constant_body(clock, 2500), drop=True),
        ]
        suite = run_suite(benchmarks, Options(time_ns=4 * MS), clock=clock)
        self.assertTrue(suite.ok)
        slopes = {r.label: r.ns_per_iter for r in suite.results}
        self.assertAlmostEqual(slopes["setup"], 20.0, places=6)
        self.assertAlmostEqual(slopes["drop"], 1500.0, places=6)
        self.assertAlmostEqual(slopes["plain-drop"], 2500.0, places=6)
        self.assertTrue(torn)

    def test_setup_and_teardown_both_run(self) -> None:
        clock = FakeClock()
        made: list[int] = []
        torn: list[int] = []

        def setup() -> int:
            made.append(1)
            return 5

        benchmark = Benchmark(
            "both",
            lambda v: (clock.advance(40), v)[1],
            setup=setup,
            teardown=torn.append,
        )
        suite = run_suite([benchmark], Options(time_ns=MS), clock=clock)
        self.assertTrue(suite.ok)
        self.assertEqual(len(torn), suite.results[0].iterations)
        self.assertEqual(len(made), len(torn))
        self.assertTrue(all(v == 5 for v in torn))

    def test_to_dict(self) -> None:
        clock = FakeClock()
        suite = run_suite(
            [Benchmark("a", constant_body(clock, 5)), Benchmark("b", lambda: 1 / 0)],
            Options(time_ns=MS),
            clock=clock,
        )
        d = suite.to_dict()
        self.assertEqual(d["results"][0]["label"], "a")
        self.assertEqual(d["failures"][0]["error_type"], "ZeroDivisionError")

    def test_default_progress_goes_to_progress_logger(self) -> None:
        clock = FakeClock()
        with self.assertLogs("olsbench.progress", level="DEBUG") as cm:
            run_suite(
                [Benchmark("p", constant_body(clock, 5))], Options(time_ns=MS), clock=clock
            )
        self.assertTrue(cm.output)
        self.assertTrue(all(line.startswith("DEBUG:olsbench.progress:p #") for line in cm.output))

    def test_failure_is_logged(self) -> None:
        clock = FakeClock()
        with self.assertLogs("olsbench", level="WARNING") as cm:
            run_suite([Benchmark("b", lambda: 1 / 0)], Options(time_ns=MS), clock=clock)
        self.assertTrue(any("'b' failed" in line for line in cm.output))


# ---------------------------------------------------------------------------
# Real clock
# ---------------------------------------------------------------------------


class TestRealClock(unittest.TestCase):
    """End-to-end measurements with time.sleep.

    These assume a reasonably quiet machine; tolerances are loose.
    """

    def test_sleep_one_millisecond(self) -> None:
        result = bench(Options().with_time(0.2), "sleep 1ms", lambda: time.sleep(0.001))
        self.assertGreater(result.ns_per_iter, 0.9 * MS)
        self.assertLess(result.ns_per_iter, 1.1 * MS + 150_000)
        self.assertGreater(result.r2, 0.9)

    def test_setup_sleep_excluded(self) -> None:
        result = bench_setup(
            Options().with_time(0.3),
            "setup sleeps",
            lambda: time.sleep(0.003),
            lambda _: time.sleep(0.001),
        )
        self.assertLess(result.ns_per_iter, 2 * MS)
        self.assertGreater(result.ns_per_iter, 0.8 * MS)

    def test_drop_teardown_excluded(self) -> None:
        result = bench_drop(
            Options().with_time(0.3),
            "teardown sleeps",
            lambda: time.sleep(0.001),
            lambda _: time.sleep(0.003),
        )
        self.assertLess(result.ns_per_iter, 2 * MS)

    def test_fast_body(self) -> None:
        result = bench(Options().with_time(0.05), "sum", lambda: sum(range(10)))
        self.assertGreater(result.ns_per_iter, 0)
        self.assertLess(result.ns_per_iter, MS)


if __name__ == "__main__":
    unittest.main()
