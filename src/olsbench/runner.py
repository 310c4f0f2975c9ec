"""Sampling loop and benchmark entry points.

Orchestrates:
1. Optional untimed warm-up of the body
2. Batches of geometrically increasing size, each timed as a whole
3. Streaming regression of (iterations, elapsed_ns) samples
4. Budget and ceiling checks between batches
5. Progress reporting

Variants:
- ``bench``: time ``body()`` calls.
- ``bench_setup``: ``setup()`` runs once per call outside the timed
  region; ``body(value)`` is timed.  An optional teardown runs on each
  result after the timer stops.
- ``bench_drop``: ``body()`` results are kept until the timer stops,
  then torn down untimed.

The budget is checked between batches only, so a single slow batch can
overrun it by up to its own duration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from olsbench.errors import BenchmarkError, BenchmarkFailed
from olsbench.logging import get_logger
from olsbench.options import Options
from olsbench.retain import Retainer, new_retainer
from olsbench.stats import Analysis, GeometricSequence, Regression
from olsbench.timing import Clock, Stopwatch, default_clock

log = get_logger("runner")
progress_log = get_logger("progress")

# Times one batch of the given size and returns the timed region in ns.
BatchFn = Callable[[int], int]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BenchResult:
    """Outcome of one successful benchmark run."""

    label: str
    analysis: Analysis
    iterations: int  # total timed calls across all batches
    total_ns: int  # wall time of the sampling loop, untimed phases included

    @property
    def ns_per_iter(self) -> float:
        return self.analysis.slope

    @property
    def r2(self) -> float:
        return self.analysis.r2

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "label": self.label,
            **self.analysis.to_dict(),
            "iterations": self.iterations,
            "total_ns": self.total_ns,
        }


@dataclass
class BenchProgress:
    """Progress info passed to the callback after each batch."""

    label: str
    sample: int  # 1-based
    iterations: int  # size of the batch just measured
    elapsed_ns: int  # timed region of the batch
    spent_ns: int  # wall time since sampling started
    budget_ns: int


ProgressCallback = Callable[[BenchProgress], None]


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


class Driver:
    """Runs the adaptive sampling loop for one benchmark at a time.

    Each call to :meth:`bench`, :meth:`bench_setup` or :meth:`bench_drop`
    owns a fresh :class:`~olsbench.stats.Regression`, so one driver can be
    reused for many benchmarks in sequence.

    Usage::

        driver = Driver(Options().with_time(1))
        result = driver.bench("sum", lambda: sum(range(100)))
    """

    def __init__(
        self,
        options: Options | None = None,
        *,
        clock: Clock | None = None,
        retainer: Retainer | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        self.options = options or Options()
        self.clock = clock or default_clock()
        self.retainer = retainer or new_retainer()
        self.progress = progress or self._default_progress

    # -- variants -----------------------------------------------------------

    def bench(self, label: str, body: Callable[[], Any]) -> BenchResult:
        """Measure ``body()``."""
        clock = self.clock
        retain = self.retainer.retain

        def batch(iterations: int) -> int:
            start = clock()
            for _ in range(iterations):
                retain(body())
            return clock() - start

        return self._run(label, batch)

    def bench_setup(
        self,
        label: str,
        setup: Callable[[], Any],
        body: Callable[[Any], Any],
        teardown: Callable[[Any], Any] | None = None,
    ) -> BenchResult:
        """Measure ``body(setup())`` excluding the time spent in ``setup``.

        With *teardown*, results are held until the batch timer stops and
        then passed to it one by one, as in :meth:`bench_drop`.
        """
        clock = self.clock
        retain = self.retainer.retain

        def batch(iterations: int) -> int:
            inputs = [setup() for _ in range(iterations)]
            if teardown is None:
                start = clock()
                for value in inputs:
                    retain(body(value))
                elapsed = clock() - start
            else:
                start = clock()
                for i, value in enumerate(inputs):
                    inputs[i] = retain(body(value))
                elapsed = clock() - start
                for value in inputs:
                    teardown(value)
            inputs.clear()
            return elapsed

        return self._run(label, batch)

    def bench_drop(
        self,
        label: str,
        body: Callable[[], Any],
        teardown: Callable[[Any], Any] | None = None,
    ) -> BenchResult:
        """Measure ``body()`` excluding the cost of releasing its results.

        Results are held until the batch timer stops; then each one is
        passed to *teardown* (if given) and all references are dropped.
        """
        clock = self.clock
        retain = self.retainer.retain

        def batch(iterations: int) -> int:
            outputs: list[Any] = [None] * iterations
            start = clock()
            for i in range(iterations):
                outputs[i] = retain(body())
            elapsed = clock() - start
            if teardown is not None:
                for value in outputs:
                    teardown(value)
            outputs.clear()
            return elapsed

        return self._run(label, batch)

    # -- sampling loop ------------------------------------------------------

    def _run(self, label: str, batch: BatchFn) -> BenchResult:
        options = self.options
        log.debug("Benchmark '%s' starting (budget %d ns)", label, options.time_ns)

        regression = Regression()
        total_iterations = 0
        spent = 0
        try:
            self._warmup(label, batch)
            watch = Stopwatch(self.clock)
            for iterations in GeometricSequence(options.min_iterations, options.growth_factor):
                if iterations > options.max_iterations:
                    log.debug("Benchmark '%s' hit the batch-size ceiling", label)
                    break
                elapsed = self._run_batch(label, batch, iterations)
                regression.fold(iterations, elapsed)
                total_iterations += iterations
                spent = watch.elapsed_ns()

                self.progress(
                    BenchProgress(
                        label=label,
                        sample=regression.count,
                        iterations=iterations,
                        elapsed_ns=elapsed,
                        spent_ns=spent,
                        budget_ns=options.time_ns,
                    )
                )

                if spent >= options.time_ns or regression.count >= options.max_samples:
                    break
        finally:
            # Results of a finished run must not outlive it.
            self.retainer.clear()

        analysis = regression.analyze()
        log.debug(
            "Benchmark '%s' finished: %.3f ns/iter, r2=%.6f, %d samples",
            label,
            analysis.slope,
            analysis.r2,
            analysis.samples,
        )
        return BenchResult(
            label=label,
            analysis=analysis,
            iterations=total_iterations,
            total_ns=spent,
        )

    @staticmethod
    def _run_batch(label: str, batch: BatchFn, iterations: int) -> int:
        """Run one batch, attributing any exception to the benchmark."""
        try:
            return batch(iterations)
        except Exception as exc:
            raise BenchmarkFailed(label, exc) from exc

    def _warmup(self, label: str, batch: BatchFn) -> None:
        """Run single-call batches untimed until the warm-up period ends."""
        if self.options.warmup_ns <= 0:
            return
        watch = Stopwatch(self.clock)
        while watch.elapsed_ns() < self.options.warmup_ns:
            self._run_batch(label, batch, 1)

    @staticmethod
    def _default_progress(progress: BenchProgress) -> None:
        """Default progress callback: log each batch to ``olsbench.progress``."""
        progress_log.debug(
            "%s #%d: %d iter in %d ns (%.0f%% of budget)",
            progress.label,
            progress.sample,
            progress.iterations,
            progress.elapsed_ns,
            100.0 * progress.spent_ns / progress.budget_ns if progress.budget_ns else 100.0,
        )


# ---------------------------------------------------------------------------
# Module-level entry points
# ---------------------------------------------------------------------------


def bench(options: Options, label: str, body: Callable[[], Any]) -> BenchResult:
    """Measure ``body()`` with *options*."""
    return Driver(options).bench(label, body)


def bench_setup(
    options: Options,
    label: str,
    setup: Callable[[], Any],
    body: Callable[[Any], Any],
    teardown: Callable[[Any], Any] | None = None,
) -> BenchResult:
    """Measure ``body(setup())`` excluding setup and teardown time."""
    return Driver(options).bench_setup(label, setup, body, teardown)


def bench_drop(
    options: Options,
    label: str,
    body: Callable[[], Any],
    teardown: Callable[[Any], Any] | None = None,
) -> BenchResult:
    """Measure ``body()`` excluding teardown of its results."""
    return Driver(options).bench_drop(label, body, teardown)


# ---------------------------------------------------------------------------
# Suites
# ---------------------------------------------------------------------------


@dataclass
class Benchmark:
    """A benchmark definition for :func:`run_suite`.

    With *setup* the body receives one setup value per call; with *drop*
    or *teardown* results are released outside the timed region.  Setup
    and teardown combine.
    """

    label: str
    body: Callable[..., Any]
    setup: Callable[[], Any] | None = None
    teardown: Callable[[Any], Any] | None = None
    drop: bool = False

    def run(self, driver: Driver) -> BenchResult:
        if self.setup is not None:
            return driver.bench_setup(self.label, self.setup, self.body, self.teardown)
        if self.drop or self.teardown is not None:
            return driver.bench_drop(self.label, self.body, self.teardown)
        return driver.bench(self.label, self.body)


@dataclass
class BenchFailure:
    """A benchmark that did not produce a result."""

    label: str
    error_type: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"label": self.label, "error_type": self.error_type, "message": self.message}


@dataclass
class SuiteResult:
    """Results of :func:`run_suite`, in definition order."""

    results: list[BenchResult] = field(default_factory=list)
    failures: list[BenchFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "failures": [f.to_dict() for f in self.failures],
        }


def run_suite(
    benchmarks: Iterable[Benchmark],
    options: Options | None = None,
    *,
    clock: Clock | None = None,
    progress: ProgressCallback | None = None,
) -> SuiteResult:
    """Run benchmarks in sequence, continuing past individual failures."""
    driver = Driver(options, clock=clock, progress=progress)
    suite = SuiteResult()
    for benchmark in benchmarks:
        try:
            result = benchmark.run(driver)
        except (BenchmarkError, ValueError, OverflowError) as exc:
            cause = exc.cause if isinstance(exc, BenchmarkFailed) else exc
            log.warning("Benchmark '%s' failed: %s", benchmark.label, exc)
            suite.failures.append(
                BenchFailure(
                    label=benchmark.label,
                    error_type=type(cause).__name__,
                    message=str(exc),
                )
            )
            continue
        log.info(
            "%s: %.1f ns/iter (r2=%.4f)",
            result.label,
            result.ns_per_iter,
            result.r2,
        )
        suite.results.append(result)
    return suite
