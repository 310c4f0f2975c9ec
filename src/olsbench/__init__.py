"""olsbench — micro-benchmarking by linear regression.

Times a callable in batches of geometrically increasing size and fits
``elapsed = intercept + slope * iterations`` by ordinary least squares.
The slope is the per-call estimate in nanoseconds and R² measures how
well the batches agree.

Usage::

    from olsbench import Options, bench

    result = bench(Options().with_time(1), "sorted", lambda: sorted(data))
    print(result.ns_per_iter, result.r2)
"""

__version__ = "0.1.0"

from olsbench.errors import BenchmarkError, BenchmarkFailed, InsufficientDataError
from olsbench.options import Options
from olsbench.retain import black_box, retain
from olsbench.runner import (
    Benchmark,
    BenchResult,
    Driver,
    SuiteResult,
    bench,
    bench_drop,
    bench_setup,
    run_suite,
)
from olsbench.stats import Analysis, Regression

__all__ = [
    "Analysis",
    "BenchResult",
    "Benchmark",
    "BenchmarkError",
    "BenchmarkFailed",
    "Driver",
    "InsufficientDataError",
    "Options",
    "Regression",
    "SuiteResult",
    "bench",
    "bench_drop",
    "bench_setup",
    "black_box",
    "retain",
    "run_suite",
]
