"""Exception types raised by olsbench.

Every failure is local to a single benchmark run.  Callers running many
benchmarks catch :class:`BenchmarkError` and continue with the next one
(see :func:`olsbench.runner.run_suite`).
"""

from __future__ import annotations


class BenchmarkError(Exception):
    """Base class for failures of a single benchmark run."""


class InsufficientDataError(BenchmarkError):
    """The regression has no defined slope.

    Raised when fewer than two samples were folded, or when every sample
    has the same iteration count (the OLS denominator is zero).
    """

    def __init__(self, message: str, *, samples: int = 0) -> None:
        super().__init__(message)
        self.samples = samples


class BenchmarkFailed(BenchmarkError):
    """A benchmark body (or its setup/teardown) raised an exception."""

    def __init__(self, label: str, cause: BaseException) -> None:
        super().__init__(f"Benchmark '{label}' raised {type(cause).__name__}: {cause}")
        self.label = label
        self.cause = cause
