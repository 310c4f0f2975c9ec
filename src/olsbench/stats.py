"""Numerical core: compensated summation and streaming OLS regression.

Provides Kahan summation, a streaming ordinary-least-squares accumulator
that fits ``elapsed_ns ≈ intercept + slope * iterations`` without storing
samples, and the geometric sequence that drives batch sizes.  Pure Python
with no external dependencies.

The accumulator keeps the running sums Σx, Σy, Σx², Σxy and Σy² of the
samples shifted by the first sample seen.  The shift leaves the slope and
R² unchanged algebraically and keeps the second moments small, so the
``n·Σx² − (Σx)²`` style differences do not cancel catastrophically when
iteration counts grow large.

References:
    Kahan, W. (1965). "Further remarks on reducing truncation errors."
        Communications of the ACM 8(1): 40.
    Chan, T. F., Golub, G. H. & LeVeque, R. J. (1983). "Algorithms for
        computing the sample variance: analysis and recommendations."
        The American Statistician 37(3): 242-247.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Iterator

from olsbench.errors import InsufficientDataError


# ---------------------------------------------------------------------------
# Compensated summation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KahanSum:
    """Running sum with a Kahan compensation term.

    Instances are immutable; :meth:`fold` returns the next state.
    """

    total: float = 0.0
    compensation: float = 0.0
    count: int = 0

    def fold(self, value: float) -> KahanSum:
        """Return the state after adding *value*."""
        y = value - self.compensation
        t = self.total + y
        return KahanSum(t, (t - self.total) - y, self.count + 1)

    @property
    def mean(self) -> float:
        """Mean of the folded values, NaN when nothing was folded."""
        if self.count == 0:
            return float("nan")
        return self.total / self.count


def kahan_sum(values: Iterable[float]) -> float:
    """Sum *values* using Kahan compensated summation."""
    state = KahanSum()
    for value in values:
        state = state.fold(value)
    return state.total


def kahan_mean(values: Iterable[float]) -> float:
    """Mean of *values* using compensated summation (NaN if empty)."""
    state = KahanSum()
    for value in values:
        state = state.fold(value)
    return state.mean


# ---------------------------------------------------------------------------
# Regression result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Analysis:
    """Result of fitting ``elapsed_ns = intercept + slope * iterations``."""

    intercept: float  # ns of fixed per-batch overhead
    slope: float  # ns per iteration
    r2: float  # coefficient of determination, reported as computed
    samples: int

    @property
    def ns_per_iter(self) -> float:
        """The per-call estimate (alias of :attr:`slope`)."""
        return self.slope

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "ns_per_iter": round(self.slope, 3),
            "intercept_ns": round(self.intercept, 3),
            "r2": round(self.r2, 6),
            "samples": self.samples,
        }


# ---------------------------------------------------------------------------
# Streaming OLS accumulator
# ---------------------------------------------------------------------------


class Regression:
    """Streaming ordinary-least-squares accumulator.

    Folds ``(iterations, elapsed_ns)`` samples in O(1) time and memory and
    derives the fit on demand with :meth:`analyze`.  Samples themselves
    are never retained.

    Usage::

        reg = Regression()
        for n, ns in samples:
            reg.fold(n, ns)
        analysis = reg.analyze()
    """

    def __init__(self) -> None:
        self._shift_x: float | None = None
        self._shift_y = 0.0
        self._sx = KahanSum()
        self._sy = KahanSum()
        self._sxx = KahanSum()
        self._sxy = KahanSum()
        self._syy = KahanSum()

    @property
    def count(self) -> int:
        """Number of samples folded so far."""
        return self._sx.count

    def fold(self, iterations: int, elapsed_ns: float) -> None:
        """Add one sample to the running sums.

        Raises:
            ValueError: If *iterations* is not positive or *elapsed_ns*
                is negative or not finite.
            OverflowError: If the running sums leave the float range.
        """
        if iterations <= 0:
            raise ValueError(f"Iteration count must be positive (got {iterations}).")
        y = float(elapsed_ns)
        if not math.isfinite(y) or y < 0:
            raise ValueError(f"Elapsed time must be finite and non-negative (got {elapsed_ns}).")
        x = float(iterations)
        if not math.isfinite(x):
            raise OverflowError(f"Iteration count {iterations} is not representable as a float.")

        if self._shift_x is None:
            self._shift_x = x
            self._shift_y = y
        dx = x - self._shift_x
        dy = y - self._shift_y

        self._sx = self._sx.fold(dx)
        self._sy = self._sy.fold(dy)
        self._sxx = self._sxx.fold(dx * dx)
        self._sxy = self._sxy.fold(dx * dy)
        self._syy = self._syy.fold(dy * dy)

        if not all(
            math.isfinite(s.total) for s in (self._sx, self._sy, self._sxx, self._sxy, self._syy)
        ):
            raise OverflowError("Regression sums overflowed the float range.")

    def analyze(self) -> Analysis:
        """Fit the accumulated samples.

        Raises:
            InsufficientDataError: If fewer than two samples were folded
                or all samples share one iteration count.
        """
        n = self.count
        if n < 2:
            raise InsufficientDataError(
                f"Need at least 2 samples to fit a line (got {n}).", samples=n
            )

        sx = self._sx.total
        sy = self._sy.total
        denominator = n * self._sxx.total - sx * sx
        if denominator <= 0:
            raise InsufficientDataError(
                "All samples have the same iteration count; slope is undefined.",
                samples=n,
            )

        slope = (n * self._sxy.total - sx * sy) / denominator

        mean_dx = sx / n
        mean_dy = sy / n
        assert self._shift_x is not None
        intercept = (self._shift_y + mean_dy) - slope * (self._shift_x + mean_dx)

        # Centered second moments, all derived from the running sums.
        ss_tot = self._syy.total - n * mean_dy * mean_dy
        s_xy = self._sxy.total - n * mean_dx * mean_dy
        ss_res = ss_tot - slope * s_xy
        if ss_tot == 0:
            r2 = 1.0 if ss_res == 0 else float("nan")
        else:
            r2 = 1.0 - ss_res / ss_tot

        return Analysis(intercept=intercept, slope=slope, r2=r2, samples=n)


def regression(data: Iterable[tuple[float, float]]) -> Analysis:
    """Fit ``(iterations, elapsed_ns)`` pairs in one call."""
    reg = Regression()
    for x, y in data:
        reg.fold(x, y)  # type: ignore[arg-type]
    return reg.analyze()


# ---------------------------------------------------------------------------
# Batch sizes
# ---------------------------------------------------------------------------


class GeometricSequence:
    """Strictly increasing integers from a geometric progression.

    The float state is multiplied by *factor* until its integer part
    changes, so consecutive values never repeat even when ``factor`` is
    close to 1 and the values are small.

    >>> list(itertools.islice(GeometricSequence(1, 1.5), 6))
    [1, 2, 3, 5, 7, 11]
    """

    def __init__(self, start: int, factor: float) -> None:
        if start < 1:
            raise ValueError(f"Sequence start must be at least 1 (got {start}).")
        if not factor > 1:
            raise ValueError(f"Growth factor must be greater than 1 (got {factor}).")
        self._current = float(start)
        self._factor = factor

    def __iter__(self) -> Iterator[int]:
        return self

    def __next__(self) -> int:
        value = int(self._current)
        while int(self._current) == value:
            self._current *= self._factor
            if not math.isfinite(self._current):
                raise OverflowError("Geometric sequence exceeded the float range.")
        return value
