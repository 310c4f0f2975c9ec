"""Benchmark options.

:class:`Options` is an immutable value.  Every ``with_*`` method returns a
new instance, so one base configuration can be shared by any number of
benchmark runs (including runs on other threads).

Defaults:

- ``time_ns``: 5 s budget per benchmark.
- ``min_iterations``: first batch runs the body once.
- ``growth_factor``: 1.1 — roughly 200 batches per decade of batch size,
  which keeps many small batches for regression leverage while reaching
  large batches quickly for very fast bodies.
- ``max_iterations``: 10^9 calls per batch.
- ``max_samples``: 10 000 batches.
- ``warmup_ns``: no warm-up.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass
from typing import Any

from olsbench.timing import NS_PER_SECOND, seconds_to_ns

DEFAULT_TIME_NS = 5 * NS_PER_SECOND
DEFAULT_GROWTH_FACTOR = 1.1
DEFAULT_MAX_ITERATIONS = 1_000_000_000
DEFAULT_MAX_SAMPLES = 10_000


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Options:
    """Immutable configuration consumed by the sampling loop."""

    time_ns: int = DEFAULT_TIME_NS
    min_iterations: int = 1
    growth_factor: float = DEFAULT_GROWTH_FACTOR
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    max_samples: int = DEFAULT_MAX_SAMPLES
    warmup_ns: int = 0

    def __post_init__(self) -> None:
        fatal = [e for e in validate_options(self) if e.severity == "error"]
        if fatal:
            messages = [f"  {e.field}: {e.message}" for e in fatal]
            raise ValueError("Invalid benchmark options:\n" + "\n".join(messages))

    @property
    def time_s(self) -> float:
        """The time budget in seconds."""
        return self.time_ns / NS_PER_SECOND

    def with_time(self, seconds: float) -> Options:
        """Return a copy with a time budget of *seconds*."""
        return dataclasses.replace(self, time_ns=seconds_to_ns(seconds))

    def with_time_ns(self, ns: int) -> Options:
        """Return a copy with a time budget of *ns* nanoseconds."""
        return dataclasses.replace(self, time_ns=ns)

    def with_min_iterations(self, iterations: int) -> Options:
        """Return a copy whose first batch runs *iterations* calls."""
        return dataclasses.replace(self, min_iterations=iterations)

    def with_growth_factor(self, factor: float) -> Options:
        """Return a copy with a different geometric growth factor."""
        return dataclasses.replace(self, growth_factor=factor)

    def with_max_iterations(self, iterations: int) -> Options:
        """Return a copy with a different batch-size ceiling."""
        return dataclasses.replace(self, max_iterations=iterations)

    def with_max_samples(self, samples: int) -> Options:
        """Return a copy with a different sample-count ceiling."""
        return dataclasses.replace(self, max_samples=samples)

    def with_warmup(self, seconds: float) -> Options:
        """Return a copy that warms up for *seconds* before sampling."""
        return dataclasses.replace(self, warmup_ns=seconds_to_ns(seconds))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return dataclasses.asdict(self)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class ValidationError:
    """A single option validation error."""

    field: str
    message: str
    severity: str = "error"  # "error" or "warning"


def validate_options(options: Options) -> list[ValidationError]:
    """Validate option values.

    Returns a list of validation errors.  Empty list means valid.
    """
    errors: list[ValidationError] = []

    if options.time_ns < 0:
        errors.append(
            ValidationError(
                field="time_ns",
                message=f"Time budget cannot be negative (got {options.time_ns}).",
            )
        )
    elif options.time_ns == 0:
        errors.append(
            ValidationError(
                field="time_ns",
                message="Time budget is zero; at most one batch will run.",
                severity="warning",
            )
        )

    if options.min_iterations < 1:
        errors.append(
            ValidationError(
                field="min_iterations",
                message=f"First batch must run at least once (got {options.min_iterations}).",
            )
        )

    if not (math.isfinite(options.growth_factor) and options.growth_factor > 1):
        errors.append(
            ValidationError(
                field="growth_factor",
                message=(
                    f"Growth factor must be a finite number greater than 1 "
                    f"(got {options.growth_factor})."
                ),
            )
        )

    if options.max_iterations < options.min_iterations:
        errors.append(
            ValidationError(
                field="max_iterations",
                message=(
                    f"Batch-size ceiling {options.max_iterations} is below the "
                    f"first batch size {options.min_iterations}."
                ),
            )
        )

    if options.max_samples < 2:
        errors.append(
            ValidationError(
                field="max_samples",
                message=f"Need room for at least 2 samples (got {options.max_samples}).",
            )
        )

    if options.warmup_ns < 0:
        errors.append(
            ValidationError(
                field="warmup_ns",
                message=f"Warm-up cannot be negative (got {options.warmup_ns}).",
            )
        )

    return errors
