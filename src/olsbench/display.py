"""Terminal display formatting for benchmark results.

Produces one-line summaries and aligned tables.  Presentation only:
nothing here feeds back into measurement.  No external dependencies.
"""

from __future__ import annotations

import math

from olsbench.runner import BenchResult, SuiteResult


def format_number(number: float, precision: int = 0, separator: str = ",") -> str:
    """Format *number* with thousands separators.

    >>> format_number(1234567.891, 2)
    '1,234,567.89'
    """
    if math.isnan(number):
        return "N/A"
    if math.isinf(number):
        return "inf" if number > 0 else "-inf"
    text = f"{number:,.{precision}f}"
    if separator != ",":
        text = text.replace(",", separator)
    return text


def format_r2(r2: float) -> str:
    """Format a goodness-of-fit score."""
    if math.isnan(r2):
        return "N/A"
    return f"{r2:.3f}"


def format_result(result: BenchResult, *, width: int = 0) -> str:
    """Format a single result as ``label  1,234 ns/iter (R² = 0.999)``."""
    label = result.label.ljust(width)
    return (
        f"{label}  {format_number(result.ns_per_iter)} ns/iter "
        f"(R² = {format_r2(result.r2)})"
    )


def format_table(
    headers: list[str],
    rows: list[list[str]],
    *,
    alignments: list[str] | None = None,
    indent: int = 2,
) -> str:
    """Format rows as an aligned text table.

    Columns marked ``'r'`` in *alignments* are right-aligned.
    """
    if not headers:
        return ""

    ncols = len(headers)
    aligns = list(alignments or [])
    aligns += ["l"] * (ncols - len(aligns))

    cells = [list(headers)] + [(list(row) + [""] * ncols)[:ncols] for row in rows]
    widths = [max(len(row[i]) for row in cells) for i in range(ncols)]

    prefix = " " * indent
    lines = []
    for row in cells:
        parts = [
            row[i].rjust(widths[i]) if aligns[i] == "r" else row[i].ljust(widths[i])
            for i in range(ncols)
        ]
        lines.append(prefix + "  ".join(parts).rstrip())
    return "\n".join(lines)


def format_suite(suite: SuiteResult) -> str:
    """Format a suite as a results table followed by any failures."""
    lines: list[str] = []

    if suite.results:
        rows = [
            [
                r.label,
                format_number(r.ns_per_iter),
                format_r2(r.r2),
                str(r.analysis.samples),
                format_number(r.iterations),
            ]
            for r in suite.results
        ]
        lines.append(
            format_table(
                ["Benchmark", "ns/iter", "R²", "Samples", "Iterations"],
                rows,
                alignments=["l", "r", "r", "r", "r"],
            )
        )

    if suite.failures:
        if lines:
            lines.append("")
        lines.append(f"Failed ({len(suite.failures)}):")
        for failure in suite.failures:
            lines.append(f"  \u2717 {failure.label}: {failure.message}")

    if not lines:
        return "No benchmarks were run."
    return "\n".join(lines)
