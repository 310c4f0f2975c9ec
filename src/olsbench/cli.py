"""Command-line interface for olsbench.

Subcommands:
    olsbench run     Benchmark one or more ``module:callable`` targets
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from olsbench import __version__
from olsbench.config import (
    BenchmarkSpec,
    benchmarks_from_profile,
    load_profile,
    options_from_profile,
    retain_backend_from_env,
)
from olsbench.display import format_suite
from olsbench.logging import get_logger, setup_logging
from olsbench.retain import RETAINERS, set_retainer
from olsbench.runner import run_suite
from olsbench.timing import format_seconds

log = get_logger("cli")


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """olsbench — estimate per-call execution time by linear regression."""


@main.command()
@click.argument("targets", nargs=-1)
@click.option(
    "--profile",
    "profile_path",
    type=click.Path(exists=True, path_type=Path),
    help="YAML profile with options and a benchmarks list.",
)
@click.option(
    "--time",
    "time_s",
    type=float,
    default=None,
    help="Time budget per benchmark in seconds (default: 5).",
)
@click.option(
    "--min-iterations",
    type=int,
    default=None,
    help="Size of the first batch (default: 1).",
)
@click.option(
    "--growth-factor",
    type=float,
    default=None,
    help="Batch-size growth factor (default: 1.1).",
)
@click.option("--max-iterations", type=int, default=None, help="Batch-size ceiling.")
@click.option("--max-samples", type=int, default=None, help="Sample-count ceiling.")
@click.option("--warmup", "warmup_s", type=float, default=None, help="Untimed warm-up in seconds.")
@click.option(
    "--retain",
    "retain_backend",
    type=click.Choice(sorted(RETAINERS)),
    default=None,
    help="Result retention backend (default: $OLSBENCH_RETAIN or 'sink').",
)
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON.")
@click.option("-v", "--verbose", is_flag=True, help="Log every batch.")
@click.option("-q", "--quiet", is_flag=True, help="Only show warnings and errors.")
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    default=None,
    help="Also write a DEBUG log to this file.",
)
def run(
    targets: tuple[str, ...],
    profile_path: Path | None,
    time_s: float | None,
    min_iterations: int | None,
    growth_factor: float | None,
    max_iterations: int | None,
    max_samples: int | None,
    warmup_s: float | None,
    retain_backend: str | None,
    as_json: bool,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Benchmark TARGETS given as 'module:callable'.

    Each callable is invoked with no arguments.  Benchmarks listed in
    --profile run after the TARGETS.
    """
    setup_logging(verbose=verbose, quiet=quiet or as_json, log_file=log_file)

    # Let targets in the current directory be imported, as `python -m timeit` does.
    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    try:
        profile_data = load_profile(profile_path) if profile_path else {}
        options = options_from_profile(
            profile_data,
            cli_overrides={
                "time": time_s,
                "min_iterations": min_iterations,
                "growth_factor": growth_factor,
                "max_iterations": max_iterations,
                "max_samples": max_samples,
                "warmup": warmup_s,
            },
        )
        specs = [BenchmarkSpec(target=t) for t in targets]
        specs += benchmarks_from_profile(profile_data)
        backend = retain_backend or retain_backend_from_env()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc

    if not specs:
        raise click.UsageError("No benchmarks given. Pass TARGETS or --profile.")

    benchmarks = []
    for spec in specs:
        try:
            benchmarks.append(spec.resolve())
        except ValueError as exc:
            raise click.UsageError(f"{spec.label}: {exc}") from exc

    previous = set_retainer(backend) if backend is not None else None
    try:
        log.info(
            "Running %d benchmark(s), %s budget each",
            len(benchmarks),
            format_seconds(options.time_ns),
        )
        suite = run_suite(benchmarks, options)
    finally:
        if previous is not None:
            set_retainer(previous)

    if as_json:
        payload = {"options": options.to_dict(), **suite.to_dict()}
        if profile_data.get("name"):
            payload["name"] = profile_data["name"]
        click.echo(json.dumps(payload, indent=2))
    else:
        click.echo(format_suite(suite))

    if not suite.ok:
        sys.exit(1)
