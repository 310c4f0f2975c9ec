"""Benchmark profile loading and option resolution.

Handles:
- Loading benchmark profiles from YAML files.
- Merging CLI options with profile defaults into an :class:`Options`.
- Resolving ``module:callable`` targets to benchmark definitions.
- Selecting the retention backend from the environment.
"""

from __future__ import annotations

import importlib
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

from olsbench.logging import get_logger
from olsbench.options import Options
from olsbench.retain import resolve_backend
from olsbench.runner import Benchmark
from olsbench.timing import seconds_to_ns

log = get_logger("config")

RETAIN_ENV_VAR = "OLSBENCH_RETAIN"

# Profile keys that map onto Options, with their converters.
_OPTION_KEYS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "time": ("time_ns", lambda v: seconds_to_ns(float(v))),
    "min_iterations": ("min_iterations", int),
    "growth_factor": ("growth_factor", float),
    "max_iterations": ("max_iterations", int),
    "max_samples": ("max_samples", int),
    "warmup": ("warmup_ns", lambda v: seconds_to_ns(float(v))),
}


# ---------------------------------------------------------------------------
# BenchmarkSpec
# ---------------------------------------------------------------------------


@dataclass
class BenchmarkSpec:
    """An unresolved benchmark from a profile or the command line."""

    target: str
    label: str = ""
    setup: str | None = None
    teardown: str | None = None
    drop: bool = False

    def __post_init__(self) -> None:
        if not self.label:
            self.label = self.target

    def resolve(self) -> Benchmark:
        """Import the referenced callables."""
        return Benchmark(
            label=self.label,
            body=resolve_callable(self.target),
            setup=resolve_callable(self.setup) if self.setup else None,
            teardown=resolve_callable(self.teardown) if self.teardown else None,
            drop=self.drop,
        )


def resolve_callable(target: str) -> Callable[..., Any]:
    """Import ``"package.module:attr.path"`` and return the callable.

    Raises:
        ValueError: If the target is malformed, cannot be imported, or is
            not callable.
    """
    if ":" not in target:
        raise ValueError(f"Invalid target '{target}'. Expected format: 'module:callable'")
    module_name, attr_path = target.split(":", 1)
    module_name = module_name.strip()
    attr_path = attr_path.strip()
    if not module_name or not attr_path:
        raise ValueError(f"Invalid target '{target}'. Expected format: 'module:callable'")

    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as exc:
        raise ValueError(f"Cannot import module '{module_name}': {exc}") from exc

    for part in attr_path.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError:
            raise ValueError(f"'{module_name}' has no attribute '{attr_path}'") from None

    if not callable(obj):
        raise ValueError(f"Target '{target}' is not callable ({type(obj).__name__}).")
    return obj  # type: ignore[no-any-return]


# ---------------------------------------------------------------------------
# YAML profile loading
# ---------------------------------------------------------------------------


def load_profile(profile_path: Path) -> dict[str, Any]:
    """Load a benchmark profile from a YAML file.

    Profile format::

        name: "string building"
        time: 2.5            # seconds per benchmark
        growth_factor: 1.1
        warmup: 0.1
        benchmarks:
          - target: "mypkg.benches:join_strings"
          - target: "mypkg.benches:parse"
            label: "parse 1 KiB"
            setup: "mypkg.benches:make_payload"

    Returns:
        The parsed YAML as a dict.
    """
    if not profile_path.exists():
        raise FileNotFoundError(f"Profile not found: {profile_path}")

    text = profile_path.read_text()
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in profile {profile_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Profile must be a YAML mapping, got {type(data).__name__}")

    return data


def options_from_profile(
    profile_data: Mapping[str, Any],
    *,
    cli_overrides: Mapping[str, Any] | None = None,
    base: Options | None = None,
) -> Options:
    """Build Options from a parsed profile.

    CLI overrides take precedence over profile values.  Keys use the
    profile spelling (``time``, ``warmup`` in seconds; the rest as in
    :class:`Options`).  ``None`` values are ignored.

    Raises:
        ValueError: If a value cannot be converted or the resulting
            options are invalid.
    """
    cli = cli_overrides or {}
    updates: dict[str, Any] = {}
    for key, (field_name, convert) in _OPTION_KEYS.items():
        value = cli.get(key)
        if value is None:
            value = profile_data.get(key)
        if value is None:
            continue
        try:
            updates[field_name] = convert(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid value for '{key}': {value!r}") from exc

    unknown = set(profile_data) - set(_OPTION_KEYS) - {"name", "description", "benchmarks"}
    for key in sorted(unknown):
        log.warning("Ignoring unknown profile key '%s'", key)

    base = base or Options()
    return Options(**{**base.to_dict(), **updates})


def benchmarks_from_profile(profile_data: Mapping[str, Any]) -> list[BenchmarkSpec]:
    """Parse the ``benchmarks`` list of a profile.

    Each entry is either a ``module:callable`` string or a mapping with
    ``target`` and optional ``label``, ``setup``, ``teardown``, ``drop``.
    """
    entries = profile_data.get("benchmarks") or []
    if not isinstance(entries, list):
        raise ValueError("Profile 'benchmarks' must be a list")

    specs: list[BenchmarkSpec] = []
    for i, entry in enumerate(entries):
        if isinstance(entry, str):
            specs.append(BenchmarkSpec(target=entry))
            continue
        if not isinstance(entry, dict):
            raise ValueError(
                f"Benchmark #{i + 1} must be a string or mapping, got {type(entry).__name__}"
            )
        target = entry.get("target")
        if not target:
            raise ValueError(f"Benchmark #{i + 1} has no 'target'")
        specs.append(
            BenchmarkSpec(
                target=str(target),
                label=str(entry.get("label") or ""),
                setup=entry.get("setup"),
                teardown=entry.get("teardown"),
                drop=bool(entry.get("drop", False)),
            )
        )
    return specs


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


def retain_backend_from_env(environ: Mapping[str, str] | None = None) -> str | None:
    """Return the retention backend named by ``OLSBENCH_RETAIN``.

    Returns None when the variable is unset or empty.

    Raises:
        ValueError: If the name is not a known backend.
    """
    env = os.environ if environ is None else environ
    name = env.get(RETAIN_ENV_VAR, "").strip()
    if not name:
        return None
    return resolve_backend(name)
