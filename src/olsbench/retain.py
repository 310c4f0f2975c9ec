"""Work-retention barrier for benchmark bodies.

Every value produced by a benchmarked callable is passed through a
:class:`Retainer` so the work that produced it stays observable.  Two
backends are available:

- :class:`SinkRetainer` keeps a reference to the latest value in a slot.
  Portable and constant cost.
- :class:`ChecksumRetainer` also folds ``id(value)`` into a running XOR
  digest that callers can read back, so the identity of every retained
  value is an output of the run.

Only the backend *kind* is process-wide (see :func:`set_retainer` and
:func:`olsbench.config.retain_backend_from_env`).  Instances are never
shared: each :class:`~olsbench.runner.Driver` builds its own with
:func:`new_retainer`, and the module-level :func:`retain` uses one
instance per thread.
"""

from __future__ import annotations

import threading
from typing import Any, Protocol, TypeVar

T = TypeVar("T")


class Retainer(Protocol):
    """Anything with ``retain(value) -> value`` and ``clear()`` methods."""

    name: str

    def retain(self, value: T) -> T: ...

    def clear(self) -> None: ...


class SinkRetainer:
    """Store the most recent value so it remains reachable."""

    __slots__ = ("last",)

    name = "sink"

    def __init__(self) -> None:
        self.last: Any = None

    def retain(self, value: T) -> T:
        self.last = value
        return value

    def clear(self) -> None:
        """Drop the reference to the last value."""
        self.last = None


class ChecksumRetainer:
    """Store the value and fold its identity into :attr:`digest`.

    :meth:`clear` drops the stored value but keeps the digest.
    """

    __slots__ = ("digest", "last")

    name = "checksum"

    def __init__(self) -> None:
        self.last: Any = None
        self.digest = 0

    def retain(self, value: T) -> T:
        self.last = value
        self.digest ^= id(value)
        return value

    def clear(self) -> None:
        self.last = None


RETAINERS: dict[str, type[SinkRetainer] | type[ChecksumRetainer]] = {
    SinkRetainer.name: SinkRetainer,
    ChecksumRetainer.name: ChecksumRetainer,
}

DEFAULT_BACKEND = SinkRetainer.name

_backend = DEFAULT_BACKEND
_local = threading.local()


def resolve_backend(name: str) -> str:
    """Return the canonical backend name for *name*.

    Raises:
        ValueError: If the backend is unknown.
    """
    key = name.strip().lower()
    if key not in RETAINERS:
        raise ValueError(
            f"Unknown retention backend '{name}'. Valid backends: {', '.join(sorted(RETAINERS))}"
        )
    return key


def make_retainer(name: str) -> Retainer:
    """Instantiate a retention backend by name."""
    return RETAINERS[resolve_backend(name)]()


def default_backend() -> str:
    """Return the name of the process-wide default backend."""
    return _backend


def set_retainer(name: str) -> str:
    """Select the default backend kind and return the previous name.

    Drivers created afterwards get a fresh instance of this kind.

    Raises:
        ValueError: If the backend name is unknown.
    """
    global _backend
    previous = _backend
    _backend = resolve_backend(name)
    return previous


def new_retainer() -> Retainer:
    """Return a new, unshared instance of the default backend."""
    return make_retainer(_backend)


def get_retainer() -> Retainer:
    """Return the calling thread's instance used by :func:`retain`.

    The instance is replaced when the default backend changes.
    """
    current: Retainer | None = getattr(_local, "retainer", None)
    if current is None or current.name != _backend:
        current = _local.retainer = new_retainer()
    return current


def retain(value: T) -> T:
    """Pass *value* through this thread's retainer and return it unchanged."""
    return get_retainer().retain(value)


black_box = retain
