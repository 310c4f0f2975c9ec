"""Logger hierarchy and console setup for olsbench.

Library modules log through children of the ``olsbench`` logger obtained
with :func:`get_logger` (``olsbench.runner``, ``olsbench.config``, ...).
Per-batch progress goes to ``olsbench.progress`` at DEBUG, so it reaches
the console only with ``--verbose`` but always lands in ``--log-file``.

Library code never attaches handlers; the CLI calls :func:`setup_logging`.
"""

from __future__ import annotations

import logging
from pathlib import Path

ROOT_LOGGER = "olsbench"
PROGRESS_LOGGER = f"{ROOT_LOGGER}.progress"

_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_CONSOLE_FORMAT = "%(levelname)-8s %(message)s"
# Batch lines are nested under the benchmark they belong to.
_PROGRESS_FORMAT = "  . %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return the ``olsbench.<name>`` logger.

    Names already under ``olsbench`` are used as they are.
    """
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


class ConsoleFormatter(logging.Formatter):
    """Level-prefixed lines, except batch progress which is indented bare."""

    def __init__(self) -> None:
        super().__init__(_CONSOLE_FORMAT)
        self._progress = logging.Formatter(_PROGRESS_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        if record.name == PROGRESS_LOGGER:
            return self._progress.format(record)
        return super().format(record)


def setup_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure and return the ``olsbench`` logger.

    Calling it again replaces (and closes) the handlers from the last call.

    Args:
        verbose: Show DEBUG records, including every batch, on the console.
        quiet: Only warnings and errors reach the console.  Ignored if
            *verbose* is True.
        log_file: If provided, also log everything to this path.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()

    console = logging.StreamHandler()
    if verbose:
        console.setLevel(logging.DEBUG)
    elif quiet:
        console.setLevel(logging.WARNING)
    else:
        console.setLevel(logging.INFO)
    console.setFormatter(ConsoleFormatter())
    logger.addHandler(console)

    if log_file is not None:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(fh)

    return logger
