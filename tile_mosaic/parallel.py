"""Bounded thread pool that runs every unit to completion before reporting."""

from __future__ import annotations

import concurrent.futures
import logging
import os
from collections.abc import Callable, Sequence
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def default_workers(workers: int | None = None) -> int:
    """Requested pool size, or the available hardware parallelism."""
    if workers is not None and workers < 1:
        msg = f"workers must be >= 1, got {workers}"
        raise ValueError(msg)
    return workers or os.cpu_count() or 1


def run_all(
    fn: Callable[[T], R],
    units: Sequence[T],
    workers: int | None = None,
) -> list[R]:
    """Apply *fn* to every unit on a worker pool and wait for all of them.

    A failing unit does not cancel its siblings. Once every unit has
    finished, the first failure (in submission order) is re-raised and
    the rest are logged.

    Returns:
        Results in the same order as *units*.
    """
    if not units:
        return []
    workers = min(default_workers(workers), len(units))

    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(fn, unit) for unit in units]
        concurrent.futures.wait(futures)

    errors = [exc for f in futures if (exc := f.exception()) is not None]
    if errors:
        for exc in errors[1:]:
            logger.error("Worker failed: %s", exc)
        raise errors[0]
    return [f.result() for f in futures]
