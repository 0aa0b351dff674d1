"""Concurrent fan-out of one action over several targets."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Sequence, TypeVar

from imgapi_cli.errors import MultiError, classify_error

log = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

MAX_WORKERS = 8


def run_batch(
    func: Callable[[T], R],
    targets: Sequence[T],
    *,
    max_workers: int = MAX_WORKERS,
    on_result: Callable[[T, R], None] | None = None,
) -> list[R]:
    """Call ``func`` for every target concurrently and collect the results.

    Results come back in target order. If exactly one call fails its error is
    raised as-is; two or more failures are raised together as a
    ``MultiError`` in target order. ``on_result`` sees every successful
    target in order before any error is raised.
    """
    if not targets:
        return []
    workers = max(1, min(max_workers, len(targets)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(func, target) for target in targets]

    results: list[R] = []
    errors = []
    for target, future in zip(targets, futures):
        exc = future.exception()
        if exc is not None:
            log.debug("batch target %s failed: %s", target, exc)
            errors.append(classify_error(exc))
            continue
        result = future.result()
        if on_result is not None:
            on_result(target, result)
        results.append(result)

    if len(errors) == 1:
        raise errors[0]
    if errors:
        raise MultiError(errors)
    return results
