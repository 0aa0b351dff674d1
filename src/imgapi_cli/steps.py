"""Multi-step operations that roll back completed steps on failure."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Sequence

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Step:
    name: str
    action: Callable[[], Any]
    undo: Callable[[], Any] | None = None


def run_steps(steps: Sequence[Step]) -> list[Any]:
    """Run ``steps`` in order and return their results.

    When a step raises, the undo actions of the steps that already completed
    run in reverse order and the original error is re-raised. A failing undo
    is logged and does not stop the remaining undos.
    """
    completed: list[Step] = []
    results: list[Any] = []
    for step in steps:
        log.debug("step %s", step.name)
        try:
            results.append(step.action())
        except Exception:
            log.info("step %s failed, rolling back %d step(s)", step.name, len(completed))
            _rollback(completed)
            raise
        completed.append(step)
    return results


def _rollback(completed: Sequence[Step]) -> None:
    for step in reversed(completed):
        if step.undo is None:
            continue
        log.info("undo %s", step.name)
        try:
            step.undo()
        except Exception as exc:
            log.warning("undo of %s failed: %s", step.name, exc)
