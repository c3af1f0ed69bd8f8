"""Observable progress source owned by an Embedder.

Listeners subscribe for change notifications and read the current state with
``get_snapshot()``. Every change produces a new snapshot object, so a listener
can compare snapshots by identity to detect updates.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping

Listener = Callable[[], None]


@dataclass(frozen=True)
class TaskProgress:
    """Progress of a single tracked task (an embedding run, a model download...)."""

    percent: float
    completed: int
    total: int


@dataclass(frozen=True)
class ProgressSnapshot:
    tasks: Mapping[str, TaskProgress]

    @property
    def done(self) -> bool:
        return all(t.completed >= t.total for t in self.tasks.values())


def _round(x: float, step: float) -> float:
    return round(round(x / step) * step, 6)


class ProgressPublisher:
    """Per-instance progress state with subscribe/get_snapshot semantics.

    Args:
        step: Percent granularity; listeners are only notified when a task's
            rounded percentage changes.
    """

    def __init__(self, step: float = 0.1) -> None:
        self._step = step
        self._tasks: dict[str, TaskProgress] = {}
        self._snapshot = ProgressSnapshot(tasks=MappingProxyType({}))
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a function that unsubscribes it."""
        self._listeners = [*self._listeners, listener]

        def _unsubscribe() -> None:
            self._listeners = [l for l in self._listeners if l is not listener]

        return _unsubscribe

    def get_snapshot(self) -> ProgressSnapshot:
        return self._snapshot

    def update(self, key: str, completed: int, total: int) -> None:
        """Record progress for task *key*; notify listeners on visible change."""
        percent = _round(100.0 * completed / total, self._step) if total > 0 else 100.0
        last = self._tasks.get(key)
        if last is not None and last.percent == percent:
            return

        self._tasks[key] = TaskProgress(percent=percent, completed=completed, total=total)
        self._notify()

    def reset(self) -> None:
        self._tasks.clear()
        self._notify()

    def _notify(self) -> None:
        self._snapshot = ProgressSnapshot(tasks=MappingProxyType(dict(self._tasks)))
        for listener in self._listeners:
            listener()
