# printhub/services/deferred.py
"""
Side effects that run after the caller's transaction has committed.

Used for work that must never affect the outcome of the operation that triggered it
(CRM aggregate update, customer notifications). Every task is isolated: a failure is
logged with its name and does not stop the remaining tasks.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from printhub.core.logging import get_logger

logger = get_logger(__name__)

DeferredFn = Callable[..., Awaitable[Any]]


async def run_isolated(name: str, fn: DeferredFn, *args: Any, **kwargs: Any) -> None:
    try:
        await fn(*args, **kwargs)
    except Exception:
        logger.warning("deferred_task_failed", task=name, exc_info=True)


class DeferredTasks:
    def __init__(self) -> None:
        self._tasks: list[tuple[str, DeferredFn, tuple[Any, ...], dict[str, Any]]] = []

    def add(self, name: str, fn: DeferredFn, *args: Any, **kwargs: Any) -> None:
        self._tasks.append((name, fn, args, kwargs))

    @property
    def names(self) -> list[str]:
        return [name for name, *_ in self._tasks]

    def __len__(self) -> int:
        return len(self._tasks)

    async def run_all(self) -> None:
        tasks, self._tasks = self._tasks, []
        for name, fn, args, kwargs in tasks:
            await run_isolated(name, fn, *args, **kwargs)


__all__ = ["DeferredTasks", "run_isolated"]
