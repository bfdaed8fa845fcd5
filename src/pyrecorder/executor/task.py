"""
Queue entries of the recorder.

A Task is one unit of work submitted to the recorder. Besides ordinary
actions, the queue holds catch entries (error handlers positioned in the
flow) and markers (``promise()`` handles that settle when the queue has
drained up to them).
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

__all__ = ["Task", "TaskKind", "invoke", "describe"]


class TaskKind(Enum):
    """What the driver does when it reaches an entry."""

    ACTION = "action"
    """Run the action; skipped while a failure propagates (unless forced)."""

    CATCH = "catch"
    """Handle a propagating failure, then stop the recorder."""

    CATCH_WITHOUT_STOP = "catch_without_stop"
    """Handle a propagating failure and keep going."""

    MARKER = "marker"
    """Settle with the last value, or reject with the pending failure."""

    def __str__(self) -> str:
        return self.value


@dataclass(eq=False)
class Task:
    """
    One entry of a session's queue.

    The ``future`` settles with the entry outcome: the action result, the
    catch handler result, or the failure that made the entry skip.
    """

    name: str
    action: Callable[..., Any] | None = None
    force: bool = False
    ignore_error: bool = False
    timeout_ms: float | None = None
    retry: bool = True
    kind: TaskKind = TaskKind.ACTION
    future: asyncio.Future[Any] = field(default=None, repr=False)  # type: ignore[assignment]
    index: int = -1
    """Position in the recorder's task log."""

    def __post_init__(self) -> None:
        if self.future is None:
            self.future = asyncio.get_running_loop().create_future()
            self.future.add_done_callback(_retrieve_exception)

    @property
    def is_handler(self) -> bool:
        return self.kind in (TaskKind.CATCH, TaskKind.CATCH_WITHOUT_STOP)

    def resolve(self, value: Any) -> None:
        if not self.future.done():
            self.future.set_result(value)

    def reject(self, error: BaseException) -> None:
        if not self.future.done():
            self.future.set_exception(error)

    def __str__(self) -> str:
        if self.kind is TaskKind.ACTION:
            return self.name
        return f"{self.kind}: {self.name}"


def _retrieve_exception(future: asyncio.Future[Any]) -> None:
    # futures of skipped tasks are rarely awaited; mark their failure as seen
    if not future.cancelled():
        future.exception()


async def invoke(action: Callable[..., Any], *args: Any) -> Any:
    """Call ``action`` and await its result when it is awaitable.

    A synchronous raise and a rejected awaitable surface the same way.
    """
    result = action(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def describe(action: Callable[..., Any] | None) -> str:
    """Readable name of a callable for the task log."""
    if action is None:
        return "error handler"
    name = getattr(action, "__qualname__", None) or getattr(action, "__name__", None)
    return name or repr(action)
