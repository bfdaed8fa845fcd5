"""
Sessions: named checkpoints inside the recorder.

A session isolates a sub-flow. Tasks added after ``start(name)`` are
queued in the session's own segment and executed by the session's own
driver while the task that opened it is suspended. A catch entry added
with ``catch(handler)`` only sees failures of that segment, so a failing
sub-flow can be handled and abandoned without failing the outer flow.

Sessions nest as a stack. ``restore(name)`` pops down to and including
the named session, splicing out whatever it had not executed yet, and
queueing continues in the parent. A failure no handler claimed by then
moves to the parent and keeps propagating there.

Example:
    ```python
    recorder.session.start("tryTo")
    I.see("Welcome")                       # queued inside the session
    recorder.session.catch(lambda err: False)
    ok = await recorder.promise()          # True/False, never raises
    recorder.session.restore("tryTo")
    ```
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pyrecorder.errors import SessionError
from pyrecorder.executor.task import Task, TaskKind

if TYPE_CHECKING:
    from pyrecorder.executor.recorder import Recorder

__all__ = ["Session", "SessionManager"]


@dataclass(eq=False)
class Session:
    """
    One level of the session stack.

    The root session (``name is None``) lives as long as the recorder
    is not reset.

    Attributes:
        name: Session name given to ``start`` (None for the root)
        checkpoint: Length of the recorder's task log when it started
        error_handler: Handler registered with ``catch``
        tasks: Unexecuted entries queued under this session
        error: Failure currently propagating through the segment
        last_result: Last value settled by an action or a catch handler
    """

    name: str | None
    checkpoint: int = 0
    error_handler: Callable[[BaseException], Any] | None = None
    tasks: deque[Task] = field(default_factory=deque)
    error: BaseException | None = None
    last_result: Any = None
    driver: asyncio.Task[None] | None = field(default=None, repr=False)
    closed: bool = False

    @property
    def is_root(self) -> bool:
        return self.name is None

    def close(self) -> list[Task]:
        """
        Mark the session finished and splice out its unexecuted tasks.

        Spliced tasks never run; their futures resolve with None.

        Returns:
            The spliced tasks
        """
        self.closed = True
        dropped = list(self.tasks)
        self.tasks.clear()
        for task in dropped:
            task.resolve(None)
        return dropped

    def __str__(self) -> str:
        return "<root>" if self.name is None else f"<{self.name}>"


class SessionManager:
    """Session operations of a recorder (``recorder.session``)."""

    def __init__(self, recorder: Recorder):
        self._recorder = recorder

    @property
    def running(self) -> bool:
        """True while at least one named session is open."""
        return len(self._recorder.sessions) > 1

    @property
    def current(self) -> str | None:
        """Name of the innermost session (None at the root)."""
        return self._recorder.current_session.name

    def start(self, name: str) -> Session:
        """
        Open a session; subsequent tasks are scoped to it.

        Raises:
            SessionError: If ``name`` is empty
        """
        if not name:
            raise SessionError("Session name is required")
        session = Session(name=name, checkpoint=len(self._recorder.log))
        self._recorder.push_session(session)
        return session

    def catch(self, handler: Callable[[BaseException], Any]) -> asyncio.Future[Any]:
        """
        Intercept failures of the innermost session.

        The handler's return value becomes the settled value of the
        session; the failure does not propagate further. Failures of
        tasks added after this call reach the same handler.
        """
        session = self._recorder.current_session
        session.error_handler = handler
        return self._recorder.enqueue(
            session,
            Task(
                name=f"session {session} catch",
                action=handler,
                kind=TaskKind.CATCH_WITHOUT_STOP,
                force=True,
            ),
        )

    def restore(self, name: str) -> None:
        """
        Close the named session and everything opened inside it.

        An unclaimed failure of the closed sessions fails the parent.
        """
        self._recorder.pop_session(name)
