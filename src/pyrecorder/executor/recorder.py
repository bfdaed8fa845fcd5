"""
Recorder: the serialized task queue every step goes through.

Test code never runs actions directly. Each action is added to the
recorder as a task, and the recorder executes tasks strictly in the order
they were added, one at a time, awaiting asynchronous actions before
moving on. Tasks added while another task runs (for example from inside
a helper) are appended to the tail, so the execution order always equals
the enqueue order.

Failure model:
    When a task fails, the failure travels down the queue. Ordinary tasks
    are skipped (their futures reject with the failure) until a catch
    entry handles it. ``force`` tasks still run, which is how cleanup is
    injected. Retry frames on ``recorder.retries`` replay the failed task
    before any catch entry sees the failure.

Design: Work Queue + Driver
    Each session owns a deque of entries and a driver coroutine that pops
    and awaits them. Sessions are explicit checkpoints on a stack rather
    than closures captured over a chain of callbacks.

Usage:
    ```python
    recorder = Recorder()
    recorder.start()
    recorder.add("open page", browser.open, timeout_ms=5000)
    recorder.add("log in", login)
    recorder.catch_without_stop(lambda err: report(err))
    await recorder.promise()
    ```
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pyrecorder.core.retry import RetryOptions
from pyrecorder.core.timeout import TaskTimeoutError
from pyrecorder.executor.session import Session, SessionManager
from pyrecorder.executor.task import Task, TaskKind, _retrieve_exception, describe, invoke

if TYPE_CHECKING:
    from pyrecorder.context import Store

logger = logging.getLogger(__name__)

__all__ = ["Recorder"]


class Recorder:
    """
    Ordered, mutable queue of asynchronous tasks.

    Owns the session stack and the retry counter of one run. Not shared
    between runs: every SchedulerContext creates its own recorder.
    """

    def __init__(self, store: Store | None = None):
        """
        Initialize an idle recorder.

        Args:
            store: Run flags; ``store.auto_retries`` gates retry frames
                marked ``auto``
        """
        self._store = store
        self._running = False
        self._err_handler: Callable[[BaseException], Any] | None = None
        self._sessions: list[Session] = [Session(name=None)]
        self._log: list[str] = []
        self.retries: list[RetryOptions] = []
        self.queue_id = 0
        self.session = SessionManager(self)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start (or resume) executing queued tasks."""
        self._running = True
        logger.debug(f"{self._prefix()}Starting recording promises")
        for session in self._sessions:
            self._wake(session)

    def stop(self) -> None:
        """Suspend execution. Queued tasks wait; forced tasks still run."""
        if self._running:
            logger.debug(f"{self._prefix()}Stopping recording promises")
        self._running = False

    def is_running(self) -> bool:
        return self._running

    def start_unless_running(self) -> None:
        if not self._running:
            self.start()

    def reset(self) -> None:
        """Drop all queued tasks, sessions and retry frames."""
        for session in reversed(self._sessions):
            session.close()
        self.queue_id += 1
        self._sessions = [Session(name=None)]
        self._log = []
        self.retries = []
        logger.debug(f"{self._prefix()}Queue reset")

    def err_handler(self, handler: Callable[[BaseException], Any] | None) -> None:
        """Default handler used by ``catch()`` without arguments."""
        self._err_handler = handler

    # =========================================================================
    # Queueing
    # =========================================================================

    def add(
        self,
        name: str | Callable[..., Any],
        action: Callable[..., Any] | None = None,
        force: bool = False,
        ignore_error: bool = False,
        timeout_ms: float | None = None,
        *,
        retry: bool | None = None,
    ) -> asyncio.Future[Any]:
        """
        Append a task to the innermost session.

        Args:
            name: Task name, or the action itself (the name is then derived
                from it and retry frames do not apply)
            action: Callable returning a value or an awaitable
            force: Run even while stopped or while a failure propagates
            ignore_error: Log and swallow this task's own failure
            timeout_ms: Deadline in milliseconds; None or 0 for no deadline
            retry: Whether retry frames may replay this task

        Returns:
            Future settling with the task outcome. While the recorder is
            stopped, non-forced tasks are dropped and an already resolved
            future (None) is returned.

        Raises:
            TypeError: If no action is given
        """
        if callable(name) and action is None:
            action = name
            name = describe(action)
            if retry is None:
                retry = False
        if action is None:
            raise TypeError(f"Task {name!r} has no action")
        if retry is None:
            retry = True

        if not self._running and not force:
            logger.debug(f"{self._prefix()}Queue is stopped, skipping | {name}")
            future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
            future.set_result(None)
            return future

        task = Task(
            name=str(name),
            action=action,
            force=force,
            ignore_error=ignore_error,
            timeout_ms=timeout_ms,
            retry=retry,
        )
        return self.enqueue(self.current_session, task)

    def throw(self, error: BaseException) -> asyncio.Future[Any]:
        """Turn ``error`` into a queue-visible failure at the current position."""

        def raise_error() -> None:
            raise error

        return self.add(f"throw error: {error}", raise_error, retry=False)

    def catch(self, handler: Callable[[BaseException], Any] | None = None) -> asyncio.Future[Any]:
        """
        Handle the failure reaching this point, then stop the recorder.

        Without ``handler`` the default from ``err_handler`` is used; with
        neither, the failure is swallowed.
        """
        return self.enqueue(
            self.current_session,
            Task(name=describe(handler), action=handler, kind=TaskKind.CATCH, force=True),
        )

    def catch_without_stop(self, handler: Callable[[BaseException], Any]) -> asyncio.Future[Any]:
        """Handle the failure reaching this point and keep the recorder running.

        A handler that raises keeps the (new) failure propagating.
        """
        return self.enqueue(
            self.current_session,
            Task(
                name=describe(handler),
                action=handler,
                kind=TaskKind.CATCH_WITHOUT_STOP,
                force=True,
            ),
        )

    def promise(self) -> asyncio.Future[Any]:
        """
        Handle on "the innermost session has drained to this point".

        Resolves with the last settled value, or rejects with the failure
        that is propagating at that point.
        """
        return self.enqueue(
            self.current_session,
            Task(name="promise", kind=TaskKind.MARKER, force=True),
        )

    def retry(self, opts: Any = None) -> asyncio.Future[Any]:
        """Queue the push of a retry frame (int budget, dict or RetryOptions)."""
        frame = RetryOptions.coerce(opts)
        return self.add(f"retry {frame.retries}", lambda: self.retries.append(frame), retry=False)

    def enqueue(self, session: Session, task: Task) -> asyncio.Future[Any]:
        task.index = len(self._log)
        session.tasks.append(task)
        self._log.append(str(task))
        logger.debug(f"{self._prefix()}Queued | {task}")
        self._wake(session)
        return task.future

    # =========================================================================
    # Sessions
    # =========================================================================

    @property
    def sessions(self) -> list[Session]:
        return list(self._sessions)

    @property
    def current_session(self) -> Session:
        return self._sessions[-1]

    @property
    def log(self) -> list[str]:
        return list(self._log)

    def push_session(self, session: Session) -> None:
        self._sessions.append(session)
        self._log.append("--->")
        logger.debug(f"{self._prefix()}Starting {session} session")

    def pop_session(self, name: str) -> None:
        for depth in range(len(self._sessions) - 1, 0, -1):
            if self._sessions[depth].name == name:
                break
        else:
            logger.warning(f"{self._prefix()}Session <{name}> is not active, nothing to restore")
            return

        popped = self._sessions[depth:]
        del self._sessions[depth:]
        unclaimed: BaseException | None = None
        for session in reversed(popped):
            dropped = session.close()
            if dropped:
                logger.debug(
                    f"{self._prefix()}Dropped {len(dropped)} unexecuted task(s) of {session}"
                )
            unclaimed = self._settle_on_restore(session, session.error or unclaimed)

        self._log.append("<---")
        logger.debug(f"{self._prefix()}Finalize <{name}> session")

        parent = self.current_session
        if unclaimed is None or parent.error is not None:
            return
        if not any(task.is_handler for task in parent.tasks):
            unclaimed = self._settle_on_restore(parent, unclaimed)
        if unclaimed is not None:
            logger.debug(f"{self._prefix()}Unhandled error of <{name}> | {unclaimed!r}")
            parent.error = unclaimed

    def _settle_on_restore(
        self, session: Session, error: BaseException | None
    ) -> BaseException | None:
        """Give a restored session's failure to its handler; return it if unclaimed."""
        handler = session.error_handler
        if error is None or handler is None:
            return error
        try:
            value = handler(error)
        except Exception as e:
            session.error_handler = None
            return e
        if inspect.isawaitable(value):
            future = asyncio.ensure_future(value)
            future.add_done_callback(_retrieve_exception)
        session.error = None
        return None

    # =========================================================================
    # Execution
    # =========================================================================

    def _wake(self, session: Session) -> None:
        if session.closed:
            return
        if session.driver is None or session.driver.done():
            session.driver = asyncio.get_running_loop().create_task(
                self._drive(session), name=f"recorder-{self.queue_id}-{session}"
            )

    async def _drive(self, session: Session) -> None:
        while session.tasks and not session.closed:
            task = session.tasks[0]
            if not self._running and not task.force:
                logger.debug(
                    f"{self._prefix()}Queue is stopped, holding {len(session.tasks)} task(s)"
                )
                return
            session.tasks.popleft()
            match task.kind:
                case TaskKind.MARKER:
                    if session.error is not None:
                        task.reject(session.error)
                    else:
                        task.resolve(session.last_result)
                case TaskKind.CATCH | TaskKind.CATCH_WITHOUT_STOP:
                    await self._handle(session, task)
                case TaskKind.ACTION:
                    await self._run_action(session, task)

    async def _run_action(self, session: Session, task: Task) -> None:
        if session.error is not None and not task.force:
            logger.debug(f"{self._prefix()}Skipped | {task.name}")
            task.reject(session.error)
            return

        logger.debug(f"{self._prefix()}Running | {task.name}")
        try:
            result = await self._invoke(task)
        except asyncio.CancelledError:
            task.future.cancel()
            raise
        except Exception as e:
            if task.ignore_error:
                logger.debug(f"{self._prefix()}Ignored error | {task.name}: {e}")
                task.resolve(None)
                return
            logger.debug(f"{self._prefix()}Error | {task.name}: {e!r}")
            if session.error is None:
                session.error = e
            task.reject(e)
            await self._claim(session)
            return

        if session.error is None:
            session.last_result = result
        task.resolve(result)

    async def _handle(self, session: Session, task: Task) -> None:
        if session.error is None:
            task.resolve(session.last_result)
            return

        error = session.error
        handler = task.action
        if handler is None and task.kind is TaskKind.CATCH:
            handler = self._err_handler
        terminated = "" if task.kind is TaskKind.CATCH else " (Non-Terminated)"
        logger.debug(f"{self._prefix()}Error{terminated} | {error} | {task.name}")

        value = None
        if handler is not None:
            try:
                value = await invoke(handler, error)
            except Exception as e:
                session.error = e
                task.reject(e)
                if handler is session.error_handler:
                    session.error_handler = None
                else:
                    await self._claim(session)
                return

        session.error = None
        session.last_result = value
        if task.kind is TaskKind.CATCH:
            self.stop()
        task.resolve(value)

    async def _claim(self, session: Session) -> None:
        """
        Hand a failure to the session handler once no catch entry is left.

        Failures of tasks queued after ``session.catch()`` have no entry
        to reach, so the handler registered with it takes them here.
        """
        handler = session.error_handler
        if handler is None or session.error is None:
            return
        if any(task.is_handler for task in session.tasks):
            return

        error = session.error
        logger.debug(f"{self._prefix()}Error | {error} | {session} catch")
        try:
            value = await invoke(handler, error)
        except Exception as e:
            session.error = e
            session.error_handler = None
            return
        session.error = None
        session.last_result = value

    async def _invoke(self, task: Task) -> Any:
        frames = self._retry_frames() if task.retry else []
        if not frames:
            return await self._attempt(task)

        # unconditional frames take precedence for the backoff settings
        unconditional = [frame for frame in frames if not frame.is_conditional]
        opts = (unconditional or frames)[-1]

        attempt = 1
        while True:
            if attempt > 1:
                logger.debug(f"{self._prefix()}Retrying... Attempt #{attempt}")
            try:
                return await self._attempt(task)
            except Exception as e:
                if not any(frame.matches(e) for frame in reversed(frames)):
                    raise
                delay_ms = opts.delay_for_attempt(attempt)
                if delay_ms is None:
                    raise
                await asyncio.sleep(delay_ms / 1000)
                attempt += 1

    async def _attempt(self, task: Task) -> Any:
        timeout_ms = task.timeout_ms
        if not timeout_ms or timeout_ms <= 0:
            return await invoke(task.action)

        runner = asyncio.ensure_future(invoke(task.action))
        runner.add_done_callback(_retrieve_exception)
        try:
            done, _ = await asyncio.wait({runner}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            runner.cancel()
            raise
        if runner in done:
            return runner.result()
        runner.cancel()
        raise TaskTimeoutError(f"Action {task.name} was interrupted on timeout {timeout_ms}ms")

    def _retry_frames(self) -> list[RetryOptions]:
        auto_enabled = self._store.auto_retries if self._store is not None else True
        return [frame for frame in self.retries if auto_enabled or not frame.auto]

    # =========================================================================
    # Introspection
    # =========================================================================

    def _prefix(self) -> str:
        session = self.current_session
        if session.is_root:
            return f"[{self.queue_id}] "
        return f"[{self.queue_id}] {session} "

    def scheduled(self) -> str:
        """Names of every task added since the last reset, one per line."""
        return "\n".join(self._log)

    def __str__(self) -> str:
        return f"Queue: [{self.queue_id}]\n\nTasks: {self.scheduled()}"

    def __repr__(self) -> str:
        return (
            f"Recorder(queue_id={self.queue_id}, running={self._running}, "
            f"sessions={[str(s) for s in self._sessions]}, retries={len(self.retries)})"
        )
