"""
Effect combinators: soft failure, retry and try around a block of steps.

Each combinator queues one task on the recorder. When that task runs it
opens a session, records the callback's steps inside it, and waits for
the session to drain. A catch entry at the end of the session decides
what the outer flow sees:

- ``try_to``: True when every step passed, False otherwise. Never fails.
- ``hope_that``: like ``try_to``, and the failure is attached to the
  current test as a ``conditionalError`` note (soft assertion).
- ``retry_to``: replays the whole block until it passes; fails with the
  last error once the attempts are exhausted.

All three return the future of their task, so they can be awaited or
just called and left to the queue:

    ```python
    if not await try_to(ctx, lambda: I.see("Cookie banner")):
        I.say("no banner")

    retry_to(ctx, lambda attempt: I.click("Reload"), max_tries=3)
    ```
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pyrecorder.events import TestEvent
from pyrecorder.executor.task import invoke

if TYPE_CHECKING:
    from pyrecorder.context import SchedulerContext

logger = logging.getLogger(__name__)

__all__ = ["try_to", "hope_that", "retry_to"]


def try_to(ctx: SchedulerContext, callback: Callable[[], Any]) -> asyncio.Future[Any]:
    """
    Run ``callback``'s steps without failing the test.

    Automatic retries are disabled while the block runs.

    Returns:
        Future resolving True on success, False on failure (None in dry-run)
    """
    store = ctx.store
    if store.dry_run:
        return _resolved(None)

    report = _report("Unsuccessful try")

    def on_failure(err: BaseException) -> bool:
        report(err)
        return False

    async def attempt() -> bool:
        auto_retries = store.auto_retries
        if auto_retries:
            logger.debug("Auto retries disabled inside try_to effect")
        store.auto_retries = False
        try:
            return await _run_isolated(ctx, "tryTo", callback, on_failure)
        finally:
            store.auto_retries = auto_retries

    return ctx.recorder.add("tryTo", attempt, retry=False)


def hope_that(ctx: SchedulerContext, callback: Callable[[], Any]) -> asyncio.Future[Any]:
    """
    Soft assertion: run ``callback``'s steps, note a failure, keep going.

    A failure is attached to the test as
    ``{"type": "conditionalError", "text": message}`` when it finishes.

    Returns:
        Future resolving True on success, False on failure (None in dry-run)
    """
    store = ctx.store
    if store.dry_run:
        return _resolved(None)

    report = _report("Unsuccessful assertion")

    def on_failure(err: BaseException) -> bool:
        message = report(err)
        ctx.dispatcher.once(
            TestEvent.FINISHED,
            lambda test, *_: test.add_note("conditionalError", message),
        )
        return False

    async def attempt() -> bool:
        store.hope_that = True
        try:
            return await _run_isolated(ctx, "hopeThat", callback, on_failure)
        finally:
            store.hope_that = False

    return ctx.recorder.add("hopeThat", attempt, retry=False)


def retry_to(
    ctx: SchedulerContext,
    callback: Callable[[int], Any],
    max_tries: int,
    poll_interval_ms: float | None = None,
) -> asyncio.Future[Any]:
    """
    Run ``callback``'s steps until they pass.

    The callback receives the attempt number, starting at 1. It is
    invoked at most ``max_tries + 1`` times, with ``poll_interval_ms``
    (default: ``config.poll_interval_ms``) between attempts.

    Returns:
        Future resolving None once an attempt passes; rejected with the
        last error when every attempt failed

    Raises:
        ValueError: If ``max_tries`` is negative
    """
    if max_tries < 0:
        raise ValueError(f"max_tries must be >= 0, got {max_tries}")
    recorder = ctx.recorder
    if poll_interval_ms is None:
        poll_interval_ms = ctx.config.poll_interval_ms

    async def attempts() -> None:
        for tries in range(1, max_tries + 2):
            failure: list[BaseException] = []

            def capture(err: BaseException) -> None:
                failure.append(err)

            await _run_isolated(ctx, f"retryTo {tries}", lambda: callback(tries), capture)
            if not failure:
                return None
            if tries > max_tries:
                raise failure[0]
            logger.debug(f"Error {failure[0]}... Retrying")
            await asyncio.sleep(poll_interval_ms / 1000)

    return recorder.add("retryTo", attempts, retry=False)


async def _run_isolated(
    ctx: SchedulerContext,
    session_name: str,
    callback: Callable[[], Any],
    on_failure: Callable[[BaseException], Any],
) -> Any:
    """
    Record ``callback`` in its own session and wait for it to drain.

    Resolves True when the session drained without failure, otherwise with
    whatever ``on_failure`` returned.
    """
    recorder = ctx.recorder
    recorder.session.start(session_name)
    try:
        try:
            await invoke(callback)
        except Exception as e:
            recorder.throw(e)
        recorder.add(f"{session_name} passed", lambda: True, retry=False)
        recorder.session.catch(on_failure)
        return await recorder.promise()
    finally:
        recorder.session.restore(session_name)


def _report(prefix: str) -> Callable[[BaseException], str]:
    def describe_failure(err: BaseException) -> str:
        message = f"{type(err).__name__}: {err}"
        logger.debug(f"{prefix} > {message}")
        return message

    return describe_failure


def _resolved(value: Any) -> asyncio.Future[Any]:
    future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
    future.set_result(value)
    return future
