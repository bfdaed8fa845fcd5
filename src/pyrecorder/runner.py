"""
Runner glue: drives test and hook bodies through the recorder.

A test body is plain code calling the actor; it only *records* steps.
``run_test`` calls the body, then waits for the recorder to drain what it
recorded, and reports the outcome through the lifecycle events
(``test.started``, ``test.passed`` / ``test.failed``, ``test.finished``).

The body itself is not a recorder task, so it may await the futures the
actor returns (``await I.grab_text("h1")``) without blocking the queue.

Design: Template Method
    ``run_suite`` fixes the order of a suite run; hooks and test bodies
    are the variable parts:

        suite.before
        BeforeSuite hooks
        for each test:
            test.before, Before hooks, body, After hooks, test.after
        AfterSuite hooks
        suite.after
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from uuid_extensions import uuid7

from pyrecorder.events import HookEvent, SuiteEvent, TestEvent
from pyrecorder.executor.task import invoke

if TYPE_CHECKING:
    from pyrecorder.context import SchedulerContext
    from pyrecorder.core.step import Step

logger = logging.getLogger(__name__)

__all__ = ["Test", "TestState", "Suite", "Hook", "HookKind", "run_test", "run_hook", "run_suite"]


class TestState(Enum):
    """Outcome of a test."""

    __test__ = False

    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class HookKind(Enum):
    """When a hook runs relative to the tests of its suite."""

    BEFORE = "before"
    AFTER = "after"
    BEFORE_SUITE = "before_suite"
    AFTER_SUITE = "after_suite"

    @property
    def title(self) -> str:
        return "".join(part.capitalize() for part in self.value.split("_"))

    def __str__(self) -> str:
        return self.value


@dataclass(eq=False)
class Test:
    """
    One scenario.

    Attributes:
        title: Scenario title (timeout rules match against it)
        fn: Body; called with the arguments given to ``run_test``
        uid: Unique, time-ordered identifier
        steps: Steps started while the body ran (kept by the steps listener)
        notes: Free-form notes, e.g. failed soft assertions
        total_timeout: Budget in seconds for all steps of this test
        retry_num: Number of previous runs of this test (None before the first)
    """

    __test__ = False

    title: str
    fn: Callable[..., Any] | None = None
    uid: str = field(default_factory=lambda: str(uuid7()))
    steps: list[Step] = field(default_factory=list)
    notes: list[dict[str, Any]] = field(default_factory=list)
    artifacts: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)
    opts: dict[str, Any] = field(default_factory=dict)
    total_timeout: float | None = None
    state: TestState = TestState.PENDING
    err: BaseException | None = None
    retry_num: int | None = None
    started_at: float | None = None
    parent: Suite | None = field(default=None, repr=False)

    def add_note(self, type: str, text: str) -> None:
        self.notes.append({"type": type, "text": text})

    @property
    def full_title(self) -> str:
        if self.parent is None:
            return self.title
        return f"{self.parent.title}: {self.title}"


@dataclass(eq=False)
class Hook:
    """A Before/After/BeforeSuite/AfterSuite routine of a suite."""

    kind: HookKind
    fn: Callable[..., Any]
    suite: Suite | None = field(default=None, repr=False)
    steps: list[Step] = field(default_factory=list)
    err: BaseException | None = None

    @property
    def title(self) -> str:
        return f'"{self.kind.title}" hook'

    def __str__(self) -> str:
        return self.title


@dataclass(eq=False)
class Suite:
    """A feature: tests plus the hooks around them."""

    title: str
    tests: list[Test] = field(default_factory=list)
    hooks: list[Hook] = field(default_factory=list)
    total_timeout: float | None = None
    opts: dict[str, Any] = field(default_factory=dict)
    """``retry_<hook kind>`` entries set hook retry budgets."""

    def add_test(self, test: Test) -> Test:
        test.parent = self
        self.tests.append(test)
        return test

    def add_hook(self, kind: HookKind, fn: Callable[..., Any]) -> Hook:
        hook = Hook(kind=kind, fn=fn, suite=self)
        self.hooks.append(hook)
        return hook

    def hooks_of(self, kind: HookKind) -> list[Hook]:
        return [hook for hook in self.hooks if hook.kind is kind]


async def run_test(ctx: SchedulerContext, test: Test, *args: Any) -> Test:
    """
    Run the body of ``test`` and report its outcome.

    Failures of recorded steps propagate to the end of the test; ``force``
    tasks recorded after the failure still run.

    Returns:
        The test, with ``state`` and ``err`` set
    """
    dispatcher = ctx.dispatcher
    ctx.recorder.start_unless_running()
    if test.fn is None:
        return test

    dispatcher.emit(TestEvent.STARTED, test)
    error = await _drain(ctx, test.fn, args)

    if error is None:
        test.state = TestState.PASSED
        test.err = None
        dispatcher.emit(TestEvent.PASSED, test)
    else:
        logger.debug(f"Test {test.title} failed: {error!r}")
        test.state = TestState.FAILED
        test.err = error
        dispatcher.emit(TestEvent.FAILED, test, error)
    dispatcher.emit(TestEvent.FINISHED, test)
    return test


async def run_hook(ctx: SchedulerContext, hook: Hook, *args: Any) -> BaseException | None:
    """
    Run a hook, replaying it up to ``suite.opts["retry_<kind>"]`` times.

    Returns:
        None when the hook passed, otherwise its last failure
    """
    dispatcher = ctx.dispatcher
    opts = hook.suite.opts if hook.suite is not None else {}
    retries = int(opts.get(f"retry_{hook.kind.value}", 0))

    dispatcher.emit(HookEvent.STARTED, hook)
    error = None
    for attempt in range(retries + 1):
        if attempt:
            logger.debug(f"Retrying {hook}... Attempt #{attempt + 1}")
        ctx.recorder.start_unless_running()
        error = await _drain(ctx, hook.fn, args)
        if error is None:
            break

    hook.err = error
    if error is None:
        dispatcher.emit(HookEvent.PASSED, hook)
    else:
        dispatcher.emit(HookEvent.FAILED, hook, error)
    dispatcher.emit(HookEvent.FINISHED, hook)
    return error


async def run_suite(ctx: SchedulerContext, suite: Suite, *args: Any) -> Suite:
    """
    Run every test of ``suite`` with its hooks.

    A failing BeforeSuite hook fails every test of the suite; a failing
    Before hook fails its test. After hooks always run.
    """
    ctx.recorder.start_unless_running()
    await _fire(ctx, SuiteEvent.BEFORE, suite)

    error = await _run_hooks(ctx, suite.hooks_of(HookKind.BEFORE_SUITE), args)
    if error is not None:
        _fail_tests(ctx, suite.tests, error, HookKind.BEFORE_SUITE)
    else:
        for test in suite.tests:
            await _fire(ctx, TestEvent.BEFORE, test)
            hook_error = await _run_hooks(ctx, suite.hooks_of(HookKind.BEFORE), args)
            if hook_error is not None:
                _fail_tests(ctx, [test], hook_error, HookKind.BEFORE)
            else:
                await run_test(ctx, test, *args)
            await _run_hooks(ctx, suite.hooks_of(HookKind.AFTER), args, stop_on_failure=False)
            await _fire(ctx, TestEvent.AFTER, test)

    await _run_hooks(ctx, suite.hooks_of(HookKind.AFTER_SUITE), args, stop_on_failure=False)
    await _fire(ctx, SuiteEvent.AFTER, suite)
    return suite


async def _run_hooks(
    ctx: SchedulerContext,
    hooks: list[Hook],
    args: tuple[Any, ...],
    stop_on_failure: bool = True,
) -> BaseException | None:
    failure = None
    for hook in hooks:
        error = await run_hook(ctx, hook, *args)
        if error is not None:
            failure = failure or error
            if stop_on_failure:
                break
    return failure


def _fail_tests(
    ctx: SchedulerContext, tests: list[Test], error: BaseException, kind: HookKind
) -> None:
    for test in tests:
        test.err = error
        test.state = TestState.FAILED
        ctx.dispatcher.emit(TestEvent.FAILED, test, error, kind.title)
        ctx.dispatcher.emit(TestEvent.FINISHED, test)


async def _fire(ctx: SchedulerContext, event: str, subject: Any) -> BaseException | None:
    """Emit a setup/teardown event; steps recorded by its listeners run first."""
    ctx.recorder.start_unless_running()
    return await _drain(ctx, lambda: ctx.dispatcher.emit(event, subject), ())


async def _drain(
    ctx: SchedulerContext, fn: Callable[..., Any], args: tuple[Any, ...]
) -> BaseException | None:
    """
    Call ``fn`` and wait until everything it recorded has run.

    Returns:
        The failure that reached the end of the queue, if any
    """
    recorder = ctx.recorder
    failure: list[BaseException] = []
    try:
        await invoke(fn, *args)
    except Exception as e:
        recorder.throw(e)
    recorder.catch_without_stop(failure.append)
    await recorder.promise()
    return failure[0] if failure else None
